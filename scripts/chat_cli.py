#!/usr/bin/env python3
"""Interactive chat CLI for testing the agent service."""

import json
import sys
from collections.abc import Iterator

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from relay.models.messages import FunctionResponsePart, Message, TextPart, ToolResult


class ChatCLI:
    """Interactive chat interface for the agent service."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.thread_id: str | None = None
        self.mode = "agent"
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(60.0, read=None))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Relay Agent - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the agent.\n"
                "Commands: /help, /new, /threads, /mode, /quit",
                border_style="blue",
            )
        )

        # Test connection
        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to agent service[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")
                command = user_input.strip().lower()

                if command in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command == "/help":
                    self._show_help()
                    continue
                elif command == "/new":
                    self.thread_id = None
                    self.console.print("[yellow]🔄 Started a new thread[/yellow]")
                    continue
                elif command == "/threads":
                    self._show_threads()
                    continue
                elif command == "/mode":
                    self.mode = "assistant" if self.mode == "agent" else "agent"
                    self.console.print(f"[yellow]Mode: {self.mode}[/yellow]")
                    continue
                elif command == "":
                    continue

                if self.thread_id is None:
                    self.thread_id = self._create_thread()
                    if self.thread_id is None:
                        continue

                message = Message(thread_id=self.thread_id, role="user", parts=[TextPart(text=user_input)])
                self._run_turn("text", message)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _create_thread(self) -> str | None:
        try:
            response = self.client.post(f"{self.base_url}/threads", json={})
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Could not create thread: {e}[/red]")
            return None
        return response.json()["id"]

    def _events(self, event_type: str, message: Message) -> Iterator[dict]:
        """Post an event to the stream endpoint and yield decoded SSE frames."""
        payload = {"type": event_type, "message": message.model_dump(mode="json"), "mode": self.mode}
        with self.client.stream("POST", f"{self.base_url}/stream", json=payload) as response:
            if response.status_code != 200:
                response.read()
                self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                return
            for line in response.iter_lines():
                if line.startswith("data: "):
                    yield json.loads(line[len("data: ") :])

    def _run_turn(self, event_type: str, message: Message) -> None:
        """Stream one turn, answering client tool calls as they arrive."""
        draft: Message | None = None
        pending: Message | None = None

        try:
            for event in self._events(event_type, message):
                kind = event["type"]

                if kind == "is_thinking" and event["is_thinking"]:
                    self.console.print("[dim]💭 Thinking...[/dim]")
                elif kind == "message":
                    current = Message.model_validate(event["message"])
                    if draft is not None and draft.id != current.id:
                        self._display_message(draft)
                    draft = current
                elif kind == "function_response":
                    self._display_tool_results(Message.model_validate(event["message"]))
                elif kind == "function_call":
                    pending = Message.model_validate(event["message"])
                elif kind == "error":
                    self.console.print(f"[red]❌ {event['error']}[/red]")
                elif kind == "thread_title":
                    self.console.print(f"[dim]Thread: {event['title']}[/dim]")

        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return

        if draft is not None:
            self._display_message(draft)

        if pending is not None:
            self._answer_client_call(pending)

    def _answer_client_call(self, message: Message) -> None:
        answered = message.responded_call_ids()
        call = next(part for part in message.function_calls() if part.id not in answered)

        prompt = call.args.get("message", f"Allow {call.name}?")
        confirmed = Confirm.ask(f"[bold magenta]{prompt}[/bold magenta]")

        response = FunctionResponsePart(id=call.id, name=call.name, response=ToolResult.ok({"confirmed": confirmed}))
        reply = Message(thread_id=message.thread_id, role="user", parts=[response])
        self._run_turn("function_response", reply)

    def _display_message(self, message: Message) -> None:
        """Display a model message with nice formatting."""
        if message.text:
            self.console.print(
                Panel(
                    Markdown(message.text),
                    title="[bold green]🤖 Agent[/bold green]",
                    border_style="green",
                    padding=(1, 2),
                )
            )
        for call in message.function_calls():
            self.console.print(f"[dim]🔧 {call.name}({json.dumps(call.args)})[/dim]")

    def _display_tool_results(self, message: Message) -> None:
        for part in message.parts:
            if isinstance(part, FunctionResponsePart):
                status = "❌" if part.response.is_error else "✅"
                self.console.print(f"[dim]{status} {part.name} returned[/dim]")

    def _show_threads(self) -> None:
        try:
            threads = self.client.get(f"{self.base_url}/threads").json()
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return

        if not threads:
            self.console.print("[dim]No threads yet[/dim]")
            return

        thread_list = "\n".join(f"• {thread['title']} [dim]({thread['id']})[/dim]" for thread in threads)
        self.console.print(Panel(thread_list, title="[yellow]Threads[/yellow]", border_style="yellow"))

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /new - Start a new thread
• /threads - List existing threads
• /mode - Switch between agent and assistant mode
• /quit or /exit - Exit the chat

[bold]Tips:[/bold]
• In agent mode the agent plans with a todo list and searches before answering
• When the agent asks for confirmation, answer y or n to let it continue
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
