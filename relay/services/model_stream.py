"""Streaming model adapter: history in, text and function-call fragments out."""

import json
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Protocol

import httpx
from anthropic import APIError

from relay.clients.anthropic import AnthropicClient, AnthropicMessage
from relay.errors import ModelStreamError
from relay.models.llm import ContentBlock, Fragment, FunctionCallFragment, TextBlock, ToolResultBlock, ToolUseBlock
from relay.models.messages import FunctionCallPart, FunctionResponsePart, Message, TextPart, ToolResult, generate_id
from relay.services.cancellation import CancelToken
from relay.tools.registry import ToolsRegistry
from relay.utils.logging import get_logger

logger = get_logger(__name__)

CONTINUE_NUDGE = "Please continue."


class ModelStream(Protocol):
    """A model that streams one turn as a sequence of fragments."""

    def stream(
        self, history: Sequence[Message], system_prompt: str, cancel: CancelToken | None = None
    ) -> AsyncIterator[Fragment]:
        """Stream a new model turn.

        Raises:
            ModelStreamError: If the upstream model fails mid-stream
        """
        ...


def _tool_result_content(result: ToolResult) -> str:
    if result.is_error:
        return result.error or ""
    if isinstance(result.output, str):
        return result.output
    return json.dumps(result.output, default=str)


def to_llm_messages(history: Sequence[Message]) -> list[AnthropicMessage]:
    """Convert thread history into alternating Anthropic user/assistant messages.

    Function responses recorded on a model message become ``tool_result``
    blocks of the following user message. Consecutive messages with the same
    role are merged and empty text is dropped.
    """
    converted: list[AnthropicMessage] = []

    def append(role: str, blocks: list[ContentBlock]) -> None:
        if not blocks:
            return
        if converted and converted[-1].role == role:
            converted[-1].content.extend(blocks)
        else:
            converted.append(AnthropicMessage(role=role, content=blocks))

    for message in history:
        spoken: list[ContentBlock] = []
        results: list[ContentBlock] = []

        for part in message.parts:
            if isinstance(part, TextPart):
                if part.text.strip():
                    spoken.append(TextBlock(text=part.text))
            elif isinstance(part, FunctionCallPart):
                spoken.append(ToolUseBlock(id=part.id, name=part.name, input=part.args))
            elif isinstance(part, FunctionResponsePart) and part.id:
                results.append(
                    ToolResultBlock(
                        tool_use_id=part.id,
                        content=_tool_result_content(part.response),
                        is_error=part.response.is_error,
                    )
                )

        if message.role == "model":
            append("assistant", spoken)
            append("user", results)
        else:
            # Tool results must lead the user content
            append("user", results + spoken)

    return converted


class AnthropicModelStream:
    """Model stream backed by the Anthropic messages streaming API."""

    def __init__(self, client: AnthropicClient, registry: ToolsRegistry):
        self.client = client
        self.registry = registry

    async def stream(
        self, history: Sequence[Message], system_prompt: str, cancel: CancelToken | None = None
    ) -> AsyncIterator[Fragment]:
        messages = to_llm_messages(history)
        if not messages or messages[-1].role == "assistant":
            messages.append(AnthropicMessage(role="user", content=CONTINUE_NUDGE))

        try:
            async with aclosing(
                self.client.stream_message(messages, system_prompt, tools=self.registry.get_llm_tools())
            ) as events:
                async for event in events:
                    fragment = self._to_fragment(event)
                    if fragment is None:
                        continue
                    if cancel is not None and cancel.cancelled:
                        logger.debug("Model stream cancelled")
                        return
                    yield fragment

        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Model stream failed: {e}")
            raise ModelStreamError(f"Model stream failed: {e}") from e

    @staticmethod
    def _to_fragment(event) -> Fragment | None:
        if event.type == "text":
            return Fragment(text=event.text) if event.text else None

        if event.type == "content_block_stop" and event.content_block.type == "tool_use":
            block = event.content_block
            return Fragment(
                function_call=FunctionCallFragment(name=block.name, args=dict(block.input or {}), id=block.id or None)
            )

        return None


class MessageAccumulator:
    """Builds the model message of a turn from streamed fragments.

    The draft keeps one id for the whole stream. Text is concatenated into a
    single leading text part; each function call is appended as its own part.
    """

    def __init__(self, thread_id: str):
        self.message = Message(thread_id=thread_id, role="model")

    def add(self, fragment: Fragment) -> Message:
        """Apply ``fragment`` and return a snapshot of the draft."""
        parts = self.message.parts

        if fragment.text:
            if parts and isinstance(parts[0], TextPart):
                parts[0].text += fragment.text
            else:
                parts.insert(0, TextPart(text=fragment.text))

        if fragment.function_call is not None:
            call = fragment.function_call
            parts.append(FunctionCallPart(id=call.id or generate_id(), name=call.name, args=call.args))

        return self.snapshot()

    def snapshot(self) -> Message:
        return self.message.model_copy(deep=True)

    @property
    def is_empty(self) -> bool:
        return not self.message.parts
