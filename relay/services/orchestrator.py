"""Turn orchestrator: the agent loop behind a single user event.

One invocation merges the incoming event into the thread history and then
alternates between resolving the pending tool call and streaming a new model
turn, asking the continuation oracle after each completed turn whether the
model should keep speaking. It ends when the oracle hands the turn to the
user, when a client tool needs the user, or when max_turns model streams have run.
"""

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Protocol

from relay.config import OrchestratorConfig
from relay.errors import EventValidationError, ModelStreamError, PersistenceError
from relay.models.events import (
    AgentEvent,
    CompleteEvent,
    ErrorEvent,
    FunctionCallEvent,
    FunctionResponseEvent,
    IsThinkingEvent,
    MessageEvent,
)
from relay.models.messages import FunctionCallPart, FunctionResponsePart, Message, TextPart, ToolResult, UserEvent
from relay.prompts import AgentMode, get_system_prompt
from relay.services.cancellation import CancelToken
from relay.services.continuation import ContinuationOracle
from relay.services.model_stream import MessageAccumulator, ModelStream
from relay.services.store import MessageStore
from relay.tools.dispatcher import ClientDispatch, ToolDispatcher
from relay.utils.history import PendingCall, find_pending_call, pending_calls
from relay.utils.logging import get_logger

logger = get_logger(__name__)

IGNORED_CALL_OUTPUT = "The user ignored the previous tool call. Please continue without it."


class PendingCallPolicy(Protocol):
    """Decides how an unresolved call is answered when the user moves on with text."""

    def resolve(self, call: FunctionCallPart) -> FunctionResponsePart: ...


class IgnoredCallPolicy:
    """Answer the bypassed call with a note that the user ignored it."""

    def resolve(self, call: FunctionCallPart) -> FunctionResponsePart:
        return FunctionResponsePart(id=call.id, name=call.name, response=ToolResult.ok(IGNORED_CALL_OUTPUT))


@dataclass
class Turn:
    """Working copy of a thread's history for one invocation."""

    thread_id: str
    messages: list[Message] = field(default_factory=list)
    streams: int = 0

    def pending_call(self) -> PendingCall | None:
        return find_pending_call(self.messages)

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def replace(self, message: Message) -> None:
        for index, existing in enumerate(self.messages):
            if existing.id == message.id:
                self.messages[index] = message
                return
        raise KeyError(message.id)

    def window(self, size: int) -> list[Message]:
        return self.messages[-size:]


def _parts_update(message: Message) -> dict:
    return {"parts": [part.model_dump(mode="json") for part in message.parts]}


class TurnOrchestrator:
    """Runs the agent loop for one thread at a time."""

    def __init__(
        self,
        store: MessageStore,
        model: ModelStream,
        oracle: ContinuationOracle,
        dispatcher: ToolDispatcher,
        config: OrchestratorConfig | None = None,
        pending_policy: PendingCallPolicy | None = None,
        system_prompt_builder: Callable[[AgentMode], str] = get_system_prompt,
    ):
        """Initialize the orchestrator.

        Args:
            store: Thread and message persistence
            model: Streaming model adapter
            oracle: Decides whether the model keeps speaking after a turn
            dispatcher: Executes server tools and classifies client tools
            config: Turn limit and history windows
            pending_policy: Answers unresolved calls the user bypassed with text
            system_prompt_builder: Builds the system prompt for an agent mode
        """
        self.store = store
        self.model = model
        self.oracle = oracle
        self.dispatcher = dispatcher
        self.config = config or OrchestratorConfig()
        self.pending_policy = pending_policy or IgnoredCallPolicy()
        self.system_prompt_builder = system_prompt_builder

    async def run_turn(
        self, event: UserEvent, cancel: CancelToken | None = None, mode: AgentMode = "agent"
    ) -> AsyncIterator[AgentEvent]:
        """Process one user event and stream the resulting agent events.

        Args:
            event: New user text or the result of a client tool call
            cancel: Checked before every write, fragment, dispatch and oracle call
            mode: Agent mode used to build the system prompt

        Yields:
            Agent events in emission order

        Raises:
            EventValidationError: If the event is malformed or answers no pending call
            PersistenceError: If the store fails
        """
        cancel = cancel or CancelToken()
        self._validate(event)

        thread_id = event.message.thread_id
        turn = Turn(thread_id=thread_id, messages=await self.store.get_messages(thread_id))
        logger.info(f"Starting {mode} turn for thread {thread_id} with {len(turn.messages)} messages of history")

        if not await self._merge_user_event(turn, event, cancel):
            return

        system_prompt = self.system_prompt_builder(mode)

        yield IsThinkingEvent(is_thinking=True)
        thinking = True

        try:
            while turn.streams < self.config.max_turns:
                while (pending := turn.pending_call()) is not None:
                    if cancel.cancelled:
                        return

                    logger.debug(f"Dispatching {pending.call.name} ({pending.call.id}) in message {pending.message.id}")
                    outcome = await self.dispatcher.dispatch(pending.call, thread_id)

                    if isinstance(outcome, ClientDispatch):
                        logger.info(f"Suspending thread {thread_id} for client tool {pending.call.name}")
                        if thinking:
                            yield IsThinkingEvent(is_thinking=False)
                        yield FunctionCallEvent(message=pending.message)
                        return

                    if cancel.cancelled:
                        return

                    response = FunctionResponsePart(id=pending.call.id, name=pending.call.name, response=outcome.result)
                    updated = await self._record_response(turn, pending.message, response)
                    yield FunctionResponseEvent(message=updated)

                if not thinking:
                    yield IsThinkingEvent(is_thinking=True)
                    thinking = True

                turn.streams += 1
                draft = MessageAccumulator(thread_id)
                try:
                    async for fragment in self.model.stream(turn.messages, system_prompt, cancel):
                        if cancel.cancelled:
                            return
                        if thinking:
                            yield IsThinkingEvent(is_thinking=False)
                            thinking = False
                        yield MessageEvent(message=draft.add(fragment))

                except ModelStreamError as e:
                    logger.error(
                        f"Model stream failed for thread {thread_id}: {e}",
                        extra={"thread_id": thread_id, "message_id": draft.message.id},
                    )
                    yield ErrorEvent(error=str(e), thread_id=thread_id, message_id=draft.message.id)
                    yield IsThinkingEvent(is_thinking=False)
                    return

                if cancel.cancelled:
                    return

                if draft.is_empty:
                    logger.info(f"Model returned an empty turn for thread {thread_id}")
                    break

                message = await self.store.add_message(draft.snapshot())
                turn.append(message)

                if pending_calls(message):
                    continue

                if cancel.cancelled:
                    return

                decision = await self.oracle.decide(turn.window(self.config.oracle_window))
                logger.debug(f"Next speaker for thread {thread_id}: {decision.next_speaker}")
                if decision.next_speaker == "user":
                    break
            else:
                logger.warning(
                    f"Thread {thread_id} reached the limit of {self.config.max_turns} model turns",
                    extra={"thread_id": thread_id},
                )
        except PersistenceError:
            # Clear the indicator before the failure reaches the caller
            if thinking and not cancel.cancelled:
                yield IsThinkingEvent(is_thinking=False)
            raise

        yield IsThinkingEvent(is_thinking=False)
        yield CompleteEvent(is_complete=True)
        logger.info(f"Completed turn for thread {thread_id} after {turn.streams} model turns")

    def _validate(self, event: UserEvent) -> None:
        message = event.message
        if message.role != "user":
            raise EventValidationError(f"Expected a user message, got role {message.role}")

        allowed = TextPart if event.type == "text" else FunctionResponsePart
        for part in message.parts:
            if not isinstance(part, allowed):
                raise EventValidationError(f"A {event.type} event cannot carry a {part.type} part")

        if event.type == "text" and not message.text.strip():
            raise EventValidationError("Text event requires a non-empty text part")

        if event.type == "function_response" and not message.function_responses():
            raise EventValidationError("Function response event requires a function_response part")

    async def _merge_user_event(self, turn: Turn, event: UserEvent, cancel: CancelToken) -> bool:
        """Fold the user event into history. Returns False if cancelled first."""
        pending = turn.pending_call()

        if event.type == "function_response":
            if pending is None:
                raise EventValidationError(f"Thread {turn.thread_id} has no pending function call")

            message = self._answer_calls(pending.message, event.message.function_responses())
            if cancel.cancelled:
                return False
            turn.replace(await self.store.update_message(message.id, _parts_update(message)))
            return True

        if pending is not None:
            message = pending.message
            for call in pending_calls(message):
                logger.info(f"User bypassed pending call {call.name} ({call.id}) in thread {turn.thread_id}")
                message = message.with_function_response(self.pending_policy.resolve(call))
            if cancel.cancelled:
                return False
            turn.replace(await self.store.update_message(message.id, _parts_update(message)))

        if cancel.cancelled:
            return False

        if await self.store.get_thread(turn.thread_id) is None:
            logger.info(f"Creating thread {turn.thread_id}")
            await self.store.add_thread(thread_id=turn.thread_id)

        turn.append(await self.store.add_message(event.message))
        return True

    def _answer_calls(self, message: Message, responses: list[FunctionResponsePart]) -> Message:
        for response in responses:
            unresolved = pending_calls(message)
            if response.id is None:
                if not unresolved:
                    raise EventValidationError(f"Message {message.id} has no unresolved function call")
                response = response.model_copy(update={"id": unresolved[0].id})

            call = next((call for call in unresolved if call.id == response.id), None)
            if call is None:
                raise EventValidationError(f"No pending function call with id {response.id}")

            if response.name is None:
                response = response.model_copy(update={"name": call.name})
            message = message.with_function_response(response)

        return message

    async def _record_response(self, turn: Turn, message: Message, response: FunctionResponsePart) -> Message:
        updated = message.with_function_response(response)
        stored = await self.store.update_message(message.id, _parts_update(updated))
        turn.replace(stored)
        return stored
