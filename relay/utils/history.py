"""Helpers for inspecting and reshaping thread history."""

from collections.abc import Sequence
from dataclasses import dataclass

from relay.models.messages import FunctionCallPart, FunctionResponsePart, Message


@dataclass(frozen=True)
class PendingCall:
    """An unresolved function call and the message that carries it."""

    call: FunctionCallPart
    message: Message


def pending_calls(message: Message) -> list[FunctionCallPart]:
    """Return the calls of ``message`` that have no response, in part order."""
    answered = message.responded_call_ids()
    return [call for call in message.function_calls() if call.id not in answered]


def find_pending_call(messages: Sequence[Message]) -> PendingCall | None:
    """Find the unresolved function call at the tail of ``messages``.

    Only the last message can hold an unresolved call, because every call is
    resolved before another model turn is issued, and responses are recorded on
    the message that carries the call. Checking the tail is therefore enough.
    With parallel calls the first unresolved one is returned.
    """
    if not messages:
        return None

    tail = messages[-1]
    unresolved = pending_calls(tail)
    if not unresolved:
        return None

    return PendingCall(call=unresolved[0], message=tail)


def merge_function_calls_and_responses(messages: Sequence[Message]) -> list[Message]:
    """Attach each function response to its originating call for display.

    For every ``function_response`` part, the earlier parts of the same message
    and then earlier messages are scanned backwards for a ``function_call`` with
    the same id and no attached response. The input is left untouched and
    running the merge on its own output changes nothing.
    """
    merged = [message.model_copy(deep=True) for message in messages]

    for message_index, message in enumerate(merged):
        for part_index, part in enumerate(message.parts):
            if not isinstance(part, FunctionResponsePart) or not part.id:
                continue

            call = _find_open_call(merged, message_index, part_index, part.id)
            if call is not None:
                call.response = part.response

    return merged


def _find_open_call(
    messages: list[Message], message_index: int, part_index: int, call_id: str
) -> FunctionCallPart | None:
    for index in range(message_index, -1, -1):
        parts = messages[index].parts
        end = part_index if index == message_index else len(parts)
        for part in reversed(parts[:end]):
            if isinstance(part, FunctionCallPart) and part.id == call_id and part.response is None:
                return part
    return None
