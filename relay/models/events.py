"""Events streamed to the caller while a turn runs."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from relay.models.messages import Message


class IsThinkingEvent(BaseModel):
    type: Literal["is_thinking"] = "is_thinking"
    is_thinking: bool


class MessageEvent(BaseModel):
    """Incremental snapshot of the model message being streamed."""

    type: Literal["message"] = "message"
    message: Message


class FunctionCallEvent(BaseModel):
    """A client tool call the user must resolve."""

    type: Literal["function_call"] = "function_call"
    message: Message


class FunctionResponseEvent(BaseModel):
    """A server tool call was executed and its response recorded."""

    type: Literal["function_response"] = "function_response"
    message: Message


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str
    thread_id: str | None = None
    message_id: str | None = None


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    is_complete: bool


class ThreadTitleEvent(BaseModel):
    """Sent by the HTTP layer after a turn when the thread title changed."""

    type: Literal["thread_title"] = "thread_title"
    thread_id: str
    title: str


AgentEvent = Annotated[
    IsThinkingEvent
    | MessageEvent
    | FunctionCallEvent
    | FunctionResponseEvent
    | ErrorEvent
    | CompleteEvent
    | ThreadTitleEvent,
    Field(discriminator="type"),
]
