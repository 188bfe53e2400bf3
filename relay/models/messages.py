"""Thread and message data models."""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field, model_validator

cuid = cuid_wrapper()

DEFAULT_THREAD_TITLE = "New Conversation"


def generate_id() -> str:
    """Generate a new CUID-based identifier."""
    return cuid()


def utc_now() -> datetime:
    return datetime.now(UTC)


class ToolResult(BaseModel):
    """Outcome of a tool execution. Exactly one of output or error is set."""

    output: Any = None
    error: str | None = None

    @model_validator(mode="after")
    def check_exactly_one(self) -> "ToolResult":
        if (self.output is None) == (self.error is None):
            raise ValueError("ToolResult requires exactly one of output or error")
        return self

    @classmethod
    def ok(cls, output: Any) -> "ToolResult":
        return cls(output=output if output is not None else {})

    @classmethod
    def fail(cls, error: str | Exception) -> "ToolResult":
        return cls(error=str(error) or error.__class__.__name__)

    @property
    def is_error(self) -> bool:
        return self.error is not None


class TextPart(BaseModel):
    """Plain text content."""

    type: Literal["text"] = "text"
    text: str


class FunctionCallPart(BaseModel):
    """A tool call requested by the model.

    ``response`` is only filled in by the history merge utility for display;
    the orchestrator records results as separate ``FunctionResponsePart``s.
    """

    type: Literal["function_call"] = "function_call"
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    response: ToolResult | None = None


class FunctionResponsePart(BaseModel):
    """The result of a tool call, matched to its call by id."""

    type: Literal["function_response"] = "function_response"
    id: str | None = None
    name: str | None = None
    response: ToolResult


Part = Annotated[TextPart | FunctionCallPart | FunctionResponsePart, Field(discriminator="type")]


class Message(BaseModel):
    """A single message in a thread."""

    id: str = Field(default_factory=generate_id)
    thread_id: str = Field(..., min_length=1)
    role: Literal["user", "model"]
    parts: list[Part] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def function_calls(self) -> list[FunctionCallPart]:
        return [part for part in self.parts if isinstance(part, FunctionCallPart)]

    def function_responses(self) -> list[FunctionResponsePart]:
        return [part for part in self.parts if isinstance(part, FunctionResponsePart)]

    def responded_call_ids(self) -> set[str]:
        return {part.id for part in self.function_responses() if part.id}

    def with_function_response(self, response: FunctionResponsePart) -> "Message":
        """Return a copy with ``response`` appended.

        This is the only mutation allowed on a finalized message: the response
        must answer a call carried by this model message that has no response yet.

        Raises:
            ValueError: If the message has no matching unresolved call
        """
        if self.role != "model":
            raise ValueError(f"Message {self.id} is not a model message")

        call_ids = {call.id for call in self.function_calls()}
        if response.id not in call_ids:
            raise ValueError(f"Message {self.id} has no function call with id {response.id}")

        if response.id in self.responded_call_ids():
            raise ValueError(f"Function call {response.id} in message {self.id} is already resolved")

        return self.model_copy(update={"parts": [*self.parts, response]})


class Thread(BaseModel):
    """A conversation thread."""

    id: str = Field(default_factory=generate_id)
    title: str = DEFAULT_THREAD_TITLE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class UserEvent(BaseModel):
    """An incoming event from the user: new text or a client tool result."""

    type: Literal["text", "function_response"]
    message: Message
