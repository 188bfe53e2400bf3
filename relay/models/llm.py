"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    model_config = ConfigDict(extra="ignore")  # Ignore any additional fields from Anthropic

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class LLMMessage(BaseModel):
    """A message for LLM conversation."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


class LLMToolDefinition(BaseModel):
    """Tool definition as advertised to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class FunctionCallFragment:
    """A complete tool call emitted by the model. ``id`` may be missing upstream."""

    name: str
    args: dict[str, Any]
    id: str | None = None


@dataclass
class Fragment:
    """One increment of a streamed model turn."""

    text: str | None = None
    function_call: FunctionCallFragment | None = None


class NextSpeakerDecision(BaseModel):
    """Continuation oracle verdict."""

    reasoning: str = ""
    next_speaker: Literal["user", "model"]
