"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel

from relay.models.llm import LLMToolDefinition

ToolMode = Literal["server", "client"]


@dataclass
class ToolContext:
    """Per-call context handed to tool handlers."""

    thread_id: str


ToolHandler = Callable[[Any, ToolContext], Awaitable[Any]]


@dataclass
class ToolDefinition:
    """Definition of a tool available to the AI assistant.

    Server tools run inside the turn loop through ``handler``. Client tools
    have no handler: the turn suspends until the user sends the result back.
    """

    name: str
    description: str
    input_schema_class: type[BaseModel]
    mode: ToolMode = "server"
    handler: ToolHandler | None = None

    def __post_init__(self) -> None:
        if self.mode == "server" and self.handler is None:
            raise ValueError(f"Server tool {self.name} requires a handler")

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def to_llm_tool(self) -> LLMToolDefinition:
        return LLMToolDefinition(name=self.name, description=self.description, input_schema=self.get_json_schema())
