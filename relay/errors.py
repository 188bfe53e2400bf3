"""Error types raised across the agent service.

Tool failures never escape the dispatcher: they are converted into a failed
``ToolResult`` so the model can react. Model stream and persistence failures
end the current turn.
"""


class RelayError(Exception):
    """Base class for service errors."""


class EventValidationError(RelayError, ValueError):
    """Incoming user event is malformed or does not fit the thread state."""


class ToolNotFoundError(RelayError):
    """The model requested a tool that is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool {name} not found")


class ToolArgumentError(RelayError):
    """Tool arguments failed validation against the tool's input schema."""

    def __init__(self, name: str, detail: str):
        self.name = name
        self.detail = detail
        super().__init__(f"Invalid arguments for tool {name}: {detail}")


class ModelStreamError(RelayError):
    """The model stream failed before completing a turn."""


class PersistenceError(RelayError):
    """The message store could not read or write conversation state."""
