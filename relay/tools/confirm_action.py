"""Client-side confirmation tool."""

from pydantic import BaseModel, Field

from relay.tools.base import ToolDefinition


class ConfirmActionInput(BaseModel):
    """Input schema for the confirmation dialog."""

    message: str = Field(
        ...,
        min_length=1,
        description="The confirmation message to display. It should clearly explain the action being confirmed.",
    )


def create_confirm_action_tool() -> ToolDefinition:
    """Confirmation is answered by the user, so the tool has no server handler."""
    return ToolDefinition(
        name="confirm_action",
        description=(
            "Request user confirmation for an action. This displays a confirmation dialog to the user "
            "and waits for their response before continuing. Use it before destructive or irreversible steps."
        ),
        input_schema_class=ConfirmActionInput,
        mode="client",
    )
