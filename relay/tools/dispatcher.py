"""Routes model tool calls to server execution or client suspension."""

from dataclasses import dataclass
from typing import Literal

from pydantic import ValidationError

from relay.errors import ToolArgumentError, ToolNotFoundError
from relay.models.messages import FunctionCallPart, ToolResult
from relay.tools.base import ToolContext
from relay.tools.registry import ToolsRegistry
from relay.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServerDispatch:
    """The call was resolved inside the loop."""

    result: ToolResult
    mode: Literal["server"] = "server"


@dataclass(frozen=True)
class ClientDispatch:
    """The call must be answered by the client; the turn suspends."""

    mode: Literal["client"] = "client"


DispatchOutcome = ServerDispatch | ClientDispatch


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)


class ToolDispatcher:
    """Dispatch tool calls against a ``ToolsRegistry``.

    ``dispatch`` never raises: unknown tools, invalid arguments and handler
    failures all come back as a failed ``ToolResult`` for the model to read.
    """

    def __init__(self, registry: ToolsRegistry):
        self.registry = registry

    async def dispatch(self, call: FunctionCallPart, thread_id: str) -> DispatchOutcome:
        try:
            tool = self.registry.get_tool(call.name)
        except ToolNotFoundError as e:
            logger.error(f"Unknown tool requested: {call.name}")
            return ServerDispatch(result=ToolResult.fail(e))

        if tool.mode == "client":
            logger.info(f"Tool {call.name} ({call.id}) is handled by the client")
            return ClientDispatch()

        try:
            params = tool.parse_input(call.args)
        except ValidationError as e:
            error = ToolArgumentError(call.name, _format_validation_error(e))
            logger.warning(str(error))
            return ServerDispatch(result=ToolResult.fail(error))

        logger.debug(f"Executing tool: {call.name} with input: {call.args}")
        try:
            output = await tool.handler(params, ToolContext(thread_id=thread_id))
        except Exception as e:
            logger.error(f"Tool {call.name} failed: {e}", exc_info=True)
            return ServerDispatch(result=ToolResult.fail(e))

        if isinstance(output, ToolResult):
            return ServerDispatch(result=output)

        logger.debug(f"Tool {call.name} succeeded: {str(output)[:100]}...")
        return ServerDispatch(result=ToolResult.ok(output))
