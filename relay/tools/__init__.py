"""Tools for the conversational AI assistant."""

from relay.tools.dispatcher import ClientDispatch, ServerDispatch, ToolDispatcher
from relay.tools.registry import ToolsRegistry

__all__ = ["ClientDispatch", "ServerDispatch", "ToolDispatcher", "ToolsRegistry"]
