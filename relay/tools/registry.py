"""Tools registry for managing AI assistant tools."""

from collections.abc import Iterable

from relay.errors import ToolNotFoundError
from relay.models.llm import LLMToolDefinition
from relay.services.doc_search import DocSearchService
from relay.services.todos import TodoListService
from relay.services.web_search import WebSearchService
from relay.tools.base import ToolDefinition, ToolMode
from relay.tools.confirm_action import create_confirm_action_tool
from relay.tools.todo_list import create_todo_list_tool
from relay.tools.web_search import create_search_document_tool, create_search_web_tool


class ToolsRegistry:
    """Static registry classifying each tool as server- or client-executed."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()):
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register_tool(tool)

    @classmethod
    def with_default_tools(
        cls,
        todo_service: TodoListService,
        web_search_service: WebSearchService,
        doc_search_service: DocSearchService,
    ) -> "ToolsRegistry":
        """Build the registry with the default tool set."""
        return cls(
            [
                create_search_web_tool(web_search_service),
                create_search_document_tool(doc_search_service),
                create_todo_list_tool(todo_service),
                create_confirm_action_tool(),
            ]
        )

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> ToolDefinition:
        """Look up a tool by name.

        Raises:
            ToolNotFoundError: If no tool has that name
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def get_llm_tools(self) -> list[LLMToolDefinition]:
        """Get the tool definitions advertised to the model."""
        return [tool.to_llm_tool() for tool in self._tools.values()]

    def get_tool_names(self, mode: ToolMode | None = None) -> list[str]:
        """Get registered tool names, optionally only those of one mode."""
        return [name for name, tool in self._tools.items() if mode is None or tool.mode == mode]

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools
