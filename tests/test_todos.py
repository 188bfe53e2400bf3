"""Tests for the todo list service and tool."""

import pytest

from relay.services.todos import TodoListService
from relay.tools.base import ToolContext
from relay.tools.todo_list import TodoListInput, create_todo_list_tool


class TestTodoListService:
    """Tests for per-thread todo lists."""

    @pytest.mark.asyncio
    async def test_create_list_with_todos(self):
        service = TodoListService()

        todo_list = await service.create_list(
            "t-1", "Trip", "Plan the trip", [{"text": "Book flight", "priority": "high"}, {"text": "Pack"}]
        )

        summary = todo_list.summary()
        assert summary["list_name"] == "Trip"
        assert summary["total_todos"] == 2
        assert summary["pending_todos"] == 2
        assert todo_list.todos[0].priority == "high"
        assert todo_list.todos[1].priority == "medium"
        assert todo_list.todos[1].category == "general"

    @pytest.mark.asyncio
    async def test_default_list_created_on_demand(self):
        service = TodoListService()

        first = await service.get_list("t-1")
        second = await service.get_list("t-1")

        assert first.id == second.id
        assert first.name == "My Todo List"

    @pytest.mark.asyncio
    async def test_lists_are_scoped_to_threads(self):
        service = TodoListService()
        todo_list = await service.create_list("t-1", "Trip", "Plan")

        with pytest.raises(ValueError, match="not found"):
            await service.get_list("t-2", todo_list.id)

    @pytest.mark.asyncio
    async def test_add_update_remove(self):
        service = TodoListService()
        todo_list = await service.create_list("t-1", "Trip", "Plan")

        todo = await service.add_todo("t-1", todo_list.id, {"text": "Book flight"})
        await service.update_todo("t-1", todo_list.id, todo.id, {"completed": True, "text": None})

        summary = (await service.get_list("t-1", todo_list.id)).summary()
        assert summary["completed_todos"] == 1
        assert summary["todos"][0]["text"] == "Book flight"

        remaining = await service.remove_todo("t-1", todo_list.id, todo.id)
        assert remaining.todos == []
        with pytest.raises(ValueError, match="not found"):
            await service.remove_todo("t-1", todo_list.id, todo.id)

    @pytest.mark.asyncio
    async def test_create_list_requires_name_and_description(self):
        with pytest.raises(ValueError):
            await TodoListService().create_list("t-1", " ", "Plan")


class TestTodoListTool:
    """Tests for the todo_list tool handler."""

    @pytest.mark.asyncio
    async def test_actions_through_handler(self):
        """Test a create, add, update and get sequence through the tool."""
        tool = create_todo_list_tool(TodoListService())
        context = ToolContext(thread_id="t-1")

        async def run(args):
            return await tool.handler(TodoListInput.model_validate(args), context)

        created = await run({"action": "create_list", "name": "Trip", "description": "Plan"})
        list_id = created["todo_list_id"]

        added = await run({"action": "add", "todo_list_id": list_id, "todo": {"text": "Pack", "category": "prep"}})
        assert added["todo"]["category"] == "prep"

        updated = await run(
            {"action": "update", "todo_list_id": list_id, "todo": {"id": added["todo"]["id"], "completed": True}}
        )
        assert updated["todo"]["completed"] is True

        fetched = await run({"action": "get"})
        assert fetched["todo_list_id"] == list_id
        assert fetched["completed_todos"] == 1

        removed = await run({"action": "remove", "todo_list_id": list_id, "todo_id": added["todo"]["id"]})
        assert removed["removed_todo_id"] == added["todo"]["id"]
        assert removed["total_todos"] == 0
