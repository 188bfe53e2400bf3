"""Todo list management tool."""

from dataclasses import asdict
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from relay.services.todos import Priority, TodoListService
from relay.tools.base import ToolContext, ToolDefinition


class TodoItemInput(BaseModel):
    """A todo item, or a partial one for updates."""

    id: str | None = Field(None, description="Todo id; required for updates")
    text: str | None = Field(None, description="What needs to be done")
    completed: bool | None = None
    priority: Priority | None = None
    category: str | None = None


class TodoListInput(BaseModel):
    """Input schema for the todo_list tool. Required fields depend on ``action``."""

    action: Literal["create_list", "add", "get", "remove", "update"] = Field(
        ..., description="Operation to perform on the todo list"
    )
    todo_list_id: str | None = Field(None, description="Target list id; 'get' falls back to the default list")
    name: str | None = Field(None, description="List name, for create_list")
    description: str | None = Field(None, description="List description, for create_list")
    todos: list[TodoItemInput] | None = Field(None, description="Initial todos, for create_list")
    todo: TodoItemInput | None = Field(None, description="Todo to add, or the changes for update (with id)")
    todo_id: str | None = Field(None, description="Todo to remove")

    @model_validator(mode="after")
    def check_action_arguments(self) -> "TodoListInput":
        """Enforce the arguments each action needs."""
        missing = []
        if self.action == "create_list":
            missing = [f for f in ("name", "description") if not getattr(self, f)]
        elif self.action == "add":
            if not self.todo_list_id:
                missing.append("todo_list_id")
            if not self.todo or not self.todo.text:
                missing.append("todo.text")
        elif self.action == "remove":
            missing = [f for f in ("todo_list_id", "todo_id") if not getattr(self, f)]
        elif self.action == "update":
            if not self.todo_list_id:
                missing.append("todo_list_id")
            if not self.todo or not self.todo.id:
                missing.append("todo.id")

        if missing:
            raise ValueError(f"Action '{self.action}' requires: {', '.join(missing)}")
        return self


TODO_LIST_DESCRIPTION = """Create and manage todo lists for multi-step tasks in this conversation.

Actions:
- create_list: name, description and optional todos. Returns the list with its todo_list_id.
- add: todo_list_id and todo.text (optional priority high|medium|low, category).
- get: optional todo_list_id; without it the default list is returned.
- remove: todo_list_id and todo_id.
- update: todo_list_id and todo with id plus the fields to change (e.g. completed=true).

Keep the list current: mark each step completed as soon as it is done."""


def create_todo_list_tool(todo_service: TodoListService) -> ToolDefinition:
    async def todo_list_handler(params: TodoListInput, context: ToolContext) -> dict[str, Any]:
        thread_id = context.thread_id

        if params.action == "create_list":
            todos = [todo.model_dump() for todo in params.todos or []]
            todo_list = await todo_service.create_list(thread_id, params.name, params.description, todos)
            return {"action": "create_list", **todo_list.summary()}

        if params.action == "get":
            todo_list = await todo_service.get_list(thread_id, params.todo_list_id)
            return {"action": "get", **todo_list.summary()}

        if params.action == "add":
            todo = await todo_service.add_todo(thread_id, params.todo_list_id, params.todo.model_dump())
            return {"action": "add", "todo_list_id": params.todo_list_id, "todo": asdict(todo)}

        if params.action == "remove":
            todo_list = await todo_service.remove_todo(thread_id, params.todo_list_id, params.todo_id)
            return {"action": "remove", "removed_todo_id": params.todo_id, **todo_list.summary()}

        todo = await todo_service.update_todo(
            thread_id, params.todo_list_id, params.todo.id, params.todo.model_dump(exclude_none=True)
        )
        return {"action": "update", "todo_list_id": params.todo_list_id, "todo": asdict(todo)}

    return ToolDefinition(
        name="todo_list",
        description=TODO_LIST_DESCRIPTION,
        input_schema_class=TodoListInput,
        handler=todo_list_handler,
    )
