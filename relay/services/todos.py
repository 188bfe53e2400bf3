"""Todo list service backing the todo_list tool."""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from relay.models.messages import generate_id
from relay.utils.logging import get_logger

logger = get_logger(__name__)

Priority = Literal["high", "medium", "low"]


@dataclass
class Todo:
    """A single todo item."""

    id: str
    text: str
    completed: bool = False
    priority: Priority = "medium"
    category: str = "general"


@dataclass
class TodoList:
    """A named list of todos."""

    id: str
    name: str
    description: str
    todos: list[Todo] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        completed = sum(1 for todo in self.todos if todo.completed)
        return {
            "todo_list_id": self.id,
            "list_name": self.name,
            "list_description": self.description,
            "todos": [asdict(todo) for todo in self.todos],
            "total_todos": len(self.todos),
            "completed_todos": completed,
            "pending_todos": len(self.todos) - completed,
        }


class TodoListService:
    """In-memory todo lists, scoped per thread.

    The first list created in a thread becomes its default list.
    """

    def __init__(self):
        self.lists: dict[str, dict[str, TodoList]] = {}
        self.default_list_ids: dict[str, str] = {}

    async def create_list(
        self, thread_id: str, name: str, description: str, todos: list[dict[str, Any]] | None = None
    ) -> TodoList:
        if not name.strip() or not description.strip():
            raise ValueError("Name and description are required to create a todo list")

        todo_list = TodoList(id=generate_id(), name=name.strip(), description=description.strip())
        for item in todos or []:
            todo_list.todos.append(self._build_todo(item))

        self.lists.setdefault(thread_id, {})[todo_list.id] = todo_list
        self.default_list_ids.setdefault(thread_id, todo_list.id)

        logger.info(f"Created todo list {todo_list.id} with {len(todo_list.todos)} todos for thread {thread_id}")
        return todo_list

    async def get_list(self, thread_id: str, todo_list_id: str | None = None) -> TodoList:
        """Get a list by id, or the thread's default list (created on demand)."""
        if todo_list_id:
            return self._get(thread_id, todo_list_id)

        default_id = self.default_list_ids.get(thread_id)
        if default_id is None:
            return await self.create_list(thread_id, "My Todo List", "Default todo list for managing tasks")
        return self._get(thread_id, default_id)

    async def add_todo(self, thread_id: str, todo_list_id: str, item: dict[str, Any]) -> Todo:
        todo_list = self._get(thread_id, todo_list_id)
        todo = self._build_todo(item)

        if any(existing.id == todo.id for existing in todo_list.todos):
            raise ValueError(f"Todo with id {todo.id} already exists")

        todo_list.todos.append(todo)
        return todo

    async def remove_todo(self, thread_id: str, todo_list_id: str, todo_id: str) -> TodoList:
        todo_list = self._get(thread_id, todo_list_id)
        remaining = [todo for todo in todo_list.todos if todo.id != todo_id]
        if len(remaining) == len(todo_list.todos):
            raise ValueError(f"Todo {todo_id} not found")

        todo_list.todos = remaining
        return todo_list

    async def update_todo(self, thread_id: str, todo_list_id: str, todo_id: str, changes: dict[str, Any]) -> Todo:
        todo_list = self._get(thread_id, todo_list_id)
        todo = next((todo for todo in todo_list.todos if todo.id == todo_id), None)
        if todo is None:
            raise ValueError(f"Todo {todo_id} not found")

        for key in ("text", "completed", "priority", "category"):
            if changes.get(key) is not None:
                setattr(todo, key, changes[key])
        return todo

    def _get(self, thread_id: str, todo_list_id: str) -> TodoList:
        todo_list = self.lists.get(thread_id, {}).get(todo_list_id)
        if todo_list is None:
            raise ValueError(f"Todo list {todo_list_id} not found")
        return todo_list

    def _build_todo(self, item: dict[str, Any]) -> Todo:
        text = (item.get("text") or "").strip()
        if not text:
            raise ValueError("Text is required to add a todo")

        return Todo(
            id=item.get("id") or generate_id(),
            text=text,
            completed=bool(item.get("completed") or False),
            priority=item.get("priority") or "medium",
            category=item.get("category") or "general",
        )
