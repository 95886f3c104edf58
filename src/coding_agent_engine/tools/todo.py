"""
Shared todo list tool.

The model keeps a task list up to date by sending the complete list on
every call. The list itself is a :class:`TodoList` resource placed in the
conversation's :class:`ToolContext`, so the caller can read it and inject
it back into the conversation with :func:`todo_reminder`.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from coding_agent_engine.messages import Message, Role, TextBlock
from coding_agent_engine.tools.context import ToolContext
from coding_agent_engine.tools.registry import BaseTool, ToolInfo, ToolResult


@dataclass
class TodoItem:
    index: int
    completed: bool
    task: str
    additional_details: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TodoItem:
        try:
            return cls(
                index=int(data["index"]),
                completed=bool(data["completed"]),
                task=str(data["task"]),
                additional_details=data.get("additional_details"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid todo item {data!r}: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.additional_details is None:
            del data["additional_details"]
        return data


class TodoList:
    """Thread-safe list of todo items, replaced wholesale on each update."""

    def __init__(self, items: list[TodoItem] | None = None) -> None:
        self._lock = threading.Lock()
        self._items = list(items or [])

    def replace(self, items: list[TodoItem]) -> None:
        with self._lock:
            self._items = list(items)

    def items(self) -> list[TodoItem]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def format(self) -> str:
        items = self.items()
        if not items:
            return "No tasks in the todo list."
        lines = ["Todo List:"]
        for item in items:
            status = "[x]" if item.completed else "[ ]"
            lines.append(f"  {status} {item.index}. {item.task}")
            if item.additional_details:
                lines.append(f"      Details: {item.additional_details}")
        return "\n".join(lines) + "\n"


class TodoTool(BaseTool):
    """Replace the conversation's todo list with the list the model sends."""

    @property
    def name(self) -> str:
        return "todo"

    @property
    def description(self) -> str:
        return (
            "Manage a todo list to track tasks. Update the list by providing the "
            "complete current state of all todos. Each todo has an index, completion "
            "status, task description, and optional additional details."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "todos": {
                    "type": "array",
                    "description": "The complete list of todo items. Each update should include ALL current todos.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "index": {"type": "integer", "description": "1-based index of the item"},
                            "completed": {"type": "boolean", "description": "Whether the task is completed"},
                            "task": {"type": "string", "description": "Description of the task"},
                            "additional_details": {
                                "type": "string",
                                "description": "Optional additional details about the task",
                            },
                        },
                        "required": ["index", "completed", "task"],
                    },
                }
            },
            "required": ["todos"],
        }

    def describe(self, input: dict[str, Any]) -> ToolInfo:
        todos = input.get("todos")
        count = len(todos) if isinstance(todos, list) else 0
        return ToolInfo(name=self.name, action_description=f"Update todo list ({count} items)")

    def requires_permission(self) -> bool:
        return False

    async def execute(self, input: dict[str, Any], context: ToolContext) -> ToolResult:
        raw = input.get("todos")
        if not isinstance(raw, list):
            return ToolResult.error("Invalid todo input: 'todos' must be an array")
        items = [TodoItem.from_dict(item) for item in raw]
        todo_list = context.get(TodoList)
        if todo_list is None:
            todo_list = TodoList()
            context.put(todo_list)
        todo_list.replace(items)
        return ToolResult.success(todo_list.format())


def todo_reminder(todo_list: TodoList) -> Callable[[list[Message]], list[Message]]:
    """
    Message transform that appends the current todo list to the last user
    message, so the model keeps seeing it without it entering history.
    """

    def transform(messages: list[Message]) -> list[Message]:
        if not len(todo_list) or not messages:
            return messages
        last = messages[-1]
        if last.role is not Role.USER:
            return messages
        reminder = TextBlock(f"<system-reminder>\n{todo_list.format()}</system-reminder>")
        return [*messages[:-1], Message.user_with_blocks([*last.blocks, reminder])]

    return transform
