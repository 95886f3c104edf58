"""Tool contract, registry and bundled tools."""

from coding_agent_engine.tools.context import ToolContext
from coding_agent_engine.tools.registry import (
    BaseTool,
    FunctionTool,
    ToolInfo,
    ToolRegistry,
    ToolResult,
)
from coding_agent_engine.tools.todo import TodoItem, TodoList, TodoTool, todo_reminder

__all__ = [
    "BaseTool",
    "FunctionTool",
    "TodoItem",
    "TodoList",
    "TodoTool",
    "ToolContext",
    "ToolInfo",
    "ToolRegistry",
    "ToolResult",
    "todo_reminder",
]
