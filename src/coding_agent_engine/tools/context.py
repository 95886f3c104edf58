"""Per-conversation context handed to tool execution."""

from __future__ import annotations

from pathlib import Path
from typing import Any, TypeVar

T = TypeVar("T")


class ToolContext:
    """
    Capability map of shared resources, keyed by type.

    Each conversation owns its own context, so two concurrent conversations
    never see each other's resources unless the caller deliberately puts
    the same object into both. Resources handle their own synchronization.

    Example:
        context = ToolContext(session_id="abc")
        context.put(TodoList())

        todos = context.require(TodoList)
    """

    def __init__(self, session_id: str | None = None, cwd: str | Path | None = None) -> None:
        self.session_id = session_id
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self._resources: dict[type, Any] = {}

    def put(self, resource: Any, as_type: type | None = None) -> None:
        """Store ``resource`` under ``as_type`` (defaults to its own type), replacing any previous one."""
        self._resources[as_type or type(resource)] = resource

    def get(self, kind: type[T]) -> T | None:
        return self._resources.get(kind)

    def require(self, kind: type[T]) -> T:
        """
        Raises:
            KeyError: If no resource of that type was provided
        """
        try:
            return self._resources[kind]
        except KeyError:
            raise KeyError(f"No {kind.__name__} in tool context") from None

    def remove(self, kind: type) -> bool:
        return self._resources.pop(kind, None) is not None

    def __contains__(self, kind: type) -> bool:
        return kind in self._resources

    def __repr__(self) -> str:
        names = ", ".join(k.__name__ for k in self._resources)
        return f"ToolContext(session_id={self.session_id!r}, resources=[{names}])"
