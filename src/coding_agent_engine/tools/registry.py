"""Tool contract and registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import (
    DocumentBlock,
    ImageBlock,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
)
from coding_agent_engine.tools.context import ToolContext

logger = get_logger("tools")


@dataclass(frozen=True)
class ToolInfo:
    """Human-readable summary of a pending call, for permission prompts and logs."""

    name: str
    action_description: str
    details: str | None = None


@dataclass
class ToolResult:
    """Outcome of a tool execution: text, or a binary image/document payload."""

    content: str | None = None
    is_error: bool = False
    data: str | None = None  # base64 payload for image/document results
    media_type: str | None = None
    kind: str = "text"  # "text", "image" or "document"

    @classmethod
    def success(cls, content: str | None) -> ToolResult:
        return cls(content=content)

    @classmethod
    def error(cls, message: str) -> ToolResult:
        return cls(content=message, is_error=True)

    @classmethod
    def image(cls, data: str, media_type: str, caption: str | None = None) -> ToolResult:
        return cls(content=caption, data=data, media_type=media_type, kind="image")

    @classmethod
    def document(cls, data: str, media_type: str, caption: str | None = None) -> ToolResult:
        return cls(content=caption, data=data, media_type=media_type, kind="document")

    def to_block(self, tool_use_id: str) -> ToolResultBlock:
        """The content block that answers the tool call ``tool_use_id``."""
        if self.data is None:
            return ToolResultBlock(tool_use_id, self.content, self.is_error)
        parts: list[Any] = []
        if self.content:
            parts.append(TextBlock(self.content))
        media = ImageBlock if self.kind == "image" else DocumentBlock
        parts.append(media(data=self.data, media_type=self.media_type or ""))
        return ToolResultBlock(tool_use_id, tuple(parts), self.is_error)


class BaseTool(ABC):
    """
    Base class for tools the model can call.

    Subclasses declare a name, a description and a JSON schema for their
    input, and implement :meth:`execute`. Exceptions raised by ``execute``
    are caught by :class:`ToolRegistry` and returned to the model as error
    results.

    ``requires_permission`` returning False means the tool runs without
    hooks or approval. It is the tool author's declaration that the tool
    has no side effects worth guarding, not a security boundary.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]: ...

    @abstractmethod
    async def execute(self, input: dict[str, Any], context: ToolContext) -> ToolResult: ...

    def describe(self, input: dict[str, Any]) -> ToolInfo:
        """Summarize a call. Must not have side effects."""
        return ToolInfo(name=self.name, action_description=f"Run {self.name}")

    def requires_permission(self) -> bool:
        return True

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[ToolResult]]


class FunctionTool(BaseTool):
    """Wrap an async function as a tool."""

    def __init__(
        self,
        name: str,
        description: str,
        handler: ToolHandler,
        input_schema: dict[str, Any] | None = None,
        requires_permission: bool = True,
    ) -> None:
        self._name = name
        self._description = description
        self._handler = handler
        self._input_schema = input_schema or {"type": "object", "properties": {}}
        self._requires_permission = requires_permission

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_schema(self) -> dict[str, Any]:
        return self._input_schema

    async def execute(self, input: dict[str, Any], context: ToolContext) -> ToolResult:
        return await self._handler(input, context)

    def requires_permission(self) -> bool:
        return self._requires_permission


class ToolRegistry:
    """Registry of the tools available to one agent."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            logger.debug("Overriding tool: %s", tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def definitions(self) -> list[ToolDefinition]:
        return [t.definition() for t in self._tools.values()]

    async def execute(
        self, name: str, input: dict[str, Any], context: ToolContext
    ) -> ToolResult:
        """
        Run a tool by name.

        Unknown tools and exceptions raised by the tool come back as error
        results rather than propagating.
        """
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult.error(f"Unknown tool: {name}")
        try:
            result = await tool.execute(input, context)
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return ToolResult.error(f"Tool execution failed: {e}")
        if not isinstance(result, ToolResult):
            return ToolResult.success(None if result is None else str(result))
        return result

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
