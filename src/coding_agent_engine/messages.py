"""
Canonical, provider-neutral conversation model.

Every adapter translates to and from these types, and session history is
persisted in their dict form, so a conversation recorded against one vendor
can be replayed against another.

Example:
    from coding_agent_engine.messages import Message, TextBlock, ToolUseBlock

    history = [
        Message.user("What's the weather in Paris?"),
        Message.assistant_with_blocks([
            TextBlock("Let me check."),
            ToolUseBlock(id="call_1", name="weather", input={"location": "Paris"}),
        ]),
    ]
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Literal, Union


class Role(str, Enum):
    """Who authored a message."""

    USER = "user"
    ASSISTANT = "assistant"


class StopReason(str, Enum):
    """Why the model stopped generating."""

    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    REFUSAL = "refusal"

    @classmethod
    def parse(cls, value: str | None) -> StopReason | None:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return cls.END_TURN


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextBlock:
    text: str

    type: ClassVar[str] = "text"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ToolUseBlock:
    """A model request to invoke a tool. ``input`` is the parsed JSON argument object."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    type: ClassVar[str] = "tool_use"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ImageBlock:
    data: str  # base64
    media_type: str

    type: ClassVar[str] = "image"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "source": {"type": "base64", "media_type": self.media_type, "data": self.data},
        }


@dataclass(frozen=True)
class DocumentBlock:
    data: str  # base64
    media_type: str

    type: ClassVar[str] = "document"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "source": {"type": "base64", "media_type": self.media_type, "data": self.data},
        }


ToolResultPart = Union[TextBlock, ImageBlock, DocumentBlock]


@dataclass(frozen=True)
class ToolResultBlock:
    """
    The answer to a :class:`ToolUseBlock`, keyed by ``tool_use_id``.

    ``content`` is plain text, a sequence of text/image/document parts for
    tools that return binary payloads, or None when the tool produced nothing.
    """

    tool_use_id: str
    content: str | tuple[ToolResultPart, ...] | None = None
    is_error: bool = False

    type: ClassVar[str] = "tool_result"

    def __post_init__(self) -> None:
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))

    def text(self) -> str:
        """Text portion of the result; binary parts are skipped."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextBlock))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "tool_use_id": self.tool_use_id}
        if isinstance(self.content, tuple):
            data["content"] = [p.to_dict() for p in self.content]
        elif self.content is not None:
            data["content"] = self.content
        if self.is_error:
            data["is_error"] = True
        return data


@dataclass(frozen=True)
class ThinkingBlock:
    text: str
    signature: str = ""

    type: ClassVar[str] = "thinking"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "thinking": self.text, "signature": self.signature}


@dataclass(frozen=True)
class RedactedThinkingBlock:
    """Opaque reasoning the vendor refuses to reveal; only round-tripped."""

    data: str = ""

    type: ClassVar[str] = "redacted_thinking"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


ContentBlock = Union[
    TextBlock,
    ToolUseBlock,
    ToolResultBlock,
    ThinkingBlock,
    RedactedThinkingBlock,
    ImageBlock,
    DocumentBlock,
]


def _media_from_dict(data: dict[str, Any]) -> tuple[str, str]:
    source = data.get("source") or {}
    return source.get("data", data.get("data", "")), source.get(
        "media_type", data.get("media_type", "")
    )


def block_from_dict(data: dict[str, Any]) -> ContentBlock:
    """Rebuild a content block from its dict form."""
    kind = data.get("type")
    if kind == "text":
        return TextBlock(text=data.get("text", ""))
    if kind == "tool_use":
        return ToolUseBlock(id=data["id"], name=data["name"], input=data.get("input") or {})
    if kind == "tool_result":
        content = data.get("content")
        if isinstance(content, list):
            content = tuple(block_from_dict(p) for p in content)
        return ToolResultBlock(
            tool_use_id=data["tool_use_id"],
            content=content,
            is_error=bool(data.get("is_error", False)),
        )
    if kind == "thinking":
        return ThinkingBlock(text=data.get("thinking", ""), signature=data.get("signature", ""))
    if kind == "redacted_thinking":
        return RedactedThinkingBlock(data=data.get("data", ""))
    if kind == "image":
        payload, media_type = _media_from_dict(data)
        return ImageBlock(data=payload, media_type=media_type)
    if kind == "document":
        payload, media_type = _media_from_dict(data)
        return DocumentBlock(data=payload, media_type=media_type)
    raise ValueError(f"Unknown content block type: {kind!r}")


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    """
    One conversation message.

    ``content`` is either a plain string or an ordered tuple of content
    blocks. Block order is significant and survives serialization.
    """

    role: Role
    content: str | tuple[ContentBlock, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(Role.USER, text)

    @classmethod
    def assistant(cls, text: str) -> Message:
        return cls(Role.ASSISTANT, text)

    @classmethod
    def user_with_blocks(cls, blocks: Iterable[ContentBlock]) -> Message:
        return cls(Role.USER, tuple(blocks))

    @classmethod
    def assistant_with_blocks(cls, blocks: Iterable[ContentBlock]) -> Message:
        return cls(Role.ASSISTANT, tuple(blocks))

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content as blocks; plain string content becomes a single TextBlock."""
        if isinstance(self.content, str):
            return (TextBlock(self.content),) if self.content else ()
        return self.content

    def text(self) -> str:
        """Concatenation of all text blocks, in order."""
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]

    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.blocks if isinstance(b, ToolResultBlock)]

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            content: Any = self.content
        else:
            content = [b.to_dict() for b in self.content]
        return {"role": self.role.value, "content": content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        content = data.get("content", "")
        if isinstance(content, list):
            content = tuple(block_from_dict(b) for b in content)
        return cls(Role(data["role"]), content)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@dataclass
class Usage:
    """Token accounting reported by the provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: Usage) -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_creation_input_tokens": self.cache_creation_input_tokens,
            "cache_read_input_tokens": self.cache_read_input_tokens,
        }


@dataclass
class MessageResponse:
    """A single assistant reply from a provider."""

    id: str
    content: list[ContentBlock] = field(default_factory=list)
    stop_reason: StopReason | None = None
    usage: Usage = field(default_factory=Usage)
    model: str = ""

    role: ClassVar[Role] = Role.ASSISTANT

    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def to_message(self) -> Message:
        return Message.assistant_with_blocks(self.content)


# ---------------------------------------------------------------------------
# Request options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolDefinition:
    """
    What a provider is told about a tool.

    ``builtin_type`` marks vendor-hosted tools (e.g. ``web_search_20250305``)
    that only some providers can express; adapters that cannot represent
    them drop them from the tool list.
    """

    name: str
    description: str
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    builtin_type: str | None = None

    @property
    def is_builtin(self) -> bool:
        return self.builtin_type is not None


ToolChoiceKind = Literal["auto", "any", "none", "tool"]


@dataclass(frozen=True)
class ToolChoice:
    """How strongly the model is steered toward calling tools."""

    kind: ToolChoiceKind = "auto"
    name: str | None = None

    @classmethod
    def auto(cls) -> ToolChoice:
        return cls("auto")

    @classmethod
    def any(cls) -> ToolChoice:
        return cls("any")

    @classmethod
    def none(cls) -> ToolChoice:
        return cls("none")

    @classmethod
    def tool(cls, name: str) -> ToolChoice:
        return cls("tool", name)

    @classmethod
    def parse(cls, value: str) -> ToolChoice:
        """``auto``/``any``/``none``, anything else names a specific tool."""
        if value in ("auto", "any", "none"):
            return cls(value)  # type: ignore[arg-type]
        return cls.tool(value)


@dataclass(frozen=True)
class ThinkingConfig:
    """Extended reasoning budget for models that support it."""

    budget_tokens: int

    @classmethod
    def enabled(cls, budget_tokens: int) -> ThinkingConfig:
        return cls(budget_tokens)
