"""
Streaming events.

Provider adapters emit :class:`StreamEvent` objects describing a single
in-flight response as an open/append/close protocol:

    message_start
        content_block_start → content_block_delta* → content_block_stop   (per index)
    message_delta
    message_stop

:class:`StreamAccumulator` folds such a sequence back into a
:class:`~coding_agent_engine.messages.MessageResponse`. Tool-call arguments
arrive as raw JSON fragments and are only parsed once their block closes.

The agent loop surfaces its own progress as :class:`AgentEvent` objects.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import (
    ContentBlock,
    MessageResponse,
    RedactedThinkingBlock,
    StopReason,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
    Usage,
)

logger = get_logger("events")


# ---------------------------------------------------------------------------
# Stream event types
# ---------------------------------------------------------------------------

MESSAGE_START = "message_start"
CONTENT_BLOCK_START = "content_block_start"
CONTENT_BLOCK_DELTA = "content_block_delta"
CONTENT_BLOCK_STOP = "content_block_stop"
MESSAGE_DELTA = "message_delta"
MESSAGE_STOP = "message_stop"

# Block kinds carried by content_block_start
TEXT = "text"
TOOL_USE = "tool_use"
THINKING = "thinking"
REDACTED_THINKING = "redacted_thinking"

# Delta kinds carried by content_block_delta
TEXT_DELTA = "text_delta"
INPUT_JSON_DELTA = "input_json_delta"
THINKING_DELTA = "thinking_delta"
SIGNATURE_DELTA = "signature_delta"


@dataclass
class StreamEvent:
    """A single provider streaming event."""

    type: str
    """One of the ``MESSAGE_*`` / ``CONTENT_BLOCK_*`` constants."""

    index: int | None = None
    """Content block index (content_block_* events)."""

    message_id: str | None = None
    """Response id (message_start)."""

    model: str | None = None
    """Model that produced the response (message_start)."""

    usage: Usage | None = None
    """Token usage (message_start, message_delta)."""

    block_kind: str | None = None
    """``text``, ``tool_use``, ``thinking`` or ``redacted_thinking`` (content_block_start)."""

    tool_use_id: str | None = None
    """Tool call id (content_block_start of a tool_use block)."""

    tool_name: str | None = None
    """Tool name (content_block_start of a tool_use block)."""

    delta_type: str | None = None
    """``text_delta``, ``input_json_delta``, ``thinking_delta`` or ``signature_delta``."""

    text: str = ""
    """Delta payload. For input_json_delta this is a raw, possibly partial, JSON fragment."""

    data: str | None = None
    """Opaque payload of a redacted_thinking block."""

    stop_reason: StopReason | None = None
    """Mapped stop reason (message_delta)."""

    # -- constructors -------------------------------------------------------

    @classmethod
    def message_start(cls, message_id: str, model: str = "", usage: Usage | None = None) -> StreamEvent:
        return cls(MESSAGE_START, message_id=message_id, model=model, usage=usage or Usage())

    @classmethod
    def text_start(cls, index: int) -> StreamEvent:
        return cls(CONTENT_BLOCK_START, index=index, block_kind=TEXT)

    @classmethod
    def tool_use_start(cls, index: int, tool_use_id: str, name: str) -> StreamEvent:
        return cls(
            CONTENT_BLOCK_START,
            index=index,
            block_kind=TOOL_USE,
            tool_use_id=tool_use_id,
            tool_name=name,
        )

    @classmethod
    def thinking_start(cls, index: int) -> StreamEvent:
        return cls(CONTENT_BLOCK_START, index=index, block_kind=THINKING)

    @classmethod
    def redacted_thinking_start(cls, index: int, data: str) -> StreamEvent:
        return cls(CONTENT_BLOCK_START, index=index, block_kind=REDACTED_THINKING, data=data)

    @classmethod
    def delta(cls, index: int, delta_type: str, text: str) -> StreamEvent:
        return cls(CONTENT_BLOCK_DELTA, index=index, delta_type=delta_type, text=text)

    @classmethod
    def block_stop(cls, index: int) -> StreamEvent:
        return cls(CONTENT_BLOCK_STOP, index=index)

    @classmethod
    def message_delta(cls, stop_reason: StopReason | None, usage: Usage | None = None) -> StreamEvent:
        return cls(MESSAGE_DELTA, stop_reason=stop_reason, usage=usage)

    @classmethod
    def message_stop(cls) -> StreamEvent:
        return cls(MESSAGE_STOP)


# ---------------------------------------------------------------------------
# Accumulation
# ---------------------------------------------------------------------------


@dataclass
class _PartialBlock:
    kind: str
    buffer: str = ""
    signature: str = ""
    tool_use_id: str = ""
    tool_name: str = ""
    data: str = ""


class StreamAccumulator:
    """
    Rebuild a complete response from stream events.

    Usage:
        acc = StreamAccumulator()
        async for event in adapter.stream(messages, ...):
            acc.feed(event)
        response = acc.response()
    """

    def __init__(self) -> None:
        self.message_id = ""
        self.model = ""
        self.usage = Usage()
        self.stop_reason: StopReason | None = None
        self._open: dict[int, _PartialBlock] = {}
        self._closed: dict[int, ContentBlock] = {}
        self._stopped = False

    @property
    def complete(self) -> bool:
        return self._stopped

    def feed(self, event: StreamEvent) -> ContentBlock | None:
        """
        Apply one event.

        Returns:
            The finished content block when ``event`` closes one, else None.
        """
        if event.type == MESSAGE_START:
            self.message_id = event.message_id or ""
            self.model = event.model or ""
            if event.usage:
                self.usage = Usage(**event.usage.to_dict())
        elif event.type == CONTENT_BLOCK_START:
            assert event.index is not None
            self._open[event.index] = _PartialBlock(
                kind=event.block_kind or TEXT,
                tool_use_id=event.tool_use_id or "",
                tool_name=event.tool_name or "",
                data=event.data or "",
            )
        elif event.type == CONTENT_BLOCK_DELTA:
            partial = self._open.get(event.index)  # type: ignore[arg-type]
            if partial is None:
                logger.warning("Delta for unopened block index %s ignored", event.index)
                return None
            if event.delta_type == SIGNATURE_DELTA:
                partial.signature += event.text
            else:
                partial.buffer += event.text
        elif event.type == CONTENT_BLOCK_STOP:
            partial = self._open.pop(event.index, None)  # type: ignore[arg-type]
            if partial is None:
                return None
            block = self._finish_block(partial)
            self._closed[event.index] = block  # type: ignore[index]
            return block
        elif event.type == MESSAGE_DELTA:
            self.stop_reason = event.stop_reason
            if event.usage:
                if event.usage.input_tokens:
                    self.usage.input_tokens = event.usage.input_tokens
                self.usage.output_tokens = event.usage.output_tokens
                self.usage.cache_creation_input_tokens = max(
                    self.usage.cache_creation_input_tokens,
                    event.usage.cache_creation_input_tokens,
                )
                self.usage.cache_read_input_tokens = max(
                    self.usage.cache_read_input_tokens, event.usage.cache_read_input_tokens
                )
        elif event.type == MESSAGE_STOP:
            self._stopped = True
        return None

    def _finish_block(self, partial: _PartialBlock) -> ContentBlock:
        if partial.kind == TOOL_USE:
            return ToolUseBlock(
                id=partial.tool_use_id,
                name=partial.tool_name,
                input=parse_tool_input(partial.buffer, partial.tool_name),
            )
        if partial.kind == THINKING:
            return ThinkingBlock(text=partial.buffer, signature=partial.signature)
        if partial.kind == REDACTED_THINKING:
            return RedactedThinkingBlock(data=partial.data)
        return TextBlock(text=partial.buffer)

    def response(self) -> MessageResponse:
        """The accumulated response. Only valid once message_stop was seen."""
        if not self._stopped:
            raise RuntimeError("Stream has not reached message_stop")
        return MessageResponse(
            id=self.message_id,
            content=[self._closed[i] for i in sorted(self._closed)],
            stop_reason=self.stop_reason,
            usage=self.usage,
            model=self.model,
        )


def parse_tool_input(raw: str, tool_name: str = "") -> dict[str, Any]:
    """
    Parse accumulated tool-call arguments.

    Empty input means an argument-less call. Invalid or non-object JSON is
    logged and replaced by an empty object so the tool can report the
    problem in-band.
    """
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON arguments for tool %s: %s", tool_name or "?", e)
        return {}
    if not isinstance(value, dict):
        logger.warning("Non-object arguments for tool %s ignored", tool_name or "?")
        return {}
    return value


# ---------------------------------------------------------------------------
# Agent events
# ---------------------------------------------------------------------------

AGENT_TURN_START = "turn_start"
AGENT_STREAM = "stream"
AGENT_TEXT = "text"
AGENT_THINKING = "thinking"
AGENT_TOOL_USE = "tool_use"
AGENT_TOOL_RESULT = "tool_result"
AGENT_DONE = "done"


@dataclass
class AgentEvent:
    """
    Progress reported by the agent loop.

    Event types:
        - ``turn_start``: before each provider call (``iteration``)
        - ``stream``: raw provider event (``stream_event``), streaming mode only
        - ``text`` / ``thinking``: a completed text or thinking block (``content``)
        - ``tool_use``: a tool call about to be resolved
        - ``tool_result``: the result fed back to the model
        - ``done``: the turn finished (``result``)
    """

    type: str
    iteration: int = 0
    content: str = ""
    tool_name: str | None = None
    tool_use_id: str | None = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    is_error: bool = False
    stream_event: StreamEvent | None = None
    result: Any = None  # TurnResult, avoid circular import
