"""
Anthropic Messages adapter.

The canonical model is close to the Messages API: tool results stay inline
in user messages, thinking blocks round-trip with their signatures, and
vendor built-in tools are passed through by type.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Any, TypedDict

from coding_agent_engine.adapters.base import LLMAdapter, ProviderError
from coding_agent_engine.events import (
    INPUT_JSON_DELTA,
    SIGNATURE_DELTA,
    TEXT_DELTA,
    THINKING_DELTA,
    StreamEvent,
)
from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import (
    Message,
    MessageResponse,
    StopReason,
    ThinkingConfig,
    ToolChoice,
    ToolDefinition,
    Usage,
    block_from_dict,
)

logger = get_logger("adapters.anthropic")

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
DEFAULT_MODEL = "claude-sonnet-4-5"
API_VERSION = "2023-06-01"

STOP_REASONS: dict[str, StopReason] = {
    "end_turn": StopReason.END_TURN,
    "stop_sequence": StopReason.END_TURN,
    "pause_turn": StopReason.END_TURN,
    "tool_use": StopReason.TOOL_USE,
    "max_tokens": StopReason.MAX_TOKENS,
    "refusal": StopReason.REFUSAL,
}

_DELTA_TYPES = {
    "text_delta": (TEXT_DELTA, "text"),
    "input_json_delta": (INPUT_JSON_DELTA, "partial_json"),
    "thinking_delta": (THINKING_DELTA, "thinking"),
    "signature_delta": (SIGNATURE_DELTA, "signature"),
}


class AnthropicInputSchema(TypedDict, total=False):
    """Anthropic tool input schema."""

    type: str
    properties: dict[str, Any]
    required: list[str]


class AnthropicTool(TypedDict, total=False):
    """Anthropic tool definition. Built-in tools carry only ``type`` and ``name``."""

    type: str
    name: str
    description: str
    input_schema: AnthropicInputSchema


class AnthropicMessage(TypedDict):
    """Anthropic message format."""

    role: str
    content: str | list[dict[str, Any]]


def map_stop_reason(reason: str | None) -> StopReason | None:
    if reason is None:
        return None
    return STOP_REASONS.get(reason, StopReason.END_TURN)


# ---------------------------------------------------------------------------
# Request translation
# ---------------------------------------------------------------------------


def tools_to_wire(tools: Sequence[ToolDefinition]) -> list[AnthropicTool]:
    wire: list[AnthropicTool] = []
    for tool in tools:
        if tool.builtin_type:
            wire.append({"type": tool.builtin_type, "name": tool.name})
        else:
            wire.append(
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.input_schema,  # type: ignore[typeddict-item]
                }
            )
    return wire


def tool_choice_to_wire(choice: ToolChoice) -> dict[str, Any]:
    if choice.kind == "tool":
        return {"type": "tool", "name": choice.name}
    return {"type": choice.kind}


def to_wire(
    messages: Sequence[Message],
    *,
    model: str,
    max_tokens: int,
    system_prompt: str | None = None,
    tools: Sequence[ToolDefinition] = (),
    tool_choice: ToolChoice | None = None,
    thinking: ThinkingConfig | None = None,
    temperature: float | None = None,
    stream: bool = False,
) -> dict[str, Any]:
    """Build a Messages API request body."""
    wire_messages: list[AnthropicMessage] = [
        message.to_dict() for message in messages  # type: ignore[misc]
    ]
    body: dict[str, Any] = {"model": model, "max_tokens": max_tokens, "messages": wire_messages}
    if system_prompt:
        body["system"] = system_prompt

    if thinking is not None:
        body["thinking"] = {"type": "enabled", "budget_tokens": thinking.budget_tokens}
    elif temperature is not None:
        body["temperature"] = temperature

    if tools:
        body["tools"] = tools_to_wire(tools)
        if tool_choice is not None:
            body["tool_choice"] = tool_choice_to_wire(tool_choice)

    if stream:
        body["stream"] = True
    return body


# ---------------------------------------------------------------------------
# Response translation
# ---------------------------------------------------------------------------


def _usage_from_wire(data: dict[str, Any] | None) -> Usage:
    data = data or {}
    return Usage(
        input_tokens=data.get("input_tokens") or 0,
        output_tokens=data.get("output_tokens") or 0,
        cache_creation_input_tokens=data.get("cache_creation_input_tokens") or 0,
        cache_read_input_tokens=data.get("cache_read_input_tokens") or 0,
    )


def from_wire(body: dict[str, Any]) -> MessageResponse:
    """Translate a Messages API JSON reply."""
    content = []
    for raw in body.get("content") or []:
        try:
            content.append(block_from_dict(raw))
        except (KeyError, ValueError) as e:
            logger.warning("Skipping unsupported content block %r: %s", raw.get("type"), e)
    return MessageResponse(
        id=body.get("id", ""),
        content=content,
        stop_reason=map_stop_reason(body.get("stop_reason")),
        usage=_usage_from_wire(body.get("usage")),
        model=body.get("model", ""),
    )


# ---------------------------------------------------------------------------
# Stream decoding
# ---------------------------------------------------------------------------


class AnthropicStreamDecoder:
    """
    Map Messages API SSE events onto :class:`StreamEvent`.

    The wire protocol is already block-structured, so this is mostly a
    field mapping; ``ping`` is ignored and ``error`` raises.
    """

    def __init__(self) -> None:
        self.started = False
        self.finished = False

    def feed(self, data: str) -> list[StreamEvent]:
        if self.finished or not data:
            return []
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("Skipping malformed stream event: %s", e)
            return []
        if not isinstance(payload, dict):
            logger.warning("Skipping non-object stream event")
            return []

        kind = payload.get("type")
        if kind == "message_start":
            message = payload.get("message") or {}
            self.started = True
            return [
                StreamEvent.message_start(
                    message.get("id", ""),
                    message.get("model", ""),
                    _usage_from_wire(message.get("usage")),
                )
            ]
        if kind == "content_block_start":
            return self._block_start(payload)
        if kind == "content_block_delta":
            delta = payload.get("delta") or {}
            mapping = _DELTA_TYPES.get(delta.get("type", ""))
            if mapping is None:
                logger.debug("Ignoring delta type %r", delta.get("type"))
                return []
            delta_type, key = mapping
            return [StreamEvent.delta(payload.get("index", 0), delta_type, delta.get(key, ""))]
        if kind == "content_block_stop":
            return [StreamEvent.block_stop(payload.get("index", 0))]
        if kind == "message_delta":
            delta = payload.get("delta") or {}
            usage = payload.get("usage")
            return [
                StreamEvent.message_delta(
                    map_stop_reason(delta.get("stop_reason")),
                    _usage_from_wire(usage) if usage else None,
                )
            ]
        if kind == "message_stop":
            self.finished = True
            return [StreamEvent.message_stop()]
        if kind == "error":
            error = payload.get("error") or {}
            raise ProviderError(
                f"anthropic stream error ({error.get('type', 'unknown')}): "
                f"{error.get('message', '')}",
                body=data,
            )
        # ping and unknown event types
        return []

    def _block_start(self, payload: dict[str, Any]) -> list[StreamEvent]:
        index = payload.get("index", 0)
        block = payload.get("content_block") or {}
        block_type = block.get("type")
        if block_type == "text":
            events = [StreamEvent.text_start(index)]
            if block.get("text"):
                events.append(StreamEvent.delta(index, TEXT_DELTA, block["text"]))
            return events
        if block_type == "tool_use":
            return [StreamEvent.tool_use_start(index, block.get("id", ""), block.get("name", ""))]
        if block_type == "thinking":
            return [StreamEvent.thinking_start(index)]
        if block_type == "redacted_thinking":
            return [StreamEvent.redacted_thinking_start(index, block.get("data", ""))]
        logger.warning("Skipping unsupported streamed block type %r", block_type)
        return []

    def finish(self) -> list[StreamEvent]:
        if not self.finished:
            raise ProviderError("anthropic stream ended before message_stop")
        return []


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class AnthropicAdapter(LLMAdapter):
    """
    Anthropic Messages API adapter.

    Example:
        adapter = AnthropicAdapter(model="claude-sonnet-4-5", api_key=key)
        response = await adapter.send([Message.user("Hello")])
    """

    name = "anthropic"
    default_base_url = DEFAULT_BASE_URL

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/messages"

    def _body(
        self,
        messages: Sequence[Message],
        system_prompt: str | None,
        tools: Sequence[ToolDefinition],
        tool_choice: ToolChoice | None,
        thinking: ThinkingConfig | None,
        stream: bool,
    ) -> dict[str, Any]:
        return to_wire(
            messages,
            model=self.model,
            max_tokens=self.max_tokens,
            system_prompt=system_prompt,
            tools=tools,
            tool_choice=tool_choice,
            thinking=thinking,
            temperature=self.temperature,
            stream=stream,
        )

    async def send(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDefinition] = (),
        tool_choice: ToolChoice | None = None,
        thinking: ThinkingConfig | None = None,
    ) -> MessageResponse:
        body = self._body(messages, system_prompt, tools, tool_choice, thinking, stream=False)
        return from_wire(await self._post_json(self.endpoint, body))

    async def stream(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDefinition] = (),
        tool_choice: ToolChoice | None = None,
        thinking: ThinkingConfig | None = None,
    ) -> AsyncIterator[StreamEvent]:
        body = self._body(messages, system_prompt, tools, tool_choice, thinking, stream=True)
        decoder = AnthropicStreamDecoder()
        async with aclosing(self._stream_data(self.endpoint, body)) as lines:
            async for data in lines:
                for event in decoder.feed(data):
                    yield event
                if decoder.finished:
                    break
        for event in decoder.finish():
            yield event
