"""Shared pytest fixtures for coding-agent-engine tests."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from coding_agent_engine.adapters.base import LLMAdapter
from coding_agent_engine.events import (
    INPUT_JSON_DELTA,
    SIGNATURE_DELTA,
    TEXT_DELTA,
    THINKING_DELTA,
    StreamEvent,
)
from coding_agent_engine.messages import (
    Message,
    MessageResponse,
    RedactedThinkingBlock,
    StopReason,
    TextBlock,
    ThinkingBlock,
    ThinkingConfig,
    ToolChoice,
    ToolDefinition,
    ToolUseBlock,
    Usage,
)
from coding_agent_engine.session import SessionStorage
from coding_agent_engine.tools import FunctionTool, ToolContext, ToolRegistry, ToolResult


# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------


@dataclass
class FailingStream:
    """A stream that yields ``events`` and then raises ``error``. Sending it raises ``error``."""

    events: list[StreamEvent]
    error: Exception


class ScriptedAdapter(LLMAdapter):
    """
    An adapter that replays canned responses.

    Each call consumes the next scripted item; an exception instance is
    raised instead of returned. Once the script runs out the last item
    repeats.
    """

    name = "scripted"

    def __init__(self, responses: Sequence[MessageResponse | Exception | FailingStream]) -> None:
        super().__init__(model="scripted-model")
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def _headers(self) -> dict[str, str]:
        return {}

    def _next(
        self,
        messages: Sequence[Message],
        system_prompt: str | None,
        tools: Sequence[ToolDefinition],
        tool_choice: ToolChoice | None,
        thinking: ThinkingConfig | None,
    ) -> MessageResponse | FailingStream:
        self.calls.append(
            {
                "messages": list(messages),
                "system_prompt": system_prompt,
                "tools": list(tools),
                "tool_choice": tool_choice,
                "thinking": thinking,
            }
        )
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        item = self.responses[index]
        if isinstance(item, Exception):
            raise item
        return item

    async def send(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDefinition] = (),
        tool_choice: ToolChoice | None = None,
        thinking: ThinkingConfig | None = None,
    ) -> MessageResponse:
        item = self._next(messages, system_prompt, tools, tool_choice, thinking)
        if isinstance(item, FailingStream):
            raise item.error
        return item

    async def stream(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDefinition] = (),
        tool_choice: ToolChoice | None = None,
        thinking: ThinkingConfig | None = None,
    ) -> AsyncIterator[StreamEvent]:
        item = self._next(messages, system_prompt, tools, tool_choice, thinking)
        if isinstance(item, FailingStream):
            for event in item.events:
                yield event
            raise item.error
        for event in response_to_events(item):
            yield event


def response_to_events(response: MessageResponse) -> list[StreamEvent]:
    """Spell a response out as the stream events a provider would send."""
    events = [StreamEvent.message_start(response.id, response.model, Usage())]
    for index, block in enumerate(response.content):
        if isinstance(block, TextBlock):
            events.append(StreamEvent.text_start(index))
            events.append(StreamEvent.delta(index, TEXT_DELTA, block.text))
        elif isinstance(block, ThinkingBlock):
            events.append(StreamEvent.thinking_start(index))
            events.append(StreamEvent.delta(index, THINKING_DELTA, block.text))
            if block.signature:
                events.append(StreamEvent.delta(index, SIGNATURE_DELTA, block.signature))
        elif isinstance(block, RedactedThinkingBlock):
            events.append(StreamEvent.redacted_thinking_start(index, block.data))
        elif isinstance(block, ToolUseBlock):
            events.append(StreamEvent.tool_use_start(index, block.id, block.name))
            events.append(StreamEvent.delta(index, INPUT_JSON_DELTA, json.dumps(block.input)))
        events.append(StreamEvent.block_stop(index))
    events.append(StreamEvent.message_delta(response.stop_reason, response.usage))
    events.append(StreamEvent.message_stop())
    return events


def text_response(text: str, stop_reason: StopReason = StopReason.END_TURN) -> MessageResponse:
    return MessageResponse(
        id="msg_text",
        content=[TextBlock(text)],
        stop_reason=stop_reason,
        usage=Usage(input_tokens=10, output_tokens=5),
        model="scripted-model",
    )


def tool_response(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> MessageResponse:
    """A reply that calls tools; each call is ``(id, name, input)``."""
    content: list[Any] = [TextBlock(text)] if text else []
    content.extend(ToolUseBlock(id=i, name=n, input=inp) for i, n, inp in calls)
    return MessageResponse(
        id="msg_tools",
        content=content,
        stop_reason=StopReason.TOOL_USE,
        usage=Usage(input_tokens=10, output_tokens=5),
        model="scripted-model",
    )


def truncated_tool_stream(tool_use_id: str, name: str, partial_input: str, error: Exception) -> FailingStream:
    """A stream that dies partway through the arguments of a tool call."""
    return FailingStream(
        events=[
            StreamEvent.message_start("msg_truncated", "scripted-model"),
            StreamEvent.tool_use_start(0, tool_use_id, name),
            StreamEvent.delta(0, INPUT_JSON_DELTA, partial_input),
        ],
        error=error,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


async def _echo(input: dict[str, Any], context: ToolContext) -> ToolResult:
    return ToolResult.success(f"echo: {input.get('text', '')}")


async def _explode(input: dict[str, Any], context: ToolContext) -> ToolResult:
    raise RuntimeError("boom")


@pytest.fixture
def echo_tool() -> FunctionTool:
    return FunctionTool(
        "echo",
        "Echo the given text",
        _echo,
        input_schema={"type": "object", "properties": {"text": {"type": "string"}}},
    )


@pytest.fixture
def failing_tool() -> FunctionTool:
    return FunctionTool("explode", "Always fails", _explode)


@pytest.fixture
def tool_registry(echo_tool: FunctionTool, failing_tool: FunctionTool) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(echo_tool)
    registry.register(failing_tool)
    return registry


@pytest.fixture
def storage(tmp_path: Path) -> SessionStorage:
    return SessionStorage(tmp_path / "sessions")
