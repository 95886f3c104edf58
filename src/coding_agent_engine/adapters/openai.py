"""
OpenAI Chat Completions adapter.

Talks to ``POST {base_url}/chat/completions`` over raw HTTP so that any
OpenAI-compatible server works. Translation is split into pure functions:

- :func:`to_wire` builds the request body from canonical messages
- :func:`from_wire` turns a JSON reply into a :class:`MessageResponse`
- :class:`OpenAIStreamDecoder` turns SSE chunks into :class:`StreamEvent` objects

Protocol differences handled here:

- the system prompt is a leading ``system`` message
- tool calls hang off the assistant message as ``tool_calls``
- tool results are separate ``tool`` role messages, never inline
- vendor built-in tools have no function schema and are dropped
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Any, TypedDict

from coding_agent_engine.adapters.base import SSE_DONE, LLMAdapter, ProviderError
from coding_agent_engine.events import (
    INPUT_JSON_DELTA,
    TEXT_DELTA,
    THINKING_DELTA,
    StreamEvent,
    parse_tool_input,
)
from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import (
    ContentBlock,
    Message,
    MessageResponse,
    Role,
    StopReason,
    TextBlock,
    ThinkingBlock,
    ThinkingConfig,
    ToolChoice,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)

logger = get_logger("adapters.openai")

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

FINISH_REASONS: dict[str, StopReason] = {
    "stop": StopReason.END_TURN,
    "length": StopReason.MAX_TOKENS,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "content_filter": StopReason.REFUSAL,
}

# Models matching these prefixes take max_completion_tokens and reject temperature.
REASONING_MODEL_PREFIXES = ("o1", "o3", "o4", "gpt-5")


class OpenAIFunction(TypedDict):
    """OpenAI function definition."""

    name: str
    description: str
    parameters: dict[str, Any]


class OpenAITool(TypedDict):
    """OpenAI tool definition."""

    type: str
    function: OpenAIFunction


class OpenAIMessage(TypedDict, total=False):
    """OpenAI message format."""

    role: str
    content: str | None
    tool_calls: list[dict[str, Any]]
    tool_call_id: str


def is_reasoning_model(model: str) -> bool:
    return model.lower().startswith(REASONING_MODEL_PREFIXES)


def map_finish_reason(reason: str | None) -> StopReason | None:
    """Map a finish code; unknown codes end the turn rather than stall the loop."""
    if reason is None:
        return None
    return FINISH_REASONS.get(reason, StopReason.END_TURN)


def reasoning_effort(thinking: ThinkingConfig) -> str:
    if thinking.budget_tokens <= 2048:
        return "low"
    if thinking.budget_tokens <= 16384:
        return "medium"
    return "high"


# ---------------------------------------------------------------------------
# Request translation
# ---------------------------------------------------------------------------


def _tool_result_text(block: ToolResultBlock) -> str:
    text = block.text()
    if block.content is None or (not text and not isinstance(block.content, str)):
        text = "No output"
    if block.is_error:
        return f"Error: {text}"
    return text


def message_to_wire(message: Message) -> list[OpenAIMessage]:
    """
    Translate one canonical message.

    A user message holding tool results expands into one ``tool`` message per
    result, followed by a user message for any remaining text.
    """
    if isinstance(message.content, str):
        return [{"role": message.role.value, "content": message.content}]

    if message.role is Role.ASSISTANT:
        text_parts: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        for block in message.content:
            if isinstance(block, TextBlock):
                text_parts.append(block.text)
            elif isinstance(block, ThinkingBlock):
                text_parts.append(f"[Internal reasoning: {block.text}]")
            elif isinstance(block, ToolUseBlock):
                tool_calls.append(
                    {
                        "id": block.id,
                        "type": "function",
                        "function": {
                            "name": block.name,
                            "arguments": json.dumps(block.input),
                        },
                    }
                )
        wire: OpenAIMessage = {"role": "assistant", "content": "\n".join(text_parts)}
        if tool_calls:
            wire["tool_calls"] = tool_calls
            if not text_parts:
                wire["content"] = None
        return [wire]

    tool_messages: list[OpenAIMessage] = []
    text_parts = []
    for block in message.content:
        if isinstance(block, ToolResultBlock):
            tool_messages.append(
                {
                    "role": "tool",
                    "tool_call_id": block.tool_use_id,
                    "content": _tool_result_text(block),
                }
            )
        elif isinstance(block, TextBlock):
            text_parts.append(block.text)
        else:
            logger.debug("Skipping unsupported %s block in user message", block.type)

    result = list(tool_messages)
    if text_parts or not tool_messages:
        result.append({"role": "user", "content": "\n".join(text_parts)})
    return result


def tools_to_wire(tools: Sequence[ToolDefinition]) -> list[OpenAITool]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }
        for tool in tools
        if not tool.is_builtin
    ]


def tool_choice_to_wire(choice: ToolChoice) -> str | dict[str, Any]:
    if choice.kind == "any":
        return "required"
    if choice.kind == "tool":
        return {"type": "function", "function": {"name": choice.name}}
    return choice.kind


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
    """Build a Chat Completions request body."""
    wire_messages: list[OpenAIMessage] = []
    if system_prompt:
        wire_messages.append({"role": "system", "content": system_prompt})
    for message in messages:
        wire_messages.extend(message_to_wire(message))

    body: dict[str, Any] = {"model": model, "messages": wire_messages}

    reasoning = is_reasoning_model(model)
    if reasoning:
        body["max_completion_tokens"] = max_tokens
        if thinking is not None:
            body["reasoning_effort"] = reasoning_effort(thinking)
    else:
        body["max_tokens"] = max_tokens
        if temperature is not None:
            body["temperature"] = temperature

    wire_tools = tools_to_wire(tools)
    if wire_tools:
        body["tools"] = wire_tools
        if tool_choice is not None:
            body["tool_choice"] = tool_choice_to_wire(tool_choice)

    if stream:
        body["stream"] = True
    return body


# ---------------------------------------------------------------------------
# Response translation
# ---------------------------------------------------------------------------


def _usage_from_wire(data: dict[str, Any] | None) -> Usage:
    if not data:
        return Usage()
    cached = (data.get("prompt_tokens_details") or {}).get("cached_tokens") or 0
    return Usage(
        input_tokens=data.get("prompt_tokens") or 0,
        output_tokens=data.get("completion_tokens") or 0,
        cache_read_input_tokens=cached,
    )


def from_wire(body: dict[str, Any]) -> MessageResponse:
    """Translate a Chat Completions JSON reply."""
    choices = body.get("choices") or []
    if not choices:
        raise ProviderError("openai returned no choices", body=json.dumps(body))
    choice = choices[0]
    wire_message = choice.get("message") or {}

    content: list[ContentBlock] = []
    reasoning = wire_message.get("reasoning_content")
    if reasoning:
        content.append(ThinkingBlock(text=reasoning))
    if wire_message.get("content"):
        content.append(TextBlock(text=wire_message["content"]))
    for call in wire_message.get("tool_calls") or []:
        function = call.get("function") or {}
        name = function.get("name", "")
        content.append(
            ToolUseBlock(
                id=call.get("id") or f"call_{uuid.uuid4().hex[:24]}",
                name=name,
                input=parse_tool_input(function.get("arguments") or "", name),
            )
        )

    return MessageResponse(
        id=body.get("id", ""),
        content=content,
        stop_reason=map_finish_reason(choice.get("finish_reason")),
        usage=_usage_from_wire(body.get("usage")),
        model=body.get("model", ""),
    )


# ---------------------------------------------------------------------------
# Stream decoding
# ---------------------------------------------------------------------------


class OpenAIStreamDecoder:
    """
    Reconstruct block-structured events from Chat Completions chunks.

    Chunks carry flat deltas: text with no index, and tool-call fragments
    keyed by a per-call index. Each logical block gets the next canonical
    index when its first fragment arrives, and opening a block closes the
    previous one. Argument fragments are forwarded verbatim; nothing is
    parsed until the block is closed.

    Usage:
        decoder = OpenAIStreamDecoder(model="gpt-4o")
        for data in sse_payloads:
            for event in decoder.feed(data):
                ...
        for event in decoder.finish():
            ...
    """

    def __init__(self, model: str = "") -> None:
        self.model = model
        self.started = False
        self.finished = False
        self._next_index = 0
        self._open_key: Any = None
        self._open_index: int | None = None
        self._tool_indices: set[int] = set()
        self._pending_tools: dict[int, dict[str, Any]] = {}

    def feed(self, data: str) -> list[StreamEvent]:
        """Decode one SSE payload. Malformed payloads are logged and skipped."""
        if self.finished:
            return []
        if data == SSE_DONE:
            return self._finish_on_done()
        if not data:
            return []
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("Skipping malformed stream chunk: %s", e)
            return []
        if not isinstance(chunk, dict):
            logger.warning("Skipping non-object stream chunk")
            return []

        events: list[StreamEvent] = []
        if not self.started:
            self.started = True
            events.append(
                StreamEvent.message_start(
                    chunk.get("id", ""),
                    chunk.get("model") or self.model,
                    _usage_from_wire(chunk.get("usage")),
                )
            )

        choices = chunk.get("choices") or []
        if not choices:
            return events
        choice = choices[0]
        delta = choice.get("delta") or {}

        reasoning = delta.get("reasoning_content")
        if reasoning:
            events.extend(self._open("thinking", StreamEvent.thinking_start))
            events.append(StreamEvent.delta(self._open_index, THINKING_DELTA, reasoning))

        text = delta.get("content")
        if text:
            events.extend(self._open("text", StreamEvent.text_start))
            events.append(StreamEvent.delta(self._open_index, TEXT_DELTA, text))

        for call in delta.get("tool_calls") or []:
            events.extend(self._tool_fragment(call))

        finish_reason = choice.get("finish_reason")
        if finish_reason is not None:
            logger.info("openai stream finished: finish_reason=%s", finish_reason)
            events.extend(self._close())
            self._drop_unnamed_tools()
            usage = chunk.get("usage")
            events.append(
                StreamEvent.message_delta(
                    map_finish_reason(finish_reason),
                    _usage_from_wire(usage) if usage else None,
                )
            )
            events.append(StreamEvent.message_stop())
            self.finished = True
        return events

    def finish(self) -> list[StreamEvent]:
        """Called at end of input. A stream that never finished is truncated."""
        if not self.finished:
            raise ProviderError("openai stream ended before a finish reason")
        return []

    # ------------------------------------------------------------------

    def _open(self, key: Any, start: Any) -> list[StreamEvent]:
        if self._open_key == key:
            return []
        events = self._close()
        self._open_key = key
        self._open_index = self._next_index
        self._next_index += 1
        events.append(start(self._open_index))
        return events

    def _close(self) -> list[StreamEvent]:
        if self._open_index is None:
            return []
        event = StreamEvent.block_stop(self._open_index)
        self._open_key = None
        self._open_index = None
        return [event]

    def _tool_fragment(self, call: dict[str, Any]) -> list[StreamEvent]:
        call_index = call.get("index", 0)
        key = ("tool", call_index)
        function = call.get("function") or {}
        events: list[StreamEvent] = []

        if self._open_key != key:
            if call_index in self._tool_indices:
                logger.warning("Skipping fragment for closed tool call index %s", call_index)
                return []
            # Hold id and arguments until the function name shows up.
            pending = self._pending_tools.setdefault(call_index, {"id": None, "arguments": ""})
            if call.get("id"):
                pending["id"] = call["id"]
            pending["arguments"] += function.get("arguments") or ""
            name = function.get("name")
            if not name:
                return []

            del self._pending_tools[call_index]
            self._tool_indices.add(call_index)
            tool_use_id = pending["id"] or f"call_{uuid.uuid4().hex[:24]}"
            events.extend(
                self._open(key, lambda i: StreamEvent.tool_use_start(i, tool_use_id, name))
            )
            if pending["arguments"]:
                events.append(
                    StreamEvent.delta(self._open_index, INPUT_JSON_DELTA, pending["arguments"])
                )
            return events

        arguments = function.get("arguments")
        if arguments:
            events.append(StreamEvent.delta(self._open_index, INPUT_JSON_DELTA, arguments))
        return events

    def _drop_unnamed_tools(self) -> None:
        if self._pending_tools:
            logger.warning(
                "Dropping %d streamed tool call(s) that never received a name",
                len(self._pending_tools),
            )
            self._pending_tools.clear()

    def _finish_on_done(self) -> list[StreamEvent]:
        # [DONE] without a finish_reason: close out as a normal end of turn.
        if not self.started:
            raise ProviderError("openai stream ended before any chunk")
        events = self._close()
        self._drop_unnamed_tools()
        events.append(StreamEvent.message_delta(StopReason.END_TURN))
        events.append(StreamEvent.message_stop())
        self.finished = True
        return events


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class OpenAIAdapter(LLMAdapter):
    """
    OpenAI-compatible Chat Completions adapter.

    Example:
        adapter = OpenAIAdapter(model="gpt-4o", api_key=os.environ["OPENAI_API_KEY"])
        response = await adapter.send([Message.user("Hello")], system_prompt="Be brief.")
    """

    name = "openai"
    default_base_url = DEFAULT_BASE_URL

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

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
        reply = await self._post_json(self.endpoint, body)
        response = from_wire(reply)
        logger.debug(
            "openai response: blocks=%d stop_reason=%s",
            len(response.content),
            response.stop_reason,
        )
        return response

    async def stream(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDefinition] = (),
        tool_choice: ToolChoice | None = None,
        thinking: ThinkingConfig | None = None,
    ) -> AsyncIterator[StreamEvent]:
        body = self._body(messages, system_prompt, tools, tool_choice, thinking, stream=True)
        decoder = OpenAIStreamDecoder(model=self.model)
        async with aclosing(self._stream_data(self.endpoint, body)) as lines:
            async for data in lines:
                for event in decoder.feed(data):
                    yield event
                if decoder.finished:
                    break
        for event in decoder.finish():
            yield event
