"""Tests for the agent loop."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from conftest import FailingStream, ScriptedAdapter, text_response, tool_response, truncated_tool_stream
from coding_agent_engine.adapters import AdapterRegistry, OpenAIAdapter, ProviderError
from coding_agent_engine.agent import (
    ABORTED_TOOL_MESSAGE,
    AgentAbortedError,
    AgentRunner,
    TurnOutcome,
)
from coding_agent_engine.config import AgentConfig, ProviderConfig
from coding_agent_engine.context import ContextManager, StaticContextProvider
from coding_agent_engine.events import (
    AGENT_DONE,
    AGENT_STREAM,
    AGENT_TEXT,
    AGENT_THINKING,
    AGENT_TOOL_RESULT,
    AGENT_TOOL_USE,
    AGENT_TURN_START,
)
from coding_agent_engine.hooks import HookContext, HookEvent, HookRegistry, HookResult, Verdict
from coding_agent_engine.messages import (
    Message,
    MessageResponse,
    RedactedThinkingBlock,
    Role,
    StopReason,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
)
from coding_agent_engine.permissions import PermissionDecision, PermissionRequest
from coding_agent_engine.session import Session, SessionStorage
from coding_agent_engine.tools import (
    FunctionTool,
    TodoList,
    TodoTool,
    ToolContext,
    ToolRegistry,
    ToolResult,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _allow(request: PermissionRequest) -> PermissionDecision:
    return PermissionDecision.ALLOW


def _runner(
    responses: list[MessageResponse | Exception | FailingStream],
    tools: ToolRegistry | None = None,
    storage: SessionStorage | None = None,
    approver: Any = _allow,
    hooks: HookRegistry | None = None,
    context_manager: ContextManager | None = None,
    **config: Any,
) -> tuple[AgentRunner, ScriptedAdapter]:
    adapter = ScriptedAdapter(responses)
    session = Session.create(storage) if storage is not None else None
    runner = AgentRunner(
        adapter,
        tools=tools,
        config=AgentConfig(**config),
        hooks=hooks,
        approver=approver,
        context_manager=context_manager,
        session=session,
    )
    return runner, adapter


def _assert_tool_results_paired(messages: list[Message]) -> None:
    """Every assistant tool call is answered, in order, by the next message."""
    for i, message in enumerate(messages):
        calls = message.tool_uses() if message.role is Role.ASSISTANT else []
        if not calls:
            continue
        answer = messages[i + 1]
        assert answer.role is Role.USER
        assert [r.tool_use_id for r in answer.tool_results()] == [c.id for c in calls]


# ---------------------------------------------------------------------------
# Basic turns
# ---------------------------------------------------------------------------


class TestChat:
    @pytest.mark.asyncio
    async def test_text_only_turn(self, storage: SessionStorage) -> None:
        runner, adapter = _runner([text_response("Hello!")], storage=storage, system_prompt="Be nice.")
        result = await runner.chat("Hi")

        assert result.outcome is TurnOutcome.COMPLETE
        assert result.ok
        assert result.text == "Hello!"
        assert result.iterations == 1
        assert result.stop_reason is StopReason.END_TURN
        assert runner.messages == [Message.user("Hi"), Message.assistant_with_blocks([TextBlock("Hello!")])]
        assert adapter.calls[0]["system_prompt"] == "Be nice."
        assert storage.load_messages(runner.session_id) == runner.messages

    @pytest.mark.asyncio
    async def test_tool_round_trip(self, tool_registry: ToolRegistry, storage: SessionStorage) -> None:
        runner, adapter = _runner(
            [
                tool_response(("call_1", "echo", {"text": "ping"}), text="Let me echo."),
                text_response("Done."),
            ],
            tools=tool_registry,
            storage=storage,
        )
        result = await runner.chat("echo ping")

        assert result.outcome is TurnOutcome.COMPLETE
        assert result.iterations == 2
        assert result.tool_calls == 1
        assert result.text == "Done."

        history = runner.messages
        assert [m.role for m in history] == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
        assert history[2].tool_results() == [ToolResultBlock("call_1", "echo: ping")]
        _assert_tool_results_paired(history)

        # the second request carries the tool result back to the model
        assert adapter.calls[1]["messages"] == history[:3]
        assert [d.name for d in adapter.calls[0]["tools"]] == ["echo", "explode"]
        assert storage.load_messages(runner.session_id) == history

    @pytest.mark.asyncio
    async def test_several_tools_answered_in_one_message(self, tool_registry: ToolRegistry) -> None:
        runner, _ = _runner(
            [
                tool_response(
                    ("a", "echo", {"text": "1"}),
                    ("b", "explode", {}),
                    ("c", "echo", {"text": "3"}),
                ),
                text_response("ok"),
            ],
            tools=tool_registry,
        )
        await runner.chat("go")

        results = runner.messages[2].tool_results()
        assert [r.tool_use_id for r in results] == ["a", "b", "c"]
        assert [r.is_error for r in results] == [False, True, False]
        assert results[1].content == "Tool execution failed: boom"
        _assert_tool_results_paired(runner.messages)

    @pytest.mark.asyncio
    async def test_unknown_tool_reported_to_model(self, tool_registry: ToolRegistry) -> None:
        runner, _ = _runner(
            [tool_response(("x", "teleport", {})), text_response("sorry")],
            tools=tool_registry,
        )
        await runner.chat("go")
        [result] = runner.messages[2].tool_results()
        assert result.is_error
        assert result.content == "Unknown tool: teleport"

    @pytest.mark.asyncio
    async def test_iteration_cap(self, tool_registry: ToolRegistry, storage: SessionStorage) -> None:
        runner, adapter = _runner(
            [tool_response(("loop", "echo", {"text": "again"}))],
            tools=tool_registry,
            storage=storage,
            max_iterations=3,
        )
        result = await runner.chat("loop forever")

        assert result.outcome is TurnOutcome.MAX_ITERATIONS
        assert result.iterations == 3
        assert len(adapter.calls) == 3
        assert len(runner.messages) == 1 + 3 * 2
        _assert_tool_results_paired(runner.messages)
        assert storage.load_messages(runner.session_id) == runner.messages

    @pytest.mark.asyncio
    async def test_tool_use_without_tool_stop_reason_ends_turn(self, tool_registry: ToolRegistry) -> None:
        response = tool_response(("a", "echo", {"text": "x"}))
        response.stop_reason = StopReason.MAX_TOKENS
        runner, adapter = _runner([response], tools=tool_registry)

        result = await runner.chat("go")
        assert result.outcome is TurnOutcome.COMPLETE
        assert len(adapter.calls) == 1
        _assert_tool_results_paired(runner.messages)

    @pytest.mark.asyncio
    async def test_usage_accumulates(self, tool_registry: ToolRegistry) -> None:
        runner, _ = _runner(
            [tool_response(("a", "echo", {})), text_response("ok")],
            tools=tool_registry,
        )
        result = await runner.chat("go")
        assert result.usage.input_tokens == 20
        assert result.usage.output_tokens == 10
        await runner.chat("again")
        assert runner.cumulative_usage.input_tokens == 30

    @pytest.mark.asyncio
    async def test_config_options_forwarded(self) -> None:
        runner, adapter = _runner([text_response("ok")], thinking_budget=4000, tool_choice="any")
        await runner.chat("hi")
        assert adapter.calls[0]["thinking"].budget_tokens == 4000
        assert adapter.calls[0]["tool_choice"].kind == "any"

    @pytest.mark.asyncio
    async def test_resumes_session_history(self, storage: SessionStorage) -> None:
        session = Session.create(storage)
        session.extend([Message.user("earlier"), Message.assistant("noted")])

        adapter = ScriptedAdapter([text_response("welcome back")])
        runner = AgentRunner(adapter, session=Session.open(storage, session.session_id))
        await runner.chat("continue")

        sent = adapter.calls[0]["messages"]
        assert [m.text() for m in sent] == ["earlier", "noted", "continue"]
        assert len(storage.load_messages(session.session_id)) == 4


# ---------------------------------------------------------------------------
# Permissions and hooks
# ---------------------------------------------------------------------------


class TestPermissionsInLoop:
    @pytest.mark.asyncio
    async def test_no_approver_denies_without_running(self) -> None:
        ran: list[dict[str, Any]] = []

        async def record(input: dict[str, Any], context: ToolContext) -> ToolResult:
            ran.append(input)
            return ToolResult.success("ran")

        tools = ToolRegistry()
        tools.register(FunctionTool("record", "Record the call", record))
        runner, _ = _runner(
            [tool_response(("a", "record", {"text": "hi"})), text_response("ok")],
            tools=tools,
            approver=None,
        )
        await runner.chat("go")

        [result] = runner.messages[2].tool_results()
        assert result.is_error
        assert result.content == "Permission denied by user"
        assert ran == []

    @pytest.mark.asyncio
    async def test_always_deny_persists_across_turns(self, tool_registry: ToolRegistry) -> None:
        requests: list[PermissionRequest] = []

        def approver(request: PermissionRequest) -> PermissionDecision:
            requests.append(request)
            return PermissionDecision.ALWAYS_DENY

        runner, _ = _runner(
            [
                tool_response(("a", "echo", {})),
                text_response("ok"),
                tool_response(("b", "echo", {})),
                text_response("ok"),
            ],
            tools=tool_registry,
            approver=approver,
        )
        await runner.chat("first")
        await runner.chat("second")

        assert len(requests) == 1
        denials = [m.tool_results()[0] for m in runner.messages if m.tool_results()]
        assert [d.content for d in denials] == ["Permission denied by user"] * 2

    @pytest.mark.asyncio
    async def test_hook_deny_message(self, tool_registry: ToolRegistry) -> None:
        hooks = HookRegistry()
        hooks.on(HookEvent.PRE_TOOL_USE, lambda ctx: HookResult.deny("read-only mode"), matcher="echo")
        runner, _ = _runner(
            [tool_response(("a", "echo", {})), text_response("ok")],
            tools=tool_registry,
            hooks=hooks,
        )
        await runner.chat("go")
        [result] = runner.messages[2].tool_results()
        assert result.content == "Permission denied by hook: read-only mode"

    @pytest.mark.asyncio
    async def test_hook_rewritten_input_reaches_tool(self, tool_registry: ToolRegistry) -> None:
        hooks = HookRegistry()
        hooks.on(
            HookEvent.PRE_TOOL_USE,
            lambda ctx: HookResult(Verdict.ALLOW, updated_input={"text": "sanitized"}),
        )
        runner, _ = _runner(
            [tool_response(("a", "echo", {"text": "secret"})), text_response("ok")],
            tools=tool_registry,
            hooks=hooks,
            approver=None,
        )
        await runner.chat("go")
        assert runner.messages[2].tool_results()[0].content == "echo: sanitized"

    @pytest.mark.asyncio
    async def test_post_tool_hooks(self, tool_registry: ToolRegistry) -> None:
        hooks = HookRegistry()
        seen: list[tuple[HookEvent, str | None]] = []
        hooks.on(HookEvent.POST_TOOL_USE, lambda ctx: seen.append((ctx.event, ctx.tool_name)))
        hooks.on(HookEvent.POST_TOOL_USE_FAILURE, lambda ctx: seen.append((ctx.event, ctx.tool_name)))
        runner, _ = _runner(
            [tool_response(("a", "echo", {}), ("b", "explode", {})), text_response("ok")],
            tools=tool_registry,
            hooks=hooks,
        )
        await runner.chat("go")
        assert seen == [
            (HookEvent.POST_TOOL_USE, "echo"),
            (HookEvent.POST_TOOL_USE_FAILURE, "explode"),
        ]

    @pytest.mark.asyncio
    async def test_exempt_tool_needs_no_approver(self) -> None:
        tools = ToolRegistry()
        tools.register(TodoTool())
        runner, _ = _runner(
            [
                tool_response(("t", "todo", {"todos": [{"index": 1, "completed": False, "task": "write docs"}]})),
                text_response("noted"),
            ],
            tools=tools,
            approver=None,
        )
        await runner.chat("plan")
        assert not runner.messages[2].tool_results()[0].is_error
        assert runner.tool_context.require(TodoList).items()[0].task == "write docs"

    @pytest.mark.asyncio
    async def test_prompt_blocked(self, storage: SessionStorage) -> None:
        hooks = HookRegistry()
        hooks.on(HookEvent.USER_PROMPT_SUBMIT, lambda ctx: HookResult.deny("contains a secret"))
        runner, adapter = _runner([text_response("never")], hooks=hooks, storage=storage)

        result = await runner.chat("my password is hunter2")
        assert result.outcome is TurnOutcome.BLOCKED
        assert result.error == "contains a secret"
        assert adapter.calls == []
        assert runner.messages == []

    @pytest.mark.asyncio
    async def test_prompt_rewritten(self) -> None:
        hooks = HookRegistry()
        hooks.on(HookEvent.USER_PROMPT_SUBMIT, lambda ctx: HookResult(updated_prompt=ctx.prompt + "!"))
        runner, adapter = _runner([text_response("ok")], hooks=hooks)
        await runner.chat("hi")
        assert adapter.calls[0]["messages"][-1] == Message.user("hi!")

    @pytest.mark.asyncio
    async def test_post_assistant_response_hook(self) -> None:
        hooks = HookRegistry()
        seen: list[HookContext] = []
        hooks.on(HookEvent.POST_ASSISTANT_RESPONSE, seen.append)
        runner, _ = _runner([text_response("ok")], hooks=hooks)
        await runner.chat("hi")
        assert seen[0].response.text() == "ok"


# ---------------------------------------------------------------------------
# Provider failures
# ---------------------------------------------------------------------------


class TestProviderFailures:
    @pytest.mark.asyncio
    async def test_first_request_failure_raises_and_keeps_nothing(self, storage: SessionStorage) -> None:
        runner, _ = _runner([ProviderError("unauthorized", status_code=401)], storage=storage)
        with pytest.raises(ProviderError):
            await runner.chat("hi")
        assert runner.messages == []
        assert storage.load_messages(runner.session_id) == []

    @pytest.mark.asyncio
    async def test_later_failure_ends_turn_with_error(
        self, tool_registry: ToolRegistry, storage: SessionStorage
    ) -> None:
        runner, _ = _runner(
            [tool_response(("a", "echo", {})), ProviderError("overloaded", status_code=529)],
            tools=tool_registry,
            storage=storage,
        )
        result = await runner.chat("go")

        assert result.outcome is TurnOutcome.ERROR
        assert result.error == "overloaded"
        assert len(runner.messages) == 3
        assert storage.load_messages(runner.session_id) == runner.messages

    @pytest.mark.asyncio
    async def test_stream_failing_on_first_request_rolls_back(self, storage: SessionStorage) -> None:
        ran: list[dict[str, Any]] = []

        async def record(input: dict[str, Any], context: ToolContext) -> ToolResult:
            ran.append(input)
            return ToolResult.success("ran")

        tools = ToolRegistry()
        tools.register(FunctionTool("record", "Record the call", record))
        runner, _ = _runner(
            [truncated_tool_stream("a", "record", '{"te', ProviderError("connection reset"))],
            tools=tools,
            storage=storage,
            stream=True,
        )
        with pytest.raises(ProviderError):
            await runner.chat("go")

        assert runner.messages == []
        assert storage.load_messages(runner.session_id) == []
        assert ran == []

    @pytest.mark.asyncio
    async def test_stream_failing_on_later_request_keeps_earlier_history(
        self, storage: SessionStorage
    ) -> None:
        ran: list[dict[str, Any]] = []

        async def record(input: dict[str, Any], context: ToolContext) -> ToolResult:
            ran.append(input)
            return ToolResult.success("ran")

        tools = ToolRegistry()
        tools.register(FunctionTool("record", "Record the call", record))
        runner, _ = _runner(
            [
                tool_response(("a", "record", {"text": "first"})),
                truncated_tool_stream("b", "record", '{"te', ProviderError("connection reset")),
            ],
            tools=tools,
            storage=storage,
            stream=True,
        )
        result = await runner.chat("go")

        assert result.outcome is TurnOutcome.ERROR
        assert result.error == "connection reset"
        assert ran == [{"text": "first"}]
        assert len(runner.messages) == 3
        assert [c.id for c in runner.messages[1].tool_uses()] == ["a"]
        assert all(c.id != "b" for m in runner.messages for c in m.tool_uses())
        assert storage.load_messages(runner.session_id) == runner.messages
        _assert_tool_results_paired(runner.messages)

    @pytest.mark.asyncio
    async def test_run_survives_provider_errors(self) -> None:
        runner, _ = _runner([ProviderError("down"), text_response("back")])
        results = await runner.run(["one", "two"])
        assert [r.outcome for r in results] == [TurnOutcome.ERROR, TurnOutcome.COMPLETE]


# ---------------------------------------------------------------------------
# Events and streaming
# ---------------------------------------------------------------------------


class TestEvents:
    @pytest.mark.asyncio
    async def test_event_sequence(self, tool_registry: ToolRegistry) -> None:
        runner, _ = _runner(
            [tool_response(("a", "echo", {"text": "x"}), text="Working."), text_response("Done.")],
            tools=tool_registry,
        )
        events = [e async for e in runner.chat_stream_events("go")]
        assert [e.type for e in events] == [
            AGENT_TURN_START,
            AGENT_TEXT,
            AGENT_TOOL_USE,
            AGENT_TOOL_RESULT,
            AGENT_TURN_START,
            AGENT_TEXT,
            AGENT_DONE,
        ]
        assert events[2].tool_input == {"text": "x"}
        assert events[3].content == "echo: x"
        assert events[-1].result.outcome is TurnOutcome.COMPLETE

    @pytest.mark.asyncio
    async def test_thinking_surfaced_redacted_kept(self) -> None:
        response = MessageResponse(
            id="m",
            content=[ThinkingBlock("pondering", "sig"), RedactedThinkingBlock("xx"), TextBlock("answer")],
            stop_reason=StopReason.END_TURN,
        )
        runner, _ = _runner([response])
        events = [e async for e in runner.chat_stream_events("q")]

        assert [e.type for e in events] == [AGENT_TURN_START, AGENT_THINKING, AGENT_TEXT, AGENT_DONE]
        assert events[1].content == "pondering"
        assert runner.messages[1].blocks == tuple(response.content)

    @pytest.mark.asyncio
    async def test_streaming_mode(self, tool_registry: ToolRegistry) -> None:
        runner, _ = _runner(
            [tool_response(("a", "echo", {"text": "streamed"})), text_response("Done.")],
            tools=tool_registry,
            stream=True,
        )
        events = [e async for e in runner.chat_stream_events("go")]

        assert any(e.type == AGENT_STREAM for e in events)
        result = events[-1].result
        assert result.outcome is TurnOutcome.COMPLETE
        assert result.text == "Done."
        assert runner.messages[2].tool_results()[0].content == "echo: streamed"


# ---------------------------------------------------------------------------
# Abort
# ---------------------------------------------------------------------------


class TestAbort:
    def test_check_abort_raises(self) -> None:
        runner, _ = _runner([text_response("x")])
        runner.abort()
        with pytest.raises(AgentAbortedError):
            runner._check_abort()
        runner.reset_abort()
        runner._check_abort()

    @pytest.mark.asyncio
    async def test_abort_before_turn(self) -> None:
        runner, adapter = _runner([text_response("x")])
        runner.abort()
        result = await runner.chat("hi")
        assert result.outcome is TurnOutcome.ABORTED
        assert adapter.calls == []

        runner.reset_abort()
        assert (await runner.chat("hi again")).outcome is TurnOutcome.COMPLETE

    @pytest.mark.asyncio
    async def test_abort_between_tools_answers_every_call(self, tool_registry: ToolRegistry) -> None:
        holder: dict[str, AgentRunner] = {}

        def approver(request: PermissionRequest) -> PermissionDecision:
            holder["runner"].abort()
            return PermissionDecision.ALLOW

        runner, adapter = _runner(
            [tool_response(("a", "echo", {"text": "1"}), ("b", "echo", {"text": "2"})), text_response("x")],
            tools=tool_registry,
            approver=approver,
        )
        holder["runner"] = runner
        result = await runner.chat("go")

        assert result.outcome is TurnOutcome.ABORTED
        assert len(adapter.calls) == 1
        first, second = runner.messages[2].tool_results()
        assert first.content == "echo: 1"
        assert second.is_error
        assert second.content == ABORTED_TOOL_MESSAGE
        _assert_tool_results_paired(runner.messages)

    @pytest.mark.asyncio
    async def test_abort_while_streaming(self) -> None:
        runner, _ = _runner([text_response("partial")], stream=True)
        events = []
        async for event in runner.chat_stream_events("go"):
            events.append(event)
            if event.type == AGENT_STREAM:
                runner.abort()
        assert events[-1].result.outcome is TurnOutcome.ABORTED
        assert runner.messages == [Message.user("go")]


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class TestContextInLoop:
    @pytest.mark.asyncio
    async def test_hidden_context_and_transforms_not_stored(self) -> None:
        context = ContextManager("base prompt")
        context.add_provider(StaticContextProvider("repo", "python project"))
        context.add_provider(StaticContextProvider("env", "cwd=/src", inject_as_message=True))
        context.add_transform("shout", lambda msgs: [*msgs[:-1], Message.user(msgs[-1].text().upper())])
        runner, adapter = _runner([text_response("ok")], context_manager=context)

        await runner.chat("hello")

        call = adapter.calls[0]
        assert call["system_prompt"] == 'base prompt\n\n<context name="repo">\npython project\n</context>'
        assert "hidden-context" in call["messages"][0].text()
        assert call["messages"][-1] == Message.user("HELLO")
        assert runner.messages[0] == Message.user("hello")


# ---------------------------------------------------------------------------
# Outer loop, construction and sub-agents
# ---------------------------------------------------------------------------


class TestRunAndCreate:
    @pytest.mark.asyncio
    async def test_run_stops_on_quit(self) -> None:
        runner, adapter = _runner([text_response("hi")])
        seen = []
        results = await runner.run(["hello", "  ", "quit", "never sent"], on_result=seen.append)
        assert len(results) == 1
        assert seen == results
        assert len(adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_run_accepts_async_inputs(self) -> None:
        async def inputs():
            yield "a"
            yield "b"

        runner, _ = _runner([text_response("ok")])
        assert len(await runner.run(inputs())) == 2

    def test_create_from_config(self, tmp_path: Path) -> None:
        config = AgentConfig(
            session_dir=tmp_path / "sessions",
            provider=ProviderConfig(provider="openai", api_key="sk-test"),
        )
        runner = AgentRunner.create(config)
        assert isinstance(runner.adapter, OpenAIAdapter)
        assert runner.session is not None
        assert SessionStorage(tmp_path / "sessions").list_sessions() == [runner.session_id]

    def test_create_with_adapter_registry(self, tmp_path: Path) -> None:
        scripted = ScriptedAdapter([text_response("hi")])
        adapters = AdapterRegistry()
        adapters.register("scripted", scripted)
        config = AgentConfig(
            session_dir=tmp_path / "sessions", provider=ProviderConfig(provider="scripted")
        )
        runner = AgentRunner.create(config, adapters=adapters)
        assert runner.adapter is scripted

    def test_create_resumes_session_id(self, tmp_path: Path) -> None:
        config = AgentConfig(session_dir=tmp_path / "sessions")
        first = AgentRunner.create(config, session_id="fixed")
        first.session.append(Message.user("remember me"))  # type: ignore[union-attr]
        second = AgentRunner.create(config, session_id="fixed")
        assert second.messages == [Message.user("remember me")]

    @pytest.mark.asyncio
    async def test_create_subagent(self, storage: SessionStorage, tool_registry: ToolRegistry) -> None:
        runner, _ = _runner([text_response("child done")], tools=tool_registry, storage=storage)
        runner.permissions.always_deny_tool("explode")

        child = runner.create_subagent("explorer", originating_tool_call_id="call_9", system_prompt="Explore.")

        assert child.session is not None
        assert child.session.metadata.parent_session_id == runner.session_id
        assert child.session.metadata.originating_tool_call_id == "call_9"
        assert child.session.system_prompt == "Explore."
        assert child.config.agent_type == "explorer"
        assert child.permissions is runner.permissions
        assert child.hooks is runner.hooks
        assert child.tool_context is not runner.tool_context
        assert child.tool_context.session_id == child.session_id
        assert child.tools is runner.tools

        await child.chat("look around")
        assert runner.messages == []
        assert storage.list_sessions(top_level_only=True) == [runner.session_id]
        assert storage.load_metadata(runner.session_id).child_session_ids == [child.session_id]

    def test_subagent_without_session(self) -> None:
        runner, _ = _runner([text_response("x")])
        child = runner.create_subagent("helper")
        assert child.session is None
        assert child.config.system_prompt == runner.config.system_prompt
