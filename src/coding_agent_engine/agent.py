"""
The agent runner: drives a conversation between a user, a model and tools.

One user turn runs an inner loop, bounded by ``max_iterations``:

1. send history + system prompt + tool definitions to the provider
2. walk the reply's blocks in order: surface text and thinking, route each
   tool call through the permission resolver and, if allowed, the tool
   registry
3. if there were tool calls, append the assistant message and one user
   message holding every tool result
4. go around again only if the model stopped with ``tool_use``

The history is persisted to the session when the turn ends, whatever the
outcome. A provider failure on the first request of a turn is re-raised
and nothing from that turn is kept.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coding_agent_engine.adapters.base import LLMAdapter, ProviderError
from coding_agent_engine.adapters.registry import AdapterRegistry, create_adapter
from coding_agent_engine.config import AgentConfig
from coding_agent_engine.context import ContextManager
from coding_agent_engine.events import (
    AGENT_DONE,
    AGENT_STREAM,
    AGENT_TEXT,
    AGENT_THINKING,
    AGENT_TOOL_RESULT,
    AGENT_TOOL_USE,
    AGENT_TURN_START,
    AgentEvent,
    StreamAccumulator,
)
from coding_agent_engine.hooks import HookContext, HookEvent, HookRegistry
from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import (
    Message,
    MessageResponse,
    RedactedThinkingBlock,
    StopReason,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from coding_agent_engine.permissions import PermissionApprover, PermissionManager
from coding_agent_engine.resolver import PermissionResolver
from coding_agent_engine.session import Session, SessionStorage
from coding_agent_engine.tools.context import ToolContext
from coding_agent_engine.tools.registry import ToolRegistry, ToolResult

logger = get_logger("agent")

QUIT_COMMANDS = frozenset({"exit", "quit", "/exit", "/quit"})

ABORTED_TOOL_MESSAGE = "Tool call skipped: turn aborted"


class AgentAbortedError(Exception):
    """Raised internally when ``abort()`` is observed at a suspension point."""


class TurnOutcome(str, Enum):
    COMPLETE = "complete"  # the model stopped asking for tools
    MAX_ITERATIONS = "max_iterations"  # gave up after the iteration cap
    ERROR = "error"  # provider failed after the first request
    ABORTED = "aborted"
    BLOCKED = "blocked"  # a UserPromptSubmit hook denied the prompt


@dataclass
class TurnResult:
    """What happened during one user turn."""

    outcome: TurnOutcome
    text: str = ""  # text of the last assistant reply
    iterations: int = 0  # provider calls made
    tool_calls: int = 0
    stop_reason: StopReason | None = None
    usage: Usage = field(default_factory=Usage)
    error: str | None = None
    messages: list[Message] = field(default_factory=list)  # appended this turn

    @property
    def ok(self) -> bool:
        return self.outcome is TurnOutcome.COMPLETE


class AgentRunner:
    """
    Agent runner over one provider adapter and one tool registry.

    Example:
        config = AgentConfig.from_env(system_prompt="You are a coding assistant.")
        tools = ToolRegistry()
        tools.register(TodoTool())

        agent = AgentRunner.create(config, tools=tools, approver=ask_user)

        result = await agent.chat("Set up a todo list for the refactor")
        print(result.text)

        # Or consume progress as it happens
        async for event in agent.chat_stream_events("Now start on step one"):
            ...
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        tools: ToolRegistry | None = None,
        config: AgentConfig | None = None,
        permissions: PermissionManager | None = None,
        hooks: HookRegistry | None = None,
        approver: PermissionApprover | None = None,
        context_manager: ContextManager | None = None,
        tool_context: ToolContext | None = None,
        session: Session | None = None,
    ) -> None:
        self.adapter = adapter
        self.tools = tools if tools is not None else ToolRegistry()
        self.config = config or AgentConfig()
        self.permissions = permissions or PermissionManager()
        self.hooks = hooks or HookRegistry()
        self.approver = approver
        self.resolver = PermissionResolver(self.permissions, self.hooks, approver)
        self.context_manager = context_manager or ContextManager(self.config.system_prompt)
        self.session = session
        self.tool_context = tool_context or ToolContext(
            session_id=session.session_id if session else None
        )
        self._messages: list[Message] = session.messages if session else []
        self._abort_event = asyncio.Event()
        self._usage = Usage()

    @classmethod
    def create(
        cls,
        config: AgentConfig,
        tools: ToolRegistry | None = None,
        approver: PermissionApprover | None = None,
        session_id: str | None = None,
        adapters: AdapterRegistry | None = None,
        **kwargs: Any,
    ) -> AgentRunner:
        """
        Build a runner from config: adapter for ``config.provider`` from
        ``adapters`` (the bundled providers by default) and a session under
        ``config.session_dir`` (resumed if ``session_id`` exists).
        """
        storage = SessionStorage(config.session_dir)
        if session_id is not None:
            session = Session.open_or_create(
                storage,
                session_id,
                agent_type=config.agent_type,
                system_prompt=config.system_prompt,
            )
        else:
            session = Session.create(
                storage, agent_type=config.agent_type, system_prompt=config.system_prompt
            )
        return cls(
            create_adapter(config.provider, registry=adapters),
            tools=tools,
            config=config,
            approver=approver,
            session=session,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        """A copy of the conversation history."""
        return list(self._messages)

    @property
    def cumulative_usage(self) -> Usage:
        return self._usage

    @property
    def session_id(self) -> str | None:
        return self.session.session_id if self.session else None

    def clear_history(self) -> None:
        self._messages = []

    # ------------------------------------------------------------------
    # Abort
    # ------------------------------------------------------------------

    @property
    def is_aborted(self) -> bool:
        return self._abort_event.is_set()

    def abort(self) -> None:
        """
        Abandon the current turn at the next suspension point.

        A tool that is already running is left to finish. Remaining tool
        calls of the same reply get an error result so every call stays
        answered. Call ``reset_abort()`` before the next turn.
        """
        self._abort_event.set()

    def reset_abort(self) -> None:
        self._abort_event.clear()

    def _check_abort(self) -> None:
        if self._abort_event.is_set():
            raise AgentAbortedError("Agent operation aborted")

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def chat(self, user_input: str | Message) -> TurnResult:
        """
        Run one user turn to completion.

        Raises:
            ProviderError: If the first provider request of the turn fails
        """
        result: TurnResult | None = None
        async for event in self._run_turn(user_input):
            if event.type == AGENT_DONE:
                result = event.result
        assert result is not None
        return result

    async def chat_stream_events(self, user_input: str | Message) -> AsyncIterator[AgentEvent]:
        """
        Run one user turn, yielding progress events.

        With ``config.stream`` set, raw provider events are forwarded as
        ``stream`` events as they arrive. The last event is ``done`` and
        carries the :class:`TurnResult`.
        """
        async for event in self._run_turn(user_input):
            yield event

    async def run(
        self,
        inputs: AsyncIterable[str] | Iterable[str],
        on_result: Callable[[TurnResult], Any] | None = None,
    ) -> list[TurnResult]:
        """
        Outer loop: one turn per input until the inputs run out or a quit
        command (``exit`` / ``quit``) arrives. Provider failures end the
        turn, not the loop.
        """
        results: list[TurnResult] = []

        async def _iterate() -> AsyncIterator[str]:
            if isinstance(inputs, AsyncIterable):
                async for item in inputs:
                    yield item
            else:
                for item in inputs:
                    yield item

        async for raw in _iterate():
            text = raw.strip()
            if not text:
                continue
            if text.lower() in QUIT_COMMANDS:
                logger.info("Quit command received")
                break
            try:
                result = await self.chat(text)
            except ProviderError as e:
                logger.error("Turn failed: %s", e)
                result = TurnResult(outcome=TurnOutcome.ERROR, error=str(e))
            results.append(result)
            if on_result is not None:
                value = on_result(result)
                if asyncio.iscoroutine(value):
                    await value
        return results

    async def _run_turn(self, user_input: str | Message) -> AsyncIterator[AgentEvent]:
        if isinstance(user_input, str):
            outcome = await self.hooks.run(
                HookContext(
                    event=HookEvent.USER_PROMPT_SUBMIT,
                    session_id=self.session_id,
                    prompt=user_input,
                )
            )
            if outcome.denied:
                logger.info("Prompt blocked by hook: %s", outcome.reason)
                yield AgentEvent(
                    AGENT_DONE,
                    result=TurnResult(outcome=TurnOutcome.BLOCKED, error=outcome.reason),
                )
                return
            if outcome.updated_prompt is not None:
                user_input = outcome.updated_prompt
            user_message = Message.user(user_input)
        else:
            user_message = user_input

        turn_start = len(self._messages)
        self._messages.append(user_message)

        result = TurnResult(outcome=TurnOutcome.MAX_ITERATIONS)
        tool_definitions = self.tools.definitions()

        for iteration in range(1, self.config.max_iterations + 1):
            if self.is_aborted:
                result.outcome = TurnOutcome.ABORTED
                break

            result.iterations = iteration
            yield AgentEvent(AGENT_TURN_START, iteration=iteration)

            system_prompt = await self.context_manager.build_system_prompt(self._messages)
            outbound = await self.context_manager.apply_transforms(self._messages)
            hidden = await self.context_manager.create_hidden_context_message(self._messages)
            if hidden is not None:
                outbound.insert(0, hidden)

            response: MessageResponse | None = None
            try:
                if self.config.stream:
                    accumulator = StreamAccumulator()
                    events = self.adapter.stream(
                        outbound,
                        system_prompt=system_prompt or None,
                        tools=tool_definitions,
                        tool_choice=self.config.parsed_tool_choice,
                        thinking=self.config.thinking,
                    )
                    async with aclosing(events):
                        async for stream_event in events:
                            accumulator.feed(stream_event)
                            yield AgentEvent(
                                AGENT_STREAM, iteration=iteration, stream_event=stream_event
                            )
                            self._check_abort()
                    response = accumulator.response()
                else:
                    response = await self.adapter.send(
                        outbound,
                        system_prompt=system_prompt or None,
                        tools=tool_definitions,
                        tool_choice=self.config.parsed_tool_choice,
                        thinking=self.config.thinking,
                    )
            except AgentAbortedError:
                result.outcome = TurnOutcome.ABORTED
                break
            except ProviderError as e:
                if iteration == 1:
                    del self._messages[turn_start:]
                    raise
                logger.warning("Provider failed on iteration %d: %s", iteration, e)
                result.outcome = TurnOutcome.ERROR
                result.error = str(e)
                break

            result.usage.add(response.usage)
            self._usage.add(response.usage)
            result.stop_reason = response.stop_reason
            result.text = response.text()

            await self.hooks.run(
                HookContext(
                    event=HookEvent.POST_ASSISTANT_RESPONSE,
                    session_id=self.session_id,
                    response=response,
                )
            )

            tool_results: list[ToolResultBlock] = []
            for block in response.content:
                if isinstance(block, TextBlock):
                    if block.text:
                        yield AgentEvent(AGENT_TEXT, iteration=iteration, content=block.text)
                elif isinstance(block, ThinkingBlock):
                    yield AgentEvent(AGENT_THINKING, iteration=iteration, content=block.text)
                elif isinstance(block, RedactedThinkingBlock):
                    continue
                elif isinstance(block, ToolUseBlock):
                    result.tool_calls += 1
                    yield AgentEvent(
                        AGENT_TOOL_USE,
                        iteration=iteration,
                        tool_name=block.name,
                        tool_use_id=block.id,
                        tool_input=block.input,
                    )
                    if self.is_aborted:
                        tool_result = ToolResult.error(ABORTED_TOOL_MESSAGE)
                    else:
                        tool_result = await self._handle_tool_use(block)
                    tool_results.append(tool_result.to_block(block.id))
                    yield AgentEvent(
                        AGENT_TOOL_RESULT,
                        iteration=iteration,
                        content=tool_result.content or "",
                        tool_name=block.name,
                        tool_use_id=block.id,
                        is_error=tool_result.is_error,
                    )

            if response.content:
                self._messages.append(response.to_message())
            if tool_results:
                self._messages.append(Message.user_with_blocks(tool_results))

            if self.is_aborted:
                result.outcome = TurnOutcome.ABORTED
                break
            if response.stop_reason is not StopReason.TOOL_USE:
                result.outcome = TurnOutcome.COMPLETE
                break
        else:
            logger.warning(
                "Turn stopped after reaching max_iterations=%d", self.config.max_iterations
            )

        result.messages = self._messages[turn_start:]
        self._persist()
        yield AgentEvent(AGENT_DONE, iteration=result.iterations, result=result)

    async def _handle_tool_use(self, block: ToolUseBlock) -> ToolResult:
        tool = self.tools.get(block.name)
        if tool is None:
            logger.warning("Model requested unknown tool: %s", block.name)
            return ToolResult.error(f"Unknown tool: {block.name}")

        resolution = await self.resolver.resolve(tool, block, session_id=self.session_id)
        if not resolution.allowed:
            logger.info("Tool %s denied (%s)", block.name, resolution.source.value)
            return ToolResult.error(resolution.denial_message())

        result = await self.tools.execute(block.name, resolution.tool_input, self.tool_context)
        await self.hooks.run(
            HookContext(
                event=HookEvent.POST_TOOL_USE_FAILURE if result.is_error else HookEvent.POST_TOOL_USE,
                session_id=self.session_id,
                tool_name=block.name,
                tool_use_id=block.id,
                tool_input=resolution.tool_input,
                tool_result=result,
            )
        )
        return result

    def _persist(self) -> None:
        if self.session is not None:
            self.session.sync(self._messages)

    # ------------------------------------------------------------------
    # Sub-agents
    # ------------------------------------------------------------------

    def create_subagent(
        self,
        agent_type: str,
        originating_tool_call_id: str | None = None,
        system_prompt: str | None = None,
        tools: ToolRegistry | None = None,
        name: str = "",
        description: str = "",
    ) -> AgentRunner:
        """
        Spawn a child runner for a sub-task.

        The child has its own history and its own :class:`ToolContext`, and
        a session linked to this one. The adapter, hooks, approver and
        permission rules are shared.
        """
        prompt = self.config.system_prompt if system_prompt is None else system_prompt
        config = dataclasses.replace(self.config, agent_type=agent_type, system_prompt=prompt)
        child_session = None
        if self.session is not None:
            child_session = self.session.create_child(
                agent_type,
                originating_tool_call_id=originating_tool_call_id,
                name=name,
                description=description,
                system_prompt=prompt,
            )
        return AgentRunner(
            self.adapter,
            tools=tools if tools is not None else self.tools,
            config=config,
            permissions=self.permissions,
            hooks=self.hooks,
            approver=self.approver,
            session=child_session,
        )
