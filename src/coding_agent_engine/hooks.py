"""
Hooks: interceptors that observe and vote on agent actions.

Every hook registered for an event (and matching the tool name, for tool
events) runs, in registration order, to completion. No hook can stop a
later one from seeing the call. Their verdicts are then combined with the
fixed precedence ``DENY > ALLOW > ASK > NONE``, so a Deny from any hook
cannot be overridden by a permissive hook registered elsewhere.

Example:
    from coding_agent_engine.hooks import HookEvent, HookRegistry, HookResult

    hooks = HookRegistry()

    @hooks.on(HookEvent.PRE_TOOL_USE, matcher="bash")
    def no_force_push(ctx):
        if "push --force" in ctx.tool_input.get("command", ""):
            return HookResult.deny("force push is not allowed")
        return None

    outcome = await hooks.run(HookContext(HookEvent.PRE_TOOL_USE, tool_name="bash", ...))
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from coding_agent_engine.logging import get_logger

logger = get_logger("hooks")


# ---------------------------------------------------------------------------
# Event and verdict types
# ---------------------------------------------------------------------------


class HookEvent(str, Enum):
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    POST_TOOL_USE_FAILURE = "PostToolUseFailure"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    POST_ASSISTANT_RESPONSE = "PostAssistantResponse"

    @property
    def is_tool_event(self) -> bool:
        return self in (
            HookEvent.PRE_TOOL_USE,
            HookEvent.POST_TOOL_USE,
            HookEvent.POST_TOOL_USE_FAILURE,
        )


class Verdict(IntEnum):
    """A hook's opinion. Ordered by precedence: higher wins."""

    NONE = 0
    ASK = 1
    ALLOW = 2
    DENY = 3


def combine_verdicts(verdicts: Iterable[Verdict]) -> Verdict:
    """Fold verdicts by precedence. Order of the input does not matter."""
    return max(verdicts, default=Verdict.NONE)


@dataclass
class HookContext:
    """What a hook gets to see. Fields not relevant to the event stay unset."""

    event: HookEvent
    session_id: str | None = None
    tool_name: str | None = None
    tool_use_id: str | None = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    tool_result: Any = None  # ToolResult, for PostToolUse / PostToolUseFailure
    prompt: str | None = None  # UserPromptSubmit
    response: Any = None  # MessageResponse, for PostAssistantResponse


@dataclass(frozen=True)
class HookResult:
    """
    Returned by a hook handler. Handlers may also return a bare
    :class:`Verdict` or None (no opinion).
    """

    verdict: Verdict = Verdict.NONE
    reason: str = ""
    updated_input: dict[str, Any] | None = None  # PreToolUse: replace the tool input
    updated_prompt: str | None = None  # UserPromptSubmit: replace the prompt

    @classmethod
    def allow(cls, reason: str = "") -> HookResult:
        return cls(Verdict.ALLOW, reason)

    @classmethod
    def deny(cls, reason: str) -> HookResult:
        return cls(Verdict.DENY, reason)

    @classmethod
    def ask(cls, reason: str = "") -> HookResult:
        return cls(Verdict.ASK, reason)


@dataclass
class HookOutcome:
    """Combined result of every hook that ran for one event."""

    verdict: Verdict = Verdict.NONE
    reason: str = ""
    updated_input: dict[str, Any] | None = None
    updated_prompt: str | None = None
    results: list[HookResult] = field(default_factory=list)

    @property
    def denied(self) -> bool:
        return self.verdict is Verdict.DENY


def combine_results(results: Sequence[HookResult]) -> HookOutcome:
    """
    Combine hook results into one outcome.

    The verdict follows :func:`combine_verdicts`. ``reason`` joins the
    reasons of the results that carried the winning verdict. For input and
    prompt rewrites the last hook to supply one wins.
    """
    verdict = combine_verdicts(r.verdict for r in results)
    reasons = [r.reason for r in results if r.verdict is verdict and r.reason]
    updated_input = None
    updated_prompt = None
    for r in results:
        if r.updated_input is not None:
            updated_input = r.updated_input
        if r.updated_prompt is not None:
            updated_prompt = r.updated_prompt
    return HookOutcome(
        verdict=verdict,
        reason="; ".join(reasons),
        updated_input=updated_input,
        updated_prompt=updated_prompt,
        results=list(results),
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

# Handlers can be sync or async.
HookHandler = Callable[[HookContext], Any]


@dataclass
class _HookEntry:
    """Internal: a registered hook with metadata."""

    event: HookEvent
    handler: HookHandler
    matcher: re.Pattern[str] | None = None
    source: str = ""  # who registered it

    def matches(self, context: HookContext) -> bool:
        if self.event is not context.event:
            return False
        if self.matcher is None or not context.event.is_tool_event:
            return True
        return bool(self.matcher.fullmatch(context.tool_name or ""))


def _compile_matcher(matcher: str | None) -> re.Pattern[str] | None:
    if matcher is None or matcher in ("", "*"):
        return None
    return re.compile(matcher)


def _coerce_result(value: Any) -> HookResult:
    if value is None:
        return HookResult()
    if isinstance(value, HookResult):
        return value
    if isinstance(value, Verdict):
        return HookResult(value)
    raise TypeError(f"Hook returned unsupported value {value!r}")


class HookRegistry:
    """
    Ordered collection of hooks.

    Usage:
        hooks = HookRegistry()

        # Decorator style
        @hooks.on(HookEvent.PRE_TOOL_USE, matcher="Read|Glob|Grep")
        def allow_reads(ctx: HookContext) -> HookResult:
            return HookResult.allow()

        # Method style
        unsub = hooks.on(HookEvent.POST_TOOL_USE, audit_log)
        unsub()  # remove hook
    """

    def __init__(self) -> None:
        self._hooks: list[_HookEntry] = []

    def on(
        self,
        event: HookEvent,
        handler: HookHandler | None = None,
        matcher: str | None = None,
        source: str = "",
    ) -> Callable[[], None] | Callable[[HookHandler], HookHandler]:
        """
        Register a hook.

        Args:
            event: Event to hook
            handler: Sync or async callable taking a :class:`HookContext`;
                omit to use as a decorator
            matcher: Regex that must fully match the tool name (tool events
                only); None or ``"*"`` matches every tool
            source: Who registered it, for :meth:`off_by_source`

        Returns:
            An unsubscribe callable, or a decorator when ``handler`` is omitted
        """
        if handler is not None:
            entry = _HookEntry(
                event=HookEvent(event),
                handler=handler,
                matcher=_compile_matcher(matcher),
                source=source,
            )
            self._hooks.append(entry)

            def unsubscribe() -> None:
                try:
                    self._hooks.remove(entry)
                except ValueError:
                    pass

            return unsubscribe

        def decorator(fn: HookHandler) -> HookHandler:
            self.on(event, fn, matcher=matcher, source=source)
            return fn

        return decorator

    def off(self, event: HookEvent, handler: HookHandler) -> None:
        event = HookEvent(event)
        self._hooks = [h for h in self._hooks if not (h.event is event and h.handler is handler)]

    def off_by_source(self, source: str) -> int:
        """Remove all hooks registered by a given source. Returns count removed."""
        before = len(self._hooks)
        self._hooks = [h for h in self._hooks if h.source != source]
        return before - len(self._hooks)

    def clear(self, event: HookEvent | None = None) -> None:
        if event is None:
            self._hooks.clear()
        else:
            event = HookEvent(event)
            self._hooks = [h for h in self._hooks if h.event is not event]

    async def run(self, context: HookContext) -> HookOutcome:
        """
        Run every matching hook in registration order and combine the results.

        A hook that raises is logged. For PreToolUse it counts as a Deny so
        a broken safety hook fails closed; for other events it counts as no
        opinion.
        """
        results: list[HookResult] = []
        for entry in [h for h in self._hooks if h.matches(context)]:
            try:
                value = entry.handler(context)
                if asyncio.iscoroutine(value) or asyncio.isfuture(value):
                    value = await value
                results.append(_coerce_result(value))
            except Exception as e:
                logger.warning(
                    "Hook error (event=%s, source=%s): %s",
                    context.event.value,
                    entry.source,
                    e,
                )
                if context.event is HookEvent.PRE_TOOL_USE:
                    results.append(HookResult.deny(f"hook error: {e}"))
        return combine_results(results)

    @property
    def hook_count(self) -> int:
        return len(self._hooks)

    def has_hooks(self, event: HookEvent) -> bool:
        return any(h.event is event for h in self._hooks)
