"""
Per-call permission resolution.

Each tool call moves through ``NOT_EVALUATED → HOOKS_EVALUATED → DECIDED``:

1. every matching PreToolUse hook runs and the verdicts are combined
   (``DENY > ALLOW > ASK > NONE``)
2. a Deny or Allow from the hooks decides the call
3. otherwise the static auto-decision sets are consulted, and if neither
   applies the external approver is asked

An ASK verdict means "use the normal flow": ``always_allow`` and
``always_deny`` still apply, and only an undecided call reaches the
approver. Without an approver, calls that would need one are denied.

Tools whose ``requires_permission()`` is False skip all of this.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coding_agent_engine.hooks import (
    HookContext,
    HookEvent,
    HookOutcome,
    HookRegistry,
    Verdict,
)
from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import ToolUseBlock
from coding_agent_engine.permissions import (
    PermissionApprover,
    PermissionManager,
    PermissionRequest,
)
from coding_agent_engine.tools.registry import BaseTool

logger = get_logger("resolver")

USER_DENIED_MESSAGE = "Permission denied by user"


class ResolutionState(str, Enum):
    NOT_EVALUATED = "not_evaluated"
    HOOKS_EVALUATED = "hooks_evaluated"
    DECIDED = "decided"


class DecisionSource(str, Enum):
    EXEMPT = "exempt"  # tool does not require permission
    HOOK = "hook"
    AUTO = "auto"  # always_allow / always_deny
    USER = "user"
    NO_APPROVER = "no_approver"


@dataclass
class Resolution:
    """Final decision for one tool call."""

    allowed: bool
    source: DecisionSource
    tool_input: dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    hook_outcome: HookOutcome | None = None

    def denial_message(self) -> str:
        """Text of the error result fed back to the model when denied."""
        if self.source is DecisionSource.HOOK:
            if self.reason:
                return f"Permission denied by hook: {self.reason}"
            return "Permission denied by hook"
        return USER_DENIED_MESSAGE


class ToolCallEvaluation:
    """State machine for one tool call. Steps must run in order."""

    def __init__(
        self,
        tool: BaseTool,
        tool_use: ToolUseBlock,
        permissions: PermissionManager,
        hooks: HookRegistry,
        approver: PermissionApprover | None,
        session_id: str | None = None,
    ) -> None:
        self.tool = tool
        self.tool_use = tool_use
        self.permissions = permissions
        self.hooks = hooks
        self.approver = approver
        self.session_id = session_id
        self.state = ResolutionState.NOT_EVALUATED
        self.tool_input: dict[str, Any] = dict(tool_use.input)
        self.hook_outcome: HookOutcome | None = None
        self.resolution: Resolution | None = None

    def _expect(self, state: ResolutionState) -> None:
        if self.state is not state:
            raise RuntimeError(f"Evaluation is {self.state.value}, expected {state.value}")

    async def evaluate_hooks(self) -> HookOutcome:
        self._expect(ResolutionState.NOT_EVALUATED)
        outcome = await self.hooks.run(
            HookContext(
                event=HookEvent.PRE_TOOL_USE,
                session_id=self.session_id,
                tool_name=self.tool_use.name,
                tool_use_id=self.tool_use.id,
                tool_input=dict(self.tool_input),
            )
        )
        if outcome.updated_input is not None:
            self.tool_input = outcome.updated_input
        self.hook_outcome = outcome
        self.state = ResolutionState.HOOKS_EVALUATED
        return outcome

    async def decide(self) -> Resolution:
        self._expect(ResolutionState.HOOKS_EVALUATED)
        assert self.hook_outcome is not None
        verdict = self.hook_outcome.verdict
        name = self.tool_use.name

        if verdict is Verdict.DENY:
            resolution = self._resolve(False, DecisionSource.HOOK, self.hook_outcome.reason)
        elif verdict is Verdict.ALLOW:
            resolution = self._resolve(True, DecisionSource.HOOK, self.hook_outcome.reason)
        else:
            auto = self.permissions.check_auto_decision(name)
            if auto is not None:
                resolution = self._resolve(auto, DecisionSource.AUTO)
            else:
                resolution = await self._ask_user()

        self.state = ResolutionState.DECIDED
        return resolution

    def _resolve(self, allowed: bool, source: DecisionSource, reason: str = "") -> Resolution:
        self.resolution = Resolution(
            allowed=allowed,
            source=source,
            tool_input=self.tool_input,
            reason=reason,
            hook_outcome=self.hook_outcome,
        )
        logger.debug(
            "Tool %s %s (source=%s)",
            self.tool_use.name,
            "allowed" if allowed else "denied",
            source.value,
        )
        return self.resolution

    async def _ask_user(self) -> Resolution:
        if self.approver is None:
            logger.warning("No approver configured; denying %s", self.tool_use.name)
            return self._resolve(False, DecisionSource.NO_APPROVER)

        info = self.tool.describe(self.tool_input)
        request = PermissionRequest(
            tool_name=self.tool_use.name,
            action_description=info.action_description,
            details=info.details,
        )
        decision = self.approver(request)
        if asyncio.iscoroutine(decision) or asyncio.isfuture(decision):
            decision = await decision
        allowed = self.permissions.process_decision(self.tool_use.name, decision)
        return self._resolve(allowed, DecisionSource.USER)


class PermissionResolver:
    """
    Decides whether tool calls may run.

    Example:
        resolver = PermissionResolver(PermissionManager(), hooks, approver=ask_in_terminal)
        resolution = await resolver.resolve(tool, tool_use)
        if resolution.allowed:
            result = await registry.execute(tool_use.name, resolution.tool_input, context)
    """

    def __init__(
        self,
        permissions: PermissionManager | None = None,
        hooks: HookRegistry | None = None,
        approver: PermissionApprover | None = None,
    ) -> None:
        self.permissions = permissions or PermissionManager()
        self.hooks = hooks or HookRegistry()
        self.approver = approver

    async def resolve(
        self,
        tool: BaseTool,
        tool_use: ToolUseBlock,
        session_id: str | None = None,
    ) -> Resolution:
        if not tool.requires_permission():
            return Resolution(
                allowed=True, source=DecisionSource.EXEMPT, tool_input=dict(tool_use.input)
            )

        evaluation = ToolCallEvaluation(
            tool,
            tool_use,
            self.permissions,
            self.hooks,
            self.approver,
            session_id=session_id,
        )
        await evaluation.evaluate_hooks()
        return await evaluation.decide()
