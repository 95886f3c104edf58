"""
Static permission state and the interactive approval boundary.

:class:`PermissionManager` holds process-wide ``always_allow`` /
``always_deny`` sets keyed by tool name. It may be shared by several
concurrently running conversations (a session and its sub-agents), so all
access goes through a lock; concurrent writers are last-writer-wins.
"""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Union

from coding_agent_engine.logging import get_logger

logger = get_logger("permissions")


class PermissionDecision(str, Enum):
    """A user's answer to a permission request."""

    ALLOW = "allow"  # this call only
    DENY = "deny"  # this call only
    ALWAYS_ALLOW = "always_allow"  # this call and every later call of the tool
    ALWAYS_DENY = "always_deny"

    @property
    def allowed(self) -> bool:
        return self in (PermissionDecision.ALLOW, PermissionDecision.ALWAYS_ALLOW)


@dataclass(frozen=True)
class PermissionRequest:
    """What the approval channel shows the user."""

    tool_name: str
    action_description: str
    details: str | None = None


# The external collaborator that asks the user. Sync or async.
PermissionApprover = Callable[
    [PermissionRequest], Union[PermissionDecision, Awaitable[PermissionDecision]]
]


class PermissionManager:
    """
    Auto-decision rules that bypass interactive approval.

    Example:
        permissions = PermissionManager()
        permissions.process_decision("bash", PermissionDecision.ALWAYS_DENY)
        permissions.check_auto_decision("bash")   # False
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._always_allow: set[str] = set()
        self._always_deny: set[str] = set()

    def always_allow_tool(self, tool_name: str) -> None:
        logger.info("Setting tool to always allow: %s", tool_name)
        with self._lock:
            self._always_deny.discard(tool_name)
            self._always_allow.add(tool_name)

    def always_deny_tool(self, tool_name: str) -> None:
        logger.info("Setting tool to always deny: %s", tool_name)
        with self._lock:
            self._always_allow.discard(tool_name)
            self._always_deny.add(tool_name)

    def check_auto_decision(self, tool_name: str) -> bool | None:
        """
        Returns:
            True if always allowed, False if always denied, None if the user
            has to be asked
        """
        with self._lock:
            if tool_name in self._always_deny:
                return False
            if tool_name in self._always_allow:
                return True
        return None

    def process_decision(self, tool_name: str, decision: PermissionDecision) -> bool:
        """
        Record a user's decision.

        ``ALWAYS_*`` decisions persist for the rest of the process; ``ALLOW``
        and ``DENY`` apply to the current call only.

        Returns:
            Whether the current call may proceed
        """
        if decision is PermissionDecision.ALWAYS_ALLOW:
            self.always_allow_tool(tool_name)
        elif decision is PermissionDecision.ALWAYS_DENY:
            self.always_deny_tool(tool_name)
        return decision.allowed

    def revoke(self, tool_name: str) -> bool:
        """Forget any auto-decision for one tool. Returns True if there was one."""
        with self._lock:
            had_rule = tool_name in self._always_allow or tool_name in self._always_deny
            self._always_allow.discard(tool_name)
            self._always_deny.discard(tool_name)
        if had_rule:
            logger.info("Revoked auto-decision for tool: %s", tool_name)
        return had_rule

    def clear_auto_decisions(self) -> None:
        with self._lock:
            self._always_allow.clear()
            self._always_deny.clear()
        logger.info("Cleared all auto-decisions")

    def always_allowed(self) -> list[str]:
        with self._lock:
            return sorted(self._always_allow)

    def always_denied(self) -> list[str]:
        with self._lock:
            return sorted(self._always_deny)
