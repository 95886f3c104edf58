"""Session data models."""

from __future__ import annotations

import dataclasses
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any


def new_session_id() -> str:
    return str(uuid.uuid4())


@dataclass
class SessionMetadata:
    """Metadata document stored next to a session's history."""

    session_id: str = field(default_factory=new_session_id)
    agent_type: str = "main"
    name: str = ""
    description: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    parent_session_id: str | None = None  # set for sub-agent sessions
    originating_tool_call_id: str | None = None  # tool call that spawned this sub-agent
    child_session_ids: list[str] = field(default_factory=list)

    @property
    def is_subagent(self) -> bool:
        return self.parent_session_id is not None

    def touch(self) -> None:
        self.updated_at = time.time()

    def add_child(self, session_id: str) -> None:
        if session_id not in self.child_session_ids:
            self.child_session_ids.append(session_id)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionMetadata:
        # Unknown keys are dropped so newer files still load.
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})
