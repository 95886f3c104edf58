"""
Session - high-level API for one persisted conversation.

A session is created on first use, grows by appending messages, and is
only rewritten through :meth:`Session.replace_history`. Sub-agent sessions
record their parent and the tool call that spawned them, and the parent
records its children.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import Message
from coding_agent_engine.session.models import SessionMetadata, new_session_id
from coding_agent_engine.session.storage import SessionNotFoundError, SessionStorage

logger = get_logger("session")


class Session:
    """
    One conversation backed by :class:`SessionStorage`.

    Example:
        storage = SessionStorage("sessions")
        session = Session.create(storage, system_prompt="You are helpful.")
        session.append(Message.user("hi"))

        same = Session.open(storage, session.session_id)
    """

    def __init__(self, storage: SessionStorage, metadata: SessionMetadata) -> None:
        self.storage = storage
        self.metadata = metadata
        self._messages: list[Message] = []

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        storage: SessionStorage,
        session_id: str | None = None,
        agent_type: str = "main",
        name: str = "",
        description: str = "",
        system_prompt: str | None = None,
        parent_session_id: str | None = None,
        originating_tool_call_id: str | None = None,
    ) -> Session:
        """Create and persist a new, empty session."""
        metadata = SessionMetadata(
            session_id=session_id or new_session_id(),
            agent_type=agent_type,
            name=name,
            description=description,
            parent_session_id=parent_session_id,
            originating_tool_call_id=originating_tool_call_id,
        )
        session = cls(storage, metadata)
        storage.save_metadata(metadata)
        if system_prompt is not None:
            storage.save_system_prompt(metadata.session_id, system_prompt)
        logger.info(
            "Created session %s (agent_type=%s, parent=%s)",
            metadata.session_id,
            agent_type,
            parent_session_id,
        )
        return session

    @classmethod
    def open(cls, storage: SessionStorage, session_id: str) -> Session:
        """
        Load an existing session.

        Raises:
            SessionNotFoundError: If no such session exists
        """
        session = cls(storage, storage.load_metadata(session_id))
        session._messages = storage.load_messages(session_id)
        return session

    @classmethod
    def open_or_create(cls, storage: SessionStorage, session_id: str, **kwargs) -> Session:
        try:
            return cls.open(storage, session_id)
        except SessionNotFoundError:
            return cls.create(storage, session_id=session_id, **kwargs)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self.metadata.session_id

    @property
    def messages(self) -> list[Message]:
        """A copy of the persisted history."""
        return list(self._messages)

    @property
    def is_subagent(self) -> bool:
        return self.metadata.is_subagent

    @property
    def system_prompt(self) -> str | None:
        return self.storage.load_system_prompt(self.session_id)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, message: Message) -> None:
        self.extend([message])

    def extend(self, messages: Iterable[Message]) -> None:
        new = list(messages)
        if not new:
            return
        self.storage.append_messages(self.session_id, new)
        self._messages.extend(new)
        self._save_metadata()

    def replace_history(self, messages: Iterable[Message]) -> None:
        """Overwrite the whole history."""
        self._messages = list(messages)
        self.storage.save_messages(self.session_id, self._messages)
        self._save_metadata()

    def sync(self, messages: Sequence[Message]) -> None:
        """
        Persist ``messages`` as the full history.

        When the stored history is a prefix of ``messages`` only the tail is
        appended; otherwise the history is overwritten.
        """
        count = len(self._messages)
        if list(messages[:count]) == self._messages:
            self.extend(messages[count:])
        else:
            logger.debug("History of session %s diverged; rewriting", self.session_id)
            self.replace_history(messages)

    def create_child(
        self,
        agent_type: str,
        originating_tool_call_id: str | None = None,
        name: str = "",
        description: str = "",
        system_prompt: str | None = None,
    ) -> Session:
        """Create a sub-agent session linked to this one."""
        child = Session.create(
            self.storage,
            agent_type=agent_type,
            name=name,
            description=description,
            system_prompt=system_prompt,
            parent_session_id=self.session_id,
            originating_tool_call_id=originating_tool_call_id,
        )
        self.metadata.add_child(child.session_id)
        self._save_metadata()
        return child

    def delete(self) -> bool:
        self._messages = []
        return self.storage.delete_session(self.session_id)

    def _save_metadata(self) -> None:
        self.metadata.touch()
        self.storage.save_metadata(self.metadata)

    def __repr__(self) -> str:
        return (
            f"Session(id={self.session_id!r}, agent_type={self.metadata.agent_type!r}, "
            f"messages={len(self._messages)})"
        )
