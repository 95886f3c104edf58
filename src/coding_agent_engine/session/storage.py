"""
File-backed session storage.

Each session lives in its own directory under the storage root:

    {base_dir}/{session_id}/
        metadata.json       SessionMetadata
        history.jsonl       one serialized Message per line, append-only
        system_prompt.md    system prompt the session was started with

Appends are not atomic across processes; two writers on the same session
id are not supported.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Iterable
from pathlib import Path

from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import Message
from coding_agent_engine.session.models import SessionMetadata

logger = get_logger("session.storage")

DEFAULT_SESSIONS_DIR = Path("sessions")

METADATA_FILE = "metadata.json"
HISTORY_FILE = "history.jsonl"
SYSTEM_PROMPT_FILE = "system_prompt.md"


class SessionNotFoundError(KeyError):
    """Raised when a session has no metadata on disk."""


def _serialize_message(message: Message) -> str:
    return json.dumps(message.to_dict(), separators=(",", ":"), ensure_ascii=False)


class SessionStorage:
    """
    Read and write sessions under ``base_dir``.

    Example:
        storage = SessionStorage(Path("~/.agent/sessions").expanduser())
        storage.save_metadata(SessionMetadata(session_id="abc"))
        storage.append_message("abc", Message.user("hi"))
        storage.load_messages("abc")
    """

    def __init__(self, base_dir: Path | str = DEFAULT_SESSIONS_DIR) -> None:
        self.base_dir = Path(base_dir)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def session_dir(self, session_id: str) -> Path:
        return self.base_dir / session_id

    def metadata_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / METADATA_FILE

    def history_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / HISTORY_FILE

    def system_prompt_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / SYSTEM_PROMPT_FILE

    def ensure_session_dir(self, session_id: str) -> Path:
        path = self.session_dir(session_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    # ------------------------------------------------------------------
    # Metadata and system prompt
    # ------------------------------------------------------------------

    def save_metadata(self, metadata: SessionMetadata) -> None:
        self.ensure_session_dir(metadata.session_id)
        self.metadata_path(metadata.session_id).write_text(
            json.dumps(metadata.to_dict(), indent=2), encoding="utf-8"
        )

    def load_metadata(self, session_id: str) -> SessionMetadata:
        """
        Raises:
            SessionNotFoundError: If the session has no metadata
            ValueError: If the metadata file is not valid JSON
        """
        path = self.metadata_path(session_id)
        if not path.exists():
            raise SessionNotFoundError(session_id)
        return SessionMetadata.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def save_system_prompt(self, session_id: str, prompt: str) -> None:
        self.ensure_session_dir(session_id)
        self.system_prompt_path(session_id).write_text(prompt, encoding="utf-8")

    def load_system_prompt(self, session_id: str) -> str | None:
        path = self.system_prompt_path(session_id)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def append_message(self, session_id: str, message: Message) -> None:
        self.ensure_session_dir(session_id)
        with self.history_path(session_id).open("a", encoding="utf-8") as fh:
            fh.write(_serialize_message(message) + "\n")

    def append_messages(self, session_id: str, messages: Iterable[Message]) -> None:
        self.ensure_session_dir(session_id)
        with self.history_path(session_id).open("a", encoding="utf-8") as fh:
            for message in messages:
                fh.write(_serialize_message(message) + "\n")

    def load_messages(self, session_id: str) -> list[Message]:
        """
        Read a session's history in order.

        Blank lines are ignored. Corrupt lines are logged and skipped.
        """
        path = self.history_path(session_id)
        if not path.exists():
            return []
        messages: list[Message] = []
        with path.open(encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    messages.append(Message.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(
                        "Skipping corrupt history line %d in session %s: %s",
                        lineno,
                        session_id,
                        e,
                    )
        return messages

    def save_messages(self, session_id: str, messages: Iterable[Message]) -> None:
        """Overwrite the full history."""
        self.ensure_session_dir(session_id)
        path = self.history_path(session_id)
        tmp = path.with_suffix(".jsonl.tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            for message in messages:
                fh.write(_serialize_message(message) + "\n")
        tmp.replace(path)

    # ------------------------------------------------------------------
    # Listing and removal
    # ------------------------------------------------------------------

    def session_exists(self, session_id: str) -> bool:
        return self.metadata_path(session_id).exists()

    def list_sessions(self, top_level_only: bool = False) -> list[str]:
        """
        List session ids, sorted.

        Args:
            top_level_only: Exclude sub-agent sessions (those with a parent)
        """
        return [sid for sid, _ in self.list_sessions_with_metadata(top_level_only)]

    def list_sessions_with_metadata(
        self, top_level_only: bool = False
    ) -> list[tuple[str, SessionMetadata]]:
        """List ``(session_id, metadata)`` pairs. Unreadable sessions are skipped."""
        if not self.base_dir.exists():
            return []
        result: list[tuple[str, SessionMetadata]] = []
        for path in sorted(self.base_dir.iterdir()):
            if not path.is_dir() or not (path / METADATA_FILE).exists():
                continue
            try:
                metadata = self.load_metadata(path.name)
            except (ValueError, TypeError) as e:
                logger.warning("Skipping session %s with unreadable metadata: %s", path.name, e)
                continue
            if top_level_only and metadata.is_subagent:
                continue
            result.append((path.name, metadata))
        return result

    def delete_session(self, session_id: str) -> bool:
        """Remove a session's directory. Returns False if it did not exist."""
        path = self.session_dir(session_id)
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.info("Deleted session %s", session_id)
        return True
