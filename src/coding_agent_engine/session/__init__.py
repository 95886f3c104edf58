"""Session persistence."""

from coding_agent_engine.session.manager import Session
from coding_agent_engine.session.models import SessionMetadata
from coding_agent_engine.session.storage import SessionNotFoundError, SessionStorage

__all__ = ["Session", "SessionMetadata", "SessionNotFoundError", "SessionStorage"]
