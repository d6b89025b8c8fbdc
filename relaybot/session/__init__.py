"""Session storage."""

from relaybot.session.store import MemorySessionStore, Session, SessionStore

__all__ = ["MemorySessionStore", "Session", "SessionStore"]
