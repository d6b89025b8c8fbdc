"""Per-user session records correlating bot conversations with agent chats."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

from loguru import logger

from relaybot.errors import InvalidKey

# Set when the chat is first requested; a merge may repeat them but not change them.
IMMUTABLE_FIELDS = ("user_id", "channel_id", "user_channel_id", "channel_name")


@dataclass
class Session:
    """
    Correlation record for one bot user.

    Exists from the moment a chat is requested until the conversation with
    the agent is over.
    """

    user_id: str
    agent_session_id: str | None = None
    channel_session_id: str | None = None
    channel_id: str | None = None  # webhook channel the conversation came in on
    user_channel_id: str | None = None
    channel_name: str | None = None
    backend_auth: dict[str, Any] = field(default_factory=dict)
    poller_handle: Any = None  # InboundPoller while one is running
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


_FIELD_NAMES = {f.name for f in fields(Session)} - {"created_at", "updated_at"}


def check_key(user_id: Any) -> str:
    """Return *user_id* if it is a usable key, raise InvalidKey otherwise."""
    if not isinstance(user_id, str) or not user_id:
        raise InvalidKey(user_id)
    return user_id


def _check_partial(partial: dict[str, Any]) -> None:
    unknown = set(partial) - _FIELD_NAMES
    if unknown:
        raise ValueError(f"Unknown session field(s): {', '.join(sorted(unknown))}")


class SessionStore(ABC):
    """
    Storage interface for sessions.

    Every operation is a coroutine so a durable backend can be swapped in.
    Implementations must not suspend between reading and writing a record
    inside ``merge`` and ``create``.
    """

    @abstractmethod
    async def get(self, user_id: str) -> Session | None:
        """Return the session for *user_id*, or None."""

    @abstractmethod
    async def merge(self, user_id: str, partial: dict[str, Any]) -> Session:
        """Overwrite the given fields, creating the record when absent."""

    @abstractmethod
    async def create(self, user_id: str, partial: dict[str, Any]) -> Session | None:
        """Create the record only if none exists; return None otherwise."""

    @abstractmethod
    async def delete(self, user_id: str) -> None:
        """Remove the record. Deleting a missing record is not an error."""

    @abstractmethod
    async def list_user_ids(self) -> list[str]:
        """Ids of all users with a session."""


class MemorySessionStore(SessionStore):
    """Process-local store. Nothing survives a restart."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    async def get(self, user_id: str) -> Session | None:
        return self._sessions.get(check_key(user_id))

    async def merge(self, user_id: str, partial: dict[str, Any]) -> Session:
        check_key(user_id)
        _check_partial(partial)

        # Read-modify-write with no await in between.
        session = self._sessions.get(user_id)
        if session is None:
            session = self._build(user_id, partial)
            self._sessions[user_id] = session
            logger.debug("Created session for {}", user_id)
            return session

        for key in IMMUTABLE_FIELDS:
            if key not in partial:
                continue
            current = getattr(session, key)
            if current is not None and current != partial[key]:
                raise ValueError(f"Session field {key} is immutable for user [{user_id}]")

        for key, value in partial.items():
            setattr(session, key, value)
        session.updated_at = datetime.now()
        return session

    async def create(self, user_id: str, partial: dict[str, Any]) -> Session | None:
        check_key(user_id)
        _check_partial(partial)

        if user_id in self._sessions:
            return None
        session = self._build(user_id, partial)
        self._sessions[user_id] = session
        logger.debug("Created session for {}", user_id)
        return session

    async def delete(self, user_id: str) -> None:
        if self._sessions.pop(check_key(user_id), None) is not None:
            logger.debug("Deleted session for {}", user_id)

    async def list_user_ids(self) -> list[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    @staticmethod
    def _build(user_id: str, partial: dict[str, Any]) -> Session:
        values = {k: v for k, v in partial.items() if k != "user_id"}
        if partial.get("user_id", user_id) != user_id:
            raise ValueError(f"Session user_id mismatch for user [{user_id}]")
        return Session(user_id=user_id, **values)
