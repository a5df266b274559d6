import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Callable

from .config import SESSION_TTL_SECONDS, SESSION_MAX_ENTRIES, SESSION_PERSIST_MESSAGES
from .database import save_conversation, load_conversation, delete_conversation

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")


@dataclass
class ChatMessage:
    role: str
    content: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Message role must be one of {ROLES}, got {self.role!r}")


@dataclass
class ChatSession:
    user_id: str
    session_id: str
    messages: list[ChatMessage] = field(default_factory=list)
    last_recommendations: list[int] = field(default_factory=list)
    touched_at: float = 0.0

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.session_id)

    def add_message(self, role: str, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self.messages.append(message)
        return message


def _message_from_dict(data: dict) -> ChatMessage | None:
    try:
        return ChatMessage(
            role=data['role'],
            content=data['content'],
            timestamp=data.get('timestamp') or datetime.now().isoformat(),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Dropping malformed stored message: {e}")
        return None


class SessionStore:
    """
    In-memory conversation sessions keyed by (user_id, session_id), backed by
    the conversations table.

    Entries expire `ttl_seconds` after their last access and the least
    recently used entry is evicted beyond `max_entries`. An evicted session
    is reloaded from durable storage on its next access. `clock` returns
    seconds and is injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        max_entries: int = SESSION_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._sessions: OrderedDict[tuple[str, str], ChatSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: tuple[str, str]) -> bool:
        session = self._sessions.get(key)
        return session is not None and not self._expired(session)

    def _expired(self, session: ChatSession) -> bool:
        return self.clock() - session.touched_at > self.ttl_seconds

    def _put(self, session: ChatSession) -> None:
        session.touched_at = self.clock()
        self._sessions[session.key] = session
        self._sessions.move_to_end(session.key)
        while len(self._sessions) > self.max_entries:
            evicted_key, _ = self._sessions.popitem(last=False)
            logger.debug(f"Evicted least recently used session {evicted_key}")

    def get(self, user_id: str, session_id: str = "default") -> ChatSession:
        """Return the live session, reloading or creating it on a miss."""
        key = (user_id, session_id)
        session = self._sessions.get(key)

        if session is not None and self._expired(session):
            logger.debug(f"Session {key} expired")
            del self._sessions[key]
            session = None

        if session is None:
            stored = load_conversation(user_id, session_id) or []
            messages = [m for m in (_message_from_dict(d) for d in stored) if m is not None]
            session = ChatSession(user_id=user_id, session_id=session_id, messages=messages)
            if messages:
                logger.debug(f"Restored {len(messages)} messages for session {key}")

        self._put(session)
        return session

    def save(self, session: ChatSession) -> None:
        """Persist the most recent messages and refresh the in-memory entry."""
        recent = session.messages[-SESSION_PERSIST_MESSAGES:]
        save_conversation(session.user_id, session.session_id, [asdict(m) for m in recent])
        self._put(session)

    def clear(self, user_id: str, session_id: str = "default") -> None:
        self._sessions.pop((user_id, session_id), None)
        delete_conversation(user_id, session_id)

    def history(self, user_id: str, session_id: str = "default", limit: int | None = None) -> list[ChatMessage]:
        messages = self.get(user_id, session_id).messages
        return list(messages[-limit:]) if limit else list(messages)

    def evict_expired(self) -> int:
        expired = [key for key, session in self._sessions.items() if self._expired(session)]
        for key in expired:
            del self._sessions[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired sessions")
        return len(expired)
