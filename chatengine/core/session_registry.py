"""Session Registry — session metadata and the active-session pointer.

Invariants:
    - Sessions are ordered newest-first (create inserts at the front)
    - messageIds is only appended to or fully replaced, never reordered
    - append_message_id is idempotent
    - updated_at never decreases, even if the wall clock does
    - The registry never reads message contents (one-directional ownership)

Design Decisions:
    - Auto titles fill the smallest gap in "New Conversation N" numbering
    - Clock injected for deterministic tests
"""

import logging
import re
from collections.abc import Callable, Iterable

from chatengine.core.chat_models import ChatSession
from chatengine.core.domain_types import new_session_id, now_ms

logger = logging.getLogger(__name__)

AUTO_TITLE_PREFIX = "New Conversation"
_AUTO_TITLE_PATTERN = re.compile(rf"^{AUTO_TITLE_PREFIX} (\d+)$")


def next_auto_title(titles: Iterable[str]) -> str:
    """Smallest positive N such that "New Conversation N" is unused."""
    numbers = []
    for title in titles:
        match = _AUTO_TITLE_PATTERN.match(title)
        if match and int(match.group(1)) > 0:
            numbers.append(int(match.group(1)))

    next_number = 1
    for num in sorted(numbers):
        if num == next_number:
            next_number += 1
        elif num > next_number:
            break
    return f"{AUTO_TITLE_PREFIX} {next_number}"


class SessionRegistry:
    """Owns the session list and which session is active."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._sessions: list[ChatSession] = []
        self.active_session_id: str | None = None
        self._clock = clock

    @property
    def sessions(self) -> list[ChatSession]:
        return list(self._sessions)

    @property
    def active_session(self) -> ChatSession | None:
        if self.active_session_id is None:
            return None
        return self.get(self.active_session_id)

    def get(self, session_id: str) -> ChatSession | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def create(self, title: str | None = None) -> ChatSession:
        now = self._clock()
        clean = (title or "").strip()
        session = ChatSession(
            id=new_session_id(),
            title=clean or next_auto_title(s.title for s in self._sessions),
            created_at=now,
            updated_at=now,
        )
        self._sessions.insert(0, session)
        self.active_session_id = session.id
        logger.info("Session created", extra={"session_id": session.id})
        return session

    def set_active(self, session_id: str) -> None:
        if self.get(session_id) is None:
            logger.warning("Cannot activate unknown session",
                extra={"session_id": session_id})
            return
        self.active_session_id = session_id

    def rename(self, session_id: str, title: str) -> None:
        session = self.get(session_id)
        if session is None:
            return
        session.title = title
        self._bump(session)

    def delete(self, session_id: str) -> None:
        self._sessions = [s for s in self._sessions if s.id != session_id]
        if self.active_session_id == session_id:
            self.active_session_id = self._sessions[0].id if self._sessions else None

    def touch(self, session_id: str) -> None:
        session = self.get(session_id)
        if session is not None:
            self._bump(session)

    def append_message_id(self, session_id: str, message_id: str) -> None:
        session = self.get(session_id)
        if session is None or message_id in session.message_ids:
            return
        session.message_ids.append(message_id)
        self._bump(session)

    def replace_message_ids(self, session_id: str, message_ids: list[str]) -> None:
        session = self.get(session_id)
        if session is None:
            return
        session.message_ids = list(message_ids)
        self._bump(session)

    def load(self, sessions: list[ChatSession]) -> None:
        """Hydrate from a snapshot; the first session becomes active."""
        self._sessions = list(sessions)
        self.active_session_id = self._sessions[0].id if self._sessions else None

    def clear(self) -> None:
        self._sessions = []
        self.active_session_id = None

    def _bump(self, session: ChatSession) -> None:
        session.updated_at = max(session.updated_at, self._clock())
