"""Message Store — per-session ordered message lists.

Invariants:
    - List order is creation order; cards sit right after their text reply
    - Every append is mirrored into SessionRegistry.append_message_id
    - Structural removals re-mirror the full id order via replace_message_ids
    - update() on a missing target is a silent no-op (the target is obsolete)

Design Decisions:
    - The store calls into the registry, never the reverse
"""

from collections.abc import Callable

from chatengine.core.chat_models import ChatMessage
from chatengine.core.domain_types import MessageStatus
from chatengine.core.session_registry import SessionRegistry


class MessageStore:
    """Owns message lists keyed by session id."""

    def __init__(self, registry: SessionRegistry):
        self._registry = registry
        self._by_session: dict[str, list[ChatMessage]] = {}

    def get_or_create(self, session_id: str) -> list[ChatMessage]:
        """Mutable list for a session, created empty on first access."""
        return self._by_session.setdefault(session_id, [])

    def append(self, session_id: str, message: ChatMessage) -> None:
        self.get_or_create(session_id).append(message)
        self._registry.append_message_id(session_id, message.id)

    def insert_after(
        self, session_id: str, anchor_id: str, message: ChatMessage,
    ) -> None:
        """Place message directly after anchor (append when anchor is last or missing)."""
        items = self.get_or_create(session_id)
        index = self.index_of(session_id, anchor_id)
        if index == -1 or index == len(items) - 1:
            self.append(session_id, message)
            return
        items.insert(index + 1, message)
        self._registry.replace_message_ids(session_id, [m.id for m in items])

    def update(
        self, session_id: str, message_id: str,
        mutate: Callable[[ChatMessage], None],
    ) -> bool:
        target = self.find(session_id, message_id)
        if target is None:
            return False
        mutate(target)
        return True

    def set_status(
        self, session_id: str, message_id: str, status: MessageStatus,
    ) -> bool:
        def _apply(msg: ChatMessage) -> None:
            msg.status = status
        return self.update(session_id, message_id, _apply)

    def find(self, session_id: str, message_id: str) -> ChatMessage | None:
        for msg in self._by_session.get(session_id, []):
            if msg.id == message_id:
                return msg
        return None

    def locate(self, message_id: str) -> ChatMessage | None:
        """Find a message in any session."""
        for items in self._by_session.values():
            for msg in items:
                if msg.id == message_id:
                    return msg
        return None

    def index_of(self, session_id: str, message_id: str) -> int:
        for i, msg in enumerate(self._by_session.get(session_id, [])):
            if msg.id == message_id:
                return i
        return -1

    def remove_range(self, session_id: str, start: int, count: int) -> list[ChatMessage]:
        """Remove a contiguous run and re-mirror the id order. Returns removed messages."""
        if count <= 0:
            return []
        items = self.get_or_create(session_id)
        removed = items[start:start + count]
        del items[start:start + count]
        self._registry.replace_message_ids(session_id, [m.id for m in items])
        return removed

    def messages(self, session_id: str) -> list[ChatMessage]:
        return list(self._by_session.get(session_id, []))

    def drop(self, session_id: str) -> list[ChatMessage]:
        """Cascade removal for a deleted session."""
        return self._by_session.pop(session_id, [])

    def streaming_messages(self) -> list[ChatMessage]:
        return [
            msg for items in self._by_session.values() for msg in items
            if msg.status == MessageStatus.STREAMING
        ]

    def snapshot(self) -> dict[str, list[ChatMessage]]:
        return {sid: list(items) for sid, items in self._by_session.items()}

    def load(self, messages: dict[str, list[ChatMessage]]) -> None:
        self._by_session = {sid: list(items) for sid, items in messages.items()}

    def clear(self) -> None:
        self._by_session = {}
