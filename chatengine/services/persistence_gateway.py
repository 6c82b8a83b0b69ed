"""Persistence Gateway — snapshots {sessions, messages} to durable storage.

Invariants:
    - persist() and clear() never raise; failures are logged (advisory durability)
    - load() returns the stored data, or the empty state when absent or unparsable
    - Writes land in call order (one write at a time)
    - A snapshot is taken at call time, not when the write finally runs

Design Decisions:
    - Serialization lives in core/chat_snapshot.py; this layer only does IO and logging
    - asyncio.Lock serializes writes so an older snapshot never overwrites a newer one
"""

import asyncio
import logging

from chatengine.core.chat_snapshot import (
    ChatSnapshotData, make_snapshot, snapshot_from_json, snapshot_to_json,
)
from chatengine.core.errors import SnapshotError
from chatengine.core.message_store import MessageStore
from chatengine.core.repository_protocols import SnapshotStorage
from chatengine.core.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class PersistenceGateway:
    """Reads and writes the versioned snapshot envelope."""

    def __init__(
        self,
        storage: SnapshotStorage,
        registry: SessionRegistry,
        store: MessageStore,
    ):
        self._storage = storage
        self._registry = registry
        self._store = store
        self._write_lock = asyncio.Lock()

    async def persist(self) -> None:
        payload = snapshot_to_json(
            make_snapshot(self._registry.sessions, self._store.snapshot()),
        )
        async with self._write_lock:
            try:
                await self._storage.write(payload)
            except Exception as e:
                logger.error("Failed to persist chat snapshot: %s", e,
                    extra={"error_code": getattr(e, "code", None)})

    async def load(self) -> ChatSnapshotData:
        try:
            raw = await self._storage.read()
        except Exception as e:
            logger.error("Failed to read chat snapshot: %s", e)
            return ChatSnapshotData()
        if not raw:
            return ChatSnapshotData()
        try:
            return snapshot_from_json(raw).data
        except SnapshotError as e:
            logger.warning("Failed to parse persisted state: %s", e.message,
                extra={"error_code": e.code, "error_kind": e.kind.value})
            return ChatSnapshotData()

    async def clear(self) -> None:
        async with self._write_lock:
            try:
                await self._storage.clear()
            except Exception as e:
                logger.warning("Failed to clear chat snapshot: %s", e)
