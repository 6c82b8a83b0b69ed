"""SQL Storage — snapshot slot and attachment blobs on the async database.

Invariants:
    - Snapshot storage holds exactly one row per key; write is an upsert
    - Blob keys are opaque; get() of a missing key returns None
    - Every failure surfaces as StorageError (mapped by DatabaseSessionManager)

Design Decisions:
    - One module for both adapters: same session manager, same error mapping
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete

from chatengine.infrastructure.database import DatabaseSessionManager
from chatengine.models.attachment_blob import AttachmentBlob
from chatengine.models.chat_snapshot import ChatSnapshotRecord

logger = logging.getLogger(__name__)


class SqlSnapshotStorage:
    """SnapshotStorage over the chat_snapshots table."""

    def __init__(self, db: DatabaseSessionManager, key: str = "llmchat:v1"):
        self._db = db
        self.key = key

    async def read(self) -> str | None:
        async with self._db.session() as session:
            record = await session.get(ChatSnapshotRecord, self.key)
            return record.payload if record else None

    async def write(self, payload: str) -> None:
        async with self._db.session() as session:
            record = await session.get(ChatSnapshotRecord, self.key)
            if record is None:
                session.add(ChatSnapshotRecord(key=self.key, payload=payload))
            else:
                record.payload = payload
                record.updated_at = datetime.now(timezone.utc)
            await session.commit()

    async def clear(self) -> None:
        async with self._db.session() as session:
            await session.execute(
                delete(ChatSnapshotRecord).where(ChatSnapshotRecord.key == self.key),
            )
            await session.commit()


class SqlBlobStore:
    """BlobStore over the attachment_blobs table."""

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def put(self, key: str, data: bytes) -> None:
        async with self._db.session() as session:
            blob = await session.get(AttachmentBlob, key)
            if blob is None:
                session.add(AttachmentBlob(key=key, data=data, size=len(data)))
            else:
                blob.data = data
                blob.size = len(data)
            await session.commit()
        logger.debug("Blob stored", extra={"storage_key": key})

    async def get(self, key: str) -> bytes | None:
        async with self._db.session() as session:
            blob = await session.get(AttachmentBlob, key)
            return blob.data if blob else None

    async def delete(self, key: str) -> None:
        async with self._db.session() as session:
            await session.execute(
                delete(AttachmentBlob).where(AttachmentBlob.key == key),
            )
            await session.commit()

    async def clear_all(self) -> None:
        async with self._db.session() as session:
            await session.execute(delete(AttachmentBlob))
            await session.commit()
