"""Chat Snapshot ORM — single-slot rows holding the serialized chat state.

Invariants:
    - key is the primary key (one row per snapshot slot, e.g. "llmchat:v1")
    - payload is the exact JSON envelope written by the PersistenceGateway
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chatengine.db.base import Base


class ChatSnapshotRecord(Base):
    __tablename__ = "chat_snapshots"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
