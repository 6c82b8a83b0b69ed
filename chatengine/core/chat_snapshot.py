"""Chat Snapshot — serialization / deserialization of {sessions, messages}.

Invariants:
    - Envelope is {"version": 1, "data": {"sessions": [...], "messages": {...}}}
    - make_snapshot deep-copies: later store mutations never leak into a snapshot
    - snapshot_from_json raises SnapshotError on anything unparsable; it never
      returns partially-validated data

Design Decisions:
    - Pure functions, no IO: the PersistenceGateway owns storage and logging
    - Version is recorded but not enforced; unknown versions are still read
"""

from collections.abc import Mapping, Sequence

from pydantic import BaseModel, Field, ValidationError

from chatengine.core.chat_models import ChatMessage, ChatSession
from chatengine.core.errors import SnapshotError

SNAPSHOT_VERSION = 1


class ChatSnapshotData(BaseModel):
    sessions: list[ChatSession] = Field(default_factory=list)
    messages: dict[str, list[ChatMessage]] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.sessions and not self.messages


class ChatSnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    data: ChatSnapshotData = Field(default_factory=ChatSnapshotData)


def make_snapshot(
    sessions: Sequence[ChatSession],
    messages: Mapping[str, Sequence[ChatMessage]],
) -> ChatSnapshot:
    """Build a detached snapshot of the current in-memory state. Pure, no IO."""
    return ChatSnapshot(
        data=ChatSnapshotData(
            sessions=[s.model_copy(deep=True) for s in sessions],
            messages={
                sid: [m.model_copy(deep=True) for m in items]
                for sid, items in messages.items()
            },
        ),
    )


def snapshot_to_json(snapshot: ChatSnapshot) -> str:
    return snapshot.model_dump_json(by_alias=True)


def snapshot_from_json(raw: str) -> ChatSnapshot:
    """Parse a stored payload. Raises SnapshotError when unparsable."""
    try:
        return ChatSnapshot.model_validate_json(raw)
    except ValidationError as e:
        raise SnapshotError(f"{e.error_count()} validation error(s)") from e
