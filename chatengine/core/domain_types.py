"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - SessionId and MessageId wrap opaque hex strings — never parse them
    - Timestamps are integer epoch milliseconds
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders, compare equal to their values
"""

import time
import uuid
from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

SessionId = NewType("SessionId", str)
MessageId = NewType("MessageId", str)


def new_session_id() -> SessionId:
    return SessionId(uuid.uuid4().hex[:10])


def new_message_id() -> MessageId:
    return MessageId(uuid.uuid4().hex[:12])


def storage_key_for(message_id: str) -> str:
    """Blob-store key for a file message's payload."""
    return f"file_{message_id}"


def now_ms() -> int:
    return int(time.time() * 1000)


# ─── Enums ───────────────────────────────────────────────────────

class Role(str, Enum):
    """Author of a message, as sent to the completion backend."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageType(str, Enum):
    """Discriminant of the message tagged union."""
    TEXT = "text"
    CARD = "card"
    FILE = "file"


class MessageStatus(str, Enum):
    """Message lifecycle — at most one STREAMING message exists store-wide."""
    PENDING = "pending"
    STREAMING = "streaming"
    SENT = "sent"
    ERROR = "error"


class CardType(str, Enum):
    CONTACT = "contact"
    ARTICLE = "article"


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"


# Statuses a message can be left in by an interrupted run
UNFINISHED_STATUSES = frozenset({MessageStatus.PENDING, MessageStatus.STREAMING})
