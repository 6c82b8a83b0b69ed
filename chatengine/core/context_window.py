"""Context Window — the bounded slice of prior turns sent with a new request.

Invariants:
    - Only text messages that are not streaming are eligible
    - Chronological order preserved; at most `limit` entries (the most recent)
    - The upload summary line is request-only, never a stored message
"""

import math
from collections.abc import Sequence

from chatengine.core.chat_models import ChatMessage, UploadedFile
from chatengine.core.completion_models import CompletionMessage
from chatengine.core.domain_types import MessageStatus, MessageType, Role

CONTEXT_WINDOW_SIZE = 8


def build_context_messages(
    messages: Sequence[ChatMessage], limit: int = CONTEXT_WINDOW_SIZE,
) -> list[CompletionMessage]:
    eligible = [
        msg for msg in messages
        if msg.type == MessageType.TEXT and msg.status != MessageStatus.STREAMING
    ]
    return [
        CompletionMessage(role=msg.role, content=msg.content)
        for msg in eligible[-limit:]
    ]


def kilobytes(size: int) -> int:
    """Size in KB rounded half-up."""
    return math.floor(size / 1024 + 0.5)


def upload_summary(files: Sequence[UploadedFile]) -> CompletionMessage:
    listed = ", ".join(f"{f.name} ({kilobytes(f.size)} KB)" for f in files)
    return CompletionMessage(role=Role.USER, content=f"Uploaded files: {listed}")
