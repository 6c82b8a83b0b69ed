"""Chat Models — sessions and the tagged message union.

Invariants:
    - ChatMessage is discriminated by `type`: text has no extra fields, file
      requires `attachment`, card requires `card`
    - Serialized field names are camelCase (the durable snapshot format)
    - Factories always produce ids unique across the whole store

Design Decisions:
    - Pydantic models with a discriminated union: validation on load, exhaustive
      per-variant fields, JSON round-trip for free
    - Models stay mutable: the streaming writer appends to `content` in place
"""

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from chatengine.core.domain_types import (
    CardType, MessageStatus, MessageType, Role,
    new_message_id, now_ms, storage_key_for,
)


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileAttachment(CamelModel):
    name: str
    size: int = Field(ge=0)
    mime: str
    storage_key: str | None = None
    url: str | None = None


class AssistantCard(CamelModel):
    """Structured promotional/contact payload returned alongside a reply."""
    card_type: CardType
    title: str
    description: str
    action_text: str
    action_url: str


class _MessageBase(CamelModel):
    id: str
    session_id: str
    role: Role
    content: str = ""
    created_at: int
    status: MessageStatus
    metadata: dict[str, Any] | None = None


class TextMessage(_MessageBase):
    type: Literal["text"] = "text"


class FileMessage(_MessageBase):
    type: Literal["file"] = "file"
    attachment: FileAttachment


class CardMessage(_MessageBase):
    type: Literal["card"] = "card"
    card: AssistantCard


ChatMessage = Annotated[
    Union[TextMessage, FileMessage, CardMessage], Field(discriminator="type"),
]
chat_message_adapter: TypeAdapter[ChatMessage] = TypeAdapter(ChatMessage)


class ChatSession(CamelModel):
    """Named, ordered conversation; messageIds mirrors creation order."""
    id: str
    title: str
    created_at: int
    updated_at: int
    message_ids: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class UploadedFile:
    """A file handed to the attachment flow."""
    name: str
    data: bytes
    mime: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


# ─── Factories ───────────────────────────────────────────────────

def new_text_message(
    session_id: str, role: Role, content: str, status: MessageStatus,
) -> TextMessage:
    return TextMessage(
        id=new_message_id(), session_id=session_id, role=role,
        content=content, created_at=now_ms(), status=status,
    )


def new_placeholder(session_id: str) -> TextMessage:
    """Empty assistant message to be filled by the streaming writer."""
    return new_text_message(
        session_id, Role.ASSISTANT, "", MessageStatus.STREAMING,
    )


def new_card_message(session_id: str, card: AssistantCard) -> CardMessage:
    return CardMessage(
        id=new_message_id(), session_id=session_id, role=Role.ASSISTANT,
        content=card.title, created_at=now_ms(), status=MessageStatus.SENT,
        card=card,
    )


def new_file_message(
    session_id: str, upload: UploadedFile, message_id: str | None = None,
) -> FileMessage:
    msg_id = message_id or new_message_id()
    return FileMessage(
        id=msg_id, session_id=session_id, role=Role.USER,
        content=upload.name, created_at=now_ms(), status=MessageStatus.SENT,
        metadata={"size": upload.size, "mime": upload.mime},
        attachment=FileAttachment(
            name=upload.name, size=upload.size, mime=upload.mime,
            storage_key=storage_key_for(msg_id),
        ),
    )


def is_card_of(message: ChatMessage) -> bool:
    """True for assistant cards (the trailing attachments of a text reply)."""
    return message.role == Role.ASSISTANT and message.type == MessageType.CARD
