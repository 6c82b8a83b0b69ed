"""Chat Schemas — Pydantic models with field-level validation for API boundaries.

Invariants:
    - FileUpload.data is base64 and decoded at the boundary; bad encodings are
      a 400, never reach the engine
    - Titles are stripped; a blank title means "auto title"
    - Message text is passed through untouched: blank text is an engine no-op

Design Decisions:
    - Responses reuse the core models (ChatSession, ChatMessage) serialized
      by alias, so the API speaks the same camelCase as the snapshot
"""

import base64
import binascii

from pydantic import BaseModel, Field, field_validator

from chatengine.core.chat_models import (
    CamelModel, ChatMessage, ChatSession, UploadedFile,
)


class SessionCreate(BaseModel):
    """Session creation — blank or missing title gets an auto title."""
    title: str | None = Field(None, max_length=200)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class SessionRename(BaseModel):
    title: str = Field(min_length=1, max_length=200)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty or whitespace")
        return v


class SendMessageRequest(BaseModel):
    content: str = Field(max_length=20_000)


class FileUpload(BaseModel):
    """One uploaded file, payload base64-encoded."""
    name: str = Field(min_length=1, max_length=255)
    mime: str = Field("application/octet-stream", max_length=255)
    data: str

    @field_validator("data")
    @classmethod
    def check_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("data must be valid base64") from e
        return v

    def to_uploaded_file(self) -> UploadedFile:
        return UploadedFile(
            name=self.name, data=base64.b64decode(self.data), mime=self.mime,
        )


class SendFilesRequest(BaseModel):
    files: list[FileUpload] = Field(default_factory=list, max_length=20)


class SessionListResponse(CamelModel):
    sessions: list[ChatSession]
    active_session_id: str | None = None


class MessageListResponse(CamelModel):
    session_id: str | None
    messages: list[ChatMessage]
    is_sending: bool = False


class SendResponse(CamelModel):
    """Outcome of a send: the reply (None for blank input) and the session view."""
    reply: ChatMessage | None = None
    messages: list[ChatMessage] = Field(default_factory=list)


class FilesResponse(CamelModel):
    files: list[ChatMessage]
    messages: list[ChatMessage] = Field(default_factory=list)


class StopResponse(BaseModel):
    stopped: bool
