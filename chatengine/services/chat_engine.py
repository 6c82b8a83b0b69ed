"""Chat Engine — explicit container wiring every component and the entry operations.

Invariants:
    - Visible parts of an operation (user message, placeholder) land synchronously,
      before the first await
    - Every entry operation ends with a persist, on success and on failure
    - A cancelled caller task still leaves its reply error and persisted
    - Blob failures are logged and never roll back store mutations
    - Text sends propagate generation failures; file sends never do

Design Decisions:
    - One instance per app (held on app.state) instead of module-level singletons
    - The context window is built after the user turn is recorded and before the
      new placeholder is claimed, so the previous in-flight reply is still excluded
"""

import asyncio
import logging
import random
from collections.abc import Callable, Sequence

from chatengine.config import Settings
from chatengine.core.cancellation import CancellationToken
from chatengine.core.chat_models import (
    ChatMessage, ChatSession, FileMessage, TextMessage, UploadedFile,
    new_file_message, new_placeholder, new_text_message,
)
from chatengine.core.chat_snapshot import ChatSnapshotData
from chatengine.core.completion_models import CompletionMessage
from chatengine.core.context_window import (
    CONTEXT_WINDOW_SIZE, build_context_messages, upload_summary,
)
from chatengine.core.domain_types import (
    MessageStatus, MessageType, Role, UNFINISHED_STATUSES, now_ms, storage_key_for,
)
from chatengine.core.errors import ChatEngineError, ErrorContext, StorageError
from chatengine.core.message_store import MessageStore
from chatengine.core.repository_protocols import (
    BlobStore, CompletionBackend, SnapshotStorage,
)
from chatengine.core.session_registry import SessionRegistry
from chatengine.services.persistence_gateway import PersistenceGateway
from chatengine.services.regeneration import RegenerationPolicy
from chatengine.services.streaming_coordinator import StreamingCoordinator

logger = logging.getLogger(__name__)


class ChatEngine:
    """Conversation orchestration: sessions, messages, generation, persistence."""

    def __init__(
        self,
        *,
        snapshot_storage: SnapshotStorage,
        blob_store: BlobStore,
        backend: CompletionBackend,
        model: str = "gpt-4o-mini",
        context_window_size: int = CONTEXT_WINDOW_SIZE,
        chunk_size: int = 4,
        interval_ms: tuple[int, int] = (20, 60),
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ):
        self.sessions = SessionRegistry(clock=clock)
        self.store = MessageStore(self.sessions)
        self.streaming = StreamingCoordinator(
            self.store, backend, model=model,
            chunk_size=chunk_size, interval_ms=interval_ms, rng=rng,
        )
        self.persistence = PersistenceGateway(snapshot_storage, self.sessions, self.store)
        self.regeneration = RegenerationPolicy(
            self.sessions, self.store, self.streaming, self.persistence,
        )
        self.backend = backend
        self.context_window_size = context_window_size
        self._blobs = blob_store

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        snapshot_storage: SnapshotStorage,
        blob_store: BlobStore,
        backend: CompletionBackend,
    ) -> "ChatEngine":
        return cls(
            snapshot_storage=snapshot_storage,
            blob_store=blob_store,
            backend=backend,
            model=settings.completion_model,
            context_window_size=settings.context_window_size,
            chunk_size=settings.stream_chunk_size,
            interval_ms=(settings.stream_interval_min_ms, settings.stream_interval_max_ms),
        )

    # --- Read helpers -------------------------------------------------------

    @property
    def is_sending(self) -> bool:
        return self.streaming.is_generating

    def messages(self, session_id: str | None = None) -> list[ChatMessage]:
        """Messages of a session (the active one by default)."""
        sid = session_id or self.sessions.active_session_id
        if sid is None:
            return []
        return self.store.messages(sid)

    # --- Lifecycle ----------------------------------------------------------

    async def restore(self) -> ChatSnapshotData:
        """Load the persisted snapshot; interrupted replies become errors."""
        data = await self.persistence.load()
        interrupted = 0
        for items in data.messages.values():
            for msg in items:
                if msg.status in UNFINISHED_STATUSES:
                    msg.status = MessageStatus.ERROR
                    interrupted += 1
        self.sessions.load(data.sessions)
        self.store.load(data.messages)
        logger.info("Restored %d session(s)", len(data.sessions),
            extra={"interrupted_messages": interrupted})
        return data

    async def start_new_session(self, title: str | None = None) -> ChatSession:
        session = self._create_session(title)
        await self.persistence.persist()
        return session

    async def rename_session(self, session_id: str, title: str) -> ChatSession | None:
        self.sessions.rename(session_id, title)
        await self.persistence.persist()
        return self.sessions.get(session_id)

    async def select_session(self, session_id: str) -> ChatSession | None:
        self.sessions.set_active(session_id)
        await self.persistence.persist()
        return self.sessions.get(session_id)

    async def delete_session(self, session_id: str) -> bool:
        """Cascade-delete a session; blob purges are best-effort."""
        if self.sessions.get(session_id) is None:
            return False
        self.streaming.cancel_session(session_id, "session deleted")
        files = [
            msg for msg in self.store.messages(session_id)
            if msg.type == MessageType.FILE
        ]
        self.sessions.delete(session_id)
        self.store.drop(session_id)
        for msg in files:
            await self._delete_blob(msg)
        await self.persistence.persist()
        logger.info("Session deleted", extra={"session_id": session_id})
        return True

    async def reset_all(self) -> None:
        """Drop every session, message and blob."""
        self.streaming.cancel("reset")
        self.sessions.clear()
        self.store.clear()
        try:
            await self._blobs.clear_all()
        except Exception as e:
            logger.warning("Failed to clear attachments: %s", e)
        await self.persistence.clear()
        await self.persistence.persist()
        logger.info("All conversations reset")

    async def stop_generation(self) -> bool:
        """Cancel the in-flight generation; its target ends as error."""
        stopped = self.streaming.cancel("stopped")
        if stopped:
            await self.persistence.persist()
        return stopped

    async def read_attachment(self, message_id: str) -> bytes | None:
        msg = self.store.locate(message_id)
        if msg is None or msg.type != MessageType.FILE:
            return None
        key = msg.attachment.storage_key or storage_key_for(msg.id)
        try:
            return await self._blobs.get(key)
        except Exception as e:
            logger.warning("Failed to read attachment: %s", e,
                extra={"message_id": message_id, "storage_key": key})
            return None

    # --- Conversation -------------------------------------------------------

    async def send_text(self, content: str) -> TextMessage | None:
        """Send a user turn and stream the reply.

        Returns the assistant message, or None for blank input. Generation
        failures propagate (GenerationCancelledError when superseded or stopped).
        """
        text = (content or "").strip()
        if not text:
            return None

        session_id = self._ensure_session()
        self.store.append(
            session_id,
            new_text_message(session_id, Role.USER, text, MessageStatus.SENT),
        )
        context = self._context_for(session_id)
        placeholder = self._start_reply(session_id)
        token = self.streaming.claim(session_id, placeholder.id)

        try:
            await self.persistence.persist()
            await self.streaming.run(session_id, placeholder.id, context, token)
        except ChatEngineError:
            await self.persistence.persist()
            raise
        except asyncio.CancelledError:
            await self._abandon(token, session_id, placeholder.id)
            raise
        self.sessions.touch(session_id)
        await self.persistence.persist()
        return placeholder

    async def send_files(self, files: Sequence[UploadedFile]) -> list[FileMessage]:
        """Record uploaded files and ask for a reply; never raises on generation."""
        if not files:
            return []

        session_id = self._ensure_session()
        appended: list[FileMessage] = []
        for upload in files:
            message = new_file_message(session_id, upload)
            await self._save_blob(message, upload.data)
            if self.sessions.get(session_id) is None:
                logger.warning("Session deleted during upload",
                    extra={"session_id": session_id})
                return appended
            self.store.append(session_id, message)
            appended.append(message)

        context = self._context_for(session_id) + [upload_summary(files)]
        placeholder = self._start_reply(session_id)
        token = self.streaming.claim(session_id, placeholder.id)

        try:
            await self.persistence.persist()
            await self.streaming.run(session_id, placeholder.id, context, token)
        except ChatEngineError as e:
            logger.info("Files kept without a reply (%s)", e.kind.value,
                extra={"session_id": session_id, "message_id": placeholder.id,
                       "file_count": len(appended)})
        except asyncio.CancelledError:
            await self._abandon(token, session_id, placeholder.id)
            raise
        else:
            self.sessions.touch(session_id)
        await self.persistence.persist()
        return appended

    async def regenerate(self, message_id: str) -> ChatMessage | None:
        return await self.regeneration.regenerate(message_id)

    # --- Internals ----------------------------------------------------------

    def _create_session(self, title: str | None = None) -> ChatSession:
        session = self.sessions.create(title)
        self.store.get_or_create(session.id)
        return session

    def _ensure_session(self) -> str:
        if self.sessions.active_session_id is not None:
            return self.sessions.active_session_id
        return self._create_session().id

    def _context_for(self, session_id: str) -> list[CompletionMessage]:
        self.sessions.set_active(session_id)
        return build_context_messages(
            self.store.messages(session_id), self.context_window_size,
        )

    def _start_reply(self, session_id: str) -> TextMessage:
        placeholder = new_placeholder(session_id)
        self.store.append(session_id, placeholder)
        return placeholder

    async def _abandon(
        self, token: CancellationToken, session_id: str, message_id: str,
    ) -> None:
        """Settle a generation whose task was cancelled, then persist."""
        self.streaming.abandon(token, session_id, message_id)
        await self.persistence.persist()

    async def _save_blob(self, message: FileMessage, data: bytes) -> None:
        key = message.attachment.storage_key or storage_key_for(message.id)
        try:
            await self._blobs.put(key, data)
        except Exception as e:
            error = e if isinstance(e, StorageError) else StorageError(
                str(e), "put", ErrorContext(message_id=message.id, storage_key=key),
            )
            logger.warning("Attachment not stored: %s", error.message,
                extra={"message_id": message.id, "storage_key": key,
                       "error_code": error.code})

    async def _delete_blob(self, message: ChatMessage) -> None:
        attachment = getattr(message, "attachment", None)
        key = (attachment and attachment.storage_key) or storage_key_for(message.id)
        try:
            await self._blobs.delete(key)
        except Exception as e:
            logger.warning("Failed to delete attachment: %s", e,
                extra={"message_id": message.id, "storage_key": key})
