"""Streaming Coordinator — single in-flight generation, cancellation and the streaming writer.

Invariants:
    - At most one generation owns the streaming target at any time
    - claim() cancels the previous owner and marks its message error in the same
      synchronous step, so two streaming messages are never observable
    - Only the current owner records a final status or clears the pointer;
      a superseded run never clobbers its successor
    - A chunk produced after the token fired is discarded, never appended
    - A cancelled asyncio task leaves its target error and the pointer released
    - generate() raises only ChatEngineError; a failure while the token is
      cancelled is reported as a cancellation

Design Decisions:
    - The full response is fetched first, then written progressively: "streaming"
      means progressive delivery into the message, not network streaming
    - The writer switches on ErrorKind.CANCELLED, not on exception classes
"""

import asyncio
import logging
import random
from contextlib import aclosing

from chatengine.core.cancellation import CancellationToken
from chatengine.core.chat_models import ChatMessage, new_card_message
from chatengine.core.completion_models import (
    CompletionMessage, CompletionRequest, CompletionResult,
)
from chatengine.core.domain_types import MessageStatus
from chatengine.core.errors import (
    ChatEngineError, ErrorContext, ErrorKind, GenerationCancelledError,
    as_generation_error,
)
from chatengine.core.message_store import MessageStore
from chatengine.core.repository_protocols import CompletionBackend
from chatengine.services.chunk_stream import stream_text

logger = logging.getLogger(__name__)


class StreamingCoordinator:
    """Drives one generation at a time into a target message."""

    def __init__(
        self,
        store: MessageStore,
        backend: CompletionBackend,
        *,
        model: str,
        chunk_size: int = 4,
        interval_ms: tuple[int, int] = (20, 60),
        rng: random.Random | None = None,
    ):
        self._store = store
        self._backend = backend
        self.model = model
        self.chunk_size = chunk_size
        self.interval_ms = interval_ms
        self._rng = rng
        self._token: CancellationToken | None = None
        self.streaming_session_id: str | None = None
        self.streaming_message_id: str | None = None

    @property
    def is_generating(self) -> bool:
        return self._token is not None

    # --- Ownership ----------------------------------------------------------

    def claim(self, session_id: str, message_id: str) -> CancellationToken:
        """Make message the streaming target; the previous owner is cancelled."""
        self.cancel("superseded")
        token = CancellationToken()
        self._token = token
        self.streaming_session_id = session_id
        self.streaming_message_id = message_id
        return token

    def cancel(self, reason: str = "stopped") -> bool:
        """Signal the in-flight generation and mark its target error."""
        if self._token is None:
            return False
        self._token.cancel(reason)
        if self.streaming_session_id and self.streaming_message_id:
            self._store.set_status(
                self.streaming_session_id, self.streaming_message_id,
                MessageStatus.ERROR,
            )
        logger.info("Generation cancelled (%s)", reason, extra={
            "session_id": self.streaming_session_id,
            "message_id": self.streaming_message_id,
            "cancel_reason": reason,
        })
        self._release()
        return True

    def cancel_session(self, session_id: str, reason: str) -> bool:
        if self.streaming_session_id != session_id:
            return False
        return self.cancel(reason)

    def finish(
        self, token: CancellationToken, session_id: str, message_id: str,
        status: MessageStatus,
    ) -> bool:
        """Record the final status; a superseded run leaves everything as is."""
        if self._token is not token:
            return False  # cancel() already marked this target error
        self._store.set_status(session_id, message_id, status)
        self._release()
        return True

    def abandon(
        self, token: CancellationToken, session_id: str, message_id: str,
    ) -> bool:
        """The task driving this run was cancelled; mark its target error."""
        token.cancel("task cancelled")
        if not self.finish(token, session_id, message_id, MessageStatus.ERROR):
            return False
        logger.info("Generation abandoned by its task", extra={
            "session_id": session_id, "message_id": message_id,
            "cancel_reason": token.reason,
        })
        return True

    def _release(self) -> None:
        self._token = None
        self.streaming_session_id = None
        self.streaming_message_id = None

    # --- Generation ---------------------------------------------------------

    async def run(
        self,
        session_id: str,
        message_id: str,
        messages: list[CompletionMessage],
        token: CancellationToken,
    ) -> CompletionResult:
        """Request, stream, finalize status and attach the card, if any.

        On failure the target is marked error and the ChatEngineError re-raised;
        persisting is left to the caller.
        """
        try:
            result = await self.generate(session_id, message_id, messages, token)
        except ChatEngineError as e:
            self.finish(token, session_id, message_id, MessageStatus.ERROR)
            extra = {
                "session_id": session_id, "message_id": message_id,
                "error_code": e.code, "error_kind": e.kind.value,
            }
            if e.kind == ErrorKind.CANCELLED:
                logger.info("Generation stopped: %s", e.message, extra=extra)
            else:
                logger.error("Generation failed: %s", e.message, extra=extra)
            raise
        except asyncio.CancelledError:
            self.abandon(token, session_id, message_id)
            raise

        self.finish(token, session_id, message_id, MessageStatus.SENT)
        if result.card is not None:
            self._store.insert_after(
                session_id, message_id, new_card_message(session_id, result.card),
            )
        return result

    async def generate(
        self,
        session_id: str,
        message_id: str,
        messages: list[CompletionMessage],
        token: CancellationToken,
    ) -> CompletionResult:
        ctx = ErrorContext(session_id=session_id, message_id=message_id)
        request = CompletionRequest(model=self.model, messages=messages, stream=True)
        try:
            token.raise_if_cancelled(ctx)
            result = await self._backend.complete(request)
            token.raise_if_cancelled(ctx)
            usage = result.response.usage
            logger.info("Completion received", extra={
                "session_id": session_id, "message_id": message_id,
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
            })
            completed = await self.write_stream(
                session_id, message_id, result.response.first_content, token,
            )
        except Exception as e:
            error = as_generation_error(e, ctx)
            if token.cancelled and error.kind != ErrorKind.CANCELLED:
                raise GenerationCancelledError(token.reason or "cancelled", ctx) from e
            if error is e:
                raise
            raise error from e

        if not completed:
            raise GenerationCancelledError(token.reason or "cancelled", ctx)
        return result

    async def write_stream(
        self,
        session_id: str,
        message_id: str,
        content: str,
        token: CancellationToken,
    ) -> bool:
        """Streaming writer. Returns False when stopped by cancellation."""
        if token.cancelled:
            return False

        def _reset(msg: ChatMessage) -> None:
            msg.content = ""
            msg.status = MessageStatus.STREAMING

        self._store.update(session_id, message_id, _reset)
        chunks = stream_text(
            content,
            chunk_size=self.chunk_size,
            token=token,
            interval_ms=self.interval_ms,
            error_rate=self._backend.stream_error_rate,
            context=ErrorContext(session_id=session_id, message_id=message_id),
            rng=self._rng,
        )
        try:
            async with aclosing(chunks) as stream:
                async for chunk in stream:
                    if token.cancelled:
                        return False
                    self._store.update(
                        session_id, message_id, _appender(chunk),
                    )
        except ChatEngineError as e:
            if e.kind == ErrorKind.CANCELLED:
                return False
            raise
        return True


def _appender(chunk: str):
    def _append(msg: ChatMessage) -> None:
        msg.content += chunk
    return _append
