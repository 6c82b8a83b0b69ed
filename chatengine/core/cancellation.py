"""Cancellation Token — advisory signal for an in-flight generation.

Invariants:
    - Once cancelled, a token never resets
    - Cancellation is observed at check points, never preemptively

Design Decisions:
    - Plain flag object over asyncio.Task.cancel(): the writer must stop between
      chunks, not in the middle of a store mutation
"""

from chatengine.core.errors import ErrorContext, GenerationCancelledError


class CancellationToken:
    """One token per generation; the coordinator cancels it when superseded."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self, context: ErrorContext | None = None) -> None:
        if self._cancelled:
            raise GenerationCancelledError(self.reason or "cancelled", context)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self.reason!r})"
