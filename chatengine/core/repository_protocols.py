"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by the shell via constructor injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
"""

from typing import Protocol

from chatengine.core.completion_models import CompletionRequest, CompletionResult


class CompletionBackend(Protocol):
    """Opaque completion capability: full response first, streamed locally after."""

    # Probability that a chunk delivery fails mid-stream (simulation only)
    stream_error_rate: float

    async def complete(self, request: CompletionRequest) -> CompletionResult: ...


class BlobStore(Protocol):
    """Attachment payloads keyed by "file_" + message id."""
    async def put(self, key: str, data: bytes) -> None: ...
    async def get(self, key: str) -> bytes | None: ...
    async def delete(self, key: str) -> None: ...
    async def clear_all(self) -> None: ...


class SnapshotStorage(Protocol):
    """Single-slot durable storage for the serialized snapshot."""
    async def read(self) -> str | None: ...
    async def write(self, payload: str) -> None: ...
    async def clear(self) -> None: ...
