"""Chunk Stream — cancellable lazy sequence of string fragments.

Invariants:
    - Chunks concatenate back to the full content, in order
    - chunk_size is clamped to >= 1
    - The token is checked before every chunk; a fired token raises
      GenerationCancelledError before exhaustion
    - Finite and not restartable: a new request means a new stream

Design Decisions:
    - Async generator with an await per chunk: other coroutines (a newer send,
      a stop request) get to run between chunks
    - error_rate simulates mid-stream transport failures for the mock backend
"""

import asyncio
import random
from collections.abc import AsyncIterator

from chatengine.core.cancellation import CancellationToken
from chatengine.core.errors import ErrorContext, TransportError


async def stream_text(
    content: str,
    *,
    chunk_size: int = 5,
    token: CancellationToken | None = None,
    interval_ms: tuple[int, int] = (20, 60),
    error_rate: float = 0.0,
    context: ErrorContext | None = None,
    rng: random.Random | None = None,
) -> AsyncIterator[str]:
    size = max(1, chunk_size)
    rand = rng or random
    low, high = interval_ms
    cursor = 0

    while cursor < len(content):
        if token is not None:
            token.raise_if_cancelled(context)
        chunk = content[cursor:cursor + size]
        cursor += size
        await asyncio.sleep(rand.randint(low, high) / 1000 if high > 0 else 0)
        if error_rate and rand.random() < error_rate:
            raise TransportError(
                f"Mock stream error (simulated) rate={error_rate}", "simulated",
                context=context,
            )
        yield chunk
