"""Streaming Coordinator — ownership, cancellation, writer behaviour.

Invariants:
    - claim() cancels the previous owner and marks its target error
    - finish() from a superseded run never clears its successor
    - A cancelled task running a generation leaves its target error and released
    - The writer returns False on cancellation and propagates other failures
    - generate() reports failures as ChatEngineError, cancellations as CANCELLED
"""

import asyncio

import pytest

from chatengine.core.chat_models import new_placeholder
from chatengine.core.completion_models import CompletionMessage
from chatengine.core.domain_types import MessageStatus, Role
from chatengine.core.errors import (
    ChatEngineError, ErrorKind, GenerationCancelledError,
)
from chatengine.core.message_store import MessageStore
from chatengine.core.session_registry import SessionRegistry
from chatengine.services.streaming_coordinator import StreamingCoordinator
from tests.services.fake_backend import FakeBackend, make_card, make_result


def _setup(backend=None, chunk_size=4):
    registry = SessionRegistry()
    store = MessageStore(registry)
    session = registry.create()
    coordinator = StreamingCoordinator(
        store, backend or FakeBackend("streamed reply"),
        model="fake-model", chunk_size=chunk_size, interval_ms=(0, 0),
    )
    return store, session, coordinator


def _placeholder(store, session):
    msg = new_placeholder(session.id)
    store.append(session.id, msg)
    return msg


_PROMPT = [CompletionMessage(role=Role.USER, content="hi")]


# -- Ownership -----------------------------------------------------------------

def test_claim_supersedes_previous_target():
    store, session, coordinator = _setup()
    first = _placeholder(store, session)
    old_token = coordinator.claim(session.id, first.id)
    second = _placeholder(store, session)
    coordinator.claim(session.id, second.id)

    assert old_token.cancelled
    assert old_token.reason == "superseded"
    assert first.status == MessageStatus.ERROR
    assert coordinator.streaming_message_id == second.id
    assert [m.id for m in store.streaming_messages()] == [second.id]


def test_cancel_without_generation_returns_false():
    _, _, coordinator = _setup()
    assert coordinator.cancel() is False


def test_finish_from_superseded_run_keeps_successor():
    store, session, coordinator = _setup()
    first = _placeholder(store, session)
    old_token = coordinator.claim(session.id, first.id)
    second = _placeholder(store, session)
    coordinator.claim(session.id, second.id)

    coordinator.finish(old_token, session.id, first.id, MessageStatus.ERROR)

    assert coordinator.streaming_message_id == second.id
    assert coordinator.is_generating


def test_finish_by_stale_run_on_same_message_does_not_touch_status():
    """A superseded run must not overwrite a regeneration of the same message."""
    store, session, coordinator = _setup()
    target = _placeholder(store, session)
    old_token = coordinator.claim(session.id, target.id)
    coordinator.claim(session.id, target.id)
    target.status = MessageStatus.STREAMING

    coordinator.finish(old_token, session.id, target.id, MessageStatus.ERROR)

    assert target.status == MessageStatus.STREAMING


def test_cancel_session_only_matches_owner_session():
    store, session, coordinator = _setup()
    target = _placeholder(store, session)
    coordinator.claim(session.id, target.id)
    assert coordinator.cancel_session("other", "session deleted") is False
    assert coordinator.cancel_session(session.id, "session deleted") is True
    assert not coordinator.is_generating


# -- Writer --------------------------------------------------------------------

async def test_write_stream_fills_message():
    store, session, coordinator = _setup()
    target = _placeholder(store, session)
    token = coordinator.claim(session.id, target.id)
    completed = await coordinator.write_stream(session.id, target.id, "abcdefghij", token)
    assert completed is True
    assert target.content == "abcdefghij"
    assert target.status == MessageStatus.STREAMING


async def test_write_stream_resets_previous_content():
    store, session, coordinator = _setup()
    target = _placeholder(store, session)
    target.content = "old text"
    token = coordinator.claim(session.id, target.id)
    await coordinator.write_stream(session.id, target.id, "new", token)
    assert target.content == "new"


async def test_write_stream_stops_silently_on_cancel():
    store, session, coordinator = _setup(chunk_size=1)
    target = _placeholder(store, session)
    token = coordinator.claim(session.id, target.id)

    async def _stop_soon():
        while len(target.content) < 3:
            await asyncio.sleep(0)
        coordinator.cancel("stopped")

    stopper = asyncio.create_task(_stop_soon())
    completed = await coordinator.write_stream(
        session.id, target.id, "abcdefghijklmnop", token,
    )
    await stopper
    assert completed is False
    assert 3 <= len(target.content) < len("abcdefghijklmnop")
    assert "abcdefghijklmnop".startswith(target.content)
    assert target.status == MessageStatus.ERROR


async def test_write_stream_propagates_transport_failure():
    store, session, coordinator = _setup(FakeBackend("x", stream_error_rate=1.0))
    target = _placeholder(store, session)
    token = coordinator.claim(session.id, target.id)
    with pytest.raises(ChatEngineError) as exc_info:
        await coordinator.write_stream(session.id, target.id, "abcdef", token)
    assert exc_info.value.kind == ErrorKind.TRANSPORT


async def test_write_stream_with_fired_token_writes_nothing():
    store, session, coordinator = _setup()
    target = _placeholder(store, session)
    target.content = "kept"
    token = coordinator.claim(session.id, target.id)
    token.cancel("stopped")
    assert await coordinator.write_stream(session.id, target.id, "abc", token) is False
    assert target.content == "kept"


# -- run / generate ------------------------------------------------------------

async def test_run_marks_sent_and_inserts_card():
    backend = FakeBackend(make_result("reply text", card=make_card()))
    store, session, coordinator = _setup(backend)
    target = _placeholder(store, session)
    token = coordinator.claim(session.id, target.id)

    await coordinator.run(session.id, target.id, _PROMPT, token)

    messages = store.messages(session.id)
    assert target.status == MessageStatus.SENT
    assert target.content == "reply text"
    assert [m.type for m in messages] == ["text", "card"]
    assert not coordinator.is_generating
    assert backend.requests[0].model == "fake-model"
    assert backend.requests[0].stream is True


async def test_run_wraps_unknown_failure_as_transport():
    store, session, coordinator = _setup(FakeBackend(RuntimeError("connection reset")))
    target = _placeholder(store, session)
    token = coordinator.claim(session.id, target.id)

    with pytest.raises(ChatEngineError) as exc_info:
        await coordinator.run(session.id, target.id, _PROMPT, token)

    assert exc_info.value.kind == ErrorKind.TRANSPORT
    assert target.status == MessageStatus.ERROR
    assert not coordinator.is_generating


async def test_generate_reports_cancel_during_request():
    backend = FakeBackend("late reply")
    gate = backend.gate(0)
    store, session, coordinator = _setup(backend)
    target = _placeholder(store, session)
    token = coordinator.claim(session.id, target.id)

    task = asyncio.create_task(coordinator.generate(session.id, target.id, _PROMPT, token))
    await backend.wait_for_calls(1)
    coordinator.cancel("stopped")
    gate.set()

    with pytest.raises(GenerationCancelledError):
        await task
    assert target.content == ""
    assert target.status == MessageStatus.ERROR


async def test_run_releases_target_when_task_cancelled():
    backend = FakeBackend("late reply")
    backend.gate(0)
    store, session, coordinator = _setup(backend)
    target = _placeholder(store, session)
    token = coordinator.claim(session.id, target.id)

    task = asyncio.create_task(coordinator.run(session.id, target.id, _PROMPT, token))
    await backend.wait_for_calls(1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert token.cancelled
    assert target.status == MessageStatus.ERROR
    assert not coordinator.is_generating


def test_abandon_by_superseded_run_keeps_successor():
    store, session, coordinator = _setup()
    first = _placeholder(store, session)
    old_token = coordinator.claim(session.id, first.id)
    second = _placeholder(store, session)
    coordinator.claim(session.id, second.id)

    assert coordinator.abandon(old_token, session.id, first.id) is False
    assert coordinator.streaming_message_id == second.id
    assert second.status == MessageStatus.STREAMING
