"""Session Lifecycle — create/rename/select, delete cascade, reset, restore.

Invariants:
    - Deleting a session drops its messages and attempts one blob delete per file
    - A failing blob delete never blocks the session removal
    - Reset clears sessions, messages, the active pointer and the snapshot
    - Restore normalizes interrupted messages to error
"""

import asyncio

import pytest

from chatengine.core.chat_models import (
    UploadedFile, new_placeholder, new_text_message,
)
from chatengine.core.chat_snapshot import make_snapshot, snapshot_to_json
from chatengine.core.domain_types import MessageStatus, Role
from chatengine.core.errors import GenerationCancelledError
from chatengine.core.message_store import MessageStore
from chatengine.core.session_registry import SessionRegistry
from tests.services.fake_storage import FailingBlobStore
from tests.services.fake_backend import FakeBackend


# -- create / rename / select --------------------------------------------------

async def test_start_new_session_persists(make_engine, snapshot_storage):
    engine = make_engine()
    session = await engine.start_new_session()
    assert session.title == "New Conversation 1"
    assert engine.sessions.active_session_id == session.id
    assert engine.messages() == []
    assert session.id in (await snapshot_storage.read())


async def test_rename_and_select(make_engine):
    engine = make_engine()
    first = await engine.start_new_session()
    second = await engine.start_new_session("Second")
    renamed = await engine.rename_session(first.id, "Trip plans")
    assert renamed.title == "Trip plans"
    assert engine.sessions.active_session_id == second.id

    await engine.select_session(first.id)
    assert engine.sessions.active_session_id == first.id


async def test_send_goes_to_selected_session(make_engine):
    engine = make_engine(FakeBackend("reply"))
    first = await engine.start_new_session()
    await engine.start_new_session()
    await engine.select_session(first.id)
    await engine.send_text("hello")
    assert len(engine.messages(first.id)) == 2


# -- Scenario D: delete --------------------------------------------------------

async def test_delete_with_failing_blob_store_still_removes_session(make_engine):
    blobs = FailingBlobStore()
    engine = make_engine(FakeBackend("ok"), blobs=blobs)
    files = await engine.send_files([
        UploadedFile("a.txt", b"a"), UploadedFile("b.txt", b"b"),
    ])
    sid = engine.sessions.active_session_id
    blobs.calls.clear()

    assert await engine.delete_session(sid) is True

    assert blobs.calls == [f"delete:file_{m.id}" for m in files]
    assert engine.sessions.get(sid) is None
    assert engine.store.messages(sid) == []
    assert engine.sessions.active_session_id is None


async def test_delete_purges_blobs(make_engine, blob_store):
    engine = make_engine(FakeBackend("ok"))
    (file_msg,) = await engine.send_files([UploadedFile("a.txt", b"payload")])
    assert await engine.read_attachment(file_msg.id) == b"payload"

    await engine.delete_session(file_msg.session_id)

    assert await blob_store.get(f"file_{file_msg.id}") is None
    assert await engine.read_attachment(file_msg.id) is None


async def test_delete_moves_active_to_first_remaining(make_engine):
    engine = make_engine()
    older = await engine.start_new_session()
    newer = await engine.start_new_session()
    await engine.delete_session(newer.id)
    assert engine.sessions.active_session_id == older.id


async def test_delete_unknown_session_returns_false(make_engine):
    engine = make_engine()
    assert await engine.delete_session("missing") is False


async def test_delete_cancels_generation_in_that_session(make_engine):
    backend = FakeBackend("late")
    gate = backend.gate(0)
    engine = make_engine(backend)

    send = asyncio.create_task(engine.send_text("hello"))
    await backend.wait_for_calls(1)
    sid = engine.sessions.active_session_id
    await engine.delete_session(sid)
    gate.set()

    with pytest.raises(GenerationCancelledError):
        await send
    assert not engine.is_sending
    assert engine.store.messages(sid) == []
    assert engine.sessions.sessions == []


# -- Scenario E: reset ---------------------------------------------------------

async def test_reset_all_clears_everything(make_engine, snapshot_storage, blob_store):
    engine = make_engine(FakeBackend("ok"))
    (file_msg,) = await engine.send_files([UploadedFile("a.txt", b"payload")])
    await engine.start_new_session()

    await engine.reset_all()

    assert engine.sessions.sessions == []
    assert engine.sessions.active_session_id is None
    assert engine.store.snapshot() == {}
    assert await blob_store.get(f"file_{file_msg.id}") is None

    fresh = make_engine()
    data = await fresh.restore()
    assert data.is_empty
    assert fresh.sessions.sessions == []


async def test_reset_survives_failing_blob_store(make_engine):
    engine = make_engine(blobs=FailingBlobStore())
    await engine.start_new_session()
    await engine.reset_all()
    assert engine.sessions.sessions == []


# -- Restore -------------------------------------------------------------------

async def test_restore_round_trip(make_engine):
    engine = make_engine(FakeBackend("Hi there"))
    await engine.send_text("Hello")
    sid = engine.sessions.active_session_id

    fresh = make_engine()
    await fresh.restore()

    assert fresh.sessions.active_session_id == sid
    assert [m.content for m in fresh.messages()] == ["Hello", "Hi there"]
    assert fresh.sessions.active_session.message_ids == [m.id for m in fresh.messages()]


async def test_restore_normalizes_interrupted_messages(make_engine, snapshot_storage):
    registry = SessionRegistry()
    store = MessageStore(registry)
    session = registry.create()
    store.append(session.id, new_text_message(session.id, Role.USER, "q", MessageStatus.PENDING))
    store.append(session.id, new_placeholder(session.id))
    await snapshot_storage.write(snapshot_to_json(make_snapshot(registry.sessions, store.snapshot())))

    engine = make_engine()
    await engine.restore()

    assert [m.status for m in engine.messages()] == [MessageStatus.ERROR, MessageStatus.ERROR]
    assert engine.store.streaming_messages() == []


async def test_restore_with_corrupt_snapshot_starts_empty(make_engine, snapshot_storage):
    await snapshot_storage.write("{definitely not json")
    engine = make_engine()
    data = await engine.restore()
    assert data.is_empty
    assert engine.sessions.active_session_id is None
