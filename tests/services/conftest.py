"""Service test fixtures — in-memory database, storages, engine and FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database with tables created
    - Engines stream with zero delay (interval 0/0) so flows finish promptly
    - get_chat_engine dependency overridden and app.state.chat_engine set to the test engine
    - db_manager patched so the readiness probe sees the test database

Design Decisions:
    - SQLite in-memory: fast, no external dependency, same adapters as production
    - make_engine is a factory fixture: tests choose their own backend and blob store
"""

import pytest
from httpx import ASGITransport, AsyncClient

import chatengine.infrastructure.database as db_module
from chatengine.api.deps import get_chat_engine
from chatengine.infrastructure.database import DatabaseSessionManager
from chatengine.infrastructure.sql_storage import SqlBlobStore, SqlSnapshotStorage
from chatengine.main import app
from chatengine.services.chat_engine import ChatEngine
from tests.services.fake_backend import FakeBackend


@pytest.fixture
async def db():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    await manager.create_all()
    yield manager
    await manager.dispose()


@pytest.fixture
def snapshot_storage(db):
    return SqlSnapshotStorage(db, "llmchat:v1")


@pytest.fixture
def blob_store(db):
    return SqlBlobStore(db)


@pytest.fixture
def make_engine(snapshot_storage, blob_store):
    """Factory: ChatEngine over the test database and a chosen backend."""
    def _make(backend=None, *, blobs=None, **kwargs) -> ChatEngine:
        kwargs.setdefault("interval_ms", (0, 0))
        return ChatEngine(
            snapshot_storage=snapshot_storage,
            blob_store=blobs or blob_store,
            backend=backend or FakeBackend("Hello there, how can I help?"),
            **kwargs,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
async def client(engine, db):
    """FastAPI test client with the engine dependency overridden."""
    app.dependency_overrides[get_chat_engine] = lambda: engine
    original_engine = getattr(app.state, "chat_engine", None)
    app.state.chat_engine = engine

    original_manager = db_module.db_manager
    db_module.db_manager = db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    app.state.chat_engine = original_engine
    db_module.db_manager = original_manager
