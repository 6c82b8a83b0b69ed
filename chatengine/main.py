"""Chat Engine API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map ChatEngineError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, tables and the restored ChatEngine are ready before the first request

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - The engine lives on app.state; routes reach it through api.deps.get_chat_engine
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatengine.api.error_handlers import register_error_handlers
from chatengine.api.routes import conversation, health, sessions
from chatengine.config import get_settings
from chatengine.infrastructure.completion_backends import build_completion_backend
from chatengine.infrastructure.database import init_db
from chatengine.infrastructure.observability import setup_logging
from chatengine.infrastructure.sql_storage import SqlBlobStore, SqlSnapshotStorage
from chatengine.services.chat_engine import ChatEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    await db.create_all()

    engine = ChatEngine.from_settings(
        settings,
        snapshot_storage=SqlSnapshotStorage(db, settings.snapshot_key),
        blob_store=SqlBlobStore(db),
        backend=build_completion_backend(settings),
    )
    await engine.restore()
    app.state.chat_engine = engine
    logger.info("Chat engine API started")
    yield
    logger.info("Chat engine API shutting down")
    await engine.stop_generation()
    await db.dispose()


app = FastAPI(
    title="Chat Engine API", version="1.0.0", lifespan=lifespan,
)

# CORS — configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(sessions.router)
app.include_router(conversation.router)

register_error_handlers(app)
