"""Health & Readiness Probes — process liveness and engine/storage readiness.

Invariants:
    - GET /health/ returns 200 while the process is up, with the generation state
      when the engine exists
    - GET /health/ready returns 503 until the engine is restored and the
      database answers; the body names every failing check

Design Decisions:
    - Liveness never touches the database: a slow disk must not restart the app
    - db_manager read through the module at call time (it is set on startup)
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from chatengine.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check(request: Request):
    """Liveness: app identity plus whether a reply is being generated."""
    engine = getattr(request.app.state, "chat_engine", None)
    return {
        "status": "healthy",
        "service": request.app.title,
        "version": request.app.version,
        "generating": engine.is_sending if engine is not None else False,
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness: the engine was restored and the database is reachable."""
    checks = {
        "engine": "healthy"
        if getattr(request.app.state, "chat_engine", None) is not None
        else "not_restored",
    }
    manager = database.db_manager
    checks["database"] = (
        "healthy" if manager is not None and await manager.health_check()
        else "unavailable"
    )

    failing = sorted(name for name, state in checks.items() if state != "healthy")
    if failing:
        logger.warning("Readiness check failed: %s", ", ".join(failing))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "failing": failing, "checks": checks},
        )
    return {"status": "ready", "checks": checks}
