"""Sessions — list, create, rename, activate and delete conversations.

Invariants:
    - Session ids are opaque strings; unknown ids are a 404 with the error envelope
    - Every mutation is persisted by the engine before the response is sent
    - DELETE on the collection resets everything (sessions, messages, blobs)

Design Decisions:
    - get_session_or_404 shared with the conversation routes
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from chatengine.api.deps import get_chat_engine
from chatengine.core.chat_models import ChatSession
from chatengine.core.errors import ResourceNotFoundError
from chatengine.schemas.chat import (
    MessageListResponse, SessionCreate, SessionListResponse, SessionRename,
)
from chatengine.services.chat_engine import ChatEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def get_session_or_404(engine: ChatEngine, session_id: str) -> ChatSession:
    """Get session or raise 404."""
    session = engine.sessions.get(session_id)
    if session is None:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND,
            detail=ResourceNotFoundError("Session", session_id).to_response(),
        )
    return session


@router.get("", response_model=SessionListResponse)
async def list_sessions(engine: ChatEngine = Depends(get_chat_engine)):
    """List sessions, newest first."""
    return SessionListResponse(
        sessions=engine.sessions.sessions,
        active_session_id=engine.sessions.active_session_id,
    )


@router.post(
    "", response_model=ChatSession, status_code=status.HTTP_201_CREATED,
)
async def create_session(
    body: SessionCreate, engine: ChatEngine = Depends(get_chat_engine),
):
    """Create a session and make it active."""
    return await engine.start_new_session(body.title)


@router.patch("/{session_id}", response_model=ChatSession)
async def rename_session(
    session_id: str, body: SessionRename,
    engine: ChatEngine = Depends(get_chat_engine),
):
    get_session_or_404(engine, session_id)
    return await engine.rename_session(session_id, body.title)


@router.post("/{session_id}/activate", response_model=ChatSession)
async def activate_session(
    session_id: str, engine: ChatEngine = Depends(get_chat_engine),
):
    get_session_or_404(engine, session_id)
    return await engine.select_session(session_id)


@router.get("/{session_id}/messages", response_model=MessageListResponse)
async def list_messages(
    session_id: str, engine: ChatEngine = Depends(get_chat_engine),
):
    get_session_or_404(engine, session_id)
    return MessageListResponse(
        session_id=session_id,
        messages=engine.messages(session_id),
        is_sending=engine.is_sending,
    )


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str, engine: ChatEngine = Depends(get_chat_engine),
):
    """Delete a session, its messages and (best-effort) its attachments."""
    get_session_or_404(engine, session_id)
    await engine.delete_session(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def reset_all(engine: ChatEngine = Depends(get_chat_engine)):
    """Drop every conversation."""
    await engine.reset_all()
    logger.info("Reset requested via API")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
