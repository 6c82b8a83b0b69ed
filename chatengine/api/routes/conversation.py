"""Conversation — send text, send files, regenerate, stop, download attachments.

Invariants:
    - A send responds after the reply has been fully streamed into the store
    - A superseded or stopped send answers 409 GENERATION_CANCELLED
    - Transport failures answer 503 on the text path; file sends always answer 200
    - Blank text is a no-op and answers 200 with reply=null

Design Decisions:
    - Files travel as base64 in JSON: same error envelope and validation path
      as every other request, no multipart dependency
    - Clients poll GET /sessions/{id}/messages to watch a reply grow
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Response, status

from chatengine.api.deps import get_chat_engine
from chatengine.core.domain_types import MessageType
from chatengine.core.errors import ResourceNotFoundError
from chatengine.schemas.chat import (
    FilesResponse, SendFilesRequest, SendMessageRequest, SendResponse,
    StopResponse,
)
from chatengine.services.chat_engine import ChatEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/conversation", tags=["conversation"])


@router.post("/messages", response_model=SendResponse)
async def send_message(
    body: SendMessageRequest, engine: ChatEngine = Depends(get_chat_engine),
):
    """Send a user message and wait for the streamed reply."""
    reply = await engine.send_text(body.content)
    session_id = reply.session_id if reply else None
    return SendResponse(reply=reply, messages=engine.messages(session_id))


@router.post("/files", response_model=FilesResponse)
async def send_files(
    body: SendFilesRequest, engine: ChatEngine = Depends(get_chat_engine),
):
    """Upload files into the active conversation and ask for a reply."""
    uploads = [f.to_uploaded_file() for f in body.files]
    appended = await engine.send_files(uploads)
    session_id = appended[0].session_id if appended else None
    return FilesResponse(
        files=appended,
        messages=engine.messages(session_id) if session_id else [],
    )


@router.post("/messages/{message_id}/regenerate", response_model=SendResponse)
async def regenerate_message(
    message_id: str, engine: ChatEngine = Depends(get_chat_engine),
):
    """Re-run an assistant reply in the active session (no-op returns reply=null)."""
    target = await engine.regenerate(message_id)
    return SendResponse(reply=target, messages=engine.messages())


@router.post("/stop", response_model=StopResponse)
async def stop_generation(engine: ChatEngine = Depends(get_chat_engine)):
    return StopResponse(stopped=await engine.stop_generation())


@router.get("/attachments/{message_id}")
async def download_attachment(
    message_id: str, engine: ChatEngine = Depends(get_chat_engine),
):
    """Raw bytes of a file message's attachment."""
    message = engine.store.locate(message_id)
    data = await engine.read_attachment(message_id)
    if message is None or message.type != MessageType.FILE or data is None:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND,
            detail=ResourceNotFoundError("Attachment", message_id).to_response(),
        )
    return Response(
        content=data,
        media_type=message.attachment.mime,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(message.attachment.name)}",
        },
    )
