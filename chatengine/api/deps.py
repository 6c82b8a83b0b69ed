"""API Dependencies — request-scoped access to app-level components.

Invariants:
    - The ChatEngine is built once by the lifespan and stored on app.state
    - Routes obtain it through Depends(get_chat_engine), so tests can override it
"""

from fastapi import Request

from chatengine.services.chat_engine import ChatEngine


def get_chat_engine(request: Request) -> ChatEngine:
    return request.app.state.chat_engine
