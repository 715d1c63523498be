# musicdash/api/chat_api.py
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from musicdash.models.chat_models import (
    ChatMessage,
    ChatRelayRequest,
    ChatRelayResponse,
    ChatTurnRequest,
    TranscriptResponse,
)
from musicdash.services.errors import CompletionError
from musicdash.services.session_service import DashboardSession
from musicdash.services.user_auth import get_current_session

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/chat",
    response_model=ChatRelayResponse,
    summary="Chat relay: transcript in, one assistant reply out",
)
def chat_relay(payload: ChatRelayRequest, session: DashboardSession = Depends(get_current_session)):
    """
    Body: { "messages": [{ "role": "user", "content": "..." }] }
    Upstream failures come back as { "error": "..." } with the upstream status.
    """
    logger.debug(f"Received {len(payload.messages)} messages")
    try:
        content = session.chat.completion.complete(payload.messages)
    except CompletionError as e:
        return JSONResponse({"error": e.message}, status_code=e.status)
    except Exception as e:
        logger.error(f"Detailed error in chat route: {e}")
        return JSONResponse({"error": f"Failed to get AI response: {e}"}, status_code=500)

    return ChatRelayResponse(content=content)


@router.get("/chat/messages", response_model=TranscriptResponse)
def transcript(session: DashboardSession = Depends(get_current_session)):
    return {"messages": list(session.chat.messages)}


@router.post("/chat/messages", response_model=ChatMessage)
def send_message(payload: ChatTurnRequest, session: DashboardSession = Depends(get_current_session)):
    """Full chat turn: reply text plus resolved Spotify suggestions (possibly none)."""
    return session.chat.send(payload.message)
