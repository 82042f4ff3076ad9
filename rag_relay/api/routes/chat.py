from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from rag_relay.core.logging import get_logger
from rag_relay.models.response import ErrorResponse
from rag_relay.services.chat_service import ChatService, get_chat_service
from rag_relay.services.relay import SSE_HEADERS, GENERIC_ERROR_MESSAGE

logger = get_logger(__name__)

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.get("/chat")
def chat(
    message: Optional[str] = None,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Streaming chat endpoint using Server-Sent Events (SSE)."""
    try:
        relay = chat_service.open_stream(message)
    except ValueError as ve:
        return _error(400, str(ve))
    except Exception as e:
        logger.exception(f"Chat error: {e}")
        return _error(500, GENERIC_ERROR_MESSAGE)

    if relay.closed:
        return _error(502, relay.error or GENERIC_ERROR_MESSAGE)

    return StreamingResponse(
        relay.events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(relay.close),
    )
