"""
FastAPI surface for the Meeting Intelligence Pipeline.

Endpoints:
    GET    /health                                Health check
    POST   /api/v2/chat/stream                    Streamed, grounded answer (SSE)
    GET    /api/v2/chat/{room_name}/history       Conversation history
    DELETE /api/v2/chat/{room_name}/history       Forget a conversation
    POST   /api/v2/meetings/{room_name}/end       Start post-meeting processing
    GET    /api/v2/meetings/{meeting_id}/status   Poll processing status
"""

import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import uvicorn

from domain.models import Participant, StreamEvent, TranscriptEntry
from shared_utils.config_loader import get_settings
from shared_utils.constants import APIEndpoints, LogScope
from shared_utils.di_container import ServiceContainer, build_container
from shared_utils.error_handler import (
    AppException,
    NotFoundError,
    StatusConflictError,
    handle_error,
)
from shared_utils.logging_utils import ContextualLogger
from shared_utils.validation import InputValidator


logger = ContextualLogger(scope=LogScope.API)

limiter = Limiter(key_func=get_remote_address)
router = APIRouter()


def _chat_rate_limit() -> str:
    return get_settings().chat_rate_limit


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    message: str
    room_name: str
    user_name: str = "Participant"
    current_transcripts: Optional[str] = None
    is_live_meeting: bool = False


class EndMeetingRequest(BaseModel):
    meeting_id: str
    transcripts: List[TranscriptEntry] = []
    participants: List[Participant] = []


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_container(request: Request) -> ServiceContainer:
    """The container built at startup (overridable in tests)."""
    return request.app.state.container


async def _sse(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield f"data: {json.dumps(event.to_payload(), default=str)}\n\n"
    yield "data: [DONE]\n\n"


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(APIEndpoints.HEALTH)
def health_check(container: ServiceContainer = Depends(get_container)) -> dict:
    """Health check endpoint."""
    settings = container.settings
    logger.debug("health_check_requested")
    return {
        "status": "healthy",
        "environment": settings.environment,
        "llm_provider": settings.llm_provider,
        "embed_provider": settings.embed_provider,
        "chat_models": [m.model_id for m in container.chat_models],
    }


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


@router.post(APIEndpoints.CHAT_STREAM)
@limiter.limit(_chat_rate_limit)
async def chat_stream(
    request: Request,
    body: ChatRequest,
    container: ServiceContainer = Depends(get_container),
) -> StreamingResponse:
    """Stream a grounded answer as server-sent events.

    Each event is ``data: {json}``; the stream ends with ``data: [DONE]``.
    Failures after the stream has started arrive as an ``error`` event.
    """
    message = InputValidator.validate_message(body.message)
    room_name = InputValidator.validate_room_name(body.room_name)
    user_name = body.user_name.strip() or "Participant"

    logger.info(
        "chat_stream_requested",
        room_name=room_name,
        user_name=user_name,
        is_live_meeting=body.is_live_meeting,
    )
    events = container.conversation_service.stream_answer(
        message,
        room_name,
        user_name,
        live_transcript=body.current_transcripts,
        is_live_meeting=body.is_live_meeting,
    )
    return StreamingResponse(
        _sse(events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get(APIEndpoints.CHAT_HISTORY)
async def get_chat_history(
    room_name: str,
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Return the stored conversation for a room, oldest first."""
    room_name = InputValidator.validate_room_name(room_name)
    history = await container.conversation_service.get_history(room_name)
    return JSONResponse(
        content={
            "room_name": room_name,
            "messages": [m.model_dump(mode="json") for m in history],
        }
    )


@router.delete(APIEndpoints.CHAT_HISTORY)
async def clear_chat_history(
    room_name: str,
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    room_name = InputValidator.validate_room_name(room_name)
    await container.conversation_service.clear_history(room_name)
    logger.info("chat_history_cleared", room_name=room_name)
    return JSONResponse(content={"room_name": room_name, "cleared": True})


# ---------------------------------------------------------------------------
# Meeting processing
# ---------------------------------------------------------------------------


@router.post(APIEndpoints.MEETING_END)
async def end_meeting(
    room_name: str,
    body: EndMeetingRequest,
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Claim the meeting and process it in the background.

    Returns 202 once processing is scheduled, 404 for an unknown meeting
    and 409 when the meeting was already claimed.
    """
    room_name = InputValidator.validate_room_name(room_name)
    meeting_id = InputValidator.validate_non_empty_string(body.meeting_id, "meeting_id")

    result = await container.processing_orchestrator.process_immediately(
        meeting_id, room_name, body.transcripts, body.participants
    )
    if not result.success:
        if result.status is None:
            raise NotFoundError("Meeting", meeting_id)
        raise StatusConflictError(meeting_id, result.status.value, {"reason": result.message})

    logger.info("meeting_end_accepted", meeting_id=meeting_id, room_name=room_name)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=result.model_dump(mode="json"),
    )


@router.get(APIEndpoints.MEETING_STATUS)
async def get_meeting_status(
    meeting_id: str,
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Poll post-meeting processing status."""
    meeting = await container.metadata_store.get_meeting(meeting_id, include_transcripts=False)
    if meeting is None:
        raise NotFoundError("Meeting", meeting_id)

    body = meeting.model_dump(
        mode="json",
        include={
            "meeting_id",
            "room_name",
            "title",
            "processing_status",
            "transcript_count",
            "has_embeddings",
            "processing_started_at",
            "embeddings_generated_at",
            "summary_generated_at",
            "processing_completed_at",
            "processing_failed_at",
            "processing_error",
            "processing_note",
            "embedding_error",
            "embedding_error_at",
        },
    )
    body["has_summary"] = meeting.summary is not None
    return JSONResponse(content=body)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


async def _app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        "request_failed",
        path=request.url.path,
        error_code=exc.error_code,
        http_status=exc.http_status,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def _unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=handle_error(exc, scope=LogScope.API),
    )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Create the API.

    When *container* is None it is built from Settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            app.state.container = build_container(get_settings())
        logger.info("api_initialized", environment=app.state.container.settings.environment)
        yield
        await app.state.container.processing_orchestrator.wait_for_background()
        logger.info("api_shutdown")

    settings = container.settings if container is not None else get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=settings.app_description,
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(AppException, _app_exception_handler)
    app.add_exception_handler(Exception, _unexpected_exception_handler)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info"
    )
