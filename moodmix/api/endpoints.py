"""API endpoints for the playlist chat service."""

import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse

from moodmix import __version__
from moodmix.chat.agent import ConversationAgent
from moodmix.clients.anthropic import has_api_key
from moodmix.exceptions import ConfirmationPendingError, ModelError, ToolCallNotFoundError, TurnInProgressError
from moodmix.models.chat import ToolDecision
from moodmix.models.conversation import (
    ApiKeyCheckResponse,
    ChatRequest,
    ConfirmationQueuedResponse,
    HealthResponse,
    MessagesResponse,
    ScheduleRequest,
    ScheduleResponse,
)
from moodmix.models.events import OutputEvent
from moodmix.services.chat import ChatService, get_chat_service
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def sse_event(event: OutputEvent) -> str:
    """Format an output event as a server-sent event."""
    data = event.model_dump(mode="json")
    return f"event: {data['type']}\ndata: {json.dumps(data)}\n\n"


async def _sse_stream(events: AsyncIterator[OutputEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield sse_event(event)


def _event_stream(events: AsyncIterator[OutputEvent], session_id: str) -> StreamingResponse:
    return StreamingResponse(
        _sse_stream(events),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Session-Id": session_id},
    )


async def _require_agent(service: ChatService, session_id: str) -> ConversationAgent:
    try:
        agent = await service.get_agent(session_id)
    except ModelError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if agent is None:
        logger.warning(f"Unknown session ID: {session_id}")
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return agent


@router.post("/chat", tags=["Chat"])
async def handle_chat(request: ChatRequest, service: ChatService = Depends(get_chat_service)) -> StreamingResponse:
    """Send a user message and stream the assistant's turn as server-sent events."""
    try:
        agent = await service.get_or_create_agent(request.session_id)
        service.validate_message(request.message)
        agent.check_can_accept_message(request.decisions)
    except (TurnInProgressError, ConfirmationPendingError) as e:
        logger.warning(f"Rejected message for session {e.session_id}: {e}")
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ToolCallNotFoundError as e:
        logger.warning(f"Rejected decision for session {e.session_id}: {e}")
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ModelError as e:
        logger.error(f"Model backend unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e)) from e
    except ValueError as e:
        logger.warning(f"Message validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    session_id = agent.session.session_id
    logger.info(f"Processing message for session {session_id}: {request.message[:50]}...")
    return _event_stream(agent.stream_user_message(request.message, request.decisions), session_id)


@router.post("/chat/{session_id}/confirmations", tags=["Chat"], response_model=None)
async def handle_confirmation(
    session_id: str, decision: ToolDecision, service: ChatService = Depends(get_chat_service)
) -> StreamingResponse | JSONResponse:
    """Approve or reject a tool call that is awaiting confirmation.

    While a turn is running the decision is queued and applied as soon as the
    tool call is available.
    """
    agent = await _require_agent(service, session_id)
    try:
        agent.check_decision(decision)
    except ToolCallNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    if agent.is_busy:
        agent.session.queue_decision(decision)
        queued = ConfirmationQueuedResponse(tool_call_id=decision.tool_call_id, session_id=session_id)
        return JSONResponse(status_code=202, content=queued.model_dump())

    logger.info(f"Applying {decision.decision} for tool call {decision.tool_call_id} in session {session_id}")
    return _event_stream(agent.stream_decision(decision), session_id)


@router.post("/chat/{session_id}/schedule", tags=["Chat"], status_code=202, response_model=ScheduleResponse)
async def schedule_task(
    session_id: str, request: ScheduleRequest, service: ChatService = Depends(get_chat_service)
) -> ScheduleResponse:
    """Schedule a reminder that is added to the conversation after a delay."""
    await _require_agent(service, session_id)
    task = service.schedule_task(session_id, request.description, request.delay_seconds)
    return ScheduleResponse(
        task_id=task.task_id,
        session_id=session_id,
        description=task.description,
        run_at=task.run_at,
    )


@router.get("/chat/{session_id}/messages", tags=["Chat"], response_model=MessagesResponse)
async def get_messages(session_id: str, service: ChatService = Depends(get_chat_service)) -> MessagesResponse:
    """Return a session's history and any tool calls awaiting confirmation."""
    agent = await _require_agent(service, session_id)
    return MessagesResponse(
        session_id=session_id,
        status=agent.session.status.value,
        messages=agent.session.messages,
        pending_confirmations=agent.pending_confirmations(),
    )


@router.delete("/chat/{session_id}", tags=["Chat"])
async def delete_session(session_id: str, service: ChatService = Depends(get_chat_service)) -> dict[str, bool]:
    """Delete a session and its stored history."""
    try:
        deleted = await service.delete_session(session_id)
    except TurnInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"success": True}


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )


@router.get("/check-api-key", response_model=ApiKeyCheckResponse, tags=["Health"])
async def check_api_key() -> ApiKeyCheckResponse:
    """Report whether model credentials are configured."""
    success = has_api_key()
    if not success:
        logger.warning("ANTHROPIC_API_KEY is not set")
    return ApiKeyCheckResponse(success=success)
