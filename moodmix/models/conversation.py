"""HTTP request and response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from moodmix.models.chat import Message, ToolDecision, ToolInvocationPart


class ChatRequest(BaseModel):
    """Request model for the chat endpoint."""

    message: str = Field(..., min_length=1)
    session_id: str | None = None
    decisions: list[ToolDecision] = Field(default_factory=list)


class ConfirmationQueuedResponse(BaseModel):
    """Response when a decision arrives while a turn is still streaming."""

    tool_call_id: str
    session_id: str
    status: Literal["queued"] = "queued"


class ScheduleRequest(BaseModel):
    """Request model for scheduling a reminder."""

    description: str = Field(..., min_length=1, max_length=500)
    delay_seconds: float = Field(0.0, ge=0, le=7 * 24 * 3600)


class ScheduleResponse(BaseModel):
    """Response model for a scheduled task."""

    task_id: str
    session_id: str
    description: str
    run_at: datetime


class MessagesResponse(BaseModel):
    """Response model for the session history endpoint."""

    session_id: str
    status: str
    messages: list[Message]
    pending_confirmations: list[ToolInvocationPart]


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str


class ApiKeyCheckResponse(BaseModel):
    """Response model for the model credentials check."""

    success: bool
