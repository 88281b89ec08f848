"""Session and state management models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from moodmix.models.chat import Message, ToolDecision, ToolInvocationPart
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)


class SessionStatus(StrEnum):
    """Lifecycle of a conversation session."""

    IDLE = "idle"
    SANITIZING = "sanitizing"
    AWAITING_MODEL = "awaiting_model"
    STREAMING = "streaming"
    SUSPENDED = "suspended"


@dataclass
class Session:
    """Conversation state for a single session id."""

    session_id: str
    messages: list[Message] = field(default_factory=list)
    status: SessionStatus = SessionStatus.IDLE
    queued_decisions: dict[str, ToolDecision] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict[str, Any]:
        """Return a summary of the session as a dictionary."""
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "message_count": len(self.messages),
            "queued_decisions": list(self.queued_decisions),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)

    def append_message(self, message: Message) -> None:
        """Append a message to the history."""
        logger.debug(f"Session {self.session_id}: appending {message.role} message {message.id}")
        self.messages.append(message)
        self.update_activity()

    def find_tool_invocation(self, tool_call_id: str) -> tuple[Message, ToolInvocationPart] | None:
        """Locate a tool invocation by id across the full history, newest first."""
        for message in reversed(self.messages):
            for part in message.tool_invocations():
                if part.tool_call_id == tool_call_id:
                    return message, part
        return None

    def queue_decision(self, decision: ToolDecision) -> None:
        """Hold a decision until its invocation can be resolved."""
        logger.info(f"Session {self.session_id}: queueing {decision.decision} for {decision.tool_call_id}")
        self.queued_decisions[decision.tool_call_id] = decision
        self.update_activity()

    def take_decision(self, tool_call_id: str) -> ToolDecision | None:
        """Remove and return a queued decision."""
        return self.queued_decisions.pop(tool_call_id, None)
