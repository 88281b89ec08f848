"""Session status transitions."""

from enum import StrEnum

from moodmix.exceptions import InvalidTransitionError
from moodmix.models.session import SessionStatus


class TurnTrigger(StrEnum):
    """Things that move a session from one status to another."""

    USER_MESSAGE = "user_message"
    SANITIZED = "sanitized"
    RESUME = "resume"
    MODEL_STARTED = "model_started"
    TURN_COMPLETED = "turn_completed"
    TURN_SUSPENDED = "turn_suspended"
    DECISIONS_RESOLVED = "decisions_resolved"
    TURN_FAILED = "turn_failed"


_TRANSITIONS: dict[tuple[SessionStatus, TurnTrigger], SessionStatus] = {
    (SessionStatus.IDLE, TurnTrigger.USER_MESSAGE): SessionStatus.SANITIZING,
    (SessionStatus.SANITIZING, TurnTrigger.SANITIZED): SessionStatus.AWAITING_MODEL,
    (SessionStatus.IDLE, TurnTrigger.RESUME): SessionStatus.AWAITING_MODEL,
    (SessionStatus.AWAITING_MODEL, TurnTrigger.MODEL_STARTED): SessionStatus.STREAMING,
    (SessionStatus.STREAMING, TurnTrigger.TURN_COMPLETED): SessionStatus.IDLE,
    (SessionStatus.STREAMING, TurnTrigger.TURN_SUSPENDED): SessionStatus.SUSPENDED,
    (SessionStatus.SUSPENDED, TurnTrigger.DECISIONS_RESOLVED): SessionStatus.IDLE,
}

_ACTIVE = frozenset({SessionStatus.SANITIZING, SessionStatus.AWAITING_MODEL, SessionStatus.STREAMING})


def transition(status: SessionStatus, trigger: TurnTrigger) -> SessionStatus:
    """Return the status that follows ``status`` on ``trigger``.

    A failed turn always falls back to IDLE from any active status.

    Raises:
        InvalidTransitionError: If the trigger is not valid in this status
    """
    if trigger is TurnTrigger.TURN_FAILED and status in _ACTIVE:
        return SessionStatus.IDLE
    try:
        return _TRANSITIONS[(status, trigger)]
    except KeyError:
        raise InvalidTransitionError(status.value, trigger.value) from None
