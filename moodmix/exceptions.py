"""Custom exceptions for moodmix."""


class MoodmixError(Exception):
    """Base exception for moodmix."""

    pass


class ToolRegistrationError(MoodmixError):
    """A tool definition was rejected at registration time."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Cannot register tool '{tool_name}': {reason}")
        self.tool_name = tool_name
        self.reason = reason


class UnknownToolError(MoodmixError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class SessionError(MoodmixError):
    """Session-related errors."""

    def __init__(self, session_id: str, message: str):
        super().__init__(message)
        self.session_id = session_id


class TurnInProgressError(SessionError):
    """A turn is already running for this session."""

    def __init__(self, session_id: str):
        super().__init__(session_id, f"A turn is already in progress for session {session_id}")


class ConfirmationPendingError(SessionError):
    """The session is waiting on tool approvals and cannot take new messages."""

    def __init__(self, session_id: str, tool_call_ids: list[str]):
        super().__init__(
            session_id,
            f"Session {session_id} is awaiting confirmation for tool calls: {', '.join(tool_call_ids)}",
        )
        self.tool_call_ids = tool_call_ids


class ToolCallNotFoundError(SessionError):
    """No tool invocation with the given id exists in the session history."""

    def __init__(self, session_id: str, tool_call_id: str):
        super().__init__(session_id, f"Tool call {tool_call_id} not found in session {session_id}")
        self.tool_call_id = tool_call_id


class InvalidTransitionError(MoodmixError):
    """A session status transition is not allowed."""

    def __init__(self, status: str, trigger: str):
        super().__init__(f"Cannot apply '{trigger}' while session is '{status}'")
        self.status = status
        self.trigger = trigger


class ModelError(MoodmixError):
    """Model backend errors (connection, rate limit, malformed stream)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
