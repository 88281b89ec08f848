"""Conversation message and part models."""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from moodmix.utils.ids import generate_id

Role = Literal["user", "assistant", "system"]
ToolState = Literal["input-available", "output-available", "output-error"]
ToolErrorKind = Literal["validation", "execution", "unknown-tool", "invalid-input", "denied"]

TERMINAL_STATES: frozenset[str] = frozenset({"output-available", "output-error"})


class TextPart(BaseModel):
    """Plain text content. Never modified after it is appended to a message."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolError(BaseModel):
    """Structured error payload attached to a failed tool invocation."""

    kind: ToolErrorKind
    message: str
    details: list[dict[str, Any]] | None = None


class ToolInvocationPart(BaseModel):
    """A model-requested tool call and, once resolved, its result."""

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_name: str
    tool_call_id: str
    input: dict[str, Any] = Field(default_factory=dict)
    state: ToolState = "input-available"
    output: Any = None
    error: ToolError | None = None

    @property
    def is_terminal(self) -> bool:
        """Whether the invocation has a result (success or error)."""
        return self.state in TERMINAL_STATES

    def set_output(self, output: Any) -> None:
        """Mark the invocation as successfully resolved."""
        self.state = "output-available"
        self.output = output
        self.error = None

    def set_error(self, kind: ToolErrorKind, message: str, details: list[dict[str, Any]] | None = None) -> None:
        """Mark the invocation as failed."""
        self.state = "output-error"
        self.output = None
        self.error = ToolError(kind=kind, message=message, details=details)


Part = Annotated[TextPart | ToolInvocationPart, Field(discriminator="type")]


class MessageMetadata(BaseModel):
    """Metadata set once when a message is created."""

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Message(BaseModel):
    """One turn in a conversation."""

    id: str = Field(default_factory=generate_id)
    role: Role
    parts: list[Part] = Field(default_factory=list)
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)

    @classmethod
    def from_text(cls, role: Role, text: str) -> "Message":
        """Build a single-text-part message."""
        return cls(role=role, parts=[TextPart(text=text)])

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_invocations(self) -> list[ToolInvocationPart]:
        """Tool invocation parts in insertion order."""
        return [part for part in self.parts if isinstance(part, ToolInvocationPart)]

    def has_unresolved_tool_calls(self) -> bool:
        """Whether any tool invocation in this message is still input-available."""
        return any(not part.is_terminal for part in self.tool_invocations())


class ToolDecision(BaseModel):
    """An external approve/reject decision for a confirmation-required tool call."""

    tool_call_id: str
    decision: Literal["approve", "reject"]
    override_output: Any = None
