"""Model stream events and client-facing output events."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from moodmix.models.chat import ToolError

# Events produced incrementally by a model backend, one step at a time.


class TextDelta(BaseModel):
    """A chunk of generated text."""

    type: Literal["text-delta"] = "text-delta"
    delta: str


class ToolCallStart(BaseModel):
    """The model started emitting a tool call."""

    type: Literal["tool-call-start"] = "tool-call-start"
    tool_call_id: str
    tool_name: str


class ToolCallDelta(BaseModel):
    """A fragment of a tool call's JSON-encoded input."""

    type: Literal["tool-call-delta"] = "tool-call-delta"
    tool_call_id: str
    input_delta: str


class ToolCallEnd(BaseModel):
    """The model finished a tool call.

    ``input`` is set when the backend already has the parsed arguments; otherwise
    the accumulated ``input_delta`` fragments are decoded.
    """

    type: Literal["tool-call-end"] = "tool-call-end"
    tool_call_id: str
    input: dict[str, Any] | None = None


class Finish(BaseModel):
    """The model finished the current step."""

    type: Literal["finish"] = "finish"
    finish_reason: str = "stop"


ModelEvent = Annotated[
    TextDelta | ToolCallStart | ToolCallDelta | ToolCallEnd | Finish,
    Field(discriminator="type"),
]

# Events emitted to the caller by the stream merger.

FinishReason = Literal["stop", "length", "awaiting-confirmation", "max-steps", "error"]


class StreamStart(BaseModel):
    """First event of every output stream."""

    type: Literal["start"] = "start"
    message_id: str


class TextChunk(BaseModel):
    """Text forwarded unchanged from the model."""

    type: Literal["text-delta"] = "text-delta"
    delta: str


class ToolInputAvailable(BaseModel):
    """A tool invocation was added to the assistant message."""

    type: Literal["tool-input-available"] = "tool-input-available"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]
    needs_confirmation: bool = False


class ToolOutputAvailable(BaseModel):
    """A tool invocation resolved successfully."""

    type: Literal["tool-output-available"] = "tool-output-available"
    tool_call_id: str
    output: Any


class ToolOutputError(BaseModel):
    """A tool invocation resolved with an error."""

    type: Literal["tool-output-error"] = "tool-output-error"
    tool_call_id: str
    error: ToolError


class StreamError(BaseModel):
    """The model or transport failed mid-stream."""

    type: Literal["error"] = "error"
    error_text: str


class StreamFinish(BaseModel):
    """Last event of every output stream."""

    type: Literal["finish"] = "finish"
    finish_reason: FinishReason


OutputEvent = Annotated[
    StreamStart | TextChunk | ToolInputAvailable | ToolOutputAvailable | ToolOutputError | StreamError | StreamFinish,
    Field(discriminator="type"),
]
