"""Merges the model's event stream with tool execution into one output stream."""

import json
from collections.abc import AsyncIterator, Callable, MutableMapping
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from moodmix.chat.confirmation import needs_confirmation
from moodmix.chat.processor import ToolCallProcessor
from moodmix.models.chat import Message, TextPart, ToolDecision, ToolInvocationPart
from moodmix.models.events import (
    Finish,
    FinishReason,
    ModelEvent,
    OutputEvent,
    StreamError,
    StreamFinish,
    StreamStart,
    TextChunk,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    ToolInputAvailable,
    ToolOutputAvailable,
    ToolOutputError,
)
from moodmix.tools.registry import ToolsRegistry
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

OpenStep = Callable[[Message], AsyncIterator[ModelEvent]]


@dataclass
class _PendingCall:
    """A tool call whose input is still streaming in."""

    tool_name: str
    fragments: list[str] = field(default_factory=list)

    def decode_input(self) -> dict[str, Any] | None:
        raw = "".join(self.fragments).strip()
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None


def result_event(part: ToolInvocationPart) -> ToolOutputAvailable | ToolOutputError:
    """Output event announcing a resolved invocation."""
    if part.state == "output-error" and part.error is not None:
        return ToolOutputError(tool_call_id=part.tool_call_id, error=part.error)
    return ToolOutputAvailable(tool_call_id=part.tool_call_id, output=part.output)


class StreamMerger:
    """Builds one assistant message from a model turn while streaming it out.

    Text deltas are forwarded unchanged. Completed tool calls become parts of
    the assistant message and are resolved straight away when their tool has
    an auto-executor, so their results appear in the same stream. A call that
    needs confirmation suspends the turn: the current step is drained but no
    further model steps are requested.
    """

    def __init__(
        self,
        message: Message,
        registry: ToolsRegistry,
        processor: ToolCallProcessor,
        decisions: MutableMapping[str, ToolDecision] | None = None,
    ):
        self.message = message
        self.registry = registry
        self.processor = processor
        self.decisions = decisions if decisions is not None else {}
        self.suspended = False
        self.finish_reason: str | None = None
        self._text: list[str] = []
        self._calls: dict[str, _PendingCall] = {}
        self._step_tool_calls = 0

    async def run(self, open_step: OpenStep, max_steps: int) -> AsyncIterator[OutputEvent]:
        """Drive a whole turn, requesting model steps until it ends.

        A turn ends when a step produces no tool calls, when a call needs
        confirmation, when ``max_steps`` is reached, or when the model fails.
        """
        yield StreamStart(message_id=self.message.id)

        finish_reason: FinishReason = "stop"
        try:
            for step in range(1, max_steps + 1):
                logger.debug(f"Message {self.message.id}: model step {step}/{max_steps}")
                async with aclosing(self.merge(open_step(self.message))) as step_events:
                    async for event in step_events:
                        yield event

                if self.suspended:
                    finish_reason = "awaiting-confirmation"
                    break
                if not self._step_tool_calls:
                    finish_reason = "length" if self.finish_reason == "length" else "stop"
                    break
            else:
                logger.warning(f"Message {self.message.id}: reached max steps ({max_steps})")
                finish_reason = "max-steps"
        except Exception as e:
            logger.error(f"Model stream failed for message {self.message.id}: {e}", exc_info=True)
            yield StreamError(error_text=str(e))
            finish_reason = "error"

        yield StreamFinish(finish_reason=finish_reason)

    async def merge(self, events: AsyncIterator[ModelEvent]) -> AsyncIterator[OutputEvent]:
        """Merge a single model step into the output stream."""
        self.finish_reason = None
        self._step_tool_calls = 0
        try:
            async for event in events:
                if isinstance(event, TextDelta):
                    if event.delta:
                        self._text.append(event.delta)
                        yield TextChunk(delta=event.delta)
                elif isinstance(event, ToolCallStart):
                    self._close_text()
                    self._calls[event.tool_call_id] = _PendingCall(tool_name=event.tool_name)
                elif isinstance(event, ToolCallDelta):
                    call = self._calls.get(event.tool_call_id)
                    if call is None:
                        logger.warning(f"Input delta for unknown tool call {event.tool_call_id}")
                        continue
                    call.fragments.append(event.input_delta)
                elif isinstance(event, ToolCallEnd):
                    async for output in self._complete_call(event):
                        yield output
                elif isinstance(event, Finish):
                    self.finish_reason = event.finish_reason
        finally:
            self._close_text()
            self._abandon_calls()
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _complete_call(self, event: ToolCallEnd) -> AsyncIterator[OutputEvent]:
        call = self._calls.pop(event.tool_call_id, None)
        if call is None:
            logger.warning(f"Tool call {event.tool_call_id} ended without a start event")
            return

        self._step_tool_calls += 1
        raw_input = event.input if event.input is not None else call.decode_input()
        part = ToolInvocationPart(tool_name=call.tool_name, tool_call_id=event.tool_call_id, input=raw_input or {})
        self.message.parts.append(part)

        if raw_input is None:
            logger.warning(f"Tool call {part.tool_call_id} ({part.tool_name}) has malformed input")
            part.set_error("invalid-input", "Tool input was not a valid JSON object")
            yield ToolInputAvailable(tool_call_id=part.tool_call_id, tool_name=part.tool_name, input=part.input)
            yield result_event(part)
            return

        yield ToolInputAvailable(
            tool_call_id=part.tool_call_id,
            tool_name=part.tool_name,
            input=part.input,
            needs_confirmation=needs_confirmation(part, self.registry),
        )

        decision = self.decisions.pop(part.tool_call_id, None)
        if await self.processor.resolve_part(part, decision):
            yield result_event(part)
        elif needs_confirmation(part, self.registry):
            logger.info(f"Tool call {part.tool_call_id} ({part.tool_name}) needs confirmation, suspending turn")
            self.suspended = True

    def _close_text(self) -> None:
        if self._text:
            self.message.parts.append(TextPart(text="".join(self._text)))
            self._text = []

    def _abandon_calls(self) -> None:
        """Record tool calls cut off mid-input as unresolved invocations."""
        for tool_call_id, call in self._calls.items():
            logger.warning(f"Tool call {tool_call_id} ({call.tool_name}) was cut off before its input completed")
            part = ToolInvocationPart(
                tool_name=call.tool_name, tool_call_id=tool_call_id, input=call.decode_input() or {}
            )
            self.message.parts.append(part)
            if needs_confirmation(part, self.registry):
                self.suspended = True
        self._calls = {}
