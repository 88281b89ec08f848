"""Per-session orchestration of conversation turns."""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import aclosing
from dataclasses import dataclass

from moodmix.chat.confirmation import pending_confirmations
from moodmix.chat.processor import ToolCallProcessor
from moodmix.chat.sanitizer import sanitize
from moodmix.chat.state import TurnTrigger, transition
from moodmix.chat.stream import StreamMerger, result_event
from moodmix.exceptions import ConfirmationPendingError, ToolCallNotFoundError, TurnInProgressError
from moodmix.models.chat import Message, ToolDecision, ToolInvocationPart
from moodmix.models.events import OutputEvent, StreamError, StreamFinish
from moodmix.models.llm import ModelBackend
from moodmix.models.session import Session, SessionStatus
from moodmix.services.message_store import MessageStore
from moodmix.tools.registry import ToolsRegistry
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

SCHEDULED_TASK_PREFIX = "Running scheduled task: "


@dataclass(frozen=True)
class AgentConfig:
    """Settings for a conversation agent.

    Attributes:
        system_prompt: System prompt sent with every model step
        max_steps: Upper bound on model steps (tool round trips) per turn
        resume_after_confirmation: Start a new model turn once the last
            pending approval is resolved, instead of waiting for the next
            user message
    """

    system_prompt: str
    max_steps: int = 10
    resume_after_confirmation: bool = False


class ConversationAgent:
    """Owns one session's history and runs its turns one at a time."""

    def __init__(
        self,
        session: Session,
        config: AgentConfig,
        registry: ToolsRegistry,
        model: ModelBackend,
        store: MessageStore | None = None,
    ):
        self.session = session
        self.config = config
        self.registry = registry
        self.model = model
        self.store = store
        self.processor = ToolCallProcessor(registry)
        self.closed = False
        self._lock = asyncio.Lock()

        self.session.status = SessionStatus.SUSPENDED if self.pending_confirmations() else SessionStatus.IDLE

    @property
    def is_busy(self) -> bool:
        """Whether a turn is currently running."""
        return self._lock.locked()

    def pending_confirmations(self) -> list[ToolInvocationPart]:
        """Invocations anywhere in the history that are waiting for a decision."""
        return pending_confirmations(self.session.messages, self.registry)

    def check_can_accept_message(self, decisions: Iterable[ToolDecision] = ()) -> None:
        """Fail fast if a user message cannot start a turn right now.

        Raises:
            TurnInProgressError: If a turn is already running
            ToolCallNotFoundError: If a decision refers to a tool call that does not exist
            ConfirmationPendingError: If approvals are pending and not covered by ``decisions``
        """
        if self.is_busy:
            raise TurnInProgressError(self.session.session_id)

        decisions = list(decisions)
        for decision in decisions:
            self.check_decision(decision)

        decided = {d.tool_call_id for d in decisions} | set(self.session.queued_decisions)
        waiting = [p.tool_call_id for p in self.pending_confirmations() if p.tool_call_id not in decided]
        if waiting:
            raise ConfirmationPendingError(self.session.session_id, waiting)

    def check_decision(self, decision: ToolDecision) -> None:
        """Fail fast if a decision refers to a tool call that does not exist.

        While a turn is running the invocation may not have been streamed yet,
        so any id is accepted and queued.

        Raises:
            ToolCallNotFoundError: If no such invocation exists in the history
        """
        if self.is_busy:
            return
        if self.session.find_tool_invocation(decision.tool_call_id) is None:
            raise ToolCallNotFoundError(self.session.session_id, decision.tool_call_id)

    async def stream_user_message(
        self, text: str, decisions: Iterable[ToolDecision] = ()
    ) -> AsyncIterator[OutputEvent]:
        """Run a full turn for a new user message, streaming output events."""
        if self.is_busy:
            yield StreamError(error_text=str(TurnInProgressError(self.session.session_id)))
            yield StreamFinish(finish_reason="error")
            return

        async with self._lock:
            for decision in decisions:
                self.session.queue_decision(decision)
            for part in await self._resolve_decisions():
                yield result_event(part)

            waiting = self.pending_confirmations()
            if waiting:
                error = ConfirmationPendingError(self.session.session_id, [p.tool_call_id for p in waiting])
                logger.warning(str(error))
                yield StreamError(error_text=str(error))
                yield StreamFinish(finish_reason="awaiting-confirmation")
                return

            self.session.append_message(Message.from_text("user", text))
            self._advance(TurnTrigger.USER_MESSAGE)
            self.session.messages = sanitize(self.session.messages)
            self._advance(TurnTrigger.SANITIZED)

            async with aclosing(self._run_model_turn()) as events:
                async for event in events:
                    yield event

    async def stream_decision(self, decision: ToolDecision) -> AsyncIterator[OutputEvent]:
        """Apply an approve/reject decision and stream the resolution.

        Resolving an invocation that is already terminal replays its result
        without running anything again.
        """
        if self.is_busy:
            self.session.queue_decision(decision)
            yield StreamFinish(finish_reason="stop")
            return

        async with self._lock:
            located = self.session.find_tool_invocation(decision.tool_call_id)
            if located is None:
                error = ToolCallNotFoundError(self.session.session_id, decision.tool_call_id)
                yield StreamError(error_text=str(error))
                yield StreamFinish(finish_reason="error")
                return

            _, part = located
            if part.is_terminal:
                logger.info(f"Tool call {part.tool_call_id} already resolved, replaying result")
                yield result_event(part)
                yield StreamFinish(finish_reason="stop")
                return

            self.session.queue_decision(decision)
            resolved = await self._resolve_decisions()
            for resolved_part in resolved:
                yield result_event(resolved_part)
            await self._persist()

            if self.pending_confirmations():
                yield StreamFinish(finish_reason="awaiting-confirmation")
                return

            if resolved and self.config.resume_after_confirmation:
                logger.info(f"Session {self.session.session_id}: resuming model turn after confirmation")
                self._advance(TurnTrigger.RESUME)
                async with aclosing(self._run_model_turn()) as events:
                    async for event in events:
                        yield event
                return

            yield StreamFinish(finish_reason="stop")

    async def run_scheduled_task(self, description: str) -> Message:
        """Inject a scheduled reminder into the history without calling the model."""
        async with self._lock:
            message = Message.from_text("user", f"{SCHEDULED_TASK_PREFIX}{description}")
            self.session.append_message(message)
            await self._persist()
            logger.info(f"Session {self.session.session_id}: injected scheduled task '{description}'")
            return message

    def close(self) -> None:
        """Stop writing this session's history to the store."""
        self.closed = True

    async def _run_model_turn(self) -> AsyncIterator[OutputEvent]:
        history = list(self.session.messages)
        tools = self.registry.get_llm_tools()
        message = Message(role="assistant")
        merger = StreamMerger(message, self.registry, self.processor, decisions=self.session.queued_decisions)

        def open_step(in_progress: Message):
            step_history = [*history, in_progress] if in_progress.parts else history
            return self.model.stream(self.config.system_prompt, step_history, tools)

        logger.info(f"Session {self.session.session_id}: starting model turn over {len(history)} messages")
        self._advance(TurnTrigger.MODEL_STARTED)
        failed = False
        finish: StreamFinish | None = None
        try:
            async with aclosing(merger.run(open_step, self.config.max_steps)) as events:
                async for event in events:
                    if isinstance(event, StreamFinish):
                        finish = event
                        continue
                    if isinstance(event, StreamError):
                        failed = True
                    yield event
        finally:
            # Runs on normal completion, model failure and consumer cancellation alike
            self._finalize_turn(message, failed)
            await self._persist()

        # Decisions queued after the merger had already passed their invocation
        late = await self._resolve_decisions()
        for part in late:
            yield result_event(part)
        if late:
            await self._persist()

        suspended = finish is not None and finish.finish_reason == "awaiting-confirmation"
        if suspended and not self.pending_confirmations():
            if late and self.config.resume_after_confirmation:
                logger.info(f"Session {self.session.session_id}: resuming model turn after late confirmation")
                self._advance(TurnTrigger.RESUME)
                async with aclosing(self._run_model_turn()) as events:
                    async for event in events:
                        yield event
                return
            finish = StreamFinish(finish_reason="stop")

        yield finish or StreamFinish(finish_reason="error")

        # Decisions that arrived while the consumer was reading the finish event
        if self.session.queued_decisions and await self._resolve_decisions():
            await self._persist()

    def _finalize_turn(self, message: Message, failed: bool) -> None:
        if message.parts:
            self.session.append_message(message)
        else:
            logger.warning(f"Session {self.session.session_id}: model turn produced no content")

        if self.pending_confirmations():
            self._advance(TurnTrigger.TURN_SUSPENDED)
        elif failed:
            self._advance(TurnTrigger.TURN_FAILED)
        else:
            self._advance(TurnTrigger.TURN_COMPLETED)

    async def _resolve_decisions(self) -> list[ToolInvocationPart]:
        """Apply queued decisions to the invocations they refer to."""
        decisions = self.session.queued_decisions
        if not decisions:
            return []

        result = await self.processor.process(self.session.messages, decisions)
        resolved = list(result.resolved)

        # Decisions for invocations older than the most recent unresolved message
        for tool_call_id, decision in list(decisions.items()):
            located = self.session.find_tool_invocation(tool_call_id)
            if located is None:
                logger.warning(
                    f"Session {self.session.session_id}: dropping decision for unknown tool call {tool_call_id}"
                )
                self.session.take_decision(tool_call_id)
                continue
            _, part = located
            if not part.is_terminal and await self.processor.resolve_part(part, decision):
                resolved.append(part)
            if part.is_terminal:
                self.session.take_decision(tool_call_id)

        if self.session.status is SessionStatus.SUSPENDED and not self.pending_confirmations():
            self._advance(TurnTrigger.DECISIONS_RESOLVED)
        return resolved

    def _advance(self, trigger: TurnTrigger) -> None:
        previous = self.session.status
        self.session.status = transition(previous, trigger)
        logger.debug(f"Session {self.session.session_id}: {previous.value} -> {self.session.status.value} ({trigger})")

    async def _persist(self) -> None:
        if self.store is None or self.closed:
            return
        await self.store.save(self.session.session_id, self.session.messages)
