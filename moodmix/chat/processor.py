"""Executes, resolves or defers the tool invocations in a conversation."""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError

from moodmix.models.chat import Message, ToolDecision, ToolInvocationPart
from moodmix.tools.base import ToolHandler
from moodmix.tools.registry import ToolsRegistry
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

APPROVAL_ACKNOWLEDGEMENT = "User approved tool execution."
DENIAL_MESSAGE = "User denied access to tool execution."


@dataclass
class ProcessResult:
    """Messages after processing, plus the parts that changed state."""

    messages: list[Message]
    resolved: list[ToolInvocationPart] = field(default_factory=list)


class ToolCallProcessor:
    """Resolves tool invocations in place.

    Auto-executable tools run immediately, confirmation-required tools are
    resolved from an approve/reject decision, and calls still waiting for a
    decision are left untouched. Terminal parts are never touched again, so a
    call id is executed at most once.
    """

    def __init__(self, registry: ToolsRegistry):
        self.registry = registry

    async def process(
        self, messages: list[Message], decisions: Mapping[str, ToolDecision] | None = None
    ) -> ProcessResult:
        """Resolve the unresolved invocations of the most recent message that has any.

        Args:
            messages: Conversation history, modified in place
            decisions: External decisions keyed by tool call id

        Returns:
            The same message list and the parts resolved by this call, in part order
        """
        decisions = decisions or {}
        target = next((m for m in reversed(messages) if m.has_unresolved_tool_calls()), None)
        if target is None:
            return ProcessResult(messages=messages)

        resolved: list[ToolInvocationPart] = []
        for part in target.tool_invocations():
            if await self.resolve_part(part, decisions.get(part.tool_call_id)):
                resolved.append(part)

        logger.info(f"Processed message {target.id}: resolved {len(resolved)} tool calls")
        return ProcessResult(messages=messages, resolved=resolved)

    async def resolve_part(self, part: ToolInvocationPart, decision: ToolDecision | None = None) -> bool:
        """Resolve a single invocation if possible.

        Returns:
            True if the part moved to a terminal state
        """
        if part.is_terminal:
            return False

        if not self.registry.has_tool(part.tool_name):
            logger.error(f"Unknown tool requested: {part.tool_name}")
            part.set_error("unknown-tool", f"Unknown tool: {part.tool_name}")
            return True

        tool = self.registry.get_tool(part.tool_name)
        try:
            params = tool.parse_input(part.input)
        except ValidationError as e:
            logger.warning(f"Invalid input for {tool.name} ({part.tool_call_id}): {e.error_count()} errors")
            details = json.loads(e.json(include_url=False))
            part.set_error("validation", f"Invalid input for {tool.name}", details=details)
            return True

        if tool.execute is not None:
            await self._run_handler(part, tool.execute, params)
            return True

        if decision is None:
            logger.debug(f"Tool call {part.tool_call_id} ({tool.name}) is awaiting confirmation")
            return False

        if decision.decision == "reject":
            logger.info(f"Tool call {part.tool_call_id} ({tool.name}) was rejected")
            if decision.override_output is not None:
                part.set_output(decision.override_output)
            else:
                part.set_error("denied", DENIAL_MESSAGE)
            return True

        logger.info(f"Tool call {part.tool_call_id} ({tool.name}) was approved")
        if decision.override_output is not None:
            part.set_output(decision.override_output)
        elif tool.on_approve is not None:
            await self._run_handler(part, tool.on_approve, params)
        else:
            part.set_output(APPROVAL_ACKNOWLEDGEMENT)
        return True

    async def _run_handler(self, part: ToolInvocationPart, handler: ToolHandler, params: BaseModel) -> None:
        logger.debug(f"Executing tool {part.tool_name} with input: {part.input}")
        try:
            result = await handler(params)
        except Exception as e:
            logger.error(f"Tool {part.tool_name} failed: {e}", exc_info=True)
            part.set_error("execution", f"Error: {e!s}")
            return

        logger.debug(f"Tool {part.tool_name} succeeded: {str(result)[:100]}...")
        part.set_output(_to_output(result))


def _to_output(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result
