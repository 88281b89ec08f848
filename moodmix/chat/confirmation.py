"""Decides which tool invocations may run and which wait for a human."""

from enum import StrEnum

from moodmix.models.chat import Message, ToolInvocationPart
from moodmix.tools.registry import ToolsRegistry


class GateVerdict(StrEnum):
    """How a single tool invocation should be handled."""

    AUTO = "auto"
    RESOLVED = "resolved"
    AWAITING_APPROVAL = "awaiting_approval"
    UNKNOWN_TOOL = "unknown_tool"


def classify(part: ToolInvocationPart, registry: ToolsRegistry) -> GateVerdict:
    """Classify an invocation against the registry."""
    if part.is_terminal:
        return GateVerdict.RESOLVED
    if not registry.has_tool(part.tool_name):
        return GateVerdict.UNKNOWN_TOOL
    if registry.get_tool(part.tool_name).requires_confirmation:
        return GateVerdict.AWAITING_APPROVAL
    return GateVerdict.AUTO


def needs_confirmation(part: ToolInvocationPart, registry: ToolsRegistry) -> bool:
    """True iff the tool has no auto-executor and the call is not yet resolved."""
    return classify(part, registry) is GateVerdict.AWAITING_APPROVAL


def pending_confirmations(messages: list[Message], registry: ToolsRegistry) -> list[ToolInvocationPart]:
    """All invocations in the history that are waiting for a decision, oldest first."""
    return [
        part
        for message in messages
        for part in message.tool_invocations()
        if needs_confirmation(part, registry)
    ]
