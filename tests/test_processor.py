"""Tests for the tool call processor."""

import pytest
from pydantic import BaseModel

from moodmix.chat.processor import APPROVAL_ACKNOWLEDGEMENT, DENIAL_MESSAGE, ToolCallProcessor
from moodmix.models.chat import Message, TextPart, ToolDecision, ToolInvocationPart
from moodmix.tools.base import ToolDefinition
from moodmix.tools.registry import ToolsRegistry

from conftest import PLAYLIST_INPUT, SAVE_INPUT


class EchoInput(BaseModel):
    value: str


def _message(*parts) -> Message:
    return Message(role="assistant", parts=list(parts))


def _call(tool_name: str, tool_call_id: str, tool_input: dict) -> ToolInvocationPart:
    return ToolInvocationPart(tool_name=tool_name, tool_call_id=tool_call_id, input=tool_input)


class TestAutoExecution:
    """Tests for tools that run without confirmation."""

    @pytest.mark.asyncio
    async def test_executes_auto_tool(self, processor):
        """Test that an auto tool runs and its output is recorded."""
        part = _call("create_playlist", "call-1", PLAYLIST_INPUT)
        messages = [Message.from_text("user", "5 happy songs for running"), _message(part)]

        result = await processor.process(messages)

        assert result.messages is messages
        assert result.resolved == [part]
        assert part.state == "output-available"
        assert part.output.startswith("PLAYLIST_REQUEST: Create a 5-song happy playlist perfect for running.")

    @pytest.mark.asyncio
    async def test_validation_error(self, processor):
        """Test that input failing the schema becomes a validation error and the tool does not run."""
        part = _call("create_playlist", "call-1", {"mood": "happy", "song_count": "lots"})

        await processor.process([_message(part)])

        assert part.state == "output-error"
        assert part.error.kind == "validation"
        assert part.error.details
        assert part.error.details[0]["loc"] == ["song_count"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, processor):
        """Test that calls to unregistered tools resolve with an unknown-tool error."""
        part = _call("delete_everything", "call-1", {})

        result = await processor.process([_message(part)])

        assert result.resolved == [part]
        assert part.error.kind == "unknown-tool"
        assert "delete_everything" in part.error.message

    @pytest.mark.asyncio
    async def test_executor_failure_is_captured(self):
        """Test that an exception from the executor becomes an execution error."""

        async def failing(params: EchoInput) -> str:
            raise RuntimeError("service unavailable")

        registry = ToolsRegistry([ToolDefinition("echo", "Echo", EchoInput, execute=failing)])
        part = _call("echo", "call-1", {"value": "x"})

        await ToolCallProcessor(registry).process([_message(part)])

        assert part.state == "output-error"
        assert part.error.kind == "execution"
        assert part.error.message == "Error: service unavailable"

    @pytest.mark.asyncio
    async def test_pydantic_output_is_dumped(self):
        """Test that model results are stored as plain data."""

        async def echo(params: EchoInput) -> EchoInput:
            return params

        registry = ToolsRegistry([ToolDefinition("echo", "Echo", EchoInput, execute=echo)])
        part = _call("echo", "call-1", {"value": "x"})

        await ToolCallProcessor(registry).process([_message(part)])

        assert part.output == {"value": "x"}

    @pytest.mark.asyncio
    async def test_executes_at_most_once(self):
        """Test that processing the same history twice does not run a tool again."""
        runs = []

        async def count(params: EchoInput) -> str:
            runs.append(params.value)
            return "ok"

        registry = ToolsRegistry([ToolDefinition("echo", "Echo", EchoInput, execute=count)])
        processor = ToolCallProcessor(registry)
        messages = [_message(_call("echo", "call-1", {"value": "x"}))]

        await processor.process(messages)
        second = await processor.process(messages)

        assert runs == ["x"]
        assert second.resolved == []

    @pytest.mark.asyncio
    async def test_resolves_in_part_order(self):
        """Test that calls in one message run in the order they appear."""
        runs = []

        async def record(params: EchoInput) -> str:
            runs.append(params.value)
            return params.value

        registry = ToolsRegistry([ToolDefinition("echo", "Echo", EchoInput, execute=record)])
        parts = [_call("echo", f"call-{i}", {"value": str(i)}) for i in range(3)]

        result = await ToolCallProcessor(registry).process([_message(TextPart(text="go"), *parts)])

        assert runs == ["0", "1", "2"]
        assert [p.tool_call_id for p in result.resolved] == ["call-0", "call-1", "call-2"]

    @pytest.mark.asyncio
    async def test_only_most_recent_unresolved_message(self, processor):
        """Test that older messages with unresolved calls are left alone."""
        older = _call("create_playlist", "call-1", PLAYLIST_INPUT)
        newer = _call("create_playlist", "call-2", PLAYLIST_INPUT)
        messages = [_message(older), Message.from_text("user", "more"), _message(newer)]

        result = await processor.process(messages)

        assert result.resolved == [newer]
        assert older.state == "input-available"

    @pytest.mark.asyncio
    async def test_no_unresolved_calls(self, processor):
        """Test that a history without unresolved calls is a no-op."""
        messages = [Message.from_text("user", "hi")]

        result = await processor.process(messages)

        assert result.resolved == []
        assert result.messages == messages


class TestConfirmation:
    """Tests for tools that need approval."""

    @pytest.mark.asyncio
    async def test_waits_without_decision(self, processor, library):
        """Test that a confirmation tool is left pending when no decision is given."""
        part = _call("save_playlist", "call-1", SAVE_INPUT)

        result = await processor.process([_message(part)])

        assert result.resolved == []
        assert part.state == "input-available"
        assert await library.list_playlists() == []

    @pytest.mark.asyncio
    async def test_approve_runs_approval_handler(self, processor, library):
        """Test that approving runs the tool's approval handler."""
        part = _call("save_playlist", "call-1", SAVE_INPUT)
        decisions = {"call-1": ToolDecision(tool_call_id="call-1", decision="approve")}

        result = await processor.process([_message(part)], decisions)

        assert result.resolved == [part]
        assert part.output == "Saved playlist 'Happy Vibes' with 2 songs to the library."
        playlists = await library.list_playlists()
        assert [p.name for p in playlists] == ["Happy Vibes"]

    @pytest.mark.asyncio
    async def test_approve_without_handler_acknowledges(self):
        """Test that approving a tool without an approval handler records the acknowledgement."""
        registry = ToolsRegistry([ToolDefinition("echo", "Echo", EchoInput)])
        part = _call("echo", "call-1", {"value": "x"})

        await ToolCallProcessor(registry).resolve_part(part, ToolDecision(tool_call_id="call-1", decision="approve"))

        assert part.output == APPROVAL_ACKNOWLEDGEMENT

    @pytest.mark.asyncio
    async def test_reject_records_denial(self, processor, library):
        """Test that rejecting resolves the call with a denied error and runs nothing."""
        part = _call("save_playlist", "call-1", SAVE_INPUT)

        resolved = await processor.resolve_part(part, ToolDecision(tool_call_id="call-1", decision="reject"))

        assert resolved is True
        assert part.state == "output-error"
        assert part.error.kind == "denied"
        assert part.error.message == DENIAL_MESSAGE
        assert await library.list_playlists() == []

    @pytest.mark.asyncio
    async def test_reject_with_override(self, processor):
        """Test that a rejection can carry a replacement output."""
        part = _call("save_playlist", "call-1", SAVE_INPUT)
        decision = ToolDecision(tool_call_id="call-1", decision="reject", override_output="Saved elsewhere")

        await processor.resolve_part(part, decision)

        assert part.state == "output-available"
        assert part.output == "Saved elsewhere"

    @pytest.mark.asyncio
    async def test_approve_with_override_skips_handler(self, processor, library):
        """Test that an override output replaces running the approval handler."""
        part = _call("save_playlist", "call-1", SAVE_INPUT)
        decision = ToolDecision(tool_call_id="call-1", decision="approve", override_output={"saved": False})

        await processor.resolve_part(part, decision)

        assert part.output == {"saved": False}
        assert await library.list_playlists() == []

    @pytest.mark.asyncio
    async def test_decision_for_resolved_call_is_ignored(self, processor, library):
        """Test that a second decision does not re-run a resolved call."""
        part = _call("save_playlist", "call-1", SAVE_INPUT)
        approve = ToolDecision(tool_call_id="call-1", decision="approve")

        assert await processor.resolve_part(part, approve) is True
        assert await processor.resolve_part(part, approve) is False

        assert len(await library.list_playlists()) == 1

    @pytest.mark.asyncio
    async def test_invalid_input_rejected_before_approval(self, processor, library):
        """Test that approval does not run the handler when input is invalid."""
        part = _call("save_playlist", "call-1", {"playlist_name": "Empty", "songs": []})

        await processor.resolve_part(part, ToolDecision(tool_call_id="call-1", decision="approve"))

        assert part.error.kind == "validation"
        assert await library.list_playlists() == []
