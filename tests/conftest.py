"""Shared fixtures and a scripted model backend for tests."""

import json
from typing import Any

import pytest

from moodmix.chat.agent import AgentConfig, ConversationAgent
from moodmix.chat.processor import ToolCallProcessor
from moodmix.models.chat import Message
from moodmix.models.events import Finish, ModelEvent, TextDelta, ToolCallDelta, ToolCallEnd, ToolCallStart
from moodmix.models.session import Session
from moodmix.services.library import InMemoryPlaylistLibrary
from moodmix.services.message_store import InMemoryMessageStore
from moodmix.tools.registry import create_default_registry


class ScriptedModel:
    """Model backend that replays one pre-recorded event list per step.

    An ``Exception`` instance inside a step is raised at that point of the
    stream. Each call records the history it was given.
    """

    def __init__(self, steps: list[list[Any]] | None = None):
        self.steps = list(steps or [])
        self.calls: list[list[Message]] = []
        self.closed_streams = 0

    async def stream(self, system_prompt, messages, tools):
        self.calls.append([message.model_copy(deep=True) for message in messages])
        step = self.steps.pop(0) if self.steps else [TextDelta(delta="..."), Finish()]
        try:
            for event in step:
                if isinstance(event, Exception):
                    raise event
                yield event
        finally:
            self.closed_streams += 1


def text_step(text: str, finish_reason: str = "stop") -> list[ModelEvent]:
    """A step that streams ``text`` in two chunks and stops."""
    middle = len(text) // 2
    return [TextDelta(delta=text[:middle]), TextDelta(delta=text[middle:]), Finish(finish_reason=finish_reason)]


def tool_call(tool_call_id: str, tool_name: str, tool_input: dict[str, Any]) -> list[ModelEvent]:
    """Events for one tool call whose input streams in as two JSON fragments."""
    raw = json.dumps(tool_input)
    middle = len(raw) // 2
    return [
        ToolCallStart(tool_call_id=tool_call_id, tool_name=tool_name),
        ToolCallDelta(tool_call_id=tool_call_id, input_delta=raw[:middle]),
        ToolCallDelta(tool_call_id=tool_call_id, input_delta=raw[middle:]),
        ToolCallEnd(tool_call_id=tool_call_id),
    ]


def tool_step(
    tool_call_id: str, tool_name: str, tool_input: dict[str, Any], text: str | None = None
) -> list[ModelEvent]:
    """A step with optional leading text and a single tool call."""
    events: list[ModelEvent] = [TextDelta(delta=text)] if text else []
    return [*events, *tool_call(tool_call_id, tool_name, tool_input), Finish(finish_reason="tool-calls")]


PLAYLIST_INPUT = {"mood": "happy", "song_count": 5, "activity": "running"}
SAVE_INPUT = {"playlist_name": "Happy Vibes", "songs": ["Happy - Pharrell Williams", "Walking on Sunshine - Katrina"]}


@pytest.fixture
def library():
    """Fresh in-memory playlist library."""
    return InMemoryPlaylistLibrary()


@pytest.fixture
def registry(library):
    """Default tool registry backed by the test library."""
    return create_default_registry(library)


@pytest.fixture
def processor(registry):
    """Tool call processor over the default registry."""
    return ToolCallProcessor(registry)


@pytest.fixture
def store():
    """Fresh in-memory message store."""
    return InMemoryMessageStore()


@pytest.fixture
def make_agent(registry, store):
    """Factory for agents driven by a scripted model."""

    def _make(
        steps: list[list[Any]] | None = None,
        messages: list[Message] | None = None,
        resume_after_confirmation: bool = False,
        max_steps: int = 10,
    ) -> tuple[ConversationAgent, ScriptedModel]:
        model = ScriptedModel(steps)
        config = AgentConfig(
            system_prompt="You are a music assistant.",
            max_steps=max_steps,
            resume_after_confirmation=resume_after_confirmation,
        )
        session = Session(session_id="test-session", messages=list(messages or []))
        agent = ConversationAgent(session=session, config=config, registry=registry, model=model, store=store)
        return agent, model

    return _make


async def collect(events) -> list:
    """Drain an async event stream into a list."""
    return [event async for event in events]
