"""Model boundary types (provider-agnostic)."""

from collections.abc import AsyncIterator
from typing import Any, Protocol

from pydantic import BaseModel

from moodmix.models.chat import Message
from moodmix.models.events import ModelEvent


class LLMToolDefinition(BaseModel):
    """Tool definition as advertised to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


class ModelBackend(Protocol):
    """A model that streams one generation step at a time.

    Each call covers a single step: the backend never executes tools itself,
    it only reports tool calls through ``tool-call-*`` events and ends the step
    with a ``finish`` event.
    """

    def stream(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[LLMToolDefinition],
    ) -> AsyncIterator[ModelEvent]:
        """Stream events for one step over the given history."""
        ...
