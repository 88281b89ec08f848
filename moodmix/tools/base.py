"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

ToolHandler = Callable[[BaseModel], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool available to the assistant.

    A tool with ``execute`` runs automatically as soon as the model calls it.
    A tool without one needs a human decision first; ``on_approve`` is what
    runs once the call is approved.
    """

    name: str
    description: str
    input_schema_class: type[BaseModel]
    execute: ToolHandler | None = None
    on_approve: ToolHandler | None = None

    @property
    def requires_confirmation(self) -> bool:
        """Whether calls to this tool must be approved before they run."""
        return self.execute is None

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)
