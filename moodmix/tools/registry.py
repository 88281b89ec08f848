"""Tools registry for managing assistant tools."""

from pydantic import BaseModel

from moodmix.exceptions import ToolRegistrationError, UnknownToolError
from moodmix.models.llm import LLMToolDefinition
from moodmix.services.library import PlaylistLibrary
from moodmix.tools.analyze_mood import create_analyze_mood_tool
from moodmix.tools.base import ToolDefinition
from moodmix.tools.create_playlist import create_playlist_tool
from moodmix.tools.recommendations import create_recommendations_tool
from moodmix.tools.save_playlist import create_save_playlist_tool
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Registry mapping tool names to their definitions.

    Populated at startup and read-only afterwards; lookups are by exact name.
    """

    def __init__(self, tools: list[ToolDefinition] | None = None):
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        if not tool.name:
            raise ToolRegistrationError(tool.name, "tool name must not be empty")
        if tool.name in self._tools:
            raise ToolRegistrationError(tool.name, "a tool with this name is already registered")
        if not (isinstance(tool.input_schema_class, type) and issubclass(tool.input_schema_class, BaseModel)):
            raise ToolRegistrationError(tool.name, "input schema must be a pydantic model class")
        if tool.execute is not None and tool.on_approve is not None:
            raise ToolRegistrationError(tool.name, "auto-executed tools cannot also have an approval handler")

        self._tools[tool.name] = tool
        mode = "confirmation required" if tool.requires_confirmation else "auto"
        logger.debug(f"Registered tool {tool.name} ({mode})")

    def get_tool(self, name: str) -> ToolDefinition:
        """Look up a tool by exact name."""
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def get_llm_tools(self) -> list[LLMToolDefinition]:
        """Tool definitions in the form advertised to the model."""
        return [
            LLMToolDefinition(name=tool.name, description=tool.description, input_schema=tool.get_json_schema())
            for tool in self._tools.values()
        ]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools


def create_default_registry(library: PlaylistLibrary) -> ToolsRegistry:
    """Build the registry with the music assistant's tools."""
    return ToolsRegistry(
        [
            create_playlist_tool(),
            create_analyze_mood_tool(),
            create_recommendations_tool(),
            create_save_playlist_tool(library),
        ]
    )
