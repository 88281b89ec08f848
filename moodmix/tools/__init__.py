"""Tools for the music assistant."""

from moodmix.tools.base import ToolDefinition
from moodmix.tools.registry import ToolsRegistry, create_default_registry

__all__ = ["ToolDefinition", "ToolsRegistry", "create_default_registry"]
