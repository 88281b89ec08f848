"""Mood analysis tool."""

from pydantic import BaseModel, Field

from moodmix.services.mood import MoodAnalysis, detect_mood
from moodmix.tools.base import ToolDefinition
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)


class AnalyzeMoodInput(BaseModel):
    """Input schema for the mood analysis tool."""

    user_message: str = Field(..., min_length=1, description="The user's message to analyze for mood")


def format_mood_analysis(analysis: MoodAnalysis) -> str:
    return (
        f"Detected mood: {analysis.mood} ({analysis.confidence_percent}% confidence). "
        "The function suggests creating a playlist that matches this mood."
    )


def create_analyze_mood_tool() -> ToolDefinition:
    async def analyze_mood_handler(params: AnalyzeMoodInput) -> str:  # noqa: RUF029
        logger.info(f"Analyzing mood from message: {params.user_message[:50]}")
        return format_mood_analysis(detect_mood(params.user_message))

    return ToolDefinition(
        name="analyze_mood",
        description="Analyze the user's mood from their message to suggest appropriate music",
        input_schema_class=AnalyzeMoodInput,
        execute=analyze_mood_handler,
    )
