"""Music recommendations tool."""

from pydantic import BaseModel, Field

from moodmix.tools.base import ToolDefinition
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

SONG_SUGGESTIONS = [
    "Based on your preferences, here are some recommendations:",
    "• Discover Weekly style suggestions",
    "• Similar artists to your favorites",
    "• New releases in your preferred genres",
    "• Hidden gems you might enjoy",
]
ARTIST_SUGGESTIONS = [
    "Artists you might like based on your taste",
    "Similar to your favorite artists",
    "Trending in your preferred genres",
]
PLAYLIST_SUGGESTIONS = [
    "Curated playlists matching your style",
    "Genre-specific collections",
    "Mood-based playlists",
]


class MusicRecommendationsInput(BaseModel):
    """Input schema for the recommendations tool."""

    genres: list[str] | None = Field(None, description="Preferred genres")
    artists: list[str] | None = Field(None, description="Favorite artists")
    mood: str | None = Field(None, description="Current mood")
    exclude_genres: list[str] | None = Field(None, description="Genres to avoid")


def format_recommendations(params: MusicRecommendationsInput) -> str:
    sections = [
        "Music recommendations based on your preferences:",
        "Songs: " + "\n".join(SONG_SUGGESTIONS),
        "Artists: " + "\n".join(ARTIST_SUGGESTIONS),
        "Playlists: " + "\n".join(PLAYLIST_SUGGESTIONS),
    ]
    if params.exclude_genres:
        sections.append(f"Avoiding: {', '.join(params.exclude_genres)}")
    return "\n\n".join(sections)


def create_recommendations_tool() -> ToolDefinition:
    async def recommendations_handler(params: MusicRecommendationsInput) -> str:  # noqa: RUF029
        logger.info(f"Getting recommendations for genres: {params.genres}, artists: {params.artists}")
        return format_recommendations(params)

    return ToolDefinition(
        name="get_music_recommendations",
        description="Get music recommendations based on user preferences and listening history",
        input_schema_class=MusicRecommendationsInput,
        execute=recommendations_handler,
    )
