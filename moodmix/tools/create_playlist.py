"""Playlist creation tool."""

from pydantic import BaseModel, Field, field_validator

from moodmix.tools.base import ToolDefinition
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

DESCRIPTION = """Create a personalized music playlist based on mood, activity, and music preferences.

Only call this tool once the user has given an exact number of songs. If they have not,
ask "Sure! How many songs would you like in your playlist?" instead.

The result starts with PLAYLIST_REQUEST: and tells you which playlist to write out. Reply with
real songs that fit the request, one per line as "1. Song - Artist", and never show the raw
tool result to the user."""

MIN_SONGS = 1
MAX_SONGS = 50
INVALID_SONG_COUNT = f"Please specify a valid number of songs between {MIN_SONGS} and {MAX_SONGS}."


class CreatePlaylistInput(BaseModel):
    """Input schema for the playlist creation tool."""

    mood: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="The user's current mood (e.g., happy, sad, energetic, calm, angry, romantic)",
    )
    song_count: int = Field(..., description=f"Number of songs to include in the playlist ({MIN_SONGS}-{MAX_SONGS})")
    activity: str | None = Field(
        None,
        max_length=100,
        description="Activity the playlist is for (e.g., workout, study, relaxation, party, driving)",
    )
    genres: list[str] | None = Field(
        None, description="Preferred music genres (e.g., rock, pop, hip-hop, electronic, jazz)"
    )
    playlist_name: str | None = Field(None, max_length=100, description="Custom name for the playlist")

    @field_validator("mood")
    @classmethod
    def normalize_mood(cls, v: str) -> str:
        """Moods are matched case-insensitively."""
        if v.isspace():
            raise ValueError("Mood cannot be whitespace only")
        return v.strip().lower()


def default_playlist_name(mood: str, activity: str | None = None) -> str:
    """Build a name like "Happy Vibes for running"."""
    name = f"{mood[:1].upper()}{mood[1:]} Vibes"
    if activity:
        name += f" for {activity}"
    return name


def build_playlist_request(params: CreatePlaylistInput) -> str:
    """Render the instruction the model turns into an actual song list."""
    name = params.playlist_name or default_playlist_name(params.mood, params.activity)
    activity_text = f" perfect for {params.activity}" if params.activity else ""
    genres = ", ".join(params.genres) if params.genres else "various"
    return (
        f"PLAYLIST_REQUEST: Create a {params.song_count}-song {params.mood} playlist{activity_text}. "
        f"Name: {name}. Genres: {genres}. Generate real songs that match this mood and activity."
    )


def create_playlist_tool() -> ToolDefinition:
    async def create_playlist_handler(params: CreatePlaylistInput) -> str:  # noqa: RUF029
        if not MIN_SONGS <= params.song_count <= MAX_SONGS:
            logger.info(f"Song count {params.song_count} out of range, asking the user again")
            return INVALID_SONG_COUNT
        logger.info(f"Creating playlist with {params.song_count} songs for {params.mood} mood")
        return build_playlist_request(params)

    return ToolDefinition(
        name="create_playlist",
        description=DESCRIPTION,
        input_schema_class=CreatePlaylistInput,
        execute=create_playlist_handler,
    )
