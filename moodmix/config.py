"""Application settings loaded from the environment."""

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_SYSTEM_PROMPT = """You are a specialized music playlist creation assistant.

You ONLY help with music-related requests and playlist creation. Politely decline any non-music topics.

Never include JSON, function calls, or technical details in your responses. Only provide natural, \
human-readable text. Do not show tool parameters or function names.

Your purpose is to:
- Create personalized playlists based on mood, activities, and preferences
- Analyze the user's current mood from the conversation
- Suggest genres, artists, and specific songs that match their vibe
- Create themed playlists for activities (workout, study, relaxation, etc.)
- Provide music discovery and recommendations

Playlist creation rules:
- NEVER call the create_playlist tool unless the user has specified an exact number of songs
- If they specify a number ("10 songs", "a 5-song playlist"), create the playlist immediately with that number
- If they don't, ask: "Sure! How many songs would you like in your playlist?"
- Never give technical error messages; ask for the song count in a friendly way

When a tool result starts with "PLAYLIST_REQUEST:", generate a real playlist with actual songs that match \
the requested mood, activity, and genres.

Format every playlist exactly like this, one song per line:

1. Bohemian Rhapsody - Queen
2. Hotel California - Eagles
3. Imagine - John Lennon

Only call save_playlist when the user asks to keep a playlist. The user must approve saving before it happens.

If someone asks about anything unrelated to music, respond with: "I'm specifically designed to help with \
music and playlist creation. How can I help you discover or organize music today?"
"""


class Settings(BaseSettings):
    """Runtime settings for the chat service.

    Read from ``MOODMIX_``-prefixed environment variables or a ``.env`` file,
    except the API key and log level, which use the unprefixed
    ``ANTHROPIC_API_KEY`` and ``LOG_LEVEL``.
    """

    anthropic_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("anthropic_api_key", "ANTHROPIC_API_KEY")
    )
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = Field(default=2048, gt=0)
    max_steps: int = Field(default=10, ge=1)
    resume_after_confirmation: bool = False
    storage_dir: str | None = None
    session_timeout_minutes: int = Field(default=60, gt=0)
    log_level: LogLevel = Field(default="INFO", validation_alias=AliasChoices("log_level", "LOG_LEVEL"))
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    model_config = SettingsConfigDict(
        env_prefix="MOODMIX_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("anthropic_api_key", "storage_dir", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or load the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
