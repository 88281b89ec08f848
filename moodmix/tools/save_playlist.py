"""Save-to-library tool. Requires the user's approval before it runs."""

from pydantic import BaseModel, Field

from moodmix.services.library import PlaylistLibrary
from moodmix.tools.base import ToolDefinition


class SavePlaylistInput(BaseModel):
    """Input schema for saving a playlist to the user's library."""

    playlist_name: str = Field(..., min_length=1, max_length=100, description="Name to save the playlist under")
    songs: list[str] = Field(
        ...,
        min_length=1,
        max_length=50,
        description='Songs in playlist order, each as "Song - Artist"',
        examples=[["Bohemian Rhapsody - Queen", "Hotel California - Eagles"]],
    )


def create_save_playlist_tool(library: PlaylistLibrary) -> ToolDefinition:
    async def save_playlist_handler(params: SavePlaylistInput) -> str:
        playlist = await library.save_playlist(params.playlist_name, params.songs)
        return f"Saved playlist '{playlist.name}' with {len(playlist.songs)} songs to the library."

    return ToolDefinition(
        name="save_playlist",
        description=(
            "Save a playlist you have written out to the user's music library. "
            "The user is asked to approve this before it happens; only call it after they ask to keep a playlist."
        ),
        input_schema_class=SavePlaylistInput,
        on_approve=save_playlist_handler,
    )
