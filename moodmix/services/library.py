"""Playlist library service interface and implementations."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from moodmix.utils.ids import generate_id
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SavedPlaylist:
    """A playlist stored in the user's library."""

    id: str
    name: str
    songs: list[str]
    saved_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class PlaylistLibrary(Protocol):
    """Interface for playlist storage backends."""

    async def save_playlist(self, name: str, songs: list[str]) -> SavedPlaylist:
        """Store a playlist.

        Args:
            name: Playlist name
            songs: Song entries, typically "Title - Artist"

        Returns:
            The stored playlist
        """
        ...

    async def list_playlists(self) -> list[SavedPlaylist]:
        """Return all stored playlists, oldest first."""
        ...


class InMemoryPlaylistLibrary:
    """In-memory playlist library for development and tests."""

    def __init__(self):
        self._playlists: dict[str, SavedPlaylist] = {}

    async def save_playlist(self, name: str, songs: list[str]) -> SavedPlaylist:
        playlist = SavedPlaylist(id=generate_id(), name=name, songs=list(songs))
        self._playlists[playlist.id] = playlist
        logger.info(f"Saved playlist '{name}' with {len(songs)} songs as {playlist.id}")
        return playlist

    async def list_playlists(self) -> list[SavedPlaylist]:
        return sorted(self._playlists.values(), key=lambda playlist: playlist.saved_at)


playlist_library = InMemoryPlaylistLibrary()
