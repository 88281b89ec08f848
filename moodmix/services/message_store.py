"""Persistence for conversation histories."""

import asyncio
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter

from moodmix.models.chat import Message
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

_history_adapter = TypeAdapter(list[Message])


class MessageStore(Protocol):
    """Interface for storing message histories by session id."""

    async def load(self, session_id: str) -> list[Message] | None:
        """Load a history.

        Returns:
            The stored messages, or None if nothing was stored for this session
        """
        ...

    async def save(self, session_id: str, messages: list[Message]) -> None:
        """Replace the stored history for a session."""
        ...

    async def delete(self, session_id: str) -> bool:
        """Delete a stored history. Returns True if one existed."""
        ...


class InMemoryMessageStore:
    """Keeps histories in process memory."""

    def __init__(self):
        self._histories: dict[str, str] = {}

    async def load(self, session_id: str) -> list[Message] | None:
        raw = self._histories.get(session_id)
        if raw is None:
            return None
        return _history_adapter.validate_json(raw)

    async def save(self, session_id: str, messages: list[Message]) -> None:
        # Stored as JSON so later mutation of live messages cannot leak into the saved copy
        self._histories[session_id] = _history_adapter.dump_json(messages).decode()

    async def delete(self, session_id: str) -> bool:
        return self._histories.pop(session_id, None) is not None


class FileMessageStore:
    """Stores each history as a JSON file, so conversations survive restarts."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, session_id: str) -> Path:
        safe_id = "".join(ch for ch in session_id if ch.isalnum() or ch in "-_")
        if not safe_id:
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.directory / f"{safe_id}.json"

    async def load(self, session_id: str) -> list[Message] | None:
        path = self._path(session_id)
        raw = await asyncio.to_thread(self._read, path)
        if raw is None:
            return None
        logger.debug(f"Loaded history for session {session_id} from {path}")
        return _history_adapter.validate_json(raw)

    async def save(self, session_id: str, messages: list[Message]) -> None:
        payload = _history_adapter.dump_json(messages, indent=2)
        await asyncio.to_thread(self._write, self._path(session_id), payload)
        logger.debug(f"Saved {len(messages)} messages for session {session_id}")

    async def delete(self, session_id: str) -> bool:
        return await asyncio.to_thread(self._unlink, self._path(session_id))

    @staticmethod
    def _read(path: Path) -> bytes | None:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    @staticmethod
    def _write(path: Path, payload: bytes) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_bytes(payload)
        tmp_path.replace(path)

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
