"""Whole-document storage backends for the session map."""

import json
import time
from pathlib import Path
from typing import Any, Protocol

import aiofiles
import aiofiles.os
from loguru import logger

from remote_relay.errors import PersistenceError


class DocumentStorage(Protocol):
    """Loads and saves one JSON object as a whole."""

    async def load(self) -> dict[str, Any]: ...

    async def save(self, document: dict[str, Any]) -> None: ...


class MemoryStorage:
    """In-memory document storage, used by tests and embedded callers."""

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        self._raw = json.dumps(document or {})
        self.save_count = 0

    async def load(self) -> dict[str, Any]:
        return json.loads(self._raw)

    async def save(self, document: dict[str, Any]) -> None:
        self._raw = json.dumps(document)
        self.save_count += 1


class JsonFileStorage:
    """Stores a JSON object in a single file.

    A missing file reads as an empty document. A corrupt file is moved aside
    to ``<name>.corrupt-<ms>`` and the document resets to empty, so one bad
    write never takes the relay down.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    async def load(self) -> dict[str, Any]:
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise PersistenceError(str(self.path), str(e)) from e

        if not raw.strip():
            return {}

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            await self._backup_corrupt(str(e))
            return {}

        if not isinstance(document, dict):
            await self._backup_corrupt(f"expected a JSON object, got {type(document).__name__}")
            return {}
        return document

    async def save(self, document: dict[str, Any]) -> None:
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(document, indent=2))
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(str(self.path), str(e)) from e

    async def _backup_corrupt(self, reason: str) -> None:
        backup = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time() * 1000)}")
        try:
            await aiofiles.os.replace(self.path, backup)
            logger.warning(f"Corrupt document at {self.path} ({reason}); moved to {backup}")
        except OSError as e:
            logger.warning(f"Corrupt document at {self.path} ({reason}); backup failed: {e}")
