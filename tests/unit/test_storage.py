"""Unit tests for session map document storage."""

import json

import pytest

from remote_relay.errors import PersistenceError
from remote_relay.sessions import JsonFileStorage, MemoryStorage


class TestJsonFileStorage:
    """Tests for JsonFileStorage."""

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "session-map.json")
        assert await storage.load() == {}

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path):
        """Saving creates parent directories and leaves no temp file behind."""
        path = tmp_path / "nested" / "session-map.json"
        storage = JsonFileStorage(path)

        await storage.save({"ABCD1234": {"cwd": "/p/api"}})

        assert await storage.load() == {"ABCD1234": {"cwd": "/p/api"}}
        assert json.loads(path.read_text()) == {"ABCD1234": {"cwd": "/p/api"}}
        assert [p.name for p in path.parent.iterdir()] == ["session-map.json"]

    @pytest.mark.asyncio
    async def test_corrupt_file_backed_up_and_reset(self, tmp_path):
        """Corrupt JSON is moved aside and reads as an empty map."""
        path = tmp_path / "session-map.json"
        path.write_text("{not json")
        storage = JsonFileStorage(path)

        assert await storage.load() == {}

        backups = list(tmp_path.glob("session-map.json.corrupt-*"))
        assert len(backups) == 1
        assert backups[0].read_text() == "{not json"
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_non_object_document_reset(self, tmp_path):
        path = tmp_path / "session-map.json"
        path.write_text("[1, 2, 3]")
        assert await JsonFileStorage(path).load() == {}
        assert list(tmp_path.glob("session-map.json.corrupt-*"))

    @pytest.mark.asyncio
    async def test_empty_file_is_empty(self, tmp_path):
        path = tmp_path / "session-map.json"
        path.write_text("  \n")
        assert await JsonFileStorage(path).load() == {}

    @pytest.mark.asyncio
    async def test_write_failure_raises(self, tmp_path):
        """A path whose parent is a file cannot be written."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        storage = JsonFileStorage(blocker / "session-map.json")

        with pytest.raises(PersistenceError):
            await storage.save({})


class TestMemoryStorage:
    """Tests for MemoryStorage."""

    @pytest.mark.asyncio
    async def test_load_returns_copy(self):
        """Mutating a loaded document does not change the stored one."""
        storage = MemoryStorage({"A": {"cwd": "/x"}})
        document = await storage.load()
        document["B"] = {}
        assert await storage.load() == {"A": {"cwd": "/x"}}
        assert storage.save_count == 0
