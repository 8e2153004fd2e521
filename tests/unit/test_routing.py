"""Unit tests for the default workspace and reply-to routing."""

import pytest

from remote_relay.sessions import JsonFileStorage, MemoryStorage, WorkspaceRouting

NOW_MS = 1_700_000_000_000
HOUR_MS = 3600 * 1000


def _routing(messages: dict = None, clock=lambda: NOW_MS) -> WorkspaceRouting:
    return WorkspaceRouting(MemoryStorage(), MemoryStorage(messages), max_age_hours=24, clock_ms=clock)


class TestDefaultWorkspace:
    """Tests for get/set of the default workspace."""

    @pytest.mark.asyncio
    async def test_unset_by_default(self):
        assert await _routing().get_default_workspace() is None

    @pytest.mark.asyncio
    async def test_set_then_clear(self):
        routing = _routing()

        await routing.set_default_workspace("api")
        assert await routing.get_default_workspace() == "api"

        await routing.set_default_workspace(None)
        assert await routing.get_default_workspace() is None

    @pytest.mark.asyncio
    async def test_persisted_document_shape(self, tmp_path):
        path = tmp_path / "default-workspace.json"
        routing = WorkspaceRouting(JsonFileStorage(path), MemoryStorage())

        await routing.set_default_workspace("api")

        assert await JsonFileStorage(path).load() == {"workspace": "api"}


class TestMessageRouting:
    """Tests for notification message tracking."""

    @pytest.mark.asyncio
    async def test_tracked_message_resolves(self):
        routing = _routing()

        await routing.track_message(4242, "api", "question")

        assert await routing.workspace_for_message(4242) == "api"
        assert await routing.workspace_for_message("4242") == "api"
        assert await routing.workspace_for_message(1) is None

    @pytest.mark.asyncio
    async def test_old_messages_ignored(self):
        routing = _routing({"7": {"workspace": "api", "type": "question", "timestamp": NOW_MS - 25 * HOUR_MS}})
        assert await routing.workspace_for_message(7) is None

    @pytest.mark.asyncio
    async def test_old_messages_pruned_on_write(self):
        storage = MemoryStorage(
            {
                "1": {"workspace": "old", "type": "question", "timestamp": NOW_MS - 25 * HOUR_MS},
                "2": {"workspace": "web", "type": "question", "timestamp": NOW_MS - HOUR_MS},
                "3": "garbage",
            }
        )
        routing = WorkspaceRouting(MemoryStorage(), storage, max_age_hours=24, clock_ms=lambda: NOW_MS)

        await routing.track_message(4, "api", "new-session")

        document = await storage.load()
        assert set(document) == {"2", "4"}
        assert document["4"] == {"workspace": "api", "type": "new-session", "timestamp": NOW_MS}
