"""Unit tests for the file-based prompt bridge."""

import asyncio
import json
import os
import time

import pytest

from remote_relay.prompts import (
    TIMED_OUT,
    PendingPermission,
    PendingQuestion,
    PermissionResponse,
    PromptBridge,
    QuickPermissionResponse,
    generate_prompt_id,
)
from remote_relay.prompts.models import pending_from_dict, response_from_dict


@pytest.fixture
def bridge(tmp_path):
    return PromptBridge(prompts_dir=tmp_path, expiry_seconds=300, clock_ms=lambda: 1_000_000)


class TestRecords:
    """Tests for publishing and reading records."""

    def test_prompt_ids_are_hex(self):
        prompt_id = generate_prompt_id()
        assert len(prompt_id) == 8
        int(prompt_id, 16)

    @pytest.mark.asyncio
    async def test_publish_writes_pending_record(self, bridge, tmp_path):
        """The pending record uses the shared camelCase keys."""
        await bridge.publish(
            "p1",
            PendingPermission(
                workspace="api",
                tool_name="Bash",
                tool_input={"command": "ls"},
                terminal_session_name="claude-api",
            ),
        )

        data = json.loads((tmp_path / "pending-p1.json").read_text())
        assert data == {
            "type": "permission",
            "workspace": "api",
            "tmuxSession": "claude-api",
            "toolName": "Bash",
            "toolInput": {"command": "ls"},
            "createdAt": 1_000_000,
        }

    @pytest.mark.asyncio
    async def test_read_and_update_pending(self, bridge):
        await bridge.publish(
            "q1",
            PendingQuestion(
                workspace="api",
                question_text="Pick",
                option_texts=["a", "b"],
                multi_select=True,
                selected_options=[False, False],
            ),
        )

        updated = await bridge.update_pending("q1", selected_options=[True, False])
        reread = await bridge.read_pending("q1")

        assert updated.selected_options == [True, False]
        assert reread.selected_options == [True, False]
        assert reread.option_texts == ["a", "b"]

    @pytest.mark.asyncio
    async def test_update_missing_pending_is_noop(self, bridge):
        assert await bridge.update_pending("nope", selected_options=[]) is None

    @pytest.mark.asyncio
    async def test_unknown_type_is_unreadable(self, bridge, tmp_path):
        (tmp_path / "pending-x.json").write_text(json.dumps({"type": "mystery"}))
        assert await bridge.read_pending("x") is None

    def test_response_defaults_to_allow(self):
        """A response without an action is read as allow."""
        assert response_from_dict({}).action == "allow"

    def test_response_with_selected_option(self):
        response = response_from_dict({"action": "allow", "selectedOption": 2, "respondedAt": 5})
        assert response == QuickPermissionResponse(selected_option=2, responded_at=5)

    def test_unknown_permission_action_rejected(self):
        with pytest.raises(ValueError):
            PermissionResponse("maybe")

    def test_pending_from_dict_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            pending_from_dict({"type": "mystery"})


class TestAwaitResponse:
    """Tests for the pending/response rendezvous."""

    @pytest.mark.asyncio
    async def test_response_consumed_and_records_removed(self, bridge, tmp_path):
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))
        await bridge.supply_response("p1", PermissionResponse("deny"))

        response = await bridge.await_response("p1", poll_interval=0.01, timeout=1)

        assert response.action == "deny"
        assert response.responded_at == 1_000_000
        assert not (tmp_path / "pending-p1.json").exists()
        assert not (tmp_path / "response-p1.json").exists()

    @pytest.mark.asyncio
    async def test_response_arriving_while_waiting(self, bridge):
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))

        async def answer_later():
            await asyncio.sleep(0.05)
            await bridge.supply_response("p1", PermissionResponse("always"))

        waiter = asyncio.create_task(bridge.await_response("p1", poll_interval=0.01, timeout=2))
        await answer_later()

        assert (await waiter).action == "always"

    @pytest.mark.asyncio
    async def test_timeout_leaves_pending(self, bridge, tmp_path):
        """On timeout the sentinel is returned and the pending record survives."""
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))

        result = await bridge.await_response("p1", poll_interval=0.01, timeout=0.05)

        assert result is TIMED_OUT
        assert (tmp_path / "pending-p1.json").exists()

    @pytest.mark.asyncio
    async def test_consumed_at_most_once(self, bridge):
        """Two concurrent waiters never both receive the same response."""
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))
        await bridge.supply_response("p1", PermissionResponse("allow"))

        results = await asyncio.gather(
            bridge.await_response("p1", poll_interval=0.01, timeout=0.1),
            bridge.await_response("p1", poll_interval=0.01, timeout=0.1),
        )

        assert sum(result is not TIMED_OUT for result in results) == 1

    @pytest.mark.asyncio
    async def test_unreadable_response_is_a_missed_poll(self, bridge, tmp_path):
        (tmp_path / "response-p1.json").write_text("{partial")
        result = await bridge.await_response("p1", poll_interval=0.01, timeout=0.05)
        assert result is TIMED_OUT
        assert (tmp_path / "response-p1.json").read_text() == "{partial"

    @pytest.mark.asyncio
    async def test_partial_response_picked_up_once_complete(self, bridge, tmp_path):
        """A response written in two chunks is read after the second one lands."""
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))

        async def slow_writer():
            with open(tmp_path / "response-p1.json", "w") as f:
                f.write('{"action": ')
                f.flush()
                await asyncio.sleep(0.1)
                f.write('"deny"}')

        writer = asyncio.create_task(slow_writer())
        result = await bridge.await_response("p1", poll_interval=0.02, timeout=1)
        await writer

        assert result.action == "deny"
        assert sorted(os.listdir(tmp_path)) == []

    @pytest.mark.asyncio
    async def test_second_wait_after_consumption_times_out(self, bridge):
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))
        await bridge.supply_response("p1", PermissionResponse("allow"))

        first = await bridge.await_response("p1", poll_interval=0.01, timeout=0.5)
        second = await bridge.await_response("p1", poll_interval=0.01, timeout=0.05)

        assert first.action == "allow"
        assert second is TIMED_OUT

    @pytest.mark.asyncio
    async def test_response_without_pending_is_not_an_error(self, bridge, tmp_path):
        await bridge.supply_response("orphan", PermissionResponse("allow"))
        assert (tmp_path / "response-orphan.json").exists()
        assert (await bridge.read_response("orphan")).action == "allow"


class TestHousekeeping:
    """Tests for expiry and listing."""

    @pytest.mark.asyncio
    async def test_clean_expired_by_mtime(self, bridge, tmp_path):
        old = tmp_path / "pending-old.json"
        old.write_text("{}")
        stale = time.time() - 3600
        os.utime(old, (stale, stale))
        (tmp_path / "pending-new.json").write_text("{}")

        assert await bridge.clean_expired() == 1
        assert not old.exists()
        assert (tmp_path / "pending-new.json").exists()

    @pytest.mark.asyncio
    async def test_publish_collects_expired_records(self, bridge, tmp_path):
        old = tmp_path / "response-old.json"
        old.write_text("{}")
        stale = time.time() - 3600
        os.utime(old, (stale, stale))

        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))

        assert not old.exists()

    @pytest.mark.asyncio
    async def test_has_pending_for_workspace(self, bridge):
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))

        assert await bridge.has_pending_for_workspace("api")
        assert not await bridge.has_pending_for_workspace("web")

        await bridge.supply_response("p1", PermissionResponse("allow"))
        assert not await bridge.has_pending_for_workspace("api")

    @pytest.mark.asyncio
    async def test_list_pending_oldest_first(self, tmp_path):
        clock = iter([200, 100])
        bridge = PromptBridge(prompts_dir=tmp_path, clock_ms=lambda: next(clock))
        await bridge.publish("b", PendingPermission(workspace="api", tool_name="Bash"))
        await bridge.publish("a", PendingPermission(workspace="api", tool_name="Read"))

        assert [prompt_id for prompt_id, _ in await bridge.list_pending()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_clean_prompt(self, bridge, tmp_path):
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))
        await bridge.supply_response("p1", PermissionResponse("allow"))

        await bridge.clean_prompt("p1")

        assert list(tmp_path.iterdir()) == []
