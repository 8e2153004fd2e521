"""Unit tests for CallbackDispatcher."""

import pytest

from remote_relay.callbacks import NewProject
from remote_relay.dispatch import CallbackDispatcher, DispatchOutcome, option_keys, submit_keys
from remote_relay.prompts import (
    PendingPermission,
    PendingQuestion,
    PromptBridge,
    QuickPermissionResponse,
)
from remote_relay.terminal import InjectorSet, Key, TerminalInjector


@pytest.fixture
def bridge(tmp_path):
    return PromptBridge(prompts_dir=tmp_path)


@pytest.fixture
def backend(make_backend):
    return make_backend(sessions={"claude-api"})


@pytest.fixture
def dispatcher(bridge, backend, fast_timeouts, audit_log):
    injector = TerminalInjector(backend, timeouts=fast_timeouts, audit_log_path=audit_log)
    return CallbackDispatcher(bridge, InjectorSet({"tmux": injector}), timeouts=fast_timeouts)


def _question(**overrides) -> PendingQuestion:
    fields = dict(
        workspace="api",
        question_text="Pick one",
        option_texts=["red", "green", "blue"],
        terminal_session_name="claude-api",
        is_last=False,
    )
    fields.update(overrides)
    return PendingQuestion(**fields)


class TestKeySequences:
    def test_option_keys(self):
        assert option_keys(1) == [Key.ENTER]
        assert option_keys(3) == [Key.DOWN, Key.DOWN, Key.ENTER]

    def test_submit_keys_skip_other(self):
        """Selected options get Space; one extra Down passes the Other entry."""
        assert submit_keys([True, False, True], 3) == [
            Key.SPACE, Key.DOWN, Key.DOWN, Key.SPACE, Key.DOWN, Key.DOWN, Key.ENTER,
        ]


class TestPermission:
    """Tests for perm callbacks."""

    @pytest.mark.asyncio
    async def test_writes_response(self, dispatcher, bridge):
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))

        outcome = await dispatcher.dispatch("perm:p1:always")

        assert outcome == DispatchOutcome(True, "Always Allowed")
        assert (await bridge.read_response("p1")).action == "always"

    @pytest.mark.asyncio
    async def test_missing_prompt(self, dispatcher):
        assert (await dispatcher.dispatch("perm:gone:allow")).message == "Session not found"

    @pytest.mark.asyncio
    async def test_unknown_action_rejected(self, dispatcher, bridge):
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))

        outcome = await dispatcher.dispatch("perm:p1:maybe")

        assert outcome.ok is False
        assert await bridge.read_response("p1") is None

    @pytest.mark.asyncio
    async def test_empty_action_rejected(self, dispatcher, bridge):
        await bridge.publish("p1", PendingPermission(workspace="api", tool_name="Bash"))

        outcome = await dispatcher.dispatch("perm:p1:")

        assert outcome.ok is False
        assert await bridge.read_response("p1") is None

    @pytest.mark.asyncio
    async def test_invalid_callback(self, dispatcher):
        assert await dispatcher.dispatch("perm:p1") == DispatchOutcome(False, "Invalid callback")


class TestOptions:
    """Tests for opt and opt-submit callbacks."""

    @pytest.mark.asyncio
    async def test_single_select_injects_keys(self, dispatcher, bridge, backend, tmp_path):
        await bridge.publish("q1", _question())

        outcome = await dispatcher.dispatch("opt:q1:3")

        assert outcome.ok is True
        assert outcome.message == "Selected: blue"
        assert backend.keys == [Key.DOWN, Key.DOWN, Key.ENTER]
        assert await bridge.read_pending("q1") is None

    @pytest.mark.asyncio
    async def test_last_question_gets_extra_enter(self, dispatcher, bridge, backend):
        await bridge.publish("q1", _question(is_last=True))

        await dispatcher.dispatch("opt:q1:1")

        assert backend.keys == [Key.ENTER, Key.ENTER]

    @pytest.mark.asyncio
    async def test_option_out_of_range(self, dispatcher, bridge, backend):
        await bridge.publish("q1", _question())

        assert (await dispatcher.dispatch("opt:q1:9")).ok is False
        assert backend.keys == []

    @pytest.mark.asyncio
    async def test_multi_select_without_options_rejected(self, dispatcher, bridge, backend):
        await bridge.publish("q1", _question(option_texts=[], multi_select=True, selected_options=[]))

        outcome = await dispatcher.dispatch("opt:q1:1")

        assert outcome == DispatchOutcome(False, "Invalid option")
        assert backend.keys == []

    @pytest.mark.asyncio
    async def test_question_without_terminal_session(self, dispatcher, bridge):
        await bridge.publish("q1", _question(terminal_session_name=None))
        assert (await dispatcher.dispatch("opt:q1:1")).message == "Session not found"

    @pytest.mark.asyncio
    async def test_multi_select_toggles(self, dispatcher, bridge, backend):
        await bridge.publish("q1", _question(multi_select=True, selected_options=[False, False, False]))

        first = await dispatcher.dispatch("opt:q1:2")
        second = await dispatcher.dispatch("opt:q1:2")

        assert first.message == "[x] green"
        assert second.message == "[ ] green"
        assert (await bridge.read_pending("q1")).selected_options == [False, False, False]
        assert backend.keys == []
        assert second.buttons[-1][0].data == "opt-submit:q1"

    @pytest.mark.asyncio
    async def test_submit(self, dispatcher, bridge, backend):
        await bridge.publish("q1", _question(multi_select=True, selected_options=[True, False, True], is_last=True))

        outcome = await dispatcher.dispatch("opt-submit:q1")

        assert outcome.selected == ["red", "blue"]
        assert backend.keys == submit_keys([True, False, True], 3) + [Key.ENTER]
        assert await bridge.read_pending("q1") is None

    @pytest.mark.asyncio
    async def test_submit_with_nothing_selected(self, dispatcher, bridge, backend):
        await bridge.publish("q1", _question(multi_select=True, selected_options=[False, False, False]))

        assert (await dispatcher.dispatch("opt-submit:q1")).message == "No options selected"
        assert backend.keys == []


class TestQuickPermission:
    """Tests for qperm callbacks."""

    @pytest.mark.asyncio
    async def test_allows_then_answers(self, dispatcher, bridge, backend):
        await bridge.publish("q1", _question())

        outcome = await dispatcher.dispatch("qperm:q1:2")
        await dispatcher.wait_background()

        assert outcome.message == "Selected: green"
        response = await bridge.read_response("q1")
        assert response == QuickPermissionResponse(selected_option=2, responded_at=response.responded_at)
        assert backend.keys == [Key.DOWN, Key.ENTER]


class TestProjectCallbacks:
    """Tests for project callbacks."""

    @pytest.mark.asyncio
    async def test_forwarded_to_handler(self, bridge, backend, fast_timeouts, audit_log):
        seen = []

        async def handler(callback):
            seen.append(callback)
            return DispatchOutcome(True, "Starting")

        injector = TerminalInjector(backend, timeouts=fast_timeouts, audit_log_path=audit_log)
        dispatcher = CallbackDispatcher(bridge, InjectorSet({"tmux": injector}), project_handler=handler)

        assert (await dispatcher.dispatch("new:my:app")).message == "Starting"
        assert seen == [NewProject("my:app")]

    @pytest.mark.asyncio
    async def test_without_handler(self, dispatcher):
        assert (await dispatcher.dispatch("rp:api")).ok is False
