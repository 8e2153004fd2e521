"""Unit tests for the tmux backend with the subprocess layer mocked out."""

import shutil
import uuid
from unittest import mock

import pytest

from remote_relay.errors import BackendCommandError, ToolUnavailable
from remote_relay.terminal import TmuxBackend
from remote_relay.terminal.tmux import escape_literal


class _FakeProcess:
    def __init__(self, returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> None:
        self.returncode = returncode
        self._stdout = stdout
        self._stderr = stderr

    async def communicate(self):
        return self._stdout, self._stderr


def _patch_exec(*processes):
    calls = []
    queue = list(processes)

    async def fake_exec(*args, **kwargs):
        calls.append(args)
        return queue.pop(0) if len(queue) > 1 else queue[0]

    patcher = mock.patch("asyncio.create_subprocess_exec", side_effect=fake_exec)
    return patcher, calls


class TestEscapeLiteral:
    """Tests for escape_literal()."""

    def test_plain_text_unchanged(self):
        assert escape_literal("echo 'hi' && ls | wc -l") == "echo 'hi' && ls | wc -l"

    def test_trailing_semicolon_escaped(self):
        """tmux would treat a bare trailing ';' as a command separator."""
        assert escape_literal("ls;") == "ls\\;"

    def test_already_escaped_semicolon_keeps_its_backslash(self):
        """find's '\\;' terminator must reach the pane with its backslash."""
        assert escape_literal("find . -exec rm {} \\;") == "find . -exec rm {} \\\\;"


class TestTmuxBackend:
    """Tests for TmuxBackend command construction."""

    @pytest.mark.asyncio
    async def test_send_literal_text(self):
        patcher, calls = _patch_exec(_FakeProcess())
        with patcher:
            await TmuxBackend().send_keys("claude-api", "-rf $HOME;", literal=True)

        assert calls == [("tmux", "send-keys", "-t", "claude-api", "-l", "--", "-rf $HOME\\;")]

    @pytest.mark.asyncio
    async def test_send_named_key(self):
        patcher, calls = _patch_exec(_FakeProcess())
        with patcher:
            await TmuxBackend().send_keys("claude-api", "C-m")

        assert calls == [("tmux", "send-keys", "-t", "claude-api", "C-m")]

    @pytest.mark.asyncio
    async def test_failure_raises_backend_error(self):
        patcher, _ = _patch_exec(_FakeProcess(1, stderr=b"can't find session"))
        with patcher, pytest.raises(BackendCommandError) as exc_info:
            await TmuxBackend().capture("missing")

        assert "can't find session" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_new_session_passes_cwd_and_command(self):
        patcher, calls = _patch_exec(_FakeProcess())
        with patcher:
            await TmuxBackend().new_session("claude-api", "/p/api", "clauderun")

        assert calls == [("tmux", "new-session", "-d", "-s", "claude-api", "-c", "/p/api", "clauderun")]

    @pytest.mark.asyncio
    async def test_has_session(self):
        patcher, _ = _patch_exec(_FakeProcess(1))
        with patcher:
            assert await TmuxBackend().has_session("missing") is False

    @pytest.mark.asyncio
    async def test_list_sessions_without_server(self):
        patcher, _ = _patch_exec(_FakeProcess(1, stderr=b"no server running"))
        with patcher:
            assert await TmuxBackend().list_sessions() == []

    @pytest.mark.asyncio
    async def test_list_sessions(self):
        patcher, _ = _patch_exec(_FakeProcess(0, stdout=b"claude-api\nclaude-web\n"))
        with patcher:
            assert await TmuxBackend().list_sessions() == ["claude-api", "claude-web"]

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        with mock.patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("tmux")):
            with pytest.raises(ToolUnavailable):
                await TmuxBackend().has_session("s")

    @pytest.mark.asyncio
    async def test_current_session_outside_tmux(self, monkeypatch):
        monkeypatch.delenv("TMUX", raising=False)
        assert await TmuxBackend().current_session() is None


@pytest.mark.live
class TestTmuxBackendLive:
    """Round trips against a real tmux server."""

    @pytest.mark.asyncio
    async def test_session_lifecycle(self, tmp_path):
        if shutil.which("tmux") is None:
            pytest.skip("tmux is not installed")
        backend = TmuxBackend()
        name = f"relay-test-{uuid.uuid4().hex[:6]}"
        try:
            await backend.new_session(name, str(tmp_path), "sh")
            assert await backend.has_session(name)
            await backend.send_keys(name, "echo relay-ok", literal=True)
            await backend.send_keys(name, "Enter")
            assert name in await backend.list_sessions()
        finally:
            assert await backend.kill_session(name)
