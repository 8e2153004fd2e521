"""Pytest fixtures for remote relay tests."""

from typing import Optional, Union

import pytest

from remote_relay.config import InjectionTimeouts
from remote_relay.errors import BackendCommandError
from remote_relay.terminal import TerminalBackend


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run live integration tests that require a real tmux server",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: marks tests as live integration tests (require tmux)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --live flag is passed."""
    if config.getoption("--live"):
        return

    skip_live = pytest.mark.skip(reason="Need --live option to run live tests")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeBackend(TerminalBackend):
    """Scripted terminal backend.

    Screens are returned in order by capture(); the last one repeats. A
    BackendCommandError in the list is raised instead of returned.
    """

    name = "fake"

    def __init__(
        self,
        screens: Optional[list[Union[str, BackendCommandError]]] = None,
        available: bool = True,
        sessions: Optional[set[str]] = None,
        failing_commands: Optional[set[str]] = None,
        failing_keys: Optional[set[str]] = None,
    ) -> None:
        self.screens = list(screens or [""])
        self.available = available
        self.sessions = set(sessions or ())
        self.failing_commands = set(failing_commands or ())
        self.failing_keys = set(failing_keys or ())
        self.sent: list[tuple[str, str, bool]] = []
        self.created: list[tuple[str, str, str]] = []
        self.killed: list[str] = []
        self.capture_calls = 0

    @property
    def keys(self) -> list[str]:
        return [keys for _, keys, _ in self.sent]

    async def is_available(self) -> bool:
        return self.available

    async def has_session(self, name: str) -> bool:
        return name in self.sessions

    async def new_session(self, name: str, cwd: str, command: str) -> None:
        self.created.append((name, cwd, command))
        if command in self.failing_commands:
            raise BackendCommandError("new-session", f"{command}: not found")
        self.sessions.add(name)

    async def send_keys(self, name: str, keys: str, literal: bool = False) -> None:
        if keys in self.failing_keys:
            raise BackendCommandError("send-keys", "pane is dead")
        self.sent.append((name, keys, literal))

    async def capture(self, name: str) -> str:
        self.capture_calls += 1
        screen = self.screens.pop(0) if len(self.screens) > 1 else self.screens[0]
        if isinstance(screen, BackendCommandError):
            raise screen
        return screen

    async def kill_session(self, name: str) -> bool:
        self.killed.append(name)
        if name in self.sessions:
            self.sessions.discard(name)
            return True
        return False

    async def list_sessions(self) -> list[str]:
        return sorted(self.sessions)


@pytest.fixture
def fast_timeouts() -> InjectionTimeouts:
    """Injection timings with every delay set to zero."""
    return InjectionTimeouts(
        step_delay=0,
        key_delay=0,
        confirm_key_delay=0,
        settle=0,
        restart_pause=0,
        post_send_wait=0,
        confirm_interval=0,
        confirm_backoff=0,
        proceed_settle=0,
        question_render_delay=0,
        last_question_delay=0,
    )


@pytest.fixture
def audit_log(tmp_path):
    return tmp_path / "logs" / "injection.log"


@pytest.fixture
def make_backend():
    """Factory for scripted FakeBackend instances."""
    return FakeBackend
