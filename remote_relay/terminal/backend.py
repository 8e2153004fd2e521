"""Terminal backend capability used by the injector.

Key names follow tmux conventions; backends that are not tmux translate
them to raw sequences.
"""

from abc import ABC, abstractmethod


class Key:
    """Named keys understood by every backend."""

    CLEAR_LINE = "C-u"
    EXECUTE = "C-m"
    ENTER = "Enter"
    INTERRUPT = "C-c"
    DOWN = "Down"
    UP = "Up"
    SPACE = "Space"


class TerminalBackend(ABC):
    """Create, drive and read named terminal sessions."""

    name: str = "terminal"

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether the backend program can be used on this machine."""

    @abstractmethod
    async def has_session(self, name: str) -> bool: ...

    @abstractmethod
    async def new_session(self, name: str, cwd: str, command: str) -> None:
        """Start command detached in a new session.

        Raises BackendCommandError when the session cannot be started.
        """

    @abstractmethod
    async def send_keys(self, name: str, keys: str, literal: bool = False) -> None:
        """Send a named key, or text when literal is True.

        Raises BackendCommandError on failure.
        """

    @abstractmethod
    async def capture(self, name: str) -> str:
        """Return the visible text of the session.

        Raises BackendCommandError on failure.
        """

    @abstractmethod
    async def kill_session(self, name: str) -> bool: ...

    @abstractmethod
    async def list_sessions(self) -> list[str]: ...
