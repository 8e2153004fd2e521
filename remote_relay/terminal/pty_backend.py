"""pexpect-backed terminal sessions for machines without tmux.

Each session is a child process on its own PTY. Output is drained on
demand and the last lines are kept as the session's "screen".
"""

import asyncio
import os
import re
import shlex
from collections import deque
from pathlib import Path
from typing import Optional

import pexpect
from loguru import logger

from remote_relay.errors import BackendCommandError

from .backend import Key, TerminalBackend

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07]*\x07|\x1b[()][AB012]")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

KEY_SEQUENCES = {
    Key.DOWN: "\x1b[B",
    Key.UP: "\x1b[A",
    Key.ENTER: "\r",
    Key.EXECUTE: "\r",
    Key.INTERRUPT: "\x03",
    Key.CLEAR_LINE: "\x15",
    Key.SPACE: " ",
}


def strip_ansi(text: str) -> str:
    return CONTROL_CHARS.sub("", ANSI_ESCAPE.sub("", text))


class PtyBackend(TerminalBackend):
    """Runs sessions as pexpect children inside this process."""

    name = "pty"

    def __init__(self, cols: int = 200, rows: int = 50, buffer_lines: int = 100) -> None:
        self.cols = cols
        self.rows = rows
        self.buffer_lines = buffer_lines
        self._children: dict[str, pexpect.spawn] = {}
        self._screens: dict[str, deque[str]] = {}
        self._partial: dict[str, str] = {}

    async def is_available(self) -> bool:
        return True

    async def has_session(self, name: str) -> bool:
        child = self._children.get(name)
        return child is not None and child.isalive()

    async def new_session(self, name: str, cwd: str, command: str) -> None:
        argv = shlex.split(command)
        if not argv:
            raise BackendCommandError("spawn", "empty command")

        env = os.environ.copy()
        env["TERM"] = "xterm-256color"
        env["COLUMNS"] = str(self.cols)
        env["LINES"] = str(self.rows)

        workdir = Path(cwd).expanduser()
        try:
            child = pexpect.spawn(
                argv[0],
                args=argv[1:],
                cwd=str(workdir),
                env=env,
                encoding="utf-8",
                codec_errors="replace",
                dimensions=(self.rows, self.cols),
            )
        except (pexpect.ExceptionPexpect, OSError) as e:
            raise BackendCommandError(f"spawn {argv[0]}", str(e)) from e

        self._children[name] = child
        self._screens[name] = deque(maxlen=self.buffer_lines)
        self._partial[name] = ""
        logger.info(f"Spawned PTY session {name} (pid={child.pid}) in {workdir}: {command}")

    def _child(self, name: str) -> pexpect.spawn:
        child = self._children.get(name)
        if child is None or not child.isalive():
            raise BackendCommandError("pty", f"no running session named {name}")
        return child

    async def send_keys(self, name: str, keys: str, literal: bool = False) -> None:
        child = self._child(name)
        data = keys if literal else KEY_SEQUENCES.get(keys, keys)
        try:
            child.send(data)
        except OSError as e:
            raise BackendCommandError("pty send", str(e)) from e

    def _drain(self, name: str) -> None:
        """Read whatever output is pending into the screen buffer."""
        child = self._children[name]
        chunks = []
        while True:
            try:
                chunks.append(child.read_nonblocking(size=4096, timeout=0))
            except (pexpect.TIMEOUT, pexpect.EOF):
                break
        if not chunks:
            return

        text = self._partial.get(name, "") + strip_ansi("".join(chunks))
        lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        self._partial[name] = lines.pop()
        self._screens[name].extend(lines)

    async def capture(self, name: str) -> str:
        if name not in self._children:
            raise BackendCommandError("pty capture", f"no session named {name}")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._drain, name)
        lines = list(self._screens[name])
        partial = self._partial.get(name)
        if partial:
            lines.append(partial)
        return "\n".join(lines[-self.buffer_lines :])

    async def kill_session(self, name: str) -> bool:
        child: Optional[pexpect.spawn] = self._children.pop(name, None)
        self._screens.pop(name, None)
        self._partial.pop(name, None)
        if child is None:
            return False
        if child.isalive():
            child.terminate(force=True)
        return True

    async def list_sessions(self) -> list[str]:
        return [name for name, child in self._children.items() if child.isalive()]
