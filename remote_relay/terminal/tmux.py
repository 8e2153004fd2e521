"""tmux-backed terminal sessions."""

import asyncio
import os
import shutil
from typing import Optional

from loguru import logger

from remote_relay.errors import BackendCommandError, ToolUnavailable

from .backend import TerminalBackend

TMUX_INSTALL_HINT = "install tmux (e.g. brew install tmux / apt install tmux)"


def escape_literal(text: str) -> str:
    r"""Escape text so tmux delivers it verbatim as one send-keys argument.

    tmux treats an argument ending in ';' as a command separator and drops
    one backslash before it, so a trailing ';' always gains a backslash:
    'ls;' is sent as 'ls\;' and 'rm {} \;' as 'rm {} \\;'.
    """
    if text.endswith(";"):
        return text[:-1] + "\\;"
    return text


class TmuxBackend(TerminalBackend):
    """Drives the tmux CLI without a shell; every argument is passed as argv."""

    name = "tmux"

    def __init__(self, binary: str = "tmux", timeout: float = 10.0) -> None:
        self.binary = binary
        self.timeout = timeout

    async def _run(self, *args: str) -> tuple[int, str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolUnavailable(self.binary, TMUX_INSTALL_HINT) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise BackendCommandError(f"tmux {args[0]}", f"timed out after {self.timeout}s")

        return (
            process.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace").strip(),
        )

    async def _check(self, *args: str) -> str:
        returncode, stdout, stderr = await self._run(*args)
        if returncode != 0:
            raise BackendCommandError(f"tmux {args[0]}", stderr or f"exit code {returncode}")
        return stdout

    async def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    async def has_session(self, name: str) -> bool:
        returncode, _, _ = await self._run("has-session", "-t", name)
        return returncode == 0

    async def new_session(self, name: str, cwd: str, command: str) -> None:
        logger.info(f"Creating tmux session {name} in {cwd}: {command}")
        await self._check("new-session", "-d", "-s", name, "-c", cwd, command)

    async def send_keys(self, name: str, keys: str, literal: bool = False) -> None:
        if literal:
            await self._check("send-keys", "-t", name, "-l", "--", escape_literal(keys))
        else:
            await self._check("send-keys", "-t", name, keys)

    async def capture(self, name: str) -> str:
        return await self._check("capture-pane", "-t", name, "-p")

    async def kill_session(self, name: str) -> bool:
        returncode, _, stderr = await self._run("kill-session", "-t", name)
        if returncode != 0:
            logger.debug(f"tmux kill-session {name}: {stderr}")
        return returncode == 0

    async def list_sessions(self) -> list[str]:
        returncode, stdout, _ = await self._run("list-sessions", "-F", "#{session_name}")
        # A non-zero exit here means no tmux server is running
        if returncode != 0:
            return []
        return [line.strip() for line in stdout.splitlines() if line.strip()]

    async def current_session(self) -> Optional[str]:
        """Name of the tmux session this process runs in, if any."""
        if not os.environ.get("TMUX"):
            return None
        try:
            returncode, stdout, _ = await self._run("display-message", "-p", "#S")
        except (ToolUnavailable, BackendCommandError):
            return None
        if returncode != 0:
            return None
        return stdout.strip() or None
