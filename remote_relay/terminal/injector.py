"""Keystroke injection into assistant terminal sessions.

An injection is three keystroke steps (clear the input line, type the
command literally, press execute) followed by a run of the confirmation
autopilot. Everything that touches one session happens under that
session's lock, so two injections into the same session never interleave.
"""

import asyncio
import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import aiofiles
import aiofiles.os
from loguru import logger

from remote_relay.config import InjectionTimeouts, config
from remote_relay.errors import (
    BackendCommandError,
    InjectionStepFailed,
    RelayError,
    SessionCreationFailed,
    ToolUnavailable,
)

from .autopilot import AutopilotResult, ConfirmationAutopilot
from .backend import Key, TerminalBackend


@dataclass
class InjectionResult:
    """Outcome of inject_full()."""

    success: bool
    session_name: str
    created_session: bool = False
    autopilot: Optional[AutopilotResult] = None
    error: Optional[str] = None


class TerminalInjector:
    def __init__(
        self,
        backend: TerminalBackend,
        timeouts: Optional[InjectionTimeouts] = None,
        autopilot: Optional[ConfirmationAutopilot] = None,
        audit_log_path: Optional[str | Path] = None,
        primary_launch_command: Optional[str] = None,
        fallback_launch_command: Optional[str] = None,
    ) -> None:
        self.backend = backend
        self.timeouts = timeouts or config.timeouts.injection
        self.autopilot = autopilot or ConfirmationAutopilot(backend, self.timeouts)
        self.audit_log_path = Path(audit_log_path or config.INJECTION_LOG_PATH).expanduser()
        self.primary_launch_command = primary_launch_command or config.PRIMARY_LAUNCH_COMMAND
        self.fallback_launch_command = fallback_launch_command or config.fallback_launch_command
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, session_name: str) -> asyncio.Lock:
        lock = self._locks.get(session_name)
        if lock is None:
            lock = self._locks[session_name] = asyncio.Lock()
        return lock

    async def check_available(self) -> None:
        """Raise ToolUnavailable when the backend cannot be used at all."""
        if not await self.backend.is_available():
            raise ToolUnavailable(self.backend.name, f"the {self.backend.name} backend is not installed")

    async def _create_session(self, session_name: str, cwd: str) -> None:
        try:
            await self.backend.new_session(session_name, cwd, self.primary_launch_command)
        except BackendCommandError as primary_error:
            logger.warning(
                f"Primary launch '{self.primary_launch_command}' failed for {session_name}: "
                f"{primary_error}; trying '{self.fallback_launch_command}'"
            )
            try:
                await self.backend.new_session(session_name, cwd, self.fallback_launch_command)
            except BackendCommandError as fallback_error:
                raise SessionCreationFailed(
                    session_name, str(primary_error), str(fallback_error)
                ) from fallback_error

        logger.info(f"Started session {session_name} in {cwd}, waiting for it to settle")
        await asyncio.sleep(self.timeouts.settle)

    async def _ensure_session(self, session_name: str, cwd: Optional[str]) -> bool:
        await self.check_available()
        if await self.backend.has_session(session_name):
            return False
        await self._create_session(session_name, cwd or os.getcwd())
        return True

    async def ensure_session(self, session_name: str, cwd: Optional[str] = None) -> bool:
        """Make sure session_name exists, creating it if needed.

        Args:
            session_name: Terminal session name
            cwd: Working directory for a new session (default: current directory)

        Returns:
            True when a new session was started

        Raises:
            ToolUnavailable: the backend is not installed
            SessionCreationFailed: both launch commands failed
        """
        async with self._lock_for(session_name):
            return await self._ensure_session(session_name, cwd)

    async def launch_session(self, session_name: str, cwd: str, command: str) -> bool:
        """Start session_name running command, unless it already exists.

        Used to resume a previous conversation; the primary and fallback
        launch commands do not apply.

        Args:
            session_name: Terminal session to create
            cwd: Working directory of the new session
            command: Full launch command line

        Returns:
            True when the session was started, False when it already existed

        Raises:
            ToolUnavailable: the backend is not installed
            BackendCommandError: the launch command failed
        """
        async with self._lock_for(session_name):
            await self.check_available()
            if await self.backend.has_session(session_name):
                return False
            await self.backend.new_session(session_name, cwd, command)
            logger.info(f"Launched {session_name} in {cwd}: {command}")
            await asyncio.sleep(self.timeouts.settle)
            return True

    async def _step(self, step: str, session_name: str, keys: str, literal: bool = False) -> None:
        try:
            await self.backend.send_keys(session_name, keys, literal=literal)
        except BackendCommandError as e:
            raise InjectionStepFailed(step, session_name, str(e)) from e

    async def _inject(self, session_name: str, command: str) -> AutopilotResult:
        logger.info(f"Injecting into {session_name}: {command[:80]!r}")
        await self._step("clear", session_name, Key.CLEAR_LINE)
        await asyncio.sleep(self.timeouts.step_delay)
        await self._step("send", session_name, command, literal=True)
        await asyncio.sleep(self.timeouts.step_delay)
        await self._step("execute", session_name, Key.EXECUTE)
        await asyncio.sleep(self.timeouts.post_send_wait)

        await self._log_injection(session_name, command)
        result = await self.autopilot.run(session_name)
        logger.info(
            f"Injection into {session_name} finished: {result.stop_reason.value} "
            f"after {result.attempts} attempt(s)"
        )
        return result

    async def inject(self, session_name: str, command: str) -> AutopilotResult:
        """Type command into an existing session and run the autopilot.

        Args:
            session_name: Target terminal session
            command: Text typed literally into the input line

        Returns:
            The autopilot result for the confirmations that followed

        Raises:
            InjectionStepFailed: naming the clear, send or execute step that failed
        """
        async with self._lock_for(session_name):
            return await self._inject(session_name, command)

    async def inject_full(
        self, session_name: str, command: str, cwd: Optional[str] = None
    ) -> InjectionResult:
        """Availability check, ensure_session and inject as one locked operation.

        Args:
            session_name: Target terminal session, created if missing
            command: Text typed literally into the input line
            cwd: Working directory used if the session has to be created

        Returns:
            InjectionResult; relay errors are reported in it instead of raised
        """
        async with self._lock_for(session_name):
            created = False
            try:
                created = await self._ensure_session(session_name, cwd)
                autopilot = await self._inject(session_name, command)
            except RelayError as e:
                logger.error(f"Injection into {session_name} failed: {e}")
                return InjectionResult(False, session_name, created, error=str(e))
        return InjectionResult(True, session_name, created, autopilot=autopilot)

    async def restart_session(self, session_name: str, cwd: Optional[str] = None) -> None:
        """Kill and recreate session_name. Not used by the autopilot."""
        async with self._lock_for(session_name):
            await self.check_available()
            if await self.backend.kill_session(session_name):
                logger.info(f"Killed session {session_name}")
            await asyncio.sleep(self.timeouts.restart_pause)
            await self._create_session(session_name, cwd or os.getcwd())

    async def send_key_sequence(
        self, session_name: str, keys: Sequence[str], delay: Optional[float] = None
    ) -> None:
        """Send named keys one by one, e.g. to pick an option in a question menu.

        Args:
            session_name: Target terminal session
            keys: Named keys such as Key.DOWN and Key.ENTER
            delay: Pause between keys (default: key_delay)

        Raises:
            InjectionStepFailed: for the first key that could not be sent
        """
        delay = self.timeouts.key_delay if delay is None else delay
        async with self._lock_for(session_name):
            for i, key in enumerate(keys):
                if i:
                    await asyncio.sleep(delay)
                await self._step(f"key {key}", session_name, key)

    async def capture(self, session_name: str) -> str:
        """Visible screen text of session_name. Raises BackendCommandError."""
        return await self.backend.capture(session_name)

    async def has_session(self, session_name: str) -> bool:
        return await self.backend.has_session(session_name)

    async def _log_injection(self, session_name: str, command: str) -> None:
        entry = {
            "timestamp": datetime.now().isoformat(),
            "command": command,
            "session": session_name,
            "processId": os.getpid(),
        }
        try:
            await aiofiles.os.makedirs(self.audit_log_path.parent, exist_ok=True)
            async with aiofiles.open(self.audit_log_path, "a", encoding="utf-8") as f:
                await f.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.warning(f"Could not write injection log {self.audit_log_path}: {e}")


class InjectorSet:
    """One injector per backend, keyed by backend name ("tmux", "pty").

    Sessions are routed to the backend that currently owns them, falling
    back to the default backend.
    """

    def __init__(self, injectors: dict[str, TerminalInjector], default: Optional[str] = None) -> None:
        if not injectors:
            raise ValueError("InjectorSet needs at least one injector")
        self.injectors = injectors
        self.default = default or next(iter(injectors))

    def for_kind(self, kind: Optional[str]) -> TerminalInjector:
        """Injector for a backend name; unknown or missing names get the default."""
        return self.injectors.get(kind or self.default, self.injectors[self.default])

    async def for_session(self, session_name: str) -> TerminalInjector:
        """Injector whose backend currently has session_name, else the default."""
        for injector in self.injectors.values():
            if await injector.has_session(session_name):
                return injector
        return self.injectors[self.default]
