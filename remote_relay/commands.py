"""Routing of inbound text commands to the right terminal session.

Accepted forms:
    /cmd <TOKEN> <command>    token or unique token prefix
    <TOKEN> <command>         8 alphanumerics, no prefix
    /<workspace> <command>    workspace name or unique prefix
    /use [workspace|clear]    show, set or clear the default workspace

Plain text goes to the workspace of the message it replies to, else to the
default workspace, when routing is configured.
"""

import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from remote_relay.sessions import (
    ResolveKind,
    ResolveResult,
    SessionEntry,
    SessionStore,
    WorkspaceRouting,
)
from remote_relay.sessions.routing import MessageId
from remote_relay.terminal import InjectionResult, InjectorSet

CMD_PATTERN = re.compile(r"^/cmd\s+(\S+)\s+(.+)$", re.DOTALL)
DIRECT_PATTERN = re.compile(r"^([A-Za-z0-9]{8})\s+(.+)$", re.DOTALL)
WORKSPACE_PATTERN = re.compile(r"^/(\S+)\s+(.+)$", re.DOTALL)
USE_PATTERN = re.compile(r"^/use(?:\s+(.*))?$", re.DOTALL)
CLEAR_WORDS = ("clear", "none")


@dataclass
class ParsedCommand:
    target: str
    command: str
    by_workspace: bool = False


@dataclass
class CommandOutcome:
    ok: bool
    message: str
    injection: Optional[InjectionResult] = None


def parse_command(text: str) -> Optional[ParsedCommand]:
    text = text.strip()
    match = CMD_PATTERN.match(text)
    if match:
        return ParsedCommand(match.group(1), match.group(2).strip())
    match = DIRECT_PATTERN.match(text)
    if match:
        return ParsedCommand(match.group(1).upper(), match.group(2).strip())
    match = WORKSPACE_PATTERN.match(text)
    # "@" marks messaging-client bot mentions, not workspaces
    if match and "@" not in match.group(1):
        return ParsedCommand(match.group(1), match.group(2).strip(), by_workspace=True)
    return None


class CommandRouter:
    def __init__(
        self,
        store: SessionStore,
        injectors: InjectorSet,
        routing: Optional[WorkspaceRouting] = None,
    ) -> None:
        self.store = store
        self.injectors = injectors
        self.routing = routing

    async def _resolve_token(self, token: str) -> ResolveResult:
        result = await self.store.resolve(token)
        if result.kind is ResolveKind.NONE and token != token.upper():
            result = await self.store.resolve(token.upper())
        return result

    async def handle(self, text: str, reply_to: Optional[MessageId] = None) -> Optional[CommandOutcome]:
        """Route text to a session.

        Args:
            text: Message text as received
            reply_to: Id of the message this one replies to, if any

        Returns:
            The outcome, or None when text is neither a command nor plain
            text that routing can place
        """
        text = text.strip()
        match = USE_PATTERN.match(text)
        if match:
            return await self.use((match.group(1) or "").strip() or None)

        parsed = parse_command(text)
        if parsed is None:
            if self.routing is None or not text or text.startswith("/"):
                return None
            return await self._route_plain_text(text, reply_to)

        if parsed.by_workspace:
            return await self.send_to_workspace(parsed.target, parsed.command)

        result = await self._resolve_token(parsed.target)
        if result.kind is ResolveKind.NONE:
            return CommandOutcome(False, f"No session found for token {parsed.target}.")
        return await self._send_to_match(result, parsed.command, by_workspace=False)

    async def send_to_workspace(self, workspace: str, command: str) -> CommandOutcome:
        result = await self.store.resolve_workspace(workspace)
        if result.kind is ResolveKind.NONE:
            return CommandOutcome(False, f"No active session for {workspace}.")
        return await self._send_to_match(result, command, by_workspace=True)

    async def _send_to_match(self, result: ResolveResult, command: str, by_workspace: bool) -> CommandOutcome:
        if result.kind is ResolveKind.AMBIGUOUS:
            names = ", ".join(m.workspace if by_workspace else m.token for m in result.matches)
            return CommandOutcome(False, f"Multiple matches: {names}. Be more specific.")

        entry = result.match.entry
        if entry.is_expired(self.store.clock()):
            return CommandOutcome(False, f"Session {result.match.token} has expired.")

        return await self.inject(entry, command)

    async def _route_plain_text(self, text: str, reply_to: Optional[MessageId]) -> Optional[CommandOutcome]:
        if reply_to is not None:
            workspace = await self.routing.workspace_for_message(reply_to)
            if workspace:
                return await self.send_to_workspace(workspace, text)

        workspace = await self.routing.get_default_workspace()
        if workspace:
            return await self.send_to_workspace(workspace, text)
        return CommandOutcome(False, "No default workspace. Use /use <workspace> to set one.")

    async def use(self, arg: Optional[str]) -> CommandOutcome:
        """Show (no arg), clear ("clear"/"none") or set the default workspace."""
        if self.routing is None:
            return CommandOutcome(False, "Workspace routing is not configured.")

        if not arg:
            current = await self.routing.get_default_workspace()
            if current:
                return CommandOutcome(True, f"Default workspace: {current}")
            return CommandOutcome(True, "No default workspace set.")

        if arg in CLEAR_WORDS:
            await self.routing.set_default_workspace(None)
            return CommandOutcome(True, "Default workspace cleared.")

        result = await self.store.resolve_workspace(arg)
        if result.kind is ResolveKind.NONE:
            return CommandOutcome(False, f"No active session for {arg}.")
        if result.kind is ResolveKind.AMBIGUOUS:
            names = ", ".join(m.workspace for m in result.matches)
            return CommandOutcome(False, f"Multiple matches: {names}. Be more specific.")

        await self.routing.set_default_workspace(result.workspace)
        return CommandOutcome(True, f"Default workspace set to {result.workspace}.")

    async def inject(self, entry: SessionEntry, command: str) -> CommandOutcome:
        injector = self.injectors.for_kind(entry.effective_session_type.value)
        injection = await injector.inject_full(
            entry.terminal_session_name, command, cwd=entry.working_directory or None
        )
        if not injection.success:
            return CommandOutcome(False, f"Command failed: {injection.error}", injection)

        logger.info(f"Command sent to {entry.workspace} ({entry.terminal_session_name}): {command[:80]!r}")
        return CommandOutcome(True, f"Sent to {entry.workspace}", injection)
