"""Token to terminal session mapping and resolution.

The session map is one JSON document that is always rewritten as a whole.
Access inside one process is serialized with an asyncio.Lock. Writers in
different processes are NOT coordinated: the last write wins.
"""

import asyncio
import dataclasses
import secrets
from typing import Any, Callable, Optional

from loguru import logger

from remote_relay.config import config

from .models import (
    ActiveSession,
    ResolveKind,
    ResolveResult,
    SessionEntry,
    SessionMatch,
    SessionType,
    format_age,
    now_seconds,
    workspace_name,
)
from .storage import DocumentStorage, JsonFileStorage


def generate_token() -> str:
    """Generate an 8-character upper-case hex session token."""
    return secrets.token_hex(4).upper()


class SessionStore:
    """Owns the persisted token -> SessionEntry map."""

    def __init__(
        self,
        storage: Optional[DocumentStorage] = None,
        session_timeout_hours: Optional[int] = None,
        clock: Callable[[], int] = now_seconds,
    ) -> None:
        self.storage = storage or JsonFileStorage(config.session_map_path)
        self.session_timeout_hours = session_timeout_hours or config.SESSION_TIMEOUT_HOURS
        self.clock = clock
        self._lock = asyncio.Lock()
        # Raw entries that failed to parse, written back untouched on save
        self._unparsed: dict[str, Any] = {}

    async def _load(self) -> dict[str, SessionEntry]:
        """Load the map, setting aside entries that do not parse.

        They are written back unchanged by _save() so an unrelated write
        never drops them.
        """
        document = await self.storage.load()
        sessions: dict[str, SessionEntry] = {}
        self._unparsed = {}
        for token, data in document.items():
            if not isinstance(data, dict):
                logger.warning(f"Ignoring malformed session entry {token!r}")
                self._unparsed[token] = data
                continue
            try:
                sessions[token] = SessionEntry.from_dict(token, data)
            except (TypeError, ValueError) as e:
                logger.warning(f"Ignoring invalid session entry {token!r}: {e}")
                self._unparsed[token] = data
        return sessions

    async def _save(self, sessions: dict[str, SessionEntry]) -> None:
        document = {token: data for token, data in self._unparsed.items() if token not in sessions}
        document.update({token: entry.to_dict() for token, entry in sessions.items()})
        await self.storage.save(document)

    async def load_all(self) -> dict[str, SessionEntry]:
        """Return a snapshot of the whole map, expired entries included."""
        async with self._lock:
            return await self._load()

    async def get(self, token: str) -> Optional[SessionEntry]:
        """Look up an entry by its exact token.

        Args:
            token: Full session token.

        Returns:
            The entry, or None when no parseable entry has that token.
        """
        async with self._lock:
            return (await self._load()).get(token)

    async def put(self, token: str, entry: SessionEntry) -> SessionEntry:
        """Insert or replace the entry stored under token.

        Args:
            token: Key to store the entry under; overrides entry.token.
            entry: Session entry to persist.

        Returns:
            The stored entry.
        """
        if entry.token != token:
            entry = dataclasses.replace(entry, token=token)
        async with self._lock:
            sessions = await self._load()
            sessions[token] = entry
            await self._save(sessions)
        return entry

    async def remove(self, token: str) -> bool:
        """Delete the entry stored under token, parseable or not.

        Returns:
            True if an entry was removed, False if the token was unknown.
        """
        async with self._lock:
            sessions = await self._load()
            found = sessions.pop(token, None) is not None
            found = self._unparsed.pop(token, None) is not None or found
            if not found:
                return False
            await self._save(sessions)
        return True

    async def resolve(self, token: str) -> ResolveResult:
        """Resolve a full or abbreviated token to a session.

        An exact key wins even when the session has expired or the token is
        also a prefix of other keys. Prefix matching only considers live
        sessions and is case-sensitive.

        Args:
            token: Full token or token prefix

        Returns:
            ResolveResult of kind EXACT, PREFIX, AMBIGUOUS (every live match
            listed) or NONE
        """
        if not token:
            return ResolveResult.none()

        async with self._lock:
            sessions = await self._load()

        exact = sessions.get(token)
        if exact is not None:
            return ResolveResult(
                kind=ResolveKind.EXACT,
                match=SessionMatch(workspace=exact.workspace, token=token, entry=exact),
            )

        now = self.clock()
        matches = [
            SessionMatch(workspace=entry.workspace, token=key, entry=entry)
            for key, entry in sessions.items()
            if key.startswith(token) and not entry.is_expired(now)
        ]

        if not matches:
            return ResolveResult.none()
        if len(matches) == 1:
            return ResolveResult(kind=ResolveKind.PREFIX, match=matches[0])
        return ResolveResult(kind=ResolveKind.AMBIGUOUS, matches=matches)

    async def upsert(
        self,
        cwd: str,
        terminal_session_name: str,
        status: str,
        assistant_session_id: Optional[str] = None,
        session_type: Optional[SessionType] = None,
    ) -> SessionEntry:
        """Register or refresh the session for a cwd + terminal session pair.

        A live entry for the same pair keeps its token and createdAt; its
        expiry is pushed forward by the session timeout.

        Args:
            cwd: Project directory of the session
            terminal_session_name: Terminal session hosting the assistant
            status: Short status, stored as "<status> - <workspace>"
            assistant_session_id: Assistant conversation id, kept if omitted
            session_type: Hosting backend, kept from the existing entry if omitted

        Returns:
            The stored entry
        """
        workspace = workspace_name(cwd)
        now = self.clock()
        expires_at = now + self.session_timeout_hours * 3600

        async with self._lock:
            sessions = await self._load()

            existing: Optional[SessionEntry] = None
            for entry in sessions.values():
                if (
                    entry.working_directory == cwd
                    and entry.terminal_session_name == terminal_session_name
                    and not entry.is_expired(now)
                ):
                    existing = entry
                    break

            token = existing.token if existing else generate_token()
            resolved_type = session_type or (existing.session_type if existing else None)

            entry = SessionEntry(
                token=token,
                terminal_session_name=terminal_session_name or f"claude-{workspace}",
                working_directory=cwd,
                type=(resolved_type or SessionType.MULTIPLEXER).value,
                session_type=resolved_type,
                created_at=existing.created_at if existing else now,
                expires_at=expires_at,
                assistant_session_id=assistant_session_id
                or (existing.assistant_session_id if existing else None),
                description=f"{status} - {workspace}",
            )
            sessions[token] = entry
            await self._save(sessions)

        logger.debug(f"Upserted session {token} for {workspace} ({status})")
        return entry

    async def prune_expired(self) -> int:
        """Delete expired entries. Returns the number removed."""
        async with self._lock:
            sessions = await self._load()
            now = self.clock()
            expired = [token for token, entry in sessions.items() if entry.is_expired(now)]
            for token in expired:
                del sessions[token]
            if expired:
                await self._save(sessions)

        if expired:
            logger.info(f"Pruned {len(expired)} expired session(s)")
        return len(expired)

    async def _latest_per_workspace(self) -> dict[str, SessionMatch]:
        """Newest live entry per lower-cased workspace name."""
        async with self._lock:
            sessions = await self._load()

        now = self.clock()
        by_workspace: dict[str, SessionMatch] = {}
        for token, entry in sessions.items():
            if entry.is_expired(now):
                continue
            name = workspace_name(entry.working_directory)
            if not name:
                continue
            key = name.lower()
            current = by_workspace.get(key)
            if current is None or entry.created_at > current.entry.created_at:
                by_workspace[key] = SessionMatch(workspace=name, token=token, entry=entry)
        return by_workspace

    async def list_active(self) -> list[ActiveSession]:
        """List the newest live session per workspace, newest first."""
        now = self.clock()
        latest = await self._latest_per_workspace()
        rows = [
            ActiveSession(
                workspace=match.workspace,
                token=match.token,
                entry=match.entry,
                age=format_age(max(0, now - match.entry.created_at)),
            )
            for match in latest.values()
        ]
        rows.sort(key=lambda row: row.entry.created_at, reverse=True)
        return rows

    async def find_by_workspace(self, name: str) -> Optional[SessionMatch]:
        """Newest live session whose workspace equals name, ignoring case."""
        return (await self._latest_per_workspace()).get(name.lower())

    async def resolve_workspace(self, name: str) -> ResolveResult:
        """Resolve a workspace name by exact (case-insensitive) then prefix match."""
        if not name:
            return ResolveResult.none()

        latest = await self._latest_per_workspace()
        lower = name.lower()

        exact = latest.get(lower)
        if exact is not None:
            return ResolveResult(kind=ResolveKind.EXACT, match=exact)

        matches = [match for key, match in latest.items() if key.startswith(lower)]
        if len(matches) == 1:
            return ResolveResult(kind=ResolveKind.PREFIX, match=matches[0])
        if matches:
            return ResolveResult(kind=ResolveKind.AMBIGUOUS, matches=matches)
        return ResolveResult.none()
