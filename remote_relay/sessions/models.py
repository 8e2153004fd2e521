"""Session map entries and resolution results.

NOTE: SessionEntry.created_at and expires_at are in SECONDS (Unix epoch).
Every other timestamp in the relay uses milliseconds; the session map
document keeps this for compatibility with existing files.
"""

import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class SessionType(Enum):
    """How the assistant for a session is hosted."""

    MULTIPLEXER = "tmux"
    PTY = "pty"


def now_seconds() -> int:
    return int(time.time())


def now_ms() -> int:
    return int(time.time() * 1000)


def workspace_name(cwd: Optional[str]) -> Optional[str]:
    """Extract a short project name from a cwd path.

    "/home/user/projects/my-project" -> "my-project"
    """
    if not cwd:
        return None
    return os.path.basename(cwd.rstrip("/")) or None


@dataclass
class SessionEntry:
    token: str
    terminal_session_name: str
    working_directory: str = ""
    type: str = SessionType.MULTIPLEXER.value
    # None means the document omitted sessionType (older entries)
    session_type: Optional[SessionType] = None
    created_at: int = field(default_factory=now_seconds)
    expires_at: int = 0
    assistant_session_id: Optional[str] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.expires_at:
            self.expires_at = self.created_at
        if self.created_at > self.expires_at:
            raise ValueError(
                f"Session {self.token}: createdAt ({self.created_at}) is after "
                f"expiresAt ({self.expires_at})"
            )

    @property
    def effective_session_type(self) -> SessionType:
        """Sessions without an explicit type are multiplexer sessions."""
        return self.session_type or SessionType.MULTIPLEXER

    @property
    def workspace(self) -> str:
        return workspace_name(self.working_directory) or "unknown"

    def is_expired(self, now: Optional[int] = None) -> bool:
        """A session is expired once now reaches expiresAt."""
        current = now_seconds() if now is None else now
        return current >= self.expires_at

    @classmethod
    def from_dict(cls, token: str, data: dict[str, Any]) -> "SessionEntry":
        raw_type = data.get("sessionType")
        created_at = int(data.get("createdAt") or 0)
        return cls(
            token=token,
            terminal_session_name=data.get("tmuxSession") or "",
            working_directory=data.get("cwd") or "",
            type=data.get("type") or SessionType.MULTIPLEXER.value,
            session_type=SessionType(raw_type) if raw_type else None,
            created_at=created_at,
            expires_at=int(data.get("expiresAt") or created_at),
            assistant_session_id=data.get("sessionId"),
            description=data.get("description") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.session_type is not None:
            data["sessionType"] = self.session_type.value
        data.update(
            {
                "createdAt": self.created_at,
                "expiresAt": self.expires_at,
                "cwd": self.working_directory,
                "sessionId": self.assistant_session_id,
                "tmuxSession": self.terminal_session_name,
                "description": self.description,
            }
        )
        return data


class ResolveKind(Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    AMBIGUOUS = "ambiguous"
    NONE = "none"


@dataclass(frozen=True)
class SessionMatch:
    """A resolved session together with its derived workspace name."""

    workspace: str
    token: str
    entry: SessionEntry


@dataclass
class ResolveResult:
    kind: ResolveKind
    match: Optional[SessionMatch] = None
    matches: list[SessionMatch] = field(default_factory=list)

    @property
    def found(self) -> bool:
        """True when exactly one session was identified."""
        return self.kind in (ResolveKind.EXACT, ResolveKind.PREFIX)

    @property
    def workspace(self) -> Optional[str]:
        return self.match.workspace if self.match else None

    @classmethod
    def none(cls) -> "ResolveResult":
        return cls(kind=ResolveKind.NONE)


@dataclass
class ActiveSession:
    """One row of the active session listing."""

    workspace: str
    token: str
    entry: SessionEntry
    age: str


def format_age(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"
