"""Project history and project discovery.

project-history.json maps a project name to

    {"path": ..., "lastUsed": <ms>, "sessions": [{"id": ..., "startedAt": <ms>}]}

where sessions are the assistant conversations started there, newest first.
Unlike the session map it is never pruned by expiry, so a project stays
resumeable after its terminal session is long gone.
"""

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import aiofiles
from loguru import logger

from remote_relay.config import config

from .models import now_ms
from .storage import DocumentStorage, JsonFileStorage

MAX_PREFIX_MATCHES = 10
SNIPPET_LENGTH = 35
SNIPPET_SCAN_LINES = 30


@dataclass
class ConversationRecord:
    id: str
    started_at: int


@dataclass
class ProjectRecord:
    name: str
    path: str
    last_used: int
    sessions: list[ConversationRecord] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "ProjectRecord":
        """Build from a history document entry. Raises ValueError on a bad entry."""
        if not isinstance(data.get("path"), str) or not isinstance(data.get("lastUsed"), (int, float)):
            raise ValueError(f"Project {name}: path and lastUsed are required")
        sessions = [
            ConversationRecord(id=s["id"], started_at=int(s.get("startedAt", 0)))
            for s in data.get("sessions") or []
            if isinstance(s, dict) and isinstance(s.get("id"), str)
        ]
        return cls(name=name, path=data["path"], last_used=int(data["lastUsed"]), sessions=sessions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "lastUsed": self.last_used,
            "sessions": [{"id": s.id, "startedAt": s.started_at} for s in self.sessions],
        }


@dataclass
class RecentProject:
    name: str
    path: str
    last_active: int


@dataclass
class AssistantConversation:
    """A conversation found in the assistant's own session storage."""

    id: str
    last_activity: int
    snippet: str


@dataclass
class ProjectLookup:
    """Result of find_project_dir().

    path is set when exactly one directory matched; candidates lists the
    names when a prefix matched several.
    """

    name: str
    path: Optional[Path] = None
    candidates: list[str] = field(default_factory=list)


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False


def _subdirs(base: Path) -> list[Path]:
    try:
        return [entry for entry in base.iterdir() if entry.is_dir()]
    except OSError:
        return []


def _mtime_ms(path: Path) -> Optional[int]:
    try:
        return int(path.stat().st_mtime * 1000)
    except OSError:
        return None


def find_project_dir(
    name: str,
    project_dirs: Optional[list[Path]] = None,
    home: Optional[Path] = None,
) -> ProjectLookup:
    """Find the directory of a project by name.

    An exact directory name is looked up in each project dir, then in home.
    Failing that, a case-insensitive prefix is matched against the project
    dirs only, so home folders like Documents never match.
    """
    project_dirs = config.project_dirs if project_dirs is None else project_dirs
    home = home or Path.home()

    for candidate in [base / name for base in project_dirs] + [home / name]:
        if _is_dir(candidate):
            return ProjectLookup(name=name, path=candidate)

    # First directory wins when two project dirs hold the same name
    matches: dict[str, Path] = {}
    lower = name.lower()
    for base in project_dirs:
        for entry in sorted(_subdirs(base)):
            if entry.name.lower().startswith(lower):
                matches.setdefault(entry.name, entry)

    if len(matches) == 1:
        match_name = next(iter(matches))
        return ProjectLookup(name=match_name, path=matches[match_name])
    return ProjectLookup(name=name, candidates=list(matches)[:MAX_PREFIX_MATCHES])


def conversation_snippet(line: str) -> Optional[str]:
    """Text of the first user message in one transcript line, if it is one."""
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(record, dict) or record.get("type") != "user":
        return None
    message = record.get("message")
    if not isinstance(message, dict) or message.get("role") != "user":
        return None

    content = message.get("content")
    text = None
    if isinstance(content, str):
        text = content
    elif isinstance(content, list):
        text = next(
            (
                item.get("text")
                for item in content
                if isinstance(item, dict) and item.get("type") == "text"
            ),
            None,
        )
    if not isinstance(text, str):
        return None
    return text.strip()[:SNIPPET_LENGTH] or None


async def _read_snippet(path: Path) -> Optional[str]:
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            for _ in range(SNIPPET_SCAN_LINES):
                line = await f.readline()
                if not line:
                    break
                if not line.strip():
                    continue
                snippet = conversation_snippet(line)
                if snippet:
                    return snippet
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Skipping unreadable transcript {path}: {e}")
    return None


async def assistant_conversations(
    project_path: str,
    limit: Optional[int] = None,
    projects_dir: Optional[str | Path] = None,
) -> list[AssistantConversation]:
    """List the assistant's recent conversations for a project directory.

    The assistant keeps one ``<id>.jsonl`` transcript per conversation in
    ``<projects_dir>/<project path with "/" replaced by "-">/``.

    Args:
        project_path: Absolute project directory
        limit: Maximum number of conversations (MAX_PROJECT_SESSIONS)
        projects_dir: Root of the assistant's session storage

    Returns:
        Conversations newest first by transcript mtime. Transcripts without
        a user message are skipped.
    """
    limit = limit or config.MAX_PROJECT_SESSIONS
    root = Path(projects_dir or config.ASSISTANT_PROJECTS_DIR).expanduser()
    session_dir = root / project_path.replace("/", "-")

    try:
        transcripts = [p for p in session_dir.iterdir() if p.is_file() and p.suffix == ".jsonl"]
    except OSError:
        return []

    dated = []
    for path in transcripts:
        mtime = _mtime_ms(path)
        if mtime is not None:
            dated.append((path, mtime))
    dated.sort(key=lambda item: item[1], reverse=True)

    conversations: list[AssistantConversation] = []
    for path, mtime in dated:
        if len(conversations) >= limit:
            break
        snippet = await _read_snippet(path)
        if snippet:
            conversations.append(AssistantConversation(id=path.stem, last_activity=mtime, snippet=snippet))
    return conversations


class ProjectHistory:
    """Owns the persisted project name -> ProjectRecord document."""

    def __init__(
        self,
        storage: Optional[DocumentStorage] = None,
        max_projects: Optional[int] = None,
        max_sessions: Optional[int] = None,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        self.storage = storage or JsonFileStorage(config.project_history_path)
        self.max_projects = max_projects or config.MAX_PROJECT_HISTORY
        self.max_sessions = max_sessions or config.MAX_PROJECT_SESSIONS
        self.clock_ms = clock_ms
        self._lock = asyncio.Lock()

    async def load(self) -> dict[str, ProjectRecord]:
        document = await self.storage.load()
        projects: dict[str, ProjectRecord] = {}
        for name, data in document.items():
            if not isinstance(data, dict):
                logger.warning(f"Ignoring non-object project history entry {name}")
                continue
            try:
                projects[name] = ProjectRecord.from_dict(name, data)
            except (TypeError, ValueError) as e:
                logger.warning(f"Ignoring invalid project history entry {name}: {e}")
        return projects

    async def get(self, name: str) -> Optional[ProjectRecord]:
        return (await self.load()).get(name)

    async def record_usage(
        self, name: str, path: str, assistant_session_id: Optional[str] = None
    ) -> ProjectRecord:
        """Mark a project as just used.

        Args:
            name: Project name
            path: Project directory
            assistant_session_id: Conversation started or resumed there, if known

        Returns:
            The updated record. A known conversation moves to the front of
            its session list, which is capped at max_sessions; the document
            keeps the max_projects most recently used projects.
        """
        now = self.clock_ms()
        async with self._lock:
            projects = await self.load()
            existing = projects.get(name)
            sessions = list(existing.sessions) if existing else []
            if assistant_session_id:
                sessions = [s for s in sessions if s.id != assistant_session_id]
                sessions.insert(0, ConversationRecord(id=assistant_session_id, started_at=now))
                sessions = sessions[: self.max_sessions]

            record = ProjectRecord(name=name, path=path, last_used=now, sessions=sessions)
            projects[name] = record
            ranked = sorted(projects.values(), key=lambda p: p.last_used, reverse=True)
            await self.storage.save({p.name: p.to_dict() for p in ranked[: self.max_projects]})

        logger.debug(f"Recorded usage of project {name} ({path})")
        return record

    async def recent_projects(
        self,
        limit: int = 10,
        project_dirs: Optional[list[Path]] = None,
        pinned: Optional[list[str]] = None,
        home: Optional[Path] = None,
    ) -> list[RecentProject]:
        """Projects to offer in a "start a session" menu.

        Subdirectories of the project dirs are ranked by mtime, merged with
        the history (the newer of the two timestamps wins). History entries
        outside the project dirs are kept while their directory exists.
        Pinned projects come first in pinned order; a pinned name missing
        from the project dirs is also looked up in home.
        """
        project_dirs = config.project_dirs if project_dirs is None else project_dirs
        pinned = config.pinned_projects if pinned is None else pinned
        home = home or Path.home()

        found: dict[str, RecentProject] = {}

        def consider(name: str, path: Path, last_active: int) -> None:
            current = found.get(name)
            if current is None or last_active > current.last_active:
                found[name] = RecentProject(name=name, path=str(path), last_active=last_active)

        for base in project_dirs:
            for entry in _subdirs(base):
                mtime = _mtime_ms(entry)
                if mtime is not None:
                    consider(entry.name, entry, mtime)

        for name in pinned:
            if name not in found:
                candidate = home / name
                mtime = _mtime_ms(candidate) if _is_dir(candidate) else None
                if mtime is not None:
                    consider(name, candidate, mtime)

        for name, record in (await self.load()).items():
            current = found.get(name)
            if current is not None:
                current.last_active = max(current.last_active, record.last_used)
            elif _is_dir(Path(record.path)):
                found[name] = RecentProject(name=name, path=record.path, last_active=record.last_used)

        pinned_rows = [found[name] for name in pinned if name in found]
        others = sorted(
            (p for name, p in found.items() if name not in pinned),
            key=lambda p: p.last_active,
            reverse=True,
        )
        return (pinned_rows + others)[:limit]

    async def resumeable_projects(self, limit: int = 10) -> list[ProjectRecord]:
        """Projects with at least one recorded conversation whose directory still exists."""
        projects = [
            record
            for record in (await self.load()).values()
            if record.sessions and _is_dir(Path(record.path))
        ]
        projects.sort(key=lambda p: p.last_used, reverse=True)
        return projects[:limit]
