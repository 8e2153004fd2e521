"""Starting and resuming assistant sessions per project.

ProjectLauncher is the handler for project callbacks:

    new:<name>          start the project's session, or adopt a running one
    rp:<name>           list the project's previous conversations
    rs:<name>:<idx>     ask before resuming conversation idx
    rc:<name>:<idx>     resume conversation idx in a new terminal session

Conversation indexes refer to the list rp shows, newest first.
"""

import re
from pathlib import Path
from typing import Optional

from loguru import logger

from remote_relay.callbacks import (
    NewProject,
    ParsedCallback,
    ResumeConfirm,
    ResumeProject,
    ResumeSession,
)
from remote_relay.config import config
from remote_relay.dispatch import DispatchOutcome
from remote_relay.errors import RelayError
from remote_relay.hooks.notify import NotificationButton
from remote_relay.sessions import (
    AssistantConversation,
    ProjectHistory,
    SessionStore,
    SessionType,
    WorkspaceRouting,
    assistant_conversations,
    find_project_dir,
)
from remote_relay.sessions.models import format_age, now_ms
from remote_relay.terminal import InjectorSet

# tmux rejects dots and colons in session names; whitespace breaks targets
UNSAFE_SESSION_CHARS = re.compile(r"[.:\s]")


def terminal_session_name(project_name: str) -> str:
    return UNSAFE_SESSION_CHARS.sub("-", project_name)


def button_rows(buttons: list[NotificationButton], per_row: int = 2) -> list[list[NotificationButton]]:
    return [buttons[i : i + per_row] for i in range(0, len(buttons), per_row)]


def _session_type(kind: str) -> Optional[SessionType]:
    try:
        return SessionType(kind)
    except ValueError:
        return None


class ProjectLauncher:
    def __init__(
        self,
        store: SessionStore,
        injectors: InjectorSet,
        history: Optional[ProjectHistory] = None,
        routing: Optional[WorkspaceRouting] = None,
        project_dirs: Optional[list[Path]] = None,
        home: Optional[Path] = None,
        assistant_projects_dir: Optional[str | Path] = None,
    ) -> None:
        self.store = store
        self.injectors = injectors
        self.history = history or ProjectHistory()
        self.routing = routing
        self.project_dirs = config.project_dirs if project_dirs is None else project_dirs
        self.home = home or Path.home()
        self.assistant_projects_dir = assistant_projects_dir or config.ASSISTANT_PROJECTS_DIR

    async def __call__(self, callback: ParsedCallback) -> DispatchOutcome:
        if isinstance(callback, NewProject):
            return await self.start_project(callback.project_name)
        if isinstance(callback, ResumeProject):
            return await self.list_conversations(callback.project_name)
        if isinstance(callback, ResumeSession):
            return await self.confirm_resume(callback.project_name, callback.session_idx)
        if isinstance(callback, ResumeConfirm):
            return await self.resume(callback.project_name, callback.session_idx)
        return DispatchOutcome(False, "Invalid callback")

    async def _adopt(
        self,
        name: str,
        cwd: str,
        session_name: str,
        status: str,
        session_type: Optional[SessionType] = None,
        assistant_session_id: Optional[str] = None,
    ) -> None:
        """Register a started or running session and make it the default workspace."""
        await self.store.upsert(
            cwd,
            session_name,
            status,
            assistant_session_id=assistant_session_id,
            session_type=session_type,
        )
        await self.history.record_usage(name, cwd, assistant_session_id)
        if self.routing is not None:
            await self.routing.set_default_workspace(name)

    async def new_menu(self, limit: int = 10) -> DispatchOutcome:
        """Recent projects as new:<name> buttons."""
        recent = await self.history.recent_projects(limit, project_dirs=self.project_dirs, home=self.home)
        if not recent:
            searched = ", ".join(str(d) for d in self.project_dirs)
            return DispatchOutcome(False, f"No project history yet. Searches: {searched}, {self.home}")
        buttons = [NotificationButton(p.name, NewProject(p.name)) for p in recent]
        return DispatchOutcome(True, "Select a project", buttons=button_rows(buttons))

    async def resume_menu(self, limit: int = 10) -> DispatchOutcome:
        """Projects with recorded conversations as rp:<name> buttons."""
        projects = await self.history.resumeable_projects(limit)
        if not projects:
            return DispatchOutcome(False, "No resumeable projects yet")
        buttons = [NotificationButton(p.name, ResumeProject(p.name)) for p in projects]
        return DispatchOutcome(True, "Select a project to resume", buttons=button_rows(buttons))

    async def start_project(self, name: str) -> DispatchOutcome:
        """Start the assistant in a project directory, or adopt its running session.

        Args:
            name: Project directory name or unique case-insensitive prefix

        Returns:
            The outcome; several prefix matches come back as new:<name> buttons
        """
        lookup = find_project_dir(name, self.project_dirs, self.home)
        if lookup.candidates:
            buttons = [NotificationButton(c, NewProject(c)) for c in lookup.candidates]
            return DispatchOutcome(False, f"Multiple matches for {name}", buttons=button_rows(buttons))
        if lookup.path is None:
            searched = ", ".join(str(d) for d in self.project_dirs)
            return DispatchOutcome(False, f"Project {name} not found. Searched: {searched}, {self.home}")

        name, cwd = lookup.name, str(lookup.path)
        session_name = terminal_session_name(name)
        injector = await self.injectors.for_session(session_name)

        try:
            created = await injector.ensure_session(session_name, cwd)
        except RelayError as e:
            logger.error(f"Failed to start {session_name}: {e}")
            return DispatchOutcome(False, f"Failed to start session: {e}")

        if not created:
            await self._adopt(name, cwd, session_name, "waiting")
            return DispatchOutcome(
                True, f"Session {session_name} already running. Set as default.", workspace=name
            )

        await self._adopt(
            name, cwd, session_name, "starting", session_type=_session_type(self.injectors.default)
        )
        logger.info(f"Started {session_name} in {cwd}")
        return DispatchOutcome(
            True, f"Started {name} in {cwd} (session {session_name}). Set as default.", workspace=name
        )

    async def _project_path(self, name: str) -> Optional[str]:
        record = await self.history.get(name)
        if record is not None:
            return record.path
        lookup = find_project_dir(name, self.project_dirs, self.home)
        return str(lookup.path) if lookup.path is not None else None

    async def _conversations(self, name: str) -> tuple[Optional[str], list[AssistantConversation]]:
        path = await self._project_path(name)
        if path is None:
            return None, []
        return path, await assistant_conversations(path, projects_dir=self.assistant_projects_dir)

    async def list_conversations(self, name: str) -> DispatchOutcome:
        """Previous conversations of a project as rs:<name>:<idx> buttons."""
        path, conversations = await self._conversations(name)
        if path is None:
            return DispatchOutcome(False, f"Project {name} not found")
        if not conversations:
            return DispatchOutcome(False, f"No previous conversations for {name}")

        now = now_ms()
        buttons = [
            [
                NotificationButton(
                    f"{c.snippet} ({format_age(max(0, now - c.last_activity) // 1000)})",
                    ResumeSession(name, idx),
                )
            ]
            for idx, c in enumerate(conversations)
        ]
        return DispatchOutcome(True, f"Conversations in {name}", buttons=buttons)

    async def confirm_resume(self, name: str, idx: int) -> DispatchOutcome:
        path, conversations = await self._conversations(name)
        if path is None or not 0 <= idx < len(conversations):
            return DispatchOutcome(False, "Conversation no longer available")
        conversation = conversations[idx]
        buttons = [
            [
                NotificationButton("Resume", ResumeConfirm(name, idx)),
                NotificationButton("Start fresh", NewProject(name)),
            ]
        ]
        return DispatchOutcome(True, f"Resume {name}: {conversation.snippet}?", buttons=buttons)

    async def resume(self, name: str, idx: int) -> DispatchOutcome:
        """Resume conversation idx of a project in a new terminal session.

        A running session for the project is left alone: resuming into it
        would discard whatever it is doing.
        """
        path, conversations = await self._conversations(name)
        if path is None or not 0 <= idx < len(conversations):
            return DispatchOutcome(False, "Conversation no longer available")
        conversation = conversations[idx]

        session_name = terminal_session_name(name)
        injector = await self.injectors.for_session(session_name)
        try:
            started = await injector.launch_session(
                session_name, path, config.resume_launch_command(conversation.id)
            )
        except RelayError as e:
            logger.error(f"Failed to resume {conversation.id} in {session_name}: {e}")
            return DispatchOutcome(False, f"Failed to resume: {e}")

        if not started:
            return DispatchOutcome(False, f"Session {session_name} is already running. Stop it first.")

        await self._adopt(
            name,
            path,
            session_name,
            "resumed",
            session_type=_session_type(self.injectors.default),
            assistant_session_id=conversation.id,
        )
        logger.info(f"Resumed conversation {conversation.id} in {session_name}")
        return DispatchOutcome(True, f"Resumed {name}: {conversation.snippet}", workspace=name)
