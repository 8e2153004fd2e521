"""Where plain text messages go when they name no session.

Two small documents back this:

    default-workspace.json       {"workspace": "<name>"}; {} means no default
    message-workspace-map.json   {"<message id>": {"workspace", "type", "timestamp"}}

Message timestamps are milliseconds. Entries older than the max age are
dropped on every write and ignored on read.
"""

import asyncio
from typing import Callable, Optional, Union

from loguru import logger

from remote_relay.config import config

from .models import now_ms
from .storage import DocumentStorage, JsonFileStorage

MessageId = Union[int, str]


class WorkspaceRouting:
    """Default workspace and notification message -> workspace tracking."""

    def __init__(
        self,
        default_storage: Optional[DocumentStorage] = None,
        message_storage: Optional[DocumentStorage] = None,
        max_age_hours: Optional[int] = None,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        self.default_storage = default_storage or JsonFileStorage(config.default_workspace_path)
        self.message_storage = message_storage or JsonFileStorage(config.message_workspace_map_path)
        self.max_age_ms = (max_age_hours or config.MESSAGE_MAP_MAX_AGE_HOURS) * 3600 * 1000
        self.clock_ms = clock_ms
        self._lock = asyncio.Lock()

    async def get_default_workspace(self) -> Optional[str]:
        document = await self.default_storage.load()
        workspace = document.get("workspace")
        if isinstance(workspace, str) and workspace:
            return workspace
        return None

    async def set_default_workspace(self, workspace: Optional[str]) -> None:
        """Set the default workspace, or clear it when workspace is None or empty."""
        async with self._lock:
            await self.default_storage.save({"workspace": workspace} if workspace else {})
        if workspace:
            logger.info(f"Default workspace set to {workspace}")
        else:
            logger.info("Default workspace cleared")

    def _is_fresh(self, entry: object, now: int) -> bool:
        if not isinstance(entry, dict):
            return False
        timestamp = entry.get("timestamp")
        return isinstance(timestamp, (int, float)) and now - timestamp <= self.max_age_ms

    async def track_message(self, message_id: MessageId, workspace: str, kind: str) -> None:
        """Remember which workspace a delivered notification belongs to.

        Args:
            message_id: Transport message id of the notification
            workspace: Workspace name replies should be routed to
            kind: Notification kind, e.g. "permission" or "new-session"
        """
        now = self.clock_ms()
        async with self._lock:
            document = await self.message_storage.load()
            stale = [key for key, entry in document.items() if not self._is_fresh(entry, now)]
            for key in stale:
                del document[key]
            document[str(message_id)] = {"workspace": workspace, "type": kind, "timestamp": now}
            await self.message_storage.save(document)

        if stale:
            logger.debug(f"Pruned {len(stale)} stale message route(s)")

    async def workspace_for_message(self, message_id: MessageId) -> Optional[str]:
        """Workspace a reply to message_id should go to.

        Returns:
            The tracked workspace, or None when the message is unknown or
            older than the max age
        """
        document = await self.message_storage.load()
        entry = document.get(str(message_id))
        if not self._is_fresh(entry, self.clock_ms()):
            return None
        workspace = entry.get("workspace")
        return workspace if isinstance(workspace, str) and workspace else None
