"""Session map persistence, token resolution, project history and reply routing."""

from .models import (
    ActiveSession,
    ResolveKind,
    ResolveResult,
    SessionEntry,
    SessionMatch,
    SessionType,
    workspace_name,
)
from .projects import (
    AssistantConversation,
    ConversationRecord,
    ProjectHistory,
    ProjectLookup,
    ProjectRecord,
    RecentProject,
    assistant_conversations,
    find_project_dir,
)
from .routing import WorkspaceRouting
from .storage import DocumentStorage, JsonFileStorage, MemoryStorage
from .store import SessionStore, generate_token

__all__ = [
    "ActiveSession",
    "AssistantConversation",
    "ConversationRecord",
    "DocumentStorage",
    "JsonFileStorage",
    "MemoryStorage",
    "ProjectHistory",
    "ProjectLookup",
    "ProjectRecord",
    "RecentProject",
    "ResolveKind",
    "ResolveResult",
    "SessionEntry",
    "SessionMatch",
    "SessionStore",
    "SessionType",
    "WorkspaceRouting",
    "assistant_conversations",
    "find_project_dir",
    "generate_token",
    "workspace_name",
]
