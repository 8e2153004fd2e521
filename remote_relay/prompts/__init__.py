"""Pending/response prompt bridge between hooks and the remote client."""

from .bridge import PromptBridge, generate_prompt_id
from .models import (
    TIMED_OUT,
    PendingPermission,
    PendingPlan,
    PendingPrompt,
    PendingQuestion,
    PendingQuestionFreeText,
    PermissionAction,
    PermissionResponse,
    PromptResponse,
    QuickPermissionResponse,
    TimedOut,
)

__all__ = [
    "TIMED_OUT",
    "PendingPermission",
    "PendingPlan",
    "PendingPrompt",
    "PendingQuestion",
    "PendingQuestionFreeText",
    "PermissionAction",
    "PermissionResponse",
    "PromptBridge",
    "PromptResponse",
    "QuickPermissionResponse",
    "TimedOut",
    "generate_prompt_id",
]
