"""Assistant hooks that relay permission requests and questions."""

from .notify import Notification, NotificationButton, Notifier, deliver, log_notifier
from .payload import HookPayload, QuestionItem, parse_payload, permission_decision
from .permission import PermissionHook
from .question import QuestionHook

__all__ = [
    "HookPayload",
    "Notification",
    "NotificationButton",
    "Notifier",
    "PermissionHook",
    "QuestionHook",
    "QuestionItem",
    "deliver",
    "log_notifier",
    "parse_payload",
    "permission_decision",
]
