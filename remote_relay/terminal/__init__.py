"""Terminal backends, keystroke injection and the confirmation autopilot."""

from remote_relay.config import config

from .autopilot import (
    DEFAULT_RULES,
    AutopilotAction,
    AutopilotResult,
    ConfirmationAutopilot,
    ConfirmationRule,
    StopReason,
)
from .backend import Key, TerminalBackend
from .injector import InjectionResult, InjectorSet, TerminalInjector
from .pty_backend import PtyBackend
from .tmux import TmuxBackend


def create_backend(kind: str | None = None) -> TerminalBackend:
    """Build the backend named by kind or TERMINAL_BACKEND."""
    kind = kind or config.TERMINAL_BACKEND
    if kind == "pty":
        return PtyBackend()
    if kind == "tmux":
        return TmuxBackend()
    raise ValueError(f"Unknown terminal backend: {kind!r}")


__all__ = [
    "DEFAULT_RULES",
    "AutopilotAction",
    "AutopilotResult",
    "ConfirmationAutopilot",
    "ConfirmationRule",
    "InjectionResult",
    "InjectorSet",
    "Key",
    "PtyBackend",
    "StopReason",
    "TerminalBackend",
    "TerminalInjector",
    "TmuxBackend",
    "create_backend",
]
