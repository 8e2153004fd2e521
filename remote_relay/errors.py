"""Error taxonomy for the relay.

Structural failures (missing backend binary, both launch commands failing,
a failed injection step) are raised to the caller. Capture hiccups and
persistence corruption are absorbed where they happen and only logged.
"""


class RelayError(Exception):
    """Base class for all relay errors."""


class ToolUnavailable(RelayError):
    """Raised when the terminal backend binary is not installed."""

    def __init__(self, tool: str, hint: str = ""):
        self.tool = tool
        self.hint = hint
        message = f"{tool} is not available"
        if hint:
            message = f"{message}: {hint}"
        super().__init__(message)


class BackendCommandError(RelayError):
    """Raised when a single terminal backend command fails."""

    def __init__(self, command: str, detail: str = ""):
        self.command = command
        self.detail = detail
        super().__init__(f"{command} failed: {detail}" if detail else f"{command} failed")


class SessionCreationFailed(RelayError):
    """Raised when both the primary and fallback launch commands failed."""

    def __init__(self, session_name: str, primary_error: str, fallback_error: str):
        self.session_name = session_name
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(
            f"Could not start session {session_name}: "
            f"primary launch failed ({primary_error}), "
            f"fallback launch failed ({fallback_error})"
        )


class InjectionStepFailed(RelayError):
    """Raised when one of the clear/send/execute keystroke steps fails."""

    def __init__(self, step: str, session_name: str, detail: str = ""):
        self.step = step
        self.session_name = session_name
        self.detail = detail
        super().__init__(f"Injection step '{step}' failed for {session_name}: {detail}")


class CaptureFailed(RelayError):
    """Raised when the visible screen of a session cannot be read."""

    def __init__(self, session_name: str, detail: str = ""):
        self.session_name = session_name
        self.detail = detail
        super().__init__(f"Could not capture {session_name}: {detail}")


class PersistenceError(RelayError):
    """Raised when a session map or prompt record cannot be written."""

    def __init__(self, path: str, detail: str = ""):
        self.path = path
        self.detail = detail
        super().__init__(f"Persistence failure at {path}: {detail}")
