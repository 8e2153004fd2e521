import functools
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default location for the session map, prompt records and logs
DATA_HOME = Path.home() / ".remote-relay"


class InjectionTimeouts(BaseModel):
    """Timing configuration for keystroke injection and the confirmation loop."""

    step_delay: float = 0.2
    key_delay: float = 0.1
    confirm_key_delay: float = 0.3
    settle: float = 3.0
    restart_pause: float = 1.0
    post_send_wait: float = 1.0
    confirm_interval: float = 1.5
    confirm_backoff: float = 2.0
    proceed_settle: float = 2.0
    question_render_delay: float = 4.0
    last_question_delay: float = 0.5
    max_confirm_attempts: int = 8

    @field_validator(
        "step_delay",
        "key_delay",
        "confirm_key_delay",
        "settle",
        "restart_pause",
        "post_send_wait",
        "confirm_interval",
        "confirm_backoff",
        "proceed_settle",
        "question_render_delay",
        "last_question_delay",
    )
    @classmethod
    def validate_non_negative(cls, v: float, info) -> float:
        """Delays may be zero (tests) but never negative."""
        if v < 0:
            raise ValueError(f"{info.field_name} must not be negative, got {v}")
        return v

    @field_validator("max_confirm_attempts")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Ensure the attempt budget is a positive integer."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer, got {v}")
        return v


class PromptTimeouts(BaseModel):
    """Timing configuration for the pending/response prompt bridge."""

    poll_interval: float = 0.5
    response_timeout: float = 90.0
    expiry: int = 300
    question_notify_delay: float = 2.0

    @field_validator("question_notify_delay")
    @classmethod
    def validate_non_negative(cls, v: float, info) -> float:
        if v < 0:
            raise ValueError(f"{info.field_name} must not be negative, got {v}")
        return v

    @field_validator("poll_interval", "response_timeout")
    @classmethod
    def validate_positive_float(cls, v: float, info) -> float:
        """Ensure timeout values are positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got {v}")
        return v

    @field_validator("expiry")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Ensure expiry is a positive integer."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer, got {v}")
        return v


class TimeoutConfig(BaseModel):
    """Centralized timeout configuration."""

    injection: InjectionTimeouts = Field(default_factory=InjectionTimeouts)
    prompts: PromptTimeouts = Field(default_factory=PromptTimeouts)


class Config(BaseSettings):
    """
    Application configuration loaded from multiple sources.

    Priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Storage locations
    DATA_DIR: str = Field(default_factory=lambda: str(DATA_HOME / "data"))
    SESSION_MAP_PATH: str = ""
    PROMPTS_DIR: str = "/tmp/claude-prompts"
    INJECTION_LOG_PATH: str = Field(
        default_factory=lambda: str(DATA_HOME / "logs" / "tmux-injection.log")
    )
    HOOK_LOG_PATH: str = Field(
        default_factory=lambda: str(DATA_HOME / "logs" / "permission-hook-debug.log")
    )

    # Session lifetime (SessionEntry timestamps are in seconds)
    SESSION_TIMEOUT_HOURS: int = 24

    # Assistant launch configuration
    CLAUDE_CLI_PATH: str = "claude"
    PRIMARY_LAUNCH_COMMAND: str = "clauderun"
    FALLBACK_LAUNCH_FLAGS: str = "--dangerously-skip-permissions"
    DEFAULT_TERMINAL_SESSION: str = "claude-relay"

    # Terminal backend: "tmux" or "pty"
    TERMINAL_BACKEND: str = "tmux"
    VALID_TERMINAL_BACKENDS: tuple[str, ...] = ("tmux", "pty")

    # Project history, default workspace and reply routing
    PROJECT_DIRS: str = ""
    PINNED_PROJECTS: str = ""
    PROJECT_HISTORY_PATH: str = ""
    DEFAULT_WORKSPACE_PATH: str = ""
    MESSAGE_WORKSPACE_MAP_PATH: str = ""
    ASSISTANT_PROJECTS_DIR: str = Field(default_factory=lambda: str(Path.home() / ".claude" / "projects"))
    MAX_PROJECT_HISTORY: int = 50
    MAX_PROJECT_SESSIONS: int = 5
    MESSAGE_MAP_MAX_AGE_HOURS: int = 24

    # Injection timing overrides from environment
    INJECTION_STEP_DELAY: float = 0.2
    INJECTION_SETTLE_SECONDS: float = 3.0
    CONFIRM_INTERVAL: float = 1.5
    MAX_CONFIRM_ATTEMPTS: int = 8

    # Prompt bridge overrides from environment
    PROMPT_POLL_INTERVAL: float = 0.5
    PROMPT_RESPONSE_TIMEOUT: float = 90.0
    PROMPT_EXPIRY_SECONDS: int = 300

    @property
    def session_map_path(self) -> Path:
        """Resolve the session map path, defaulting to DATA_DIR/session-map.json."""
        if self.SESSION_MAP_PATH:
            return Path(self.SESSION_MAP_PATH).expanduser()
        return Path(self.DATA_DIR).expanduser() / "session-map.json"

    def _data_path(self, override: str, filename: str) -> Path:
        if override:
            return Path(override).expanduser()
        return Path(self.DATA_DIR).expanduser() / filename

    @property
    def project_history_path(self) -> Path:
        return self._data_path(self.PROJECT_HISTORY_PATH, "project-history.json")

    @property
    def default_workspace_path(self) -> Path:
        return self._data_path(self.DEFAULT_WORKSPACE_PATH, "default-workspace.json")

    @property
    def message_workspace_map_path(self) -> Path:
        return self._data_path(self.MESSAGE_WORKSPACE_MAP_PATH, "message-workspace-map.json")

    @property
    def project_dirs(self) -> list[Path]:
        """Directories scanned for projects, defaulting to ~/projects and ~/tools."""
        if not self.PROJECT_DIRS.strip():
            return [Path.home() / "projects", Path.home() / "tools"]
        return [Path(d.strip()).expanduser() for d in self.PROJECT_DIRS.split(",") if d.strip()]

    @property
    def pinned_projects(self) -> list[str]:
        return [name.strip() for name in self.PINNED_PROJECTS.split(",") if name.strip()]

    @property
    def fallback_launch_command(self) -> str:
        """Launch command used when the primary launcher is unavailable."""
        return f"{self.CLAUDE_CLI_PATH} {self.FALLBACK_LAUNCH_FLAGS}".strip()

    def resume_launch_command(self, assistant_session_id: str) -> str:
        """Launch command that resumes a previous assistant conversation."""
        return f"{self.CLAUDE_CLI_PATH} --resume {assistant_session_id}"

    @functools.cached_property
    def timeouts(self) -> TimeoutConfig:
        """Build TimeoutConfig from environment variables."""
        return TimeoutConfig(
            injection=InjectionTimeouts(
                step_delay=self.INJECTION_STEP_DELAY,
                settle=self.INJECTION_SETTLE_SECONDS,
                confirm_interval=self.CONFIRM_INTERVAL,
                max_confirm_attempts=self.MAX_CONFIRM_ATTEMPTS,
            ),
            prompts=PromptTimeouts(
                poll_interval=self.PROMPT_POLL_INTERVAL,
                response_timeout=self.PROMPT_RESPONSE_TIMEOUT,
                expiry=self.PROMPT_EXPIRY_SECONDS,
            ),
        )

    def validate_required(self) -> list[str]:
        """Validate configuration values that pydantic cannot check on its own."""
        errors = []
        if self.TERMINAL_BACKEND not in self.VALID_TERMINAL_BACKENDS:
            errors.append(
                f"TERMINAL_BACKEND must be one of {', '.join(self.VALID_TERMINAL_BACKENDS)}, "
                f"got {self.TERMINAL_BACKEND!r}"
            )
        if self.SESSION_TIMEOUT_HOURS <= 0:
            errors.append("SESSION_TIMEOUT_HOURS must be positive")
        if not self.CLAUDE_CLI_PATH:
            errors.append("CLAUDE_CLI_PATH is required")
        for name in ("MAX_PROJECT_HISTORY", "MAX_PROJECT_SESSIONS", "MESSAGE_MAP_MAX_AGE_HOURS"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        return errors


config = Config()
