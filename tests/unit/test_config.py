"""Unit tests for configuration module."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from remote_relay.config import (
    Config,
    InjectionTimeouts,
    PromptTimeouts,
    TimeoutConfig,
    config,
)


class TestInjectionTimeouts:
    """Tests for InjectionTimeouts model."""

    def test_default_values(self):
        """InjectionTimeouts has correct defaults."""
        timeouts = InjectionTimeouts()

        assert timeouts.step_delay == 0.2
        assert timeouts.settle == 3.0
        assert timeouts.restart_pause == 1.0
        assert timeouts.confirm_interval == 1.5
        assert timeouts.confirm_backoff == 2.0
        assert timeouts.question_render_delay == 4.0
        assert timeouts.max_confirm_attempts == 8

    def test_zero_delays_allowed(self):
        """Delays may be zero."""
        assert InjectionTimeouts(step_delay=0, settle=0).settle == 0

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            InjectionTimeouts(confirm_interval=-1)

    def test_attempt_budget_must_be_positive(self):
        with pytest.raises(ValidationError):
            InjectionTimeouts(max_confirm_attempts=0)


class TestPromptTimeouts:
    """Tests for PromptTimeouts model."""

    def test_default_values(self):
        timeouts = PromptTimeouts()

        assert timeouts.poll_interval == 0.5
        assert timeouts.response_timeout == 90.0
        assert timeouts.expiry == 300
        assert timeouts.question_notify_delay == 2.0

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            PromptTimeouts(response_timeout=0)


class TestConfig:
    """Tests for main Config class."""

    def test_timeout_config_accessible(self):
        """Config.timeouts provides access to all timeout settings."""
        assert isinstance(config.timeouts, TimeoutConfig)
        assert config.timeouts.injection is not None
        assert config.timeouts.prompts is not None

    def test_defaults(self):
        assert config.SESSION_TIMEOUT_HOURS == 24
        assert config.PRIMARY_LAUNCH_COMMAND == "clauderun"
        assert config.DEFAULT_TERMINAL_SESSION == "claude-relay"

    def test_fallback_launch_command(self):
        assert Config(CLAUDE_CLI_PATH="/opt/claude").fallback_launch_command == (
            "/opt/claude --dangerously-skip-permissions"
        )

    def test_session_map_path_default(self):
        cfg = Config(DATA_DIR="/var/relay", SESSION_MAP_PATH="")
        assert cfg.session_map_path == Path("/var/relay/session-map.json")

    def test_session_map_path_override(self):
        cfg = Config(SESSION_MAP_PATH="/tmp/map.json")
        assert cfg.session_map_path == Path("/tmp/map.json")

    def test_validate_required(self):
        assert Config(TERMINAL_BACKEND="tmux").validate_required() == []
        errors = Config(TERMINAL_BACKEND="screen", SESSION_TIMEOUT_HOURS=0).validate_required()
        assert len(errors) == 2
        assert any("TERMINAL_BACKEND" in e for e in errors)

    def test_project_documents_default_to_data_dir(self):
        cfg = Config(DATA_DIR="/var/relay", PROJECT_HISTORY_PATH="", DEFAULT_WORKSPACE_PATH="")
        assert cfg.project_history_path == Path("/var/relay/project-history.json")
        assert cfg.default_workspace_path == Path("/var/relay/default-workspace.json")
        assert Config(MESSAGE_WORKSPACE_MAP_PATH="/tmp/m.json").message_workspace_map_path == Path("/tmp/m.json")

    def test_project_dirs(self):
        assert Config(PROJECT_DIRS="").project_dirs == [Path.home() / "projects", Path.home() / "tools"]
        assert Config(PROJECT_DIRS="/src, /work ,").project_dirs == [Path("/src"), Path("/work")]

    def test_pinned_projects(self):
        assert Config(PINNED_PROJECTS="assistant, relay").pinned_projects == ["assistant", "relay"]

    def test_resume_launch_command(self):
        assert Config(CLAUDE_CLI_PATH="claude").resume_launch_command("abc-123") == "claude --resume abc-123"

    def test_history_limits_validated(self):
        errors = Config(MAX_PROJECT_HISTORY=0, MESSAGE_MAP_MAX_AGE_HOURS=0).validate_required()
        assert errors == ["MAX_PROJECT_HISTORY must be positive", "MESSAGE_MAP_MAX_AGE_HOURS must be positive"]


class TestEnvironmentVariableOverrides:
    """Tests for environment variable configuration."""

    def test_env_overrides_reach_timeouts(self, monkeypatch):
        monkeypatch.setenv("MAX_CONFIRM_ATTEMPTS", "3")
        monkeypatch.setenv("PROMPT_RESPONSE_TIMEOUT", "30")
        monkeypatch.setenv("CONFIRM_INTERVAL", "0.5")

        cfg = Config()

        assert cfg.timeouts.injection.max_confirm_attempts == 3
        assert cfg.timeouts.injection.confirm_interval == 0.5
        assert cfg.timeouts.prompts.response_timeout == 30.0

    def test_invalid_env_override_rejected(self, monkeypatch):
        monkeypatch.setenv("MAX_CONFIRM_ATTEMPTS", "0")
        with pytest.raises(ValidationError):
            _ = Config().timeouts
