"""Orchestrator configuration using pydantic-settings.

This module defines the DevspaceSettings class that reads configuration
from environment variables with the DEVSPACE_ prefix. Project definitions
live in the YAML configuration file (see projects/registry.py); these
settings only control how the orchestrator itself behaves.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.devspace.events.emitter import EventSinkType


class DevspaceSettings(BaseSettings):
    """Workspace orchestrator configuration from environment variables.

    All environment variables are prefixed with DEVSPACE_ (e.g.,
    DEVSPACE_DISABLE_CONFIG_CACHE). The GitHub token is also accepted
    from the conventional GITHUB_TOKEN variable.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVSPACE_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Configuration File
    # -------------------------------------------------------------------------
    # Explicit path to the YAML project configuration; searched when unset
    config_path: Optional[str] = None

    # Bypass the configuration cache on every load (testing, troubleshooting)
    disable_config_cache: bool = False

    # Interval between modification-time polls of cached configuration files
    config_poll_interval_seconds: float = 2.0

    # -------------------------------------------------------------------------
    # Subprocess Limits
    # -------------------------------------------------------------------------
    # Wall-clock bound for the project's post-setup shell command
    post_setup_timeout_seconds: int = 180

    # Wall-clock bound for any single git invocation
    git_timeout_seconds: int = 120

    # -------------------------------------------------------------------------
    # Working Trees
    # -------------------------------------------------------------------------
    # Fetch origin before creating working trees
    ensure_freshness: bool = True

    # Log git and filesystem mutations instead of performing them
    dry_run: bool = False

    # -------------------------------------------------------------------------
    # GitHub Context
    # -------------------------------------------------------------------------
    github_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DEVSPACE_GITHUB_TOKEN", "GITHUB_TOKEN"),
    )

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # -------------------------------------------------------------------------
    # Logging & Events
    # -------------------------------------------------------------------------
    verbose: bool = False

    log_level: str = "INFO"

    event_sinks: List[EventSinkType] = Field(
        default_factory=lambda: [EventSinkType.LOGGING]
    )

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("config_poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        """Validate that the poll interval is positive."""
        if v <= 0:
            raise ValueError("config_poll_interval_seconds must be positive")
        return v

    @field_validator("post_setup_timeout_seconds", "git_timeout_seconds")
    @classmethod
    def validate_timeouts(cls, v: int) -> int:
        """Validate that subprocess timeouts are positive."""
        if v < 1:
            raise ValueError("timeouts must be at least 1 second")
        return v

    @field_validator("github_base_url")
    @classmethod
    def validate_github_base_url(cls, v: str) -> str:
        """Validate that the GitHub base URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a standard level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level


def get_settings() -> DevspaceSettings:
    """Create and return a DevspaceSettings instance.

    Returns:
        DevspaceSettings: Settings read from the environment.

    Raises:
        pydantic.ValidationError: If a value is invalid.
    """
    return DevspaceSettings()
