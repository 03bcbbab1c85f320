"""Unit tests for DevspaceSettings environment loading and validation."""

import pytest
from pydantic import ValidationError

from src.devspace.config import DevspaceSettings, get_settings
from src.devspace.events.emitter import EventSinkType


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "GITHUB_TOKEN",
        "DEVSPACE_GITHUB_TOKEN",
        "DEVSPACE_CONFIG_PATH",
        "DEVSPACE_DRY_RUN",
        "DEVSPACE_EVENT_SINKS",
        "DEVSPACE_LOG_LEVEL",
        "DEVSPACE_DISABLE_CONFIG_CACHE",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:

    def test_defaults(self):
        settings = get_settings()
        assert settings.config_path is None
        assert settings.disable_config_cache is False
        assert settings.config_poll_interval_seconds == 2.0
        assert settings.post_setup_timeout_seconds == 180
        assert settings.git_timeout_seconds == 120
        assert settings.ensure_freshness is True
        assert settings.dry_run is False
        assert settings.github_token is None
        assert settings.github_base_url == "https://api.github.com"
        assert settings.event_sinks == [EventSinkType.LOGGING]


class TestEnvironment:

    def test_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("DEVSPACE_CONFIG_PATH", "/etc/devspace.yaml")
        monkeypatch.setenv("DEVSPACE_DRY_RUN", "true")
        monkeypatch.setenv("DEVSPACE_DISABLE_CONFIG_CACHE", "1")
        settings = DevspaceSettings()
        assert settings.config_path == "/etc/devspace.yaml"
        assert settings.dry_run is True
        assert settings.disable_config_cache is True

    def test_github_token_from_conventional_variable(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_plain")
        assert DevspaceSettings().github_token == "ghp_plain"

    def test_prefixed_github_token(self, monkeypatch):
        monkeypatch.setenv("DEVSPACE_GITHUB_TOKEN", "ghp_prefixed")
        assert DevspaceSettings().github_token == "ghp_prefixed"

    def test_event_sinks_from_json(self, monkeypatch):
        monkeypatch.setenv("DEVSPACE_EVENT_SINKS", '["logging", "queue"]')
        assert DevspaceSettings().event_sinks == [
            EventSinkType.LOGGING,
            EventSinkType.QUEUE,
        ]

    def test_log_level_is_normalized(self, monkeypatch):
        monkeypatch.setenv("DEVSPACE_LOG_LEVEL", "debug")
        assert DevspaceSettings().log_level == "DEBUG"


class TestValidation:

    def test_rejects_non_positive_poll_interval(self):
        with pytest.raises(ValidationError):
            DevspaceSettings(config_poll_interval_seconds=0)

    def test_rejects_zero_timeouts(self):
        with pytest.raises(ValidationError):
            DevspaceSettings(post_setup_timeout_seconds=0)
        with pytest.raises(ValidationError):
            DevspaceSettings(git_timeout_seconds=0)

    def test_rejects_non_http_base_url(self):
        with pytest.raises(ValidationError):
            DevspaceSettings(github_base_url="ftp://example.com")

    def test_strips_trailing_slash_from_base_url(self):
        settings = DevspaceSettings(github_base_url="https://ghe.example.com/api/v3/")
        assert settings.github_base_url == "https://ghe.example.com/api/v3"

    def test_rejects_unknown_log_level(self):
        with pytest.raises(ValidationError):
            DevspaceSettings(log_level="chatty")
