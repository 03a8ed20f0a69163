"""
Unit tests for server configuration.

Tests cover:
- Defaults
- Loading from environment variables
- Validation failures
"""

import pytest

from service.profilesync_server.config import (
    HttpConfig,
    ObservabilityConfig,
    ProfileStoreConfig,
    ServerConfig,
    SessionConfig,
)


class TestServerConfig:
    """Tests for ServerConfig."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        """Remove every variable the config reads."""
        for name in (
            "PROFILE_STORE_NAME",
            "PROFILE_STORE_SCOPE",
            "PROFILE_LOAD_TIMEOUT_SECONDS",
            "PROFILE_DEFAULT_DATA",
            "SESSION_GET_TIMEOUT_SECONDS",
            "SESSION_KICK_LOAD_FAILED",
            "SESSION_KICK_RELEASED",
            "HTTP_ENABLED",
            "HTTP_HOST",
            "HTTP_PORT",
            "LOG_LEVEL",
            "LOG_FORMAT",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = ServerConfig.from_env()

        assert config.profile_store.name == "Alpha"
        assert config.profile_store.scope == "0.0.1"
        assert config.profile_store.load_timeout_seconds == 30.0
        assert config.profile_store.default_data_path is None
        assert config.session.get_timeout_seconds is None
        assert config.session.kick_message_load_failed == "Data couldn't be loaded, try rejoining!"
        assert config.session.kick_message_released == "Data loaded on another server!"
        assert config.http.enabled is True
        assert config.http.port == 8081
        assert config.observability.log_format == "json"

    def test_from_env(self, monkeypatch, tmp_path):
        defaults = tmp_path / "defaults.yaml"
        defaults.write_text("Coins: 0\n")
        monkeypatch.setenv("PROFILE_STORE_NAME", "Beta")
        monkeypatch.setenv("PROFILE_STORE_SCOPE", "0.0.2")
        monkeypatch.setenv("PROFILE_LOAD_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("PROFILE_DEFAULT_DATA", str(defaults))
        monkeypatch.setenv("SESSION_GET_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("HTTP_ENABLED", "false")
        monkeypatch.setenv("HTTP_PORT", "9000")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ServerConfig.from_env()

        assert config.profile_store == ProfileStoreConfig(
            name="Beta",
            scope="0.0.2",
            load_timeout_seconds=5.0,
            default_data_path=str(defaults),
        )
        assert config.session.get_timeout_seconds == 2.5
        assert config.http.enabled is False
        assert config.http.port == 9000
        assert config.observability.log_format == "text"

    def test_empty_store_name(self, monkeypatch):
        monkeypatch.setenv("PROFILE_STORE_NAME", "")

        with pytest.raises(ValueError, match="PROFILE_STORE_NAME"):
            ServerConfig.from_env()

    def test_missing_default_data_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PROFILE_DEFAULT_DATA", str(tmp_path / "missing.yaml"))

        with pytest.raises(ValueError, match="PROFILE_DEFAULT_DATA"):
            ServerConfig.from_env()

    def test_non_positive_timeout(self):
        config = ServerConfig(session=SessionConfig(get_timeout_seconds=0))

        with pytest.raises(ValueError, match="SESSION_GET_TIMEOUT_SECONDS"):
            config.validate()

    def test_bad_port(self):
        config = ServerConfig(http=HttpConfig(port=70000))

        with pytest.raises(ValueError, match="HTTP_PORT"):
            config.validate()

    def test_bad_log_format(self):
        config = ServerConfig(observability=ObservabilityConfig(log_format="xml"))

        with pytest.raises(ValueError, match="LOG_FORMAT"):
            config.validate()
