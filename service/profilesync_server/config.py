"""
Configuration management for ProfileSync Server.

All configuration is done via environment variables. The only file read is
the optional default-data template (PROFILE_DEFAULT_DATA).
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Changing the store name or scope points the server at different documents

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never change PROFILE_STORE_SCOPE defaults in place; bump the scope instead
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return float(raw)


@dataclass(frozen=True)
class ProfileStoreConfig:
    """Profile store configuration.

    Attributes:
        name: Name of the profile store holding the documents
        scope: Scope (version) of the documents within the store
        load_timeout_seconds: Maximum time to wait for a document to load
        default_data_path: YAML/JSON file holding the default-data template
    """

    name: str = "Alpha"
    scope: str = "0.0.1"
    load_timeout_seconds: float | None = 30.0
    default_data_path: str | None = None

    @classmethod
    def from_env(cls) -> ProfileStoreConfig:
        """Load configuration from environment variables."""
        return cls(
            name=os.getenv("PROFILE_STORE_NAME", "Alpha"),
            scope=os.getenv("PROFILE_STORE_SCOPE", "0.0.1"),
            load_timeout_seconds=float(os.getenv("PROFILE_LOAD_TIMEOUT_SECONDS", "30")),
            default_data_path=os.getenv("PROFILE_DEFAULT_DATA"),
        )


@dataclass(frozen=True)
class SessionConfig:
    """Session lifecycle configuration.

    Attributes:
        get_timeout_seconds: Default wait for get() (None waits until the
            session exists or the identity disconnects)
        kick_message_load_failed: Reason sent when a document cannot be loaded
        kick_message_released: Reason sent when the document is opened elsewhere
    """

    get_timeout_seconds: float | None = None
    kick_message_load_failed: str = "Data couldn't be loaded, try rejoining!"
    kick_message_released: str = "Data loaded on another server!"

    @classmethod
    def from_env(cls) -> SessionConfig:
        """Load configuration from environment variables."""
        return cls(
            get_timeout_seconds=_optional_float("SESSION_GET_TIMEOUT_SECONDS"),
            kick_message_load_failed=os.getenv(
                "SESSION_KICK_LOAD_FAILED", "Data couldn't be loaded, try rejoining!"
            ),
            kick_message_released=os.getenv(
                "SESSION_KICK_RELEASED", "Data loaded on another server!"
            ),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP inspection API configuration.

    Attributes:
        enabled: Whether to serve the HTTP API
        host: Address to bind
        port: Port to bind
    """

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8081

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=os.getenv("HTTP_ENABLED", "true").lower() == "true",
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8081")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        profile_store: Profile store configuration
        session: Session lifecycle configuration
        http: HTTP inspection API configuration
        observability: Logging configuration
    """

    profile_store: ProfileStoreConfig = field(default_factory=ProfileStoreConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            profile_store=ProfileStoreConfig.from_env(),
            session=SessionConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.profile_store.name:
            raise ValueError("PROFILE_STORE_NAME must not be empty")
        if not self.profile_store.scope:
            raise ValueError("PROFILE_STORE_SCOPE must not be empty")
        if self.profile_store.default_data_path and not os.path.exists(
            self.profile_store.default_data_path
        ):
            raise ValueError(
                f"PROFILE_DEFAULT_DATA file not found: {self.profile_store.default_data_path}"
            )

        for name, timeout in (
            ("PROFILE_LOAD_TIMEOUT_SECONDS", self.profile_store.load_timeout_seconds),
            ("SESSION_GET_TIMEOUT_SECONDS", self.session.get_timeout_seconds),
        ):
            if timeout is not None and timeout <= 0:
                raise ValueError(f"{name} must be positive, got {timeout}")

        if not 0 < self.http.port < 65536:
            raise ValueError(f"HTTP_PORT out of range: {self.http.port}")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "profile_store": self.profile_store.name,
                "profile_scope": self.profile_store.scope,
                "load_timeout_seconds": self.profile_store.load_timeout_seconds,
                "get_timeout_seconds": self.session.get_timeout_seconds,
                "http_enabled": self.http.enabled,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
