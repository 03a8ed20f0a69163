"""
ProfileSync Server - Main entry point.

This module starts the server with all components:
- Profile store (documents loaded on connect, released on disconnect)
- Transport (diffs pushed to clients)
- SessionStore (authoritative trees, update queues, notifications)
- HTTP inspection API (optional)

Usage:
    python -m service.profilesync_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Shutdown releases every live document before the process exits
    - The default-data template is loaded once, before any session exists

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .api import HttpServer
from .config import ServerConfig
from .defaults import load_default_data
from .profile import InMemoryProfileStore, ProfileStore
from .session import SessionStore
from .transport import InMemoryTransport, Transport

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class Server:
    """ProfileSync Server orchestrator.

    Manages the lifecycle of all server components.

    Attributes:
        config: Server configuration
        profile_store: Where documents live between sessions
        transport: Carries diffs to clients
        sessions: Live session store
        http_server: Optional inspection API

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        profile_store: ProfileStore | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
            profile_store: Profile store backend (in-memory if not provided)
            transport: Transport backend (in-memory if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.profile_store: ProfileStore = profile_store or InMemoryProfileStore(
            name=self.config.profile_store.name,
            scope=self.config.profile_store.scope,
        )
        self.transport: Transport = transport or InMemoryTransport()

        # Components (initialized in start())
        self.sessions: SessionStore | None = None
        self.http_server: HttpServer | None = None

    async def start(self, wait: bool = True) -> None:
        """Start the server and all components.

        Args:
            wait: Block until request_shutdown() is called
        """
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting ProfileSync server")
        self.config.log_config()

        try:
            default_data = load_default_data(self.config.profile_store.default_data_path)

            self.sessions = SessionStore(
                profile_store=self.profile_store,
                transport=self.transport,
                default_data=default_data,
                config=self.config.session,
                load_timeout=self.config.profile_store.load_timeout_seconds,
            )

            if self.config.http.enabled:
                self.http_server = HttpServer(
                    self.sessions,
                    host=self.config.http.host,
                    port=self.config.http.port,
                )
                await self.http_server.start()

            self._running = True
            logger.info("ProfileSync server started successfully")

            if wait:
                await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            self._running = True
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully, releasing every document."""
        if not self._running:
            return

        logger.info("Stopping ProfileSync server")

        if self.http_server:
            await self.http_server.stop()

        if self.sessions:
            await self.sessions.close()

        self._running = False
        logger.info("ProfileSync server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
