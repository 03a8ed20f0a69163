"""
HTTP inspection API for ProfileSync.

This module provides an optional REST API over the SessionStore. It's
useful for:
- Inspecting live session documents while debugging
- Driving connect/disconnect notifications from outside the process
- Health checks

Routes:
    GET    /v1/health                 Liveness and session count
    GET    /v1/sessions               Identities with a live session
    GET    /v1/sessions/{identity}    Session document (404 when absent)
    POST   /v1/sessions/{identity}    Connect: load the document
    DELETE /v1/sessions/{identity}    Disconnect: release the document

Invariants:
    - Reads never wait for a session to load (peek semantics)
    - The API never mutates a document directly
    - JSON request/response format

How to change safely:
    - Never add a route that writes a session tree outside update()
    - Keep error bodies in {"error", "error_code"} form
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Hashable

from aiohttp import web

from sdk.profilesync_sdk.errors import ProfileLoadError, ProfileSyncError

from ..session.store import SessionStore

logger = logging.getLogger(__name__)

SESSIONS_KEY = web.AppKey("sessions", SessionStore)


def parse_identity(raw: str) -> Hashable:
    """Map a URL segment to an identity: ASCII-digit segments become ints."""
    return int(raw) if raw.isascii() and raw.isdigit() else raw


def create_http_app(sessions: SessionStore) -> web.Application:
    """Create the HTTP application.

    Args:
        sessions: Session store to expose

    Returns:
        aiohttp Application instance
    """
    app = web.Application(middlewares=[error_middleware])
    app[SESSIONS_KEY] = sessions

    app.router.add_get("/v1/health", handle_health)
    app.router.add_get("/v1/sessions", handle_list_sessions)
    app.router.add_get("/v1/sessions/{identity}", handle_get_session)
    app.router.add_post("/v1/sessions/{identity}", handle_connect)
    app.router.add_delete("/v1/sessions/{identity}", handle_disconnect)

    return app


@web.middleware
async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Turn unexpected errors into JSON 500 responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ProfileSyncError as e:
        logger.warning(f"Request failed: {e.message}", extra={"code": e.code})
        return web.json_response({"error": e.message, "error_code": e.code}, status=409)
    except Exception as e:
        logger.error(f"HTTP handler error: {e}", exc_info=True)
        return web.json_response({"error": str(e), "error_code": "INTERNAL"}, status=500)


async def handle_health(request: web.Request) -> web.Response:
    """Handle GET /v1/health."""
    sessions = request.app[SESSIONS_KEY]
    return web.json_response({"status": "ok", "sessions": len(sessions)})


async def handle_list_sessions(request: web.Request) -> web.Response:
    """Handle GET /v1/sessions - List live identities."""
    sessions = request.app[SESSIONS_KEY]
    return web.json_response(
        {
            "identities": [str(identity) for identity in sessions.identities()],
            "stats": sessions.stats,
        }
    )


async def handle_get_session(request: web.Request) -> web.Response:
    """Handle GET /v1/sessions/{identity} - Get a session document."""
    sessions = request.app[SESSIONS_KEY]
    identity = parse_identity(request.match_info["identity"])

    session = sessions.peek(identity)
    if session is None:
        return web.json_response(
            {"error": f"No session for {identity!r}", "error_code": "NOT_FOUND"},
            status=404,
        )

    return web.json_response(
        {
            "identity": str(identity),
            "data": session.data,
            "scheduler": session.scheduler.stats,
            "notifier": session.notifier.stats,
        }
    )


async def handle_connect(request: web.Request) -> web.Response:
    """Handle POST /v1/sessions/{identity} - Connect notification."""
    sessions = request.app[SESSIONS_KEY]
    identity = parse_identity(request.match_info["identity"])

    try:
        session = await sessions.create_session(identity)
    except ProfileLoadError as e:
        return web.json_response({"error": e.message, "error_code": e.code}, status=503)

    if session is None:
        return web.json_response(
            {"error": f"{identity!r} disconnected during load", "error_code": "STALE_SESSION"},
            status=409,
        )
    return web.json_response({"identity": str(identity), "created": True}, status=201)


async def handle_disconnect(request: web.Request) -> web.Response:
    """Handle DELETE /v1/sessions/{identity} - Disconnect notification."""
    sessions = request.app[SESSIONS_KEY]
    identity = parse_identity(request.match_info["identity"])

    await sessions.remove_session(identity)
    return web.json_response({"identity": str(identity), "removed": True})


class HttpServer:
    """Runs the HTTP inspection API on a TCP site.

    Example:
        >>> server = HttpServer(sessions, host="127.0.0.1", port=8081)
        >>> await server.start()
        >>> await server.stop()
    """

    def __init__(self, sessions: SessionStore, host: str = "0.0.0.0", port: int = 8081) -> None:
        self.sessions = sessions
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start serving."""
        app = create_http_app(self.sessions)
        self._runner = web.AppRunner(app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        logger.info(f"HTTP server running on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP server stopped")
