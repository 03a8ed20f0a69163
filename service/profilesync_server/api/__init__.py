"""
API module for ProfileSync server.

This module provides the optional HTTP inspection API: session documents,
connect/disconnect notifications and health checks.

Invariants:
    - The API never writes a session tree directly
"""

from .http_server import HttpServer, create_http_app

__all__ = [
    "HttpServer",
    "create_http_app",
]
