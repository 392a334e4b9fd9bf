"""
Songbook Web Layer.

This package provides the HTTP API for the song catalog.

Components:
- WebServer: FastAPI application with all routes, served by uvicorn
"""

from songbook.web.server import WebServer

__all__ = [
    "WebServer",
]
