"""
Web Server Module for Songbook.

This module provides the WebServer class that creates and manages the
FastAPI application, registers all routes, and maps catalog errors to
HTTP responses.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from songbook import __version__
from songbook.core import (
    CatalogStorageError,
    ConflictError,
    CoreError,
    InvalidRequestError,
    NotFoundError,
)
from songbook.core.enrichment import (
    EnrichmentInvalidInputError,
    EnrichmentTransportError,
    EnrichmentUnavailableError,
    EnrichmentUnexpectedResponseError,
)
from songbook.web.routes.library import register_library_routes

if TYPE_CHECKING:
    from songbook.core.catalog import SongCatalog

logger = logging.getLogger(__name__)

# Most specific class wins (looked up along the exception's MRO).
ERROR_STATUS: dict[type[CoreError], int] = {
    InvalidRequestError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    CatalogStorageError: 500,
    EnrichmentInvalidInputError: 400,
    EnrichmentTransportError: 502,
    EnrichmentUnexpectedResponseError: 502,
    EnrichmentUnavailableError: 503,
}


def status_for_error(exc: CoreError) -> int:
    """Return the HTTP status for a core exception (500 if unmapped)."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


async def _handle_core_error(request: Request, exc: Exception) -> JSONResponse:
    status = status_for_error(exc)  # type: ignore[arg-type]
    if status >= 500:
        logger.error("%s %s failed (%d): %s", request.method, request.url.path, status, exc)
    else:
        logger.warning("%s %s rejected (%d): %s", request.method, request.url.path, status, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


class WebServer:
    """
    FastAPI-based web server for Songbook.

    Provides the library REST API and a health check.
    """

    def __init__(self, catalog: SongCatalog) -> None:
        """
        Initialize the WebServer.

        Args:
            catalog: Song catalog serving the library routes
        """
        self.catalog = catalog

        # Create FastAPI app
        self.app = FastAPI(
            title="Songbook",
            description="Song catalog with metadata enrichment",
            version=__version__,
        )
        self.app.add_exception_handler(CoreError, _handle_core_error)

        # Server state
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self._host = "0.0.0.0"
        self._port = 8080

        # Register routes
        self._register_routes()

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        # Health check
        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "ok", "server": "songbook", "version": __version__}

        register_library_routes(self.app, catalog=self.catalog)

    async def start(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        """
        Start the web server.

        Args:
            host: Host address to bind to
            port: Port to listen on
        """
        self._host = host
        self._port = port

        # Configure uvicorn
        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        # Start server in background
        self._serve_task = asyncio.create_task(self._server.serve())

        logger.info("Web server started on http://%s:%d", host, port)

    async def stop(self) -> None:
        """Stop the web server and wait for in-flight requests to finish."""
        if self._server is not None:
            self._server.should_exit = True
            self._server = None

        if self._serve_task is not None:
            await self._serve_task
            self._serve_task = None

        logger.info("Web server stopped")

    @property
    def port(self) -> int:
        """Get the server port."""
        return self._port

    @property
    def host(self) -> str:
        """Get the server host."""
        return self._host
