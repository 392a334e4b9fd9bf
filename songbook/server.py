"""
Songbook - Main Server Module

This module contains the SongbookServer class that wires the catalog
components together and manages the application lifecycle.
"""

import asyncio
import logging
import signal

from songbook.config import ConfigError, Settings
from songbook.core.catalog import SongCatalog
from songbook.core.catalog_db import CatalogDb
from songbook.core.enrichment import EnrichmentClient
from songbook.web.server import WebServer

logger = logging.getLogger(__name__)


class SongbookServer:
    """
    Main Songbook server that coordinates all components.

    The server manages:
    - Catalog database (SQLite, schema migrations on start)
    - Enrichment client for the external metadata source
    - Song catalog service
    - Web server for the HTTP API
    """

    def __init__(self, settings: Settings) -> None:
        """
        Initialize the Songbook server.

        Args:
            settings: Loaded configuration.
        """
        if not settings.enrichment.external_api_url:
            raise ConfigError(
                "No metadata source configured: set enrichment.external_api_url "
                "or EXTERNAL_API_URL"
            )

        self.settings = settings

        self.catalog_db = CatalogDb(db_path=settings.database.path)
        self.enrichment = EnrichmentClient(
            settings.enrichment.external_api_url,
            timeout=settings.enrichment.timeout,
            max_attempts=settings.enrichment.max_attempts,
            initial_backoff=settings.enrichment.initial_backoff,
            max_backoff=settings.enrichment.max_backoff,
        )
        self.catalog = SongCatalog(db=self.catalog_db, enrichment=self.enrichment)
        self.web_server = WebServer(catalog=self.catalog)

        # Server state
        self._running = False
        self._shutdown_event: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start all server components."""
        logger.info(
            "Starting Songbook server on %s:%d",
            self.settings.server.host,
            self.settings.server.port,
        )
        logger.debug("Catalog database: %s", self.settings.database.path)
        logger.debug("Metadata source: %s", self.settings.enrichment.external_api_url)

        self._running = True
        self._shutdown_event = asyncio.Event()

        # Open catalog DB (schema/migrations)
        await self.catalog_db.open()
        await self.catalog_db.ensure_schema()

        await self.web_server.start(
            host=self.settings.server.host,
            port=self.settings.server.port,
        )

        logger.info("Songbook server started")

    async def stop(self) -> None:
        """Stop all server components gracefully."""
        if not self._running:
            return

        logger.info("Stopping Songbook server...")
        self._running = False

        await self.web_server.stop()
        await self.enrichment.aclose()
        await self.catalog_db.close()

        if self._shutdown_event is not None:
            self._shutdown_event.set()

        logger.info("Songbook server stopped")

    def request_shutdown(self) -> None:
        """Ask `run()` to stop the server."""
        logger.info("Received shutdown signal")
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def run(self) -> None:
        """Start the server and block until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                pass

        try:
            await self.start()
            assert self._shutdown_event is not None
            await self._shutdown_event.wait()
        finally:
            await self.stop()
