"""
Songbook - Entry Point

Run with: python -m songbook
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from songbook import __version__
from songbook.config import ConfigError, Settings, load_settings, validate_settings
from songbook.server import SongbookServer


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="songbook",
        description="Songbook - song catalog service",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to a TOML config file (default: packaged songbook.toml)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging, overriding the configured level",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (overrides config)",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="HTTP port (overrides config)",
    )

    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the catalog SQLite database (overrides config)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Command line options win over file and environment."""
    server = settings.server
    if args.host is not None:
        server = replace(server, host=args.host)
    if args.port is not None:
        server = replace(server, port=args.port)

    database = settings.database
    if args.db is not None:
        database = replace(database, path=args.db)

    log_level = "debug" if args.verbose else settings.log_level
    return replace(settings, server=server, database=database, log_level=log_level)


async def run_server(settings: Settings) -> None:
    """Start and run the Songbook server."""
    server = SongbookServer(settings)
    await server.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)

    try:
        settings = apply_cli_overrides(load_settings(args.config), args)
        validate_settings(settings)
    except ConfigError as e:
        setup_logging()
        logging.getLogger(__name__).error("Invalid configuration: %s", e)
        return 1

    setup_logging(settings.logging_level)

    logger = logging.getLogger(__name__)
    logger.info("Starting Songbook...")
    logger.debug("Debug logging enabled")

    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
