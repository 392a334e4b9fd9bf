"""
Configuration management for Songbook.

Settings are read from a TOML file (the packaged `songbook.toml` by default)
and then overridden from the environment:

- SONGBOOK_HOST, SONGBOOK_PORT, SONGBOOK_DB_PATH
- LOG_LEVEL
- EXTERNAL_API_URL
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "songbook.toml"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class ConfigError(ValueError):
    """Raised when the configuration file or environment holds an invalid value."""


@dataclass(frozen=True)
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class DatabaseSettings:
    path: str = "songbook.sqlite3"


@dataclass(frozen=True)
class EnrichmentSettings:
    """Metadata source endpoint and retry policy."""

    external_api_url: str = ""
    timeout: float = 10.0
    max_attempts: int = 5
    initial_backoff: float = 1.0
    max_backoff: float = 10.0


@dataclass(frozen=True)
class Settings:
    server: ServerSettings = field(default_factory=ServerSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    enrichment: EnrichmentSettings = field(default_factory=EnrichmentSettings)
    log_level: str = "info"

    @property
    def logging_level(self) -> int:
        """The configured level as a `logging` constant."""
        return logging.getLevelName(self.log_level.upper())


def _as_int(value: object, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None


def _as_float(value: object, key: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


def _as_log_level(value: object) -> str:
    level = str(value).strip().lower()
    if level not in LOG_LEVELS:
        raise ConfigError(f"log level must be one of {', '.join(LOG_LEVELS)}, got {value!r}")
    return level


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _parse_settings(data: Mapping[str, Any]) -> Settings:
    """Parse the TOML document into Settings."""
    server = _section(data, "server")
    database = _section(data, "database")
    logging_section = _section(data, "logging")
    enrichment = _section(data, "enrichment")

    defaults = EnrichmentSettings()
    return Settings(
        server=ServerSettings(
            host=str(server.get("host", ServerSettings.host)),
            port=_as_int(server.get("port", ServerSettings.port), "server.port"),
        ),
        database=DatabaseSettings(
            path=str(database.get("path", DatabaseSettings.path)),
        ),
        enrichment=EnrichmentSettings(
            external_api_url=str(enrichment.get("external_api_url", "")),
            timeout=_as_float(enrichment.get("timeout", defaults.timeout), "enrichment.timeout"),
            max_attempts=_as_int(
                enrichment.get("max_attempts", defaults.max_attempts), "enrichment.max_attempts"
            ),
            initial_backoff=_as_float(
                enrichment.get("initial_backoff", defaults.initial_backoff),
                "enrichment.initial_backoff",
            ),
            max_backoff=_as_float(
                enrichment.get("max_backoff", defaults.max_backoff), "enrichment.max_backoff"
            ),
        ),
        log_level=_as_log_level(logging_section.get("level", "info")),
    )


def apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    """Return a copy of `settings` with environment variables applied."""
    server = settings.server
    if "SONGBOOK_HOST" in environ:
        server = replace(server, host=environ["SONGBOOK_HOST"])
    if "SONGBOOK_PORT" in environ:
        server = replace(server, port=_as_int(environ["SONGBOOK_PORT"], "SONGBOOK_PORT"))

    database = settings.database
    if "SONGBOOK_DB_PATH" in environ:
        database = replace(database, path=environ["SONGBOOK_DB_PATH"])

    enrichment = settings.enrichment
    if "EXTERNAL_API_URL" in environ:
        enrichment = replace(enrichment, external_api_url=environ["EXTERNAL_API_URL"])

    log_level = settings.log_level
    if "LOG_LEVEL" in environ:
        log_level = _as_log_level(environ["LOG_LEVEL"])

    return replace(
        settings, server=server, database=database, enrichment=enrichment, log_level=log_level
    )


def validate_settings(settings: Settings) -> None:
    """Check cross-field constraints that parsing alone cannot catch."""
    if not 0 < settings.server.port < 65536:
        raise ConfigError(f"server.port out of range: {settings.server.port}")
    enrichment = settings.enrichment
    if enrichment.max_attempts < 1:
        raise ConfigError("enrichment.max_attempts must be at least 1")
    if enrichment.timeout <= 0:
        raise ConfigError("enrichment.timeout must be positive")
    if enrichment.initial_backoff < 0:
        raise ConfigError("enrichment.initial_backoff must not be negative")
    if enrichment.max_backoff < enrichment.initial_backoff:
        raise ConfigError("enrichment.max_backoff must not be below enrichment.initial_backoff")


def load_settings(
    config_path: Path | None = None, environ: Mapping[str, str] | None = None
) -> Settings:
    """
    Load settings from a TOML file and the environment.

    Args:
        config_path: Path to a TOML file. If None, uses the packaged default.
        environ: Environment mapping. If None, uses os.environ.

    Returns:
        Validated Settings instance.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    logger.debug("Loading config from %s", config_path)

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {config_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    settings = _parse_settings(data)
    settings = apply_env_overrides(settings, os.environ if environ is None else environ)
    validate_settings(settings)
    return settings


__all__ = [
    "ConfigError",
    "DatabaseSettings",
    "EnrichmentSettings",
    "ServerSettings",
    "Settings",
    "load_settings",
    "validate_settings",
]
