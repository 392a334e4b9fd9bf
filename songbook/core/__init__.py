"""
Core domain package.

This package contains the catalog business logic, which is independent of the
web layer: the SQLite access layer, the enrichment client and the `SongCatalog`
service facade.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `songbook.core.catalog`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "InvalidRequestError",
    "NotFoundError",
    "ConflictError",
    "CatalogStorageError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class InvalidRequestError(CoreError):
    """Raised when the caller supplied missing or malformed input."""


class NotFoundError(CoreError):
    """Raised when a song or group cannot be found (or nothing was affected)."""


class ConflictError(CoreError):
    """Raised when a write would duplicate a group name or a (group, song) pair."""


class CatalogStorageError(CoreError):
    """Raised when the underlying database fails a query or statement."""
