"""
Internal DB subpackage for Songbook.

This package splits the catalog access layer into focused units (models,
schema/migrations, and query groups) while keeping `CatalogDb` as the single
public interface that the rest of the codebase imports.

Re-exports here are primarily for convenience inside the `core` package.
External code should continue to import `CatalogDb` from `songbook.core.catalog_db`.
"""

from __future__ import annotations

# Models / DTOs
from .models import (
    UNSET,
    GroupRow,
    NewSong,
    SongFilter,
    SongPatch,
    SongRow,
    Unset,
    is_set,
    normalize_release_date,
)

# Schema / migrations
from .schema import SCHEMA_VERSION, ensure_schema, migrate

__all__ = [
    # models
    "UNSET",
    "Unset",
    "GroupRow",
    "NewSong",
    "SongFilter",
    "SongPatch",
    "SongRow",
    "is_set",
    "normalize_release_date",
    # schema
    "SCHEMA_VERSION",
    "ensure_schema",
    "migrate",
]
