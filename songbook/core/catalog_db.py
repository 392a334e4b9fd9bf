"""
Song catalog database schema + access layer.

Goals:
- Small and testable: two tables (groups, songs) and exact-match queries.
- SQLite + aiosqlite, async/await friendly.
- Schema evolves via user_version migrations.

This module is intentionally independent of the web layer.

Note:
- Models/DTOs and normalization helpers live in `songbook.core.db.models`
- Schema/migrations live in `songbook.core.db.schema`
- Query functions live in `songbook.core.db.queries_*` modules
- `CatalogDb` remains the public facade used by the rest of the codebase
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from songbook.core import CatalogStorageError, ConflictError
from songbook.core.db import queries_groups, queries_songs
from songbook.core.db.models import GroupRow, NewSong, SongFilter, SongPatch, SongRow
from songbook.core.db.schema import ensure_schema as ensure_schema_sql
from songbook.core.db.schema import get_schema_version

logger = logging.getLogger(__name__)


class CatalogDb:
    """
    Async access layer for the song catalog DB.

    Usage:
        db = CatalogDb("songbook.sqlite3")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    Notes:
    - This class is designed to be injected into other components.
    - Connections are not pooled; we keep a single connection. Writes are
      serialized with a lock so multi-statement writes (resolve group, then
      insert/update the song) commit or roll back as one unit.
    - sqlite errors are re-raised as `ConflictError` (constraint violations)
      or `CatalogStorageError` (everything else).
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def path(self) -> str:
        return self._db_path

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        # Pragmas: modern defaults without being clever.
        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA journal_mode = WAL;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")
        logger.debug("Opened catalog database %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.debug("Closed catalog database %s", self._db_path)

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("CatalogDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        conn = self._require_conn()
        await ensure_schema_sql(conn)

    async def schema_version(self) -> int:
        return await get_schema_version(self._require_conn())

    @asynccontextmanager
    async def _reading(self, action: str) -> AsyncIterator[aiosqlite.Connection]:
        conn = self._require_conn()
        try:
            yield conn
        except aiosqlite.Error as e:
            logger.error("Database error while trying to %s: %s", action, e)
            raise CatalogStorageError(f"Failed to {action}: {e}") from e

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[aiosqlite.Connection]:
        conn = self._require_conn()
        async with self._write_lock:
            try:
                yield conn
            except BaseException as e:
                await conn.rollback()
                if isinstance(e, aiosqlite.IntegrityError):
                    logger.warning("Constraint violation while trying to %s: %s", action, e)
                    raise ConflictError(f"Failed to {action}: {e}") from e
                if isinstance(e, aiosqlite.Error):
                    logger.error("Database error while trying to %s: %s", action, e)
                    raise CatalogStorageError(f"Failed to {action}: {e}") from e
                raise
            else:
                await conn.commit()

    # ===========================================================================
    # Songs
    # ===========================================================================

    async def list_songs(self, flt: SongFilter) -> list[SongRow]:
        async with self._reading("list songs") as conn:
            return await queries_songs.list_songs(conn, flt)

    async def get_song(self, group: str, song: str) -> SongRow | None:
        async with self._reading("get song") as conn:
            return await queries_songs.get_song(conn, group, song)

    async def get_song_text(self, group: str, song: str) -> str | None:
        async with self._reading("get song text") as conn:
            return await queries_songs.get_song_text(conn, group, song)

    async def insert_song(self, song: NewSong) -> int:
        """Insert a song (creating its group if unseen). Returns the song id."""
        async with self._transaction("insert song") as conn:
            song_id = await queries_songs.insert_song(conn, song)
        logger.debug("Inserted song %r by %r (id=%d)", song.name, song.group, song_id)
        return song_id

    async def delete_song(self, group: str, song: str) -> int:
        """Delete a song by (group name, song name). Returns the deleted row count."""
        async with self._transaction("delete song") as conn:
            deleted = await queries_songs.delete_song(conn, group, song)
        logger.debug("Deleted %d row(s) for %r by %r", deleted, song, group)
        return deleted

    async def update_song(self, group: str, song: str, patch: SongPatch) -> SongRow | None:
        """
        Apply a partial update to a song and return the row as it now reads.

        Returns None when the song does not exist. Creating a new target
        group, updating the song and reading it back happen in one
        transaction. An empty patch returns the row unchanged.
        """
        async with self._transaction("update song") as conn:
            updated = await queries_songs.update_song(conn, group, song, patch)
            if updated or patch.is_empty:
                fields = patch.set_fields()
                row = await queries_songs.get_song(
                    conn, fields.get("group", group), fields.get("name", song)
                )
            else:
                row = None
        logger.debug(
            "Updated %d row(s) for %r by %r with fields %s",
            updated,
            song,
            group,
            sorted(patch.set_fields()),
        )
        return row

    # ===========================================================================
    # Groups
    # ===========================================================================

    async def get_group(self, name: str) -> GroupRow | None:
        async with self._reading("get group") as conn:
            return await queries_groups.get_group_by_name(conn, name)

    async def list_groups(self) -> list[GroupRow]:
        async with self._reading("list groups") as conn:
            return await queries_groups.list_groups(conn)

    async def resolve_or_create_group(self, name: str) -> int:
        async with self._transaction("resolve group") as conn:
            return await queries_groups.resolve_or_create_group(conn, name)

    async def rename_group(self, old_name: str, new_name: str) -> int:
        """Rename a group. Returns the number of renamed rows (0 or 1)."""
        async with self._transaction("rename group") as conn:
            renamed = await queries_groups.rename_group(conn, old_name, new_name)
        logger.debug("Renamed group %r -> %r (%d row(s))", old_name, new_name, renamed)
        return renamed
