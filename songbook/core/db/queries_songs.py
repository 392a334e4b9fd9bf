"""
Song-related DB queries used by `songbook.core.catalog_db.CatalogDb`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- Statement text is built by `build_list_query` / `build_update_statement`,
  which are pure and unit-testable without a database.
- They never commit; transaction boundaries belong to `CatalogDb`.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Important:
- Do NOT interpolate user input into SQL. The only dynamic SQL here is the
  LIMIT/OFFSET tail and the SET clause, and both are assembled from fixed
  fragments; every value is bound as a parameter.
"""

from __future__ import annotations

from typing import Any, Final

import aiosqlite

from songbook.core.db.models import NewSong, SongFilter, SongPatch, SongRow
from songbook.core.db.queries_groups import resolve_or_create_group

# SongPatch field -> songs column. Only these names ever reach SQL text.
UPDATABLE_COLUMNS: Final[dict[str, str]] = {
    "group": "group_id",
    "name": "name",
    "release_date": "release_date",
    "text": "text",
    "link": "link",
}

_SELECT_SONGS: Final[str] = """
    SELECT
        s.id,
        s.group_id,
        g.name AS group_name,
        s.name,
        s.release_date,
        s.text,
        s.link
    FROM songs s
    INNER JOIN groups g ON g.id = s.group_id
"""

# UPDATE/DELETE use the bare table name, so the match is written unqualified.
_MATCH_SONG: Final[str] = """
    {prefix}name = :song
    AND {prefix}group_id IN (SELECT id FROM groups WHERE name = :group)
"""


def _row_to_song(row: aiosqlite.Row) -> SongRow:
    """Convert an aiosqlite Row to a SongRow dataclass."""
    return SongRow(
        id=int(row["id"]),
        group_id=int(row["group_id"]),
        group=str(row["group_name"]),
        name=str(row["name"]),
        release_date=row["release_date"] or "",
        text=row["text"] or "",
        link=row["link"] or "",
    )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def build_list_query(flt: SongFilter) -> tuple[str, dict[str, Any]]:
    """
    Build the filtered, ordered, optionally paged song listing.

    Each filter field becomes `(:param = '' OR column = :param)`, so an empty
    field matches everything. Ordering is always group name, then song name,
    which keeps paging stable.
    """
    sql = (
        _SELECT_SONGS
        + """
    WHERE (:group = '' OR g.name = :group)
      AND (:song = '' OR s.name = :song)
      AND (:release_date = '' OR s.release_date = :release_date)
      AND (:text = '' OR s.text = :text)
      AND (:link = '' OR s.link = :link)
    ORDER BY g.name, s.name
"""
    )
    params: dict[str, Any] = {
        "group": flt.group,
        "song": flt.name,
        "release_date": flt.release_date,
        "text": flt.text,
        "link": flt.link,
    }

    # SQLite only accepts OFFSET after a LIMIT; -1 means "no limit".
    if flt.limit is not None or flt.offset is not None:
        sql += "    LIMIT :limit"
        params["limit"] = int(flt.limit) if flt.limit is not None else -1
        if flt.offset is not None:
            sql += " OFFSET :offset"
            params["offset"] = int(flt.offset)
        sql += "\n"

    return sql, params


async def list_songs(conn: aiosqlite.Connection, flt: SongFilter) -> list[SongRow]:
    sql, params = build_list_query(flt)
    cursor = await conn.execute(sql, params)
    rows = await cursor.fetchall()
    return [_row_to_song(r) for r in rows]


# ---------------------------------------------------------------------------
# Single song get/insert/delete
# ---------------------------------------------------------------------------


async def get_song(conn: aiosqlite.Connection, group: str, song: str) -> SongRow | None:
    cursor = await conn.execute(
        _SELECT_SONGS + " WHERE " + _MATCH_SONG.format(prefix="s.") + ";",
        {"group": group, "song": song},
    )
    row = await cursor.fetchone()
    return _row_to_song(row) if row else None


async def get_song_text(conn: aiosqlite.Connection, group: str, song: str) -> str | None:
    cursor = await conn.execute(
        "SELECT s.text FROM songs s WHERE " + _MATCH_SONG.format(prefix="s.") + ";",
        {"group": group, "song": song},
    )
    row = await cursor.fetchone()
    return (row["text"] or "") if row else None


async def insert_song(conn: aiosqlite.Connection, song: NewSong) -> int:
    """Insert a song, creating its group on first use. Returns the song id."""
    group_id = await resolve_or_create_group(conn, song.group)
    cursor = await conn.execute(
        """
        INSERT INTO songs (group_id, name, release_date, text, link)
        VALUES (?, ?, ?, ?, ?);
        """,
        (group_id, song.name, song.release_date, song.text, song.link),
    )
    return int(cursor.lastrowid)


async def delete_song(conn: aiosqlite.Connection, group: str, song: str) -> int:
    """Delete one song by (group name, song name). Returns the deleted row count."""
    cursor = await conn.execute(
        "DELETE FROM songs WHERE " + _MATCH_SONG.format(prefix="") + ";",
        {"group": group, "song": song},
    )
    return cursor.rowcount


# ---------------------------------------------------------------------------
# Partial update
# ---------------------------------------------------------------------------


def build_update_statement(
    group: str, song: str, assignments: dict[str, Any]
) -> tuple[str, dict[str, Any]] | None:
    """
    Build `UPDATE songs SET ... WHERE <current group/song>` for the given
    column -> value assignments.

    Returns None when there is nothing to assign, so callers never emit an
    UPDATE with an empty SET clause.
    """
    if not assignments:
        return None

    allowed = set(UPDATABLE_COLUMNS.values())
    set_parts: list[str] = []
    params: dict[str, Any] = {"group": group, "song": song}
    for column, value in assignments.items():
        if column not in allowed:
            raise ValueError(f"Column {column!r} cannot be updated")
        set_parts.append(f"{column} = :set_{column}")
        params[f"set_{column}"] = value

    sql = (
        "UPDATE songs SET "
        + ", ".join(set_parts)
        + " WHERE "
        + _MATCH_SONG.format(prefix="")
        + ";"
    )
    return sql, params


async def update_song(
    conn: aiosqlite.Connection, group: str, song: str, patch: SongPatch
) -> int:
    """
    Apply a partial update to one song. Returns the number of matched rows.

    A supplied group name is resolved (and created if unseen) and stored as
    the song's `group_id`. An empty patch touches nothing and returns 0, and
    so does a patch addressed to a song that does not exist; in that case no
    group is created either.
    """
    if patch.is_empty or await get_song(conn, group, song) is None:
        return 0

    assignments: dict[str, Any] = {}
    for field_name, value in patch.set_fields().items():
        if field_name == "group":
            value = await resolve_or_create_group(conn, value)
        assignments[UPDATABLE_COLUMNS[field_name]] = value

    statement = build_update_statement(group, song, assignments)
    if statement is None:
        return 0

    sql, params = statement
    cursor = await conn.execute(sql, params)
    return cursor.rowcount
