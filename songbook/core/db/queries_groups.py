"""
Group-related DB queries used by `songbook.core.catalog_db.CatalogDb`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- They never commit; transaction boundaries belong to `CatalogDb`.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Important:
- Do NOT interpolate user input into SQL.
"""

from __future__ import annotations

import aiosqlite

from songbook.core.db.models import GroupRow


async def get_group_by_name(conn: aiosqlite.Connection, name: str) -> GroupRow | None:
    cursor = await conn.execute("SELECT id, name FROM groups WHERE name = ?;", (name,))
    row = await cursor.fetchone()
    return GroupRow(id=int(row["id"]), name=str(row["name"])) if row else None


async def find_group_id(conn: aiosqlite.Connection, name: str) -> int | None:
    group = await get_group_by_name(conn, name)
    return group.id if group is not None else None


async def list_groups(conn: aiosqlite.Connection) -> list[GroupRow]:
    cursor = await conn.execute("SELECT id, name FROM groups ORDER BY name;")
    rows = await cursor.fetchall()
    return [GroupRow(id=int(r["id"]), name=str(r["name"])) for r in rows]


async def resolve_or_create_group(conn: aiosqlite.Connection, name: str) -> int:
    """
    Get or create a group by name, return its ID.

    The insert is conditional on the UNIQUE(name) constraint, so two callers
    resolving the same new name concurrently both get the same row.
    """
    await conn.execute(
        "INSERT INTO groups (name) VALUES (?) ON CONFLICT(name) DO NOTHING;",
        (name,),
    )
    group_id = await find_group_id(conn, name)
    if group_id is None:
        raise RuntimeError(f"Group upsert failed: no row for {name!r} after insert.")
    return group_id


async def rename_group(conn: aiosqlite.Connection, old_name: str, new_name: str) -> int:
    """Rename a group in place. Returns the number of renamed rows (0 or 1)."""
    cursor = await conn.execute(
        "UPDATE groups SET name = ? WHERE name = ?;",
        (new_name, old_name),
    )
    return cursor.rowcount
