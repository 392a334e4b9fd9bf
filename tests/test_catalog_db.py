"""
Tests for songbook.core.catalog_db and the songbook.core.db helpers.

These tests verify:
- CatalogDb schema creation and lifecycle
- List query construction (filters, ordering, paging)
- Group resolution and rename
- Partial song updates (SET clause building, group re-pointing)
"""

from __future__ import annotations

import pytest

from songbook.core import ConflictError
from songbook.core.catalog_db import CatalogDb
from songbook.core.db import SCHEMA_VERSION
from songbook.core.db.models import (
    UNSET,
    NewSong,
    SongFilter,
    SongPatch,
    normalize_release_date,
)
from songbook.core.db.queries_songs import build_list_query, build_update_statement

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def db() -> CatalogDb:
    """Create an in-memory database for testing."""
    db = CatalogDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


@pytest.fixture
async def seeded_db(db: CatalogDb) -> CatalogDb:
    """Database with three songs by two groups, inserted out of order."""
    await db.insert_song(
        NewSong(
            group="Muse",
            name="Uprising",
            release_date="2009-09-07",
            text="Paranoia is in bloom\n\nThey will not force us",
            link="https://example.com/uprising",
        )
    )
    await db.insert_song(
        NewSong(
            group="Abba",
            name="Waterloo",
            release_date="1974-03-04",
            text="My, my\n\nWaterloo",
            link="https://example.com/waterloo",
        )
    )
    await db.insert_song(
        NewSong(
            group="Muse",
            name="Supermassive Black Hole",
            release_date="2006-07-16",
            text="Ooh baby, don't you know I suffer?\n\nGlaciers melting",
            link="https://example.com/smbh",
        )
    )
    return db


def _names(rows) -> list[tuple[str, str]]:
    return [(r.group, r.name) for r in rows]


# =============================================================================
# Lifecycle / schema
# =============================================================================


class TestCatalogDbLifecycle:
    """Tests for open/close and schema setup."""

    async def test_open_close(self) -> None:
        """Test basic open/close lifecycle."""
        db = CatalogDb(":memory:")
        assert not db.is_open

        await db.open()
        assert db.is_open

        await db.close()
        assert not db.is_open

    async def test_ensure_schema_sets_version(self, db: CatalogDb) -> None:
        """Test that ensure_schema stamps the current schema version."""
        assert await db.schema_version() == SCHEMA_VERSION

    async def test_ensure_schema_is_idempotent(self, db: CatalogDb) -> None:
        """Running ensure_schema twice keeps data and version."""
        await db.insert_song(NewSong(group="Muse", name="Uprising"))
        await db.ensure_schema()

        assert await db.schema_version() == SCHEMA_VERSION
        assert await db.get_song("Muse", "Uprising") is not None

    async def test_newer_schema_is_refused(self, db: CatalogDb) -> None:
        """A database written by a newer version is not touched."""
        conn = db._require_conn()
        await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1};")
        await conn.commit()

        with pytest.raises(RuntimeError, match="newer than supported"):
            await db.ensure_schema()

    async def test_queries_require_open_db(self) -> None:
        """Using a closed CatalogDb is a programming error."""
        db = CatalogDb(":memory:")
        with pytest.raises(RuntimeError, match="not open"):
            await db.list_songs(SongFilter())


# =============================================================================
# List query builder
# =============================================================================


class TestBuildListQuery:
    """Tests for the pure list query builder."""

    def test_no_paging_without_offset_or_limit(self) -> None:
        sql, params = build_list_query(SongFilter())
        assert "LIMIT" not in sql
        assert "OFFSET" not in sql
        assert params == {
            "group": "",
            "song": "",
            "release_date": "",
            "text": "",
            "link": "",
        }

    def test_fixed_ordering(self) -> None:
        sql, _ = build_list_query(SongFilter(group="Muse"))
        assert "ORDER BY g.name, s.name" in sql

    def test_limit_only(self) -> None:
        sql, params = build_list_query(SongFilter(limit=2))
        assert "LIMIT :limit" in sql
        assert "OFFSET" not in sql
        assert params["limit"] == 2

    def test_offset_only_uses_unbounded_limit(self) -> None:
        sql, params = build_list_query(SongFilter(offset=3))
        assert "LIMIT :limit OFFSET :offset" in sql
        assert params["limit"] == -1
        assert params["offset"] == 3

    def test_values_are_bound_not_interpolated(self) -> None:
        hostile = "x' OR '1'='1"
        sql, params = build_list_query(SongFilter(name=hostile))
        assert hostile not in sql
        assert params["song"] == hostile


# =============================================================================
# Listing
# =============================================================================


class TestListSongs:
    """Tests for filtered listing against a real database."""

    async def test_empty_filter_returns_all_in_order(self, seeded_db: CatalogDb) -> None:
        rows = await seeded_db.list_songs(SongFilter())
        assert _names(rows) == [
            ("Abba", "Waterloo"),
            ("Muse", "Supermassive Black Hole"),
            ("Muse", "Uprising"),
        ]

    @pytest.mark.parametrize(
        ("flt", "expected"),
        [
            (SongFilter(group="Muse"), [("Muse", "Supermassive Black Hole"), ("Muse", "Uprising")]),
            (SongFilter(name="Waterloo"), [("Abba", "Waterloo")]),
            (SongFilter(release_date="2006-07-16"), [("Muse", "Supermassive Black Hole")]),
            (SongFilter(text="My, my\n\nWaterloo"), [("Abba", "Waterloo")]),
            (SongFilter(link="https://example.com/uprising"), [("Muse", "Uprising")]),
        ],
    )
    async def test_single_field_filters(
        self, seeded_db: CatalogDb, flt: SongFilter, expected: list[tuple[str, str]]
    ) -> None:
        rows = await seeded_db.list_songs(flt)
        assert _names(rows) == expected

    async def test_filters_are_combined(self, seeded_db: CatalogDb) -> None:
        rows = await seeded_db.list_songs(SongFilter(group="Muse", name="Waterloo"))
        assert rows == []

    async def test_filter_is_exact_match(self, seeded_db: CatalogDb) -> None:
        rows = await seeded_db.list_songs(SongFilter(group="Mus"))
        assert rows == []

    async def test_unknown_value_yields_empty_list(self, seeded_db: CatalogDb) -> None:
        rows = await seeded_db.list_songs(SongFilter(group="Queen"))
        assert rows == []

    async def test_paging(self, seeded_db: CatalogDb) -> None:
        page = await seeded_db.list_songs(SongFilter(offset=1, limit=1))
        assert _names(page) == [("Muse", "Supermassive Black Hole")]

        tail = await seeded_db.list_songs(SongFilter(offset=2))
        assert _names(tail) == [("Muse", "Uprising")]

        head = await seeded_db.list_songs(SongFilter(limit=1))
        assert _names(head) == [("Abba", "Waterloo")]

    async def test_zero_limit_returns_nothing(self, seeded_db: CatalogDb) -> None:
        assert await seeded_db.list_songs(SongFilter(limit=0)) == []


# =============================================================================
# Single song operations
# =============================================================================


class TestSongRows:
    """Tests for get/insert/delete."""

    async def test_get_song_text(self, seeded_db: CatalogDb) -> None:
        text = await seeded_db.get_song_text("Abba", "Waterloo")
        assert text == "My, my\n\nWaterloo"

    async def test_get_song_text_missing(self, seeded_db: CatalogDb) -> None:
        assert await seeded_db.get_song_text("Abba", "Uprising") is None

    async def test_insert_reuses_existing_group(self, seeded_db: CatalogDb) -> None:
        await seeded_db.insert_song(NewSong(group="Abba", name="Mamma Mia"))
        groups = await seeded_db.list_groups()
        assert [g.name for g in groups] == ["Abba", "Muse"]

    async def test_insert_duplicate_song_is_conflict(self, seeded_db: CatalogDb) -> None:
        with pytest.raises(ConflictError):
            await seeded_db.insert_song(NewSong(group="Abba", name="Waterloo"))

    async def test_failed_insert_rolls_back_new_group(self, db: CatalogDb) -> None:
        """The group created for a song that fails to insert is rolled back."""
        with pytest.raises(ConflictError):
            await db.insert_song(NewSong(group="Queen", name=None))  # type: ignore[arg-type]
        assert await db.get_group("Queen") is None

    async def test_delete_song(self, seeded_db: CatalogDb) -> None:
        assert await seeded_db.delete_song("Muse", "Uprising") == 1
        assert await seeded_db.get_song("Muse", "Uprising") is None

    async def test_delete_requires_matching_group(self, seeded_db: CatalogDb) -> None:
        assert await seeded_db.delete_song("Abba", "Uprising") == 0
        assert await seeded_db.get_song("Muse", "Uprising") is not None

    async def test_delete_keeps_group(self, seeded_db: CatalogDb) -> None:
        await seeded_db.delete_song("Abba", "Waterloo")
        assert await seeded_db.get_group("Abba") is not None


# =============================================================================
# Groups
# =============================================================================


class TestGroups:
    """Tests for group resolution and rename."""

    async def test_resolve_creates_then_reuses(self, db: CatalogDb) -> None:
        first = await db.resolve_or_create_group("Muse")
        second = await db.resolve_or_create_group("Muse")
        assert first == second
        assert len(await db.list_groups()) == 1

    async def test_rename_group_moves_all_songs(self, seeded_db: CatalogDb) -> None:
        assert await seeded_db.rename_group("Muse", "MUSE") == 1

        rows = await seeded_db.list_songs(SongFilter(group="MUSE"))
        assert [r.name for r in rows] == ["Supermassive Black Hole", "Uprising"]
        assert await seeded_db.list_songs(SongFilter(group="Muse")) == []

    async def test_rename_unknown_group(self, seeded_db: CatalogDb) -> None:
        assert await seeded_db.rename_group("Queen", "Queen II") == 0

    async def test_rename_onto_existing_group_is_conflict(self, seeded_db: CatalogDb) -> None:
        with pytest.raises(ConflictError):
            await seeded_db.rename_group("Muse", "Abba")


# =============================================================================
# Partial updates
# =============================================================================


class TestBuildUpdateStatement:
    """Tests for the pure SET clause builder."""

    def test_no_assignments_returns_none(self) -> None:
        assert build_update_statement("Muse", "Uprising", {}) is None

    def test_assignments_are_bound(self) -> None:
        sql, params = build_update_statement(
            "Muse", "Uprising", {"text": "new'); DROP TABLE songs; --", "link": ""}
        )
        assert sql.startswith("UPDATE songs SET text = :set_text, link = :set_link WHERE")
        assert "DROP TABLE" not in sql
        assert params["set_text"] == "new'); DROP TABLE songs; --"
        assert params["set_link"] == ""
        assert params["group"] == "Muse"
        assert params["song"] == "Uprising"

    def test_unknown_column_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            build_update_statement("Muse", "Uprising", {"id": 1})


class TestUpdateSong:
    """Tests for partial song updates against a real database."""

    async def test_update_selected_fields(self, seeded_db: CatalogDb) -> None:
        patch = SongPatch(text="New text", link="")
        row = await seeded_db.update_song("Muse", "Uprising", patch)

        assert row is not None
        assert row.text == "New text"
        assert row.link == ""
        assert row.release_date == "2009-09-07"
        assert await seeded_db.get_song("Muse", "Uprising") == row

    async def test_empty_patch_touches_nothing(self, seeded_db: CatalogDb) -> None:
        before = await seeded_db.get_song("Muse", "Uprising")
        assert await seeded_db.update_song("Muse", "Uprising", SongPatch()) == before
        assert await seeded_db.get_song("Muse", "Uprising") == before

    async def test_update_missing_song(self, seeded_db: CatalogDb) -> None:
        assert await seeded_db.update_song("Muse", "Waterloo", SongPatch(text="x")) is None
        assert await seeded_db.update_song("Muse", "Waterloo", SongPatch()) is None

    async def test_update_missing_song_creates_no_group(self, seeded_db: CatalogDb) -> None:
        patch = SongPatch(group="Queen")
        assert await seeded_db.update_song("Muse", "NoSuchSong", patch) is None

        assert await seeded_db.get_group("Queen") is None
        assert [g.name for g in await seeded_db.list_groups()] == ["Abba", "Muse"]

    async def test_update_moves_song_to_new_group(self, seeded_db: CatalogDb) -> None:
        patch = SongPatch(group="Queen", name="Uprising (Live)")
        row = await seeded_db.update_song("Muse", "Uprising", patch)

        assert row is not None
        assert (row.group, row.name) == ("Queen", "Uprising (Live)")
        assert row.text.startswith("Paranoia")
        assert await seeded_db.get_group("Queen") is not None
        assert await seeded_db.get_song("Muse", "Uprising") is None

    async def test_update_moves_song_to_existing_group(self, seeded_db: CatalogDb) -> None:
        abba = await seeded_db.get_group("Abba")
        await seeded_db.update_song("Muse", "Uprising", SongPatch(group="Abba"))

        row = await seeded_db.get_song("Abba", "Uprising")
        assert row is not None
        assert row.group_id == abba.id
        assert len(await seeded_db.list_groups()) == 2

    async def test_update_onto_existing_pair_is_conflict(self, seeded_db: CatalogDb) -> None:
        with pytest.raises(ConflictError):
            await seeded_db.update_song(
                "Muse", "Uprising", SongPatch(name="Supermassive Black Hole")
            )
        assert await seeded_db.get_song("Muse", "Uprising") is not None


# =============================================================================
# Models
# =============================================================================


class TestModels:
    """Tests for the patch presence tags and date normalization."""

    def test_patch_defaults_are_unset(self) -> None:
        patch = SongPatch()
        assert patch.is_empty
        assert patch.group is UNSET
        assert patch.set_fields() == {}

    def test_empty_string_is_a_value(self) -> None:
        patch = SongPatch(text="")
        assert not patch.is_empty
        assert patch.set_fields() == {"text": ""}

    def test_group_only(self) -> None:
        assert SongPatch(group="Muse").is_group_only
        assert not SongPatch(group="Muse", text="").is_group_only
        assert not SongPatch().is_group_only

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2006-07-16", "2006-07-16"),
            ("16.07.2006", "2006-07-16"),
            ("16/07/2006", "2006-07-16"),
            ("16-07-2006", "2006-07-16"),
            (" 16.07.2006 ", "2006-07-16"),
            ("", ""),
        ],
    )
    def test_normalize_release_date(self, raw: str, expected: str) -> None:
        assert normalize_release_date(raw) == expected

    @pytest.mark.parametrize("raw", ["yesterday", "2006-13-01", "31.02.2006"])
    def test_normalize_release_date_rejects(self, raw: str) -> None:
        with pytest.raises(ValueError):
            normalize_release_date(raw)
