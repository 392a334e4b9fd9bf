from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from songbook.core import InvalidRequestError, NotFoundError
from songbook.core.catalog_db import CatalogDb
from songbook.core.db.models import (
    NewSong,
    SongFilter,
    SongPatch,
    SongRow,
    is_set,
    normalize_release_date,
)
from songbook.core.enrichment import EnrichmentClient, EnrichmentUnexpectedResponseError

logger = logging.getLogger(__name__)

VERSE_SEPARATOR = "\n\n"

# Largest value SQLite can bind as an integer
MAX_COUNT = 2**63 - 1


@dataclass(frozen=True, slots=True)
class Song:
    group: str
    name: str
    release_date: str = ""
    text: str = ""
    link: str = ""

    @classmethod
    def from_row(cls, row: SongRow) -> Song:
        return cls(
            group=row.group,
            name=row.name,
            release_date=row.release_date,
            text=row.text,
            link=row.link,
        )

    def to_dict(self) -> dict[str, str]:
        """JSON shape used by the HTTP API."""
        return {
            "group": self.group,
            "song": self.name,
            "releaseDate": self.release_date,
            "text": self.text,
            "link": self.link,
        }


@dataclass(frozen=True, slots=True)
class Group:
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"group": self.name}


def parse_count(value: Any, name: str) -> int | None:
    """
    Parse an optional non-negative integer (offset, limit, verse).

    None and "" mean "not given". Anything non-numeric or negative is a
    caller error. Values beyond what SQLite can store are clamped to
    `MAX_COUNT`, which already means "no limit" / "past the end".
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            value = int(value)
        except ValueError:
            raise InvalidRequestError(f"{name} must be an integer, got {value!r}") from None
    elif isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(f"{name} must be an integer, got {value!r}")

    if value < 0:
        raise InvalidRequestError(f"{name} must not be negative, got {value}")
    return min(value, MAX_COUNT)


def build_filter(
    *,
    group: str | None = None,
    song: str | None = None,
    release_date: str | None = None,
    text: str | None = None,
    link: str | None = None,
    offset: Any = None,
    limit: Any = None,
) -> SongFilter:
    """
    Build a `SongFilter` from raw request values.

    The release date is normalized the same way stored dates are, so
    `16.07.2006` finds a song stored as `2006-07-16`. A value that is not a
    date is kept as-is and simply matches nothing.
    """
    date = release_date or ""
    if date:
        try:
            date = normalize_release_date(date)
        except ValueError:
            pass

    return SongFilter(
        group=group or "",
        name=song or "",
        release_date=date,
        text=text or "",
        link=link or "",
        offset=parse_count(offset, "offset"),
        limit=parse_count(limit, "limit"),
    )


def split_verses(text: str) -> list[str]:
    """Split lyric text into verses (segments separated by one blank line)."""
    return text.split(VERSE_SEPARATOR)


def select_verse(text: str, verse: int | None) -> str:
    """
    Return verse `verse` (1-based) of `text`.

    None or 0 returns the whole text; a verse beyond the last one is a caller
    error.
    """
    if not verse:
        return text
    verses = split_verses(text)
    if verse > len(verses):
        raise InvalidRequestError(f"verse {verse} out of range, song has {len(verses)} verse(s)")
    return verses[verse - 1]


def _require(value: str | None, what: str) -> str:
    if value is None or not value.strip():
        raise InvalidRequestError(f"{what} is required")
    return value


class SongCatalog:
    """
    High-level facade for the song catalog.

    Operations address songs by (group name, song name) and raise
    `songbook.core` errors that the web layer maps to status codes:
    - `InvalidRequestError` before touching storage or the metadata source
    - `NotFoundError` for empty listings and writes that matched nothing
    - `ConflictError` / `CatalogStorageError` from `CatalogDb`
    - `EnrichmentError` subclasses from `EnrichmentClient`

    Dependencies:
    - `CatalogDb` for persistence
    - `EnrichmentClient` for new song metadata
    """

    def __init__(self, *, db: CatalogDb, enrichment: EnrichmentClient) -> None:
        self._db = db
        self._enrichment = enrichment

    @property
    def db(self) -> CatalogDb:
        return self._db

    async def list_songs(self, flt: SongFilter) -> list[Song]:
        """List songs matching `flt`, ordered by group then song name."""
        rows = await self._db.list_songs(flt)
        if not rows:
            raise NotFoundError("No songs match the given filter")
        return [Song.from_row(r) for r in rows]

    async def get_text(self, group: str | None, song: str | None, verse: Any = None) -> str:
        """Return a song's full text, or a single verse when `verse` >= 1."""
        group = _require(group, "author")
        song = _require(song, "song")
        verse_no = parse_count(verse, "verse")

        text = await self._db.get_song_text(group, song)
        if text is None:
            raise NotFoundError(f"Song {song!r} by {group!r} not found")
        return select_verse(text, verse_no)

    async def delete_song(self, group: str | None, song: str | None) -> None:
        group = _require(group, "author")
        song = _require(song, "song")

        deleted = await self._db.delete_song(group, song)
        if deleted == 0:
            raise NotFoundError(f"Song {song!r} by {group!r} not found")
        logger.info("Deleted song %r by %r", song, group)

    async def create_song(self, group: str | None, song: str | None) -> Song:
        """
        Create a song from its group and name.

        Release date, text and link always come from the metadata source;
        nothing is written when the lookup fails.
        """
        group = _require(group, "group")
        song = _require(song, "song")

        details = await self._enrichment.enrich(group, song)
        try:
            release_date = normalize_release_date(details.release_date)
        except ValueError as e:
            raise EnrichmentUnexpectedResponseError(
                f"External api returned an invalid release date: {details.release_date!r}"
            ) from e

        await self._db.insert_song(
            NewSong(
                group=group,
                name=song,
                release_date=release_date,
                text=details.text,
                link=details.link,
            )
        )
        logger.info("Added song %r by %r", song, group)
        return Song(
            group=group,
            name=song,
            release_date=release_date,
            text=details.text,
            link=details.link,
        )

    async def update_song(
        self, group: str | None, song: str | None, patch: SongPatch
    ) -> Song | Group:
        """
        Update a song, or rename a group.

        With no song name and a patch that only carries a group, the group
        itself is renamed (every song follows). Otherwise the song name is
        required and the supplied fields of the song are overwritten.
        """
        group = _require(group, "author")

        if not song and patch.is_group_only:
            return await self.rename_group(group, patch.group)  # type: ignore[arg-type]

        song = _require(song, "song")
        patch = self._validate_patch(patch)

        row = await self._db.update_song(group, song, patch)
        if row is None:
            raise NotFoundError(f"Song {song!r} by {group!r} not found")

        if patch.is_empty:
            logger.debug("Empty update for %r by %r, nothing to do", song, group)
        else:
            logger.info("Updated song %r by %r: %s", song, group, sorted(patch.set_fields()))
        return Song.from_row(row)

    async def rename_group(self, old_name: str, new_name: str) -> Group:
        old_name = _require(old_name, "author")
        new_name = _require(new_name, "group")

        renamed = await self._db.rename_group(old_name, new_name)
        if renamed == 0:
            raise NotFoundError(f"Group {old_name!r} not found")
        logger.info("Renamed group %r to %r", old_name, new_name)
        return Group(name=new_name)

    @staticmethod
    def _validate_patch(patch: SongPatch) -> SongPatch:
        if is_set(patch.group) and not patch.group.strip():  # type: ignore[union-attr]
            raise InvalidRequestError("group cannot be set to an empty name")
        if is_set(patch.name) and not patch.name.strip():  # type: ignore[union-attr]
            raise InvalidRequestError("song cannot be set to an empty name")
        if is_set(patch.release_date):
            try:
                date = normalize_release_date(patch.release_date)  # type: ignore[arg-type]
            except ValueError as e:
                raise InvalidRequestError(str(e)) from e
            patch = replace(patch, release_date=date)
        return patch

