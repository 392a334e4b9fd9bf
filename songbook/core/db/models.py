"""
DB models (DTOs) and small normalization helpers used by `catalog_db.py`.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Final


class Unset(Enum):
    """Presence tag for patch fields the caller did not supply."""

    UNSET = "unset"

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = Unset.UNSET

# Accepted release date spellings; the first one is the stored form.
RELEASE_DATE_FORMATS: Final[tuple[str, ...]] = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%d-%m-%Y")


@dataclass(frozen=True, slots=True)
class GroupRow:
    """Group (performing artist/band) record as stored in SQLite."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class SongRow:
    """
    Song record joined with its group name.

    The row id is kept for internal use only; callers address songs by
    (group name, song name).
    """

    id: int
    group_id: int
    group: str
    name: str
    release_date: str
    text: str
    link: str


@dataclass(frozen=True, slots=True)
class NewSong:
    """Input record for inserting a song. The group is created on first use."""

    group: str
    name: str
    release_date: str = ""
    text: str = ""
    link: str = ""


@dataclass(frozen=True, slots=True)
class SongFilter:
    """
    Filter for listing songs.

    Every text field is matched by exact equality; an empty string disables
    that predicate. `offset`/`limit` of None mean "no paging".
    """

    group: str = ""
    name: str = ""
    release_date: str = ""
    text: str = ""
    link: str = ""
    offset: int | None = None
    limit: int | None = None


@dataclass(frozen=True, slots=True)
class SongPatch:
    """
    Partial song update.

    A field left as `UNSET` is not touched; any string, including the empty
    string, overwrites the stored value.
    """

    group: str | Unset = UNSET
    name: str | Unset = UNSET
    release_date: str | Unset = UNSET
    text: str | Unset = UNSET
    link: str | Unset = UNSET

    def set_fields(self) -> dict[str, str]:
        """Return the supplied fields in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    @property
    def is_empty(self) -> bool:
        return not self.set_fields()

    @property
    def is_group_only(self) -> bool:
        """True when only the group field is supplied (a group rename request)."""
        return list(self.set_fields()) == ["group"]


def is_set(value: object) -> bool:
    return value is not UNSET


def normalize_release_date(value: str) -> str:
    """
    Normalize a release date to ISO `YYYY-MM-DD`.

    - the empty string is kept (clears the date)
    - ISO and day-first spellings (`16.07.2006`, `16/07/2006`, `16-07-2006`)
      are accepted
    - anything else raises ValueError
    """
    v = value.strip()
    if not v:
        return ""
    for fmt in RELEASE_DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).date().isoformat()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized release date: {value!r}")
