"""
Library REST routes for Songbook.

- GET    /library/all      list songs (filter + offset/limit)
- GET    /library/text     song text, optionally a single verse
- DELETE /library/delete   delete a song
- POST   /library/add      add a song, enriched from the metadata source
- PATCH  /library/update   update a song, or rename a group

Errors raised by the catalog propagate to the exception handlers installed by
`songbook.web.server.WebServer`, which map them to status codes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from songbook.core import InvalidRequestError
from songbook.core.catalog import build_filter
from songbook.core.db.models import UNSET, SongPatch

if TYPE_CHECKING:
    from songbook.core.catalog import SongCatalog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["library"])

# Reference set during route registration
_catalog: SongCatalog | None = None

# JSON body key -> SongPatch field
PATCH_FIELDS: dict[str, str] = {
    "group": "group",
    "song": "name",
    "releaseDate": "release_date",
    "text": "text",
    "link": "link",
}


def register_library_routes(app, catalog: SongCatalog) -> None:
    """
    Register library routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        catalog: SongCatalog serving the routes
    """
    global _catalog
    _catalog = catalog
    app.include_router(router)


def _require_catalog() -> SongCatalog:
    if _catalog is None:
        raise HTTPException(status_code=503, detail="Catalog not initialized")
    return _catalog


def _describe(request: Request) -> tuple[str, str]:
    client = f"{request.client.host}:{request.client.port}" if request.client else "-"
    return client, str(request.url)


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidRequestError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body


def _optional_str(body: dict[str, Any], key: str) -> str | None:
    value = body.get(key)
    if value is not None and not isinstance(value, str):
        raise InvalidRequestError(f"'{key}' must be a string")
    return value


def patch_from_body(body: dict[str, Any]) -> SongPatch:
    """
    Decode an update body into a SongPatch.

    A missing key or a null value leaves the field unchanged; any string,
    including "", overwrites it. Unknown keys are ignored.
    """
    values: dict[str, Any] = {}
    for key, field_name in PATCH_FIELDS.items():
        value = _optional_str(body, key)
        values[field_name] = UNSET if value is None else value
    return SongPatch(**values)


@router.get("/library/all")
async def list_library(
    request: Request,
    author: str = "",
    song: str = "",
    release_date: str = Query("", alias="releaseDate"),
    text: str = "",
    link: str = "",
    offset: str | None = None,
    limit: str | None = None,
) -> list[dict[str, str]]:
    """List songs.

    Query params (all optional; an empty value does not filter):
        author, song, releaseDate, text, link: exact-match filters
        offset: Number of songs to skip
        limit: Maximum songs to return
    """
    catalog = _require_catalog()
    logger.info("List library request from %s to %s", *_describe(request))

    flt = build_filter(
        group=author,
        song=song,
        release_date=release_date,
        text=text,
        link=link,
        offset=offset,
        limit=limit,
    )
    logger.debug("Filter parameters: %s", flt)

    songs = await catalog.list_songs(flt)
    return [s.to_dict() for s in songs]


@router.get("/library/text", response_class=PlainTextResponse)
async def show_song_text(
    request: Request,
    author: str = "",
    song: str = "",
    verse: str | None = None,
) -> PlainTextResponse:
    """Get the text of a song.

    Query params:
        author, song: Required, identify the song
        verse: Optional 1-based verse number; 0 or absent returns the full text
    """
    catalog = _require_catalog()
    logger.info("Song text request from %s to %s", *_describe(request))

    text = await catalog.get_text(author, song, verse)
    return PlainTextResponse(text)


@router.delete("/library/delete")
async def delete_song(request: Request, author: str = "", song: str = "") -> dict[str, Any]:
    """Delete a song.

    Query params:
        author, song: Required, identify the song
    """
    catalog = _require_catalog()
    logger.info("Delete song request from %s to %s", *_describe(request))

    await catalog.delete_song(author, song)
    return {"deleted": True, "group": author, "song": song}


@router.post("/library/add", status_code=201)
async def add_song(request: Request) -> JSONResponse:
    """Add a song.

    Request body: {"group": "Muse", "song": "Supermassive Black Hole"}

    Release date, text and link are fetched from the metadata source; values
    for them in the body are ignored.
    """
    catalog = _require_catalog()
    logger.info("Add song request from %s to %s", *_describe(request))

    body = await _read_json_object(request)
    logger.debug("Add song body: %s", body)

    created = await catalog.create_song(_optional_str(body, "group"), _optional_str(body, "song"))
    return JSONResponse(status_code=201, content=created.to_dict())


@router.patch("/library/update")
async def update_song(request: Request, author: str = "", song: str = "") -> dict[str, str]:
    """Update a song or rename a group.

    Query params:
        author: Required, current group name
        song: Current song name; required unless renaming the group

    Request body: any of {"group", "song", "releaseDate", "text", "link"}.
    With no `song` query param and only `group` in the body, the group is
    renamed.
    """
    catalog = _require_catalog()
    logger.info("Update song request from %s to %s", *_describe(request))

    body = await _read_json_object(request)
    patch = patch_from_body(body)
    logger.debug("Update %r by %r with %s", song, author, patch)

    result = await catalog.update_song(author, song, patch)
    return result.to_dict()
