"""
Async HTTP client for the external song metadata source.

New songs only carry a group and a song name; release date, lyric text and
link are looked up here:

    GET <external_api_url>?group=<group>&song=<song>
    200 -> {"releaseDate": "16.07.2006", "text": "...", "link": "https://..."}

Response handling:
- network/transport failure: fail immediately (`EnrichmentTransportError`)
- 400: the source rejects the pair itself, fail immediately
  (`EnrichmentInvalidInputError`)
- 500: retry with exponential backoff (1s, 2s, 4s, ... capped) up to
  `max_attempts`, then fail (`EnrichmentUnavailableError`)
- any other status: fail immediately (`EnrichmentUnexpectedResponseError`)

The client never touches storage.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator

import httpx

from songbook.core import CoreError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INITIAL_BACKOFF = 1.0
DEFAULT_MAX_BACKOFF = 10.0
DEFAULT_TIMEOUT = 10.0


class EnrichmentError(CoreError):
    """Base exception raised for enrichment failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EnrichmentTransportError(EnrichmentError):
    """Raised when the metadata source could not be reached at all."""


class EnrichmentInvalidInputError(EnrichmentError):
    """Raised when the metadata source answered 400 for the (group, song) pair."""


class EnrichmentUnavailableError(EnrichmentError):
    """Raised when every attempt ended with a server error."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message, status_code=500)
        self.attempts = attempts


class EnrichmentUnexpectedResponseError(EnrichmentError):
    """Raised on an unsupported status code or an undecodable 200 body."""


@dataclass(frozen=True, slots=True)
class SongDetails:
    """Song attributes supplied by the metadata source."""

    release_date: str
    text: str
    link: str


def backoff_delays(
    initial: float = DEFAULT_INITIAL_BACKOFF, maximum: float = DEFAULT_MAX_BACKOFF
) -> Iterator[float]:
    """Yield an endless, doubling delay sequence capped at `maximum`."""
    delay = min(initial, maximum)
    while True:
        yield delay
        delay = min(delay * 2, maximum)


class EnrichmentClient:
    """
    HTTPX based client for the metadata source.

    Args:
        external_api_url: Full URL of the lookup endpoint.
        timeout: Per-request timeout in seconds.
        max_attempts: Upper bound on requests per `enrich()` call.
        initial_backoff: Delay after the first server error, in seconds.
        max_backoff: Cap for the doubling delay, in seconds.
        transport: Optional httpx transport (tests use `httpx.MockTransport`).
        sleep: Coroutine used to wait between attempts.
    """

    def __init__(
        self,
        external_api_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.external_api_url = external_api_url
        self.max_attempts = max_attempts
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> EnrichmentClient:
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def enrich(self, group: str, song: str) -> SongDetails:
        """Look up release date, text and link for a (group, song) pair."""
        params = {"group": group, "song": song}
        delays = backoff_delays(self.initial_backoff, self.max_backoff)

        for attempt in range(1, self.max_attempts + 1):
            logger.debug(
                "Enrichment request %d/%d: %s %s",
                attempt,
                self.max_attempts,
                self.external_api_url,
                params,
            )
            try:
                response = await self._client.get(self.external_api_url, params=params)
            except httpx.RequestError as e:
                logger.error("Could not reach metadata source %s: %s", self.external_api_url, e)
                raise EnrichmentTransportError(
                    f"Error trying to access external api: {e}"
                ) from e

            status = response.status_code
            if status == 200:
                logger.debug("Metadata source answered 200 on attempt %d", attempt)
                return self._parse_details(response)

            if status == 400:
                logger.warning("Metadata source rejected %r by %r (400)", song, group)
                raise EnrichmentInvalidInputError(
                    f"External api rejected group={group!r} song={song!r}",
                    status_code=400,
                )

            if status == 500:
                if attempt == self.max_attempts:
                    break
                delay = next(delays)
                logger.debug(
                    "Metadata source answered 500, retrying in %.1fs (attempt %d/%d)",
                    delay,
                    attempt,
                    self.max_attempts,
                )
                await self._sleep(delay)
                continue

            logger.error("Metadata source answered unsupported status %d", status)
            raise EnrichmentUnexpectedResponseError(
                f"External api answered unsupported status {status}",
                status_code=status,
            )

        logger.error(
            "Metadata source still failing after %d attempts, giving up", self.max_attempts
        )
        raise EnrichmentUnavailableError(
            "External api is not working", attempts=self.max_attempts
        )

    @staticmethod
    def _parse_details(response: httpx.Response) -> SongDetails:
        try:
            payload = response.json()
        except ValueError as e:
            raise EnrichmentUnexpectedResponseError(
                f"External api returned invalid JSON: {e}", status_code=response.status_code
            ) from e

        if not isinstance(payload, dict):
            raise EnrichmentUnexpectedResponseError(
                "External api returned a non-object JSON body",
                status_code=response.status_code,
            )

        values: dict[str, str] = {}
        for key in ("releaseDate", "text", "link"):
            value = payload.get(key)
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise EnrichmentUnexpectedResponseError(
                    f"External api returned a non-string {key!r}",
                    status_code=response.status_code,
                )
            values[key] = value

        return SongDetails(
            release_date=values["releaseDate"],
            text=values["text"],
            link=values["link"],
        )
