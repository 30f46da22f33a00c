"""SoundCloud catalog search filtered by tempo and genre.

Every request carries a token from a ``CredentialProvider`` (client
credentials by default). Response statuses map onto the ``CatalogError``
taxonomy; nothing is retried here. A 401 invalidates the cached token so the
caller's next attempt re-authenticates.
"""

import logging
from typing import Any

import httpx
from pydantic import AnyUrl, TypeAdapter, ValidationError

from setbuilder.core.config import Settings, get_settings
from setbuilder.schemas.catalog import UNKNOWN_GENRE, SearchQuery, SoundCloudTrack, Track
from setbuilder.services.credentials import (
    CredentialProvider,
    GrantType,
    create_credential_provider,
)
from setbuilder.services.errors import (
    DecodingFailureError,
    InvalidRequestConfigurationError,
    NetworkFailureError,
    RateLimitedError,
    ServerError,
    UnauthorizedError,
    describe_http_error,
)

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 50

_TRACK_LIST = TypeAdapter(list[SoundCloudTrack])
_URL = TypeAdapter(AnyUrl)


def build_search_params(query: SearchQuery, limit: int = DEFAULT_SEARCH_LIMIT) -> dict[str, Any]:
    """Query parameters for GET /tracks.

    Tempo bounds are only sent when the lower bound is above zero, and genre
    only when it is not the "All" sentinel.
    """
    params: dict[str, Any] = {"limit": limit}
    if query.has_tempo_filter:
        params["bpm[from]"] = int(query.min_bpm)
        params["bpm[to]"] = int(query.max_bpm)
    if query.has_genre_filter:
        params["genres"] = query.genre.lower()
    return params


def _parse_url(value: str | None) -> AnyUrl | None:
    if not value:
        return None
    try:
        return _URL.validate_python(value)
    except ValidationError:
        return None


def _record_to_track(record: SoundCloudTrack) -> Track | None:
    """Convert a SoundCloud record to a Track; None if it has no BPM."""
    if record.bpm is None:
        return None

    return Track(
        id=str(record.id),
        title=record.title,
        artist=record.user.username,
        bpm=record.bpm,
        genre=record.genre or UNKNOWN_GENRE,
        artwork_url=record.artwork_url,
        duration=record.duration,
        url=_parse_url(record.permalink_url),
    )


def parse_tracks(content: bytes) -> list[Track]:
    """Decode a /tracks response body, dropping records without BPM."""
    try:
        records = _TRACK_LIST.validate_json(content)
    except ValidationError as e:
        logger.error("Search response could not be decoded (%d errors)", e.error_count())
        raise DecodingFailureError(e) from e

    tracks = [t for t in (_record_to_track(r) for r in records) if t is not None]
    dropped = len(records) - len(tracks)
    if dropped:
        logger.debug("Dropped %d search results without BPM", dropped)
    return tracks


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class CatalogSearchClient:
    """Authenticated tempo/genre search against the SoundCloud catalog."""

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        api_base: str = "https://api.soundcloud.com",
        limit: int = DEFAULT_SEARCH_LIMIT,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.credentials = credentials
        self.api_base = api_base.rstrip("/")
        self.limit = limit
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout

    @property
    def search_url(self) -> str:
        return f"{self.api_base}/tracks"

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def search(self, query: SearchQuery) -> list[Track]:
        """Search the catalog for tracks matching ``query``.

        Raises a ``CatalogError`` subclass on any failure.
        """
        token = await self.credentials.get_token()
        params = build_search_params(query, self.limit)
        headers = {
            "Accept": "application/json",
            "Authorization": f"OAuth {token.value}",
        }
        logger.debug("Searching %s with %s", self.search_url, params)

        try:
            response = await self._http().get(self.search_url, params=params, headers=headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            logger.error("Search URL is invalid: %s", self.search_url)
            raise InvalidRequestConfigurationError(f"Invalid URL configuration: {e}") from e
        except httpx.RequestError as e:
            logger.error("Search request failed: %s", describe_http_error(e))
            raise NetworkFailureError(e) from e

        logger.debug("Search response status: %d", response.status_code)

        if response.status_code == 200:
            tracks = parse_tracks(response.content)
            logger.info("Search returned %d tracks", len(tracks))
            return tracks

        if response.status_code == 401:
            logger.warning("Search rejected the token, invalidating it")
            self.credentials.invalidate(token)
            raise UnauthorizedError()

        if response.status_code == 429:
            retry_after = _retry_after(response)
            logger.warning("Search rate limited (Retry-After: %s)", retry_after)
            raise RateLimitedError(retry_after)

        logger.error("Search failed: HTTP %d", response.status_code)
        raise ServerError(response.status_code)

    async def aclose(self) -> None:
        """Close the HTTP client if we own it, and the credential provider."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        await self.credentials.aclose()

    async def __aenter__(self) -> "CatalogSearchClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def create_search_client(
    settings: Settings | None = None,
    *,
    credentials: CredentialProvider | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> CatalogSearchClient:
    """Build a search client from settings, using client-credentials tokens by default."""
    settings = settings or get_settings()
    if credentials is None:
        credentials = create_credential_provider(
            GrantType.CLIENT_CREDENTIALS, settings, http_client=http_client
        )
    return CatalogSearchClient(
        credentials,
        api_base=settings.soundcloud_api_base,
        limit=settings.search_limit,
        http_client=http_client,
        timeout=settings.http_timeout,
    )
