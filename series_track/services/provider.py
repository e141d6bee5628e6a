"""Metadata provider abstraction and the canonical shapes it produces.

Each provider (TMDB, TVDB) translates its own JSON into the models defined
here. Nothing provider-specific is allowed past this boundary: the sync
engine and the store only ever see ``ShowSummary``, ``CanonicalShow``,
``CanonicalSeason``, ``CanonicalEpisode`` and ``CastMember``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import BaseModel

from ..errors import (
    AuthenticationFailed,
    NotFound,
    RateLimited,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

ENDED_STATUSES = {"Ended", "Canceled", "Cancelled"}


class ShowSummary(BaseModel):
    """A search or list result."""

    upstream_id: int
    name: str
    overview: str = ""
    poster_url: Optional[str] = None
    year_label: str = "Unknown"


class CanonicalShow(BaseModel):
    """Full show detail in the shared vocabulary."""

    upstream_id: int
    name: str
    overview: Optional[str] = None
    status: Optional[str] = None
    first_aired: Optional[str] = None
    last_aired: Optional[str] = None
    network: Optional[str] = None
    runtime_minutes: Optional[int] = None
    poster_url: Optional[str] = None
    banner_url: Optional[str] = None
    rating: Optional[float] = None
    genres: list[str] = []
    year_label: str = "Unknown"
    tmdb_id: Optional[int] = None
    tvdb_id: Optional[int] = None
    imdb_id: Optional[str] = None


class CanonicalSeason(BaseModel):
    upstream_id: int
    number: int
    name: Optional[str] = None
    overview: str = ""
    poster_url: Optional[str] = None
    episode_count: int = 0
    year_label: str = ""


class CanonicalEpisode(BaseModel):
    upstream_id: int
    season_number: int
    episode_number: int
    name: str
    overview: str = ""
    first_aired: Optional[str] = None
    runtime_minutes: Optional[int] = None
    still_url: Optional[str] = None
    rating: Optional[float] = None


class CastMember(BaseModel):
    upstream_person_id: Optional[int] = None
    name: str
    character_name: Optional[str] = None
    image_url: Optional[str] = None


def year_of(date_str: Optional[str]) -> Optional[str]:
    """Return the YYYY part of an ISO date string, if there is one."""
    if not date_str or len(date_str) < 4 or not date_str[:4].isdigit():
        return None
    return date_str[:4]


def derive_year_label(
    first_aired: Optional[str], last_aired: Optional[str], status: Optional[str]
) -> str:
    """Build the display year range of a show.

    "2008-2013" for an ended show, "2008" when it started and ended in the
    same year, "2016-Present" for anything still running (or ended without a
    known end date).
    """
    start = year_of(first_aired)
    if start is None:
        return "Unknown"
    end = year_of(last_aired) if status in ENDED_STATUSES else None
    if end is None:
        return f"{start}-Present"
    if end == start:
        return start
    return f"{start}-{end}"


class MetadataProvider(ABC):
    """Base class for upstream TV metadata providers."""

    # Subclasses must set these class attributes
    name: str
    cast_limit: int = 10

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: dict = None,
        headers: dict = None,
        json: dict = None,
    ) -> dict:
        """Send a request and return the decoded JSON body.

        Transport and HTTP failures are translated into the shared error
        taxonomy; the original status code travels on UpstreamUnavailable.
        """
        client = await self._get_client()
        url = f"{self.base_url}{endpoint}"
        try:
            response = await client.request(
                method, url, params=params, headers=headers, json=json
            )
        except httpx.TransportError as e:
            logger.warning(f"{self.name} {method} {endpoint} failed: {e}")
            raise UpstreamUnavailable(f"{self.name} unreachable: {e}") from e

        status = response.status_code
        if status >= 400:
            logger.warning(f"{self.name} {method} {endpoint} returned {status}")
        if status == 404:
            raise NotFound(f"{self.name} has no resource at {endpoint}")
        if status in (401, 403):
            raise AuthenticationFailed(f"{self.name} rejected credentials ({status})")
        if status == 429:
            raise RateLimited(f"{self.name} rate limit reached")
        if status >= 400:
            raise UpstreamUnavailable(
                f"{self.name} returned HTTP {status}", status_code=status
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(
                f"{self.name} returned a non-JSON body", status_code=status
            ) from e

    @abstractmethod
    async def search_shows(self, query: str) -> list[ShowSummary]:
        """Search for shows by name."""

    @abstractmethod
    async def get_show_detail(self, upstream_id: int) -> CanonicalShow:
        """Get full detail for a show; raises NotFound if it does not exist."""

    @abstractmethod
    async def get_seasons(self, upstream_show_id: int) -> list[CanonicalSeason]:
        """Get the regular seasons of a show (specials excluded)."""

    @abstractmethod
    async def get_episodes(
        self, upstream_show_id: int, seasons: list[CanonicalSeason]
    ) -> list[CanonicalEpisode]:
        """Get the episodes of the given seasons."""

    @abstractmethod
    async def get_cast(self, upstream_show_id: int) -> list[CastMember]:
        """Get the main cast, in provider order, truncated to cast_limit."""

    @abstractmethod
    async def get_popular_shows(self) -> list[ShowSummary]:
        ...

    @abstractmethod
    async def get_recent_shows(self) -> list[ShowSummary]:
        ...

    @abstractmethod
    async def get_top_rated_shows(self) -> list[ShowSummary]:
        ...

    @abstractmethod
    async def get_genres(self) -> list[str]:
        ...

    @abstractmethod
    async def find_by_external_id(self, source: str, external_id: str) -> Optional[int]:
        """Resolve another provider's id (or an IMDb id) to this provider's id.

        Returns None when the provider knows no matching show.
        """


def create_provider(settings, client: Optional[httpx.AsyncClient] = None) -> MetadataProvider:
    """Build the provider selected by ``settings.metadata_provider``."""
    from .tmdb import TMDBProvider
    from .tvdb import TVDBProvider

    source = (settings.metadata_provider or "").lower()
    if source == "tmdb":
        return TMDBProvider(
            api_key=settings.tmdb_api_key,
            base_url=settings.tmdb_proxy_base_url or settings.tmdb_base_url,
            use_proxy=bool(settings.tmdb_proxy_base_url),
            timeout=settings.upstream_timeout,
            client=client,
        )
    if source == "tvdb":
        return TVDBProvider(
            api_key=settings.tvdb_api_key,
            pin=settings.tvdb_pin,
            base_url=settings.tvdb_base_url,
            timeout=settings.upstream_timeout,
            client=client,
        )
    raise ValueError(f"Unknown metadata provider: {settings.metadata_provider!r}")
