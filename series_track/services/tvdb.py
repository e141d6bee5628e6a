"""TVDB API client service."""

import asyncio
import logging
from typing import Optional
from datetime import datetime, timedelta

import httpx

from ..errors import AuthenticationFailed, NotFound
from .provider import (
    MetadataProvider,
    ShowSummary,
    CanonicalShow,
    CanonicalSeason,
    CanonicalEpisode,
    CastMember,
    derive_year_label,
    year_of,
)

logger = logging.getLogger(__name__)

# TVDB artwork types, in order of preference for the show banner
ARTWORK_BACKGROUND = 3
ARTWORK_BANNER = 1

# TVDB character type for actors
PEOPLE_TYPE_ACTOR = 3

REMOTE_SOURCES = {
    "IMDB": "imdb_id",
    "TheMovieDB.com": "tmdb_id",
}


def _parse_tvdb_id(value) -> Optional[int]:
    """Search results may carry ids like "series-12345"."""
    if isinstance(value, str):
        value = value.replace("series-", "")
        try:
            return int(value)
        except (ValueError, TypeError):
            return None
    return value


class TVDBProvider(MetadataProvider):
    """Service for interacting with TheTVDB API v4."""

    name = "tvdb"
    cast_limit = 15

    def __init__(
        self,
        api_key: str = "",
        pin: str = "",
        base_url: str = "https://api4.thetvdb.com/v4",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url, timeout=timeout, client=client)
        self.api_key = api_key
        self.pin = pin
        self._token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    async def login(self):
        """Authenticate with TVDB API and store bearer token."""
        if not self.api_key:
            raise ValueError("TVDB API key not configured")

        payload = {"apikey": self.api_key}
        if self.pin:
            payload["pin"] = self.pin
        data = await self._send("POST", "/login", json=payload)
        token = (data.get("data") or {}).get("token")
        if not token:
            raise AuthenticationFailed("TVDB login returned no token")
        self._token = token
        # Token valid for 24 hours, refresh after 23
        self._token_expiry = datetime.utcnow() + timedelta(hours=23)

    async def _ensure_token(self):
        """Ensure we have a valid token, refreshing if needed."""
        if not self._token or not self._token_expiry or datetime.utcnow() >= self._token_expiry:
            await self.login()

    async def _request(self, endpoint: str, params: dict = None) -> dict:
        """Make a GET request to TVDB API with authentication."""
        await self._ensure_token()
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            return await self._send("GET", endpoint, params=params, headers=headers)
        except AuthenticationFailed:
            # Force a fresh login next time
            self._token = None
            raise

    def _summary(self, item: dict) -> Optional[ShowSummary]:
        tvdb_id = _parse_tvdb_id(item.get("tvdb_id") or item.get("id"))
        if tvdb_id is None:
            return None

        # Prefer English name/overview from translations
        translations = item.get("translations") or {}
        overview_translations = item.get("overviewTranslations") or {}
        name = translations.get("eng") if isinstance(translations, dict) else None
        overview = (
            overview_translations.get("eng")
            if isinstance(overview_translations, dict) else None
        )
        year = item.get("year") or year_of(item.get("first_air_time") or item.get("firstAired"))

        return ShowSummary(
            upstream_id=tvdb_id,
            name=name or item.get("name") or "Unknown",
            overview=overview or item.get("overview") or "",
            poster_url=item.get("image_url") or item.get("image") or item.get("thumbnail") or None,
            year_label=str(year) if year else "Unknown",
        )

    def _summaries(self, data: dict) -> list[ShowSummary]:
        results = data.get("data") or []
        if not isinstance(results, list):
            return []
        return [s for s in (self._summary(item) for item in results) if s is not None]

    async def search_shows(self, query: str) -> list[ShowSummary]:
        """Search for TV series by name."""
        data = await self._request("/search", params={"query": query, "type": "series"})
        return self._summaries(data)

    async def _get_extended(self, upstream_id: int) -> dict:
        data = await self._request(f"/series/{upstream_id}/extended")
        return data.get("data") or {}

    async def _get_english_translation(self, upstream_id: int) -> dict:
        """Get English translation for a show (name + overview)."""
        try:
            data = await self._request(f"/series/{upstream_id}/translations/eng")
        except NotFound:
            return {}
        return data.get("data") or {}

    async def get_show_detail(self, upstream_id: int) -> CanonicalShow:
        """Get show details normalized to the canonical shape."""
        show = await self._get_extended(upstream_id)
        if not show or show.get("id") is None or not show.get("name"):
            raise NotFound(f"TVDB has no show {upstream_id}")
        eng = await self._get_english_translation(upstream_id)

        genres = []
        for genre in show.get("genres") or []:
            name = genre.get("name") if isinstance(genre, dict) else genre
            if name:
                genres.append(name)

        network = None
        for key in ("originalNetwork", "latestNetwork"):
            if isinstance(show.get(key), dict) and show[key].get("name"):
                network = show[key]["name"]
                break

        banner = None
        for art_type in (ARTWORK_BACKGROUND, ARTWORK_BANNER):
            for artwork in show.get("artworks") or []:
                if isinstance(artwork, dict) and artwork.get("type") == art_type:
                    banner = artwork.get("image")
                    break
            if banner:
                break

        status_data = show.get("status")
        if isinstance(status_data, dict):
            status = status_data.get("name")
        else:
            status = str(status_data) if status_data else None

        external = {}
        for rid in show.get("remoteIds") or []:
            if isinstance(rid, dict) and rid.get("sourceName") in REMOTE_SOURCES:
                external.setdefault(REMOTE_SOURCES[rid["sourceName"]], rid.get("id"))
        tmdb_id = external.get("tmdb_id")
        try:
            tmdb_id = int(tmdb_id) if tmdb_id else None
        except ValueError:
            tmdb_id = None

        first_aired = show.get("firstAired") or None
        last_aired = show.get("lastAired") or None

        return CanonicalShow(
            upstream_id=show["id"],
            name=eng.get("name") or show["name"],
            overview=eng.get("overview") or show.get("overview"),
            status=status,
            first_aired=first_aired,
            last_aired=last_aired,
            network=network,
            runtime_minutes=show.get("averageRuntime"),
            poster_url=show.get("image") or None,
            banner_url=banner,
            rating=show.get("score"),
            genres=genres,
            year_label=derive_year_label(first_aired, last_aired, status),
            tmdb_id=tmdb_id,
            tvdb_id=show["id"],
            imdb_id=external.get("imdb_id"),
        )

    async def _get_season_extended(self, season_id: int) -> dict:
        data = await self._request(f"/seasons/{season_id}/extended")
        return data.get("data") or {}

    async def get_seasons(self, upstream_show_id: int) -> list[CanonicalSeason]:
        """Get official seasons, one extended call per season for full detail."""
        show = await self._get_extended(upstream_show_id)
        summaries = []
        for season in show.get("seasons") or []:
            season_type = (season.get("type") or {}).get("type")
            if season_type == "official" and (season.get("number") or 0) > 0:
                summaries.append(season)
        if not summaries:
            return []

        details = await asyncio.gather(
            *(self._get_season_extended(s["id"]) for s in summaries)
        )

        seasons = []
        for summary, detail in zip(summaries, details):
            number = summary["number"]
            year = detail.get("year") or summary.get("year")
            seasons.append(CanonicalSeason(
                upstream_id=summary["id"],
                number=number,
                name=detail.get("name") or summary.get("name") or f"Season {number}",
                overview=detail.get("overview") or "",
                poster_url=detail.get("image") or summary.get("image") or None,
                episode_count=len(detail.get("episodes") or []),
                year_label=str(year) if year else "",
            ))
        return seasons

    async def get_episodes(
        self, upstream_show_id: int, seasons: list[CanonicalSeason]
    ) -> list[CanonicalEpisode]:
        """Get all episodes of the given seasons, one call per season."""
        if not seasons:
            return []

        details = await asyncio.gather(
            *(self._get_season_extended(s.upstream_id) for s in seasons)
        )

        episodes = []
        for season, detail in zip(seasons, details):
            for ep in detail.get("episodes") or []:
                episode_num = ep.get("number")
                if ep.get("id") is None or episode_num is None:
                    continue
                episodes.append(CanonicalEpisode(
                    upstream_id=ep["id"],
                    season_number=ep.get("seasonNumber") or season.number,
                    episode_number=episode_num,
                    name=ep.get("name") or f"Episode {episode_num}",
                    overview=ep.get("overview") or "",
                    first_aired=ep.get("aired") or None,
                    runtime_minutes=ep.get("runtime"),
                    still_url=ep.get("image") or None,
                ))
        return episodes

    async def get_cast(self, upstream_show_id: int) -> list[CastMember]:
        """Get the actors of a show in TVDB sort order."""
        show = await self._get_extended(upstream_show_id)
        actors = [
            c for c in show.get("characters") or []
            if c.get("type") in (None, PEOPLE_TYPE_ACTOR)
        ]
        actors.sort(key=lambda c: c.get("sort") if c.get("sort") is not None else 9999)
        return [
            CastMember(
                upstream_person_id=c.get("peopleId") or c.get("id"),
                name=c.get("personName") or "Unknown",
                character_name=c.get("name"),
                image_url=c.get("personImgURL") or c.get("image") or None,
            )
            for c in actors[: self.cast_limit]
        ]

    async def _filter(self, sort: str) -> list[ShowSummary]:
        data = await self._request(
            "/series/filter",
            params={"sort": sort, "sortType": "desc", "lang": "eng"},
        )
        return self._summaries(data)

    async def get_popular_shows(self) -> list[ShowSummary]:
        return await self._filter("score")

    async def get_recent_shows(self) -> list[ShowSummary]:
        return await self._filter("firstAired")

    async def get_top_rated_shows(self) -> list[ShowSummary]:
        return await self._filter("score")

    async def get_genres(self) -> list[str]:
        data = await self._request("/genres")
        return [g.get("name") for g in data.get("data") or [] if g.get("name")]

    async def find_by_external_id(self, source: str, external_id: str) -> Optional[int]:
        """Find a TVDB series ID by a TMDB or IMDb ID."""
        if source not in ("tmdb", "imdb"):
            raise ValueError(f"TVDB cannot resolve ids from {source!r}")
        data = await self._request(f"/search/remoteid/{external_id}")
        for match in data.get("data") or []:
            series = match.get("series") if isinstance(match, dict) else None
            if series and series.get("id") is not None:
                return series["id"]
        return None
