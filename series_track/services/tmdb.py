"""TMDB API client service."""

import asyncio
import logging
from typing import Optional

import httpx

from ..errors import SeriesTrackError, NotFound
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

# Map TMDB genre ids to our genre names
GENRE_NAMES = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Sci-Fi",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
}

# Image size used for each kind of artwork
IMAGE_SIZES = {
    "poster": ("poster_sizes", "w342"),
    "backdrop": ("backdrop_sizes", "original"),
    "still": ("still_sizes", "w300"),
    "profile": ("profile_sizes", "w185"),
}

EXTERNAL_SOURCES = {
    "tvdb": "tvdb_id",
    "imdb": "imdb_id",
}


class TMDBProvider(MetadataProvider):
    """Service for interacting with The Movie Database API."""

    name = "tmdb"
    cast_limit = 10
    DEFAULT_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://api.themoviedb.org/3",
        use_proxy: bool = False,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url, timeout=timeout, client=client)
        self.api_key = api_key
        self.use_proxy = use_proxy
        self._configuration: Optional[dict] = None
        self._image_base_url = self.DEFAULT_IMAGE_BASE_URL

    async def _request(self, endpoint: str, params: dict = None) -> dict:
        """Make a GET request to TMDB API."""
        params = dict(params or {})
        if not self.use_proxy:
            # The proxy adds its own key
            if not self.api_key:
                raise ValueError("TMDB API key not configured")
            params["api_key"] = self.api_key
        return await self._send("GET", endpoint, params=params)

    async def _ensure_configuration(self):
        """Fetch the image configuration once per provider instance.

        A failed fetch leaves the default image base URL in place and is
        retried on the next call.
        """
        if self._configuration is not None:
            return
        try:
            data = await self._request("/configuration")
        except (SeriesTrackError, ValueError) as e:
            logger.warning(
                f"TMDB configuration fetch failed, using {self._image_base_url}: {e}"
            )
            return
        images = data.get("images") or {}
        base = images.get("secure_base_url") or images.get("base_url")
        if base:
            self._image_base_url = base if base.endswith("/") else f"{base}/"
        self._configuration = images
        logger.info(f"TMDB configuration fetched. Image base URL: {self._image_base_url}")

    def get_image_url(self, path: Optional[str], kind: str = "poster") -> Optional[str]:
        """Get full URL for an image path."""
        if not path:
            return None
        sizes_key, size = IMAGE_SIZES[kind]
        available = (self._configuration or {}).get(sizes_key)
        if available and size not in available:
            size = "original"
        return f"{self._image_base_url}{size}{path}"

    def _summary(self, item: dict) -> Optional[ShowSummary]:
        if item.get("id") is None or not item.get("name"):
            return None
        return ShowSummary(
            upstream_id=item["id"],
            name=item["name"],
            overview=item.get("overview") or "",
            poster_url=self.get_image_url(item.get("poster_path")),
            year_label=year_of(item.get("first_air_date")) or "Unknown",
        )

    def _summaries(self, data: dict) -> list[ShowSummary]:
        results = [self._summary(item) for item in data.get("results") or []]
        return [r for r in results if r is not None]

    async def search_shows(self, query: str) -> list[ShowSummary]:
        """Search for TV shows by name."""
        await self._ensure_configuration()
        data = await self._request(
            "/search/tv",
            {"query": query, "include_adult": "false", "language": "en-US", "page": 1},
        )
        return self._summaries(data)

    async def get_show_detail(self, upstream_id: int) -> CanonicalShow:
        """Get detailed information about a TV show."""
        await self._ensure_configuration()
        data = await self._request(
            f"/tv/{upstream_id}",
            {"append_to_response": "external_ids", "language": "en-US"},
        )
        if not data or data.get("id") is None or not data.get("name"):
            raise NotFound(f"TMDB has no show {upstream_id}")

        genres = [
            GENRE_NAMES.get(g.get("id")) or g.get("name")
            for g in data.get("genres") or []
        ]
        networks = [n.get("name") for n in data.get("networks") or [] if n.get("name")]
        run_times = data.get("episode_run_time") or []
        external_ids = data.get("external_ids") or {}

        return CanonicalShow(
            upstream_id=data["id"],
            name=data["name"],
            overview=data.get("overview"),
            status=data.get("status"),
            first_aired=data.get("first_air_date") or None,
            last_aired=data.get("last_air_date") or None,
            network=networks[0] if networks else None,
            runtime_minutes=run_times[0] if run_times else None,
            poster_url=self.get_image_url(data.get("poster_path"), "poster"),
            banner_url=self.get_image_url(data.get("backdrop_path"), "backdrop"),
            rating=data.get("vote_average"),
            genres=[g for g in genres if g],
            year_label=derive_year_label(
                data.get("first_air_date"), data.get("last_air_date"), data.get("status")
            ),
            tmdb_id=data["id"],
            tvdb_id=external_ids.get("tvdb_id"),
            imdb_id=external_ids.get("imdb_id") or None,
        )

    async def get_season(self, upstream_show_id: int, season_number: int) -> dict:
        """Get details for a specific season."""
        return await self._request(f"/tv/{upstream_show_id}/season/{season_number}")

    async def get_seasons(self, upstream_show_id: int) -> list[CanonicalSeason]:
        """Get all regular seasons, merging the per-season detail calls."""
        await self._ensure_configuration()
        show = await self._request(f"/tv/{upstream_show_id}")
        # Skip specials season (0)
        summaries = [
            s for s in show.get("seasons") or []
            if (s.get("season_number") or 0) > 0
        ]
        if not summaries:
            return []

        details = await asyncio.gather(
            *(self.get_season(upstream_show_id, s["season_number"]) for s in summaries)
        )

        seasons = []
        for summary, detail in zip(summaries, details):
            season_id = summary.get("id") or detail.get("id")
            if season_id is None:
                continue
            air_date = detail.get("air_date") or summary.get("air_date")
            seasons.append(CanonicalSeason(
                upstream_id=season_id,
                number=summary["season_number"],
                name=detail.get("name") or summary.get("name"),
                overview=detail.get("overview") or summary.get("overview") or "",
                poster_url=self.get_image_url(
                    detail.get("poster_path") or summary.get("poster_path")
                ),
                episode_count=summary.get("episode_count") or len(detail.get("episodes") or []),
                year_label=year_of(air_date) or "",
            ))
        return seasons

    async def get_episodes(
        self, upstream_show_id: int, seasons: list[CanonicalSeason]
    ) -> list[CanonicalEpisode]:
        """Get all episodes of the given seasons, one call per season."""
        if not seasons:
            return []
        await self._ensure_configuration()

        details = await asyncio.gather(
            *(self.get_season(upstream_show_id, s.number) for s in seasons)
        )

        episodes = []
        for season, detail in zip(seasons, details):
            for ep in detail.get("episodes") or []:
                if ep.get("id") is None or ep.get("episode_number") is None:
                    continue
                episodes.append(CanonicalEpisode(
                    upstream_id=ep["id"],
                    season_number=ep.get("season_number") or season.number,
                    episode_number=ep["episode_number"],
                    name=ep.get("name") or f"Episode {ep['episode_number']}",
                    overview=ep.get("overview") or "",
                    first_aired=ep.get("air_date") or None,
                    runtime_minutes=ep.get("runtime"),
                    still_url=self.get_image_url(ep.get("still_path"), "still"),
                    rating=ep.get("vote_average"),
                ))
        return episodes

    async def get_cast(self, upstream_show_id: int) -> list[CastMember]:
        """Get the top billed cast of a show."""
        await self._ensure_configuration()
        data = await self._request(f"/tv/{upstream_show_id}/credits")
        return [
            CastMember(
                upstream_person_id=person.get("id"),
                name=person.get("name") or "Unknown",
                character_name=person.get("character"),
                image_url=self.get_image_url(person.get("profile_path"), "profile"),
            )
            for person in (data.get("cast") or [])[: self.cast_limit]
        ]

    async def _list(self, endpoint: str) -> list[ShowSummary]:
        await self._ensure_configuration()
        data = await self._request(endpoint, {"language": "en-US", "page": 1})
        return self._summaries(data)

    async def get_popular_shows(self) -> list[ShowSummary]:
        return await self._list("/tv/popular")

    async def get_recent_shows(self) -> list[ShowSummary]:
        return await self._list("/tv/on_the_air")

    async def get_top_rated_shows(self) -> list[ShowSummary]:
        return await self._list("/tv/top_rated")

    async def get_genres(self) -> list[str]:
        data = await self._request("/genre/tv/list", {"language": "en-US"})
        return [
            GENRE_NAMES.get(g.get("id")) or g.get("name")
            for g in data.get("genres") or []
            if g.get("name")
        ]

    async def find_by_external_id(self, source: str, external_id: str) -> Optional[int]:
        """Find a TMDB show ID by a TVDB or IMDb ID using the /find endpoint."""
        external_source = EXTERNAL_SOURCES.get(source)
        if external_source is None:
            raise ValueError(f"TMDB cannot resolve ids from {source!r}")
        data = await self._request(
            f"/find/{external_id}", {"external_source": external_source}
        )
        tv_results = data.get("tv_results") or []
        if tv_results:
            return tv_results[0].get("id")
        return None
