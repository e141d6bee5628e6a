"""Read-through cache for show, season and episode metadata.

Lookups go to the local store first. On a miss the provider is called,
the canonical result is written through, and the stored rows are returned.
Stored metadata is treated as valid indefinitely. Provider errors propagate
unchanged; nothing here retries.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import InvalidRequest, NotFound
from ..models import Show, Season, Episode
from . import store
from .provider import MetadataProvider, ShowSummary, CanonicalSeason, CastMember

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2

EXTERNAL_ID_SOURCES = ("tmdb", "tvdb", "imdb")


class SyncService:
    """Serve metadata from the store, backfilling from the provider on a miss."""

    def __init__(self, provider: MetadataProvider):
        self.provider = provider

    async def search_shows(self, query: str) -> list[ShowSummary]:
        """Search upstream; searches are never cached."""
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            raise InvalidRequest(f"Query must be at least {MIN_QUERY_LENGTH} characters")
        return await self.provider.search_shows(query)

    async def get_show_detail(self, db: Session, upstream_id: int) -> Show:
        """Return the stored show, fetching and storing it on a miss."""
        show = store.get_show_by_upstream_id(db, upstream_id)
        if show:
            return show

        logger.info(f"Show {upstream_id} not cached, fetching from {self.provider.name}")
        data = await self.provider.get_show_detail(upstream_id)
        return store.upsert_show(db, data, self.provider.name)

    async def get_seasons(self, db: Session, upstream_show_id: int) -> list[Season]:
        """Return the show's regular seasons, backfilling them on a miss.

        A show without seasons yields an empty list; a show the provider does
        not know raises NotFound.
        """
        show = await self.get_show_detail(db, upstream_show_id)
        seasons = store.list_seasons(db, show.id)
        if seasons:
            return seasons

        logger.info(f"Seasons for show {upstream_show_id} not cached, fetching")
        fetched = await self.provider.get_seasons(upstream_show_id)
        # Specials never enter the regular listing
        fetched = [s for s in fetched if s.number > 0]
        if not fetched:
            return []
        store.save_seasons(db, show.id, fetched)
        return store.list_seasons(db, show.id)

    async def get_episodes(self, db: Session, upstream_show_id: int) -> list[Episode]:
        """Return the show's episodes, backfilling seasons and episodes on a miss."""
        show = await self.get_show_detail(db, upstream_show_id)
        episodes = store.list_episodes(db, show.id)
        if episodes:
            return episodes

        seasons = await self.get_seasons(db, upstream_show_id)
        if not seasons:
            return []

        logger.info(f"Episodes for show {upstream_show_id} not cached, fetching")
        canonical_seasons = [
            CanonicalSeason(
                upstream_id=s.upstream_id,
                number=s.number,
                name=s.name,
                overview=s.overview or "",
                poster_url=s.poster_url,
                episode_count=s.episode_count,
                year_label=s.year_label or "",
            )
            for s in seasons
        ]
        fetched = await self.provider.get_episodes(upstream_show_id, canonical_seasons)
        season_ids = {s.number: s.id for s in seasons}
        store.save_episodes(db, show.id, fetched, season_ids)
        return store.list_episodes(db, show.id)

    async def get_cast(self, upstream_show_id: int) -> list[CastMember]:
        """Cast is not stored; always read from the provider."""
        return await self.provider.get_cast(upstream_show_id)

    async def get_show_by_external_id(
        self, db: Session, source: str, external_id: str
    ) -> Show:
        """Resolve a show given its id in any provider's id space.

        The active provider's own ids read through directly. Foreign ids are
        matched against stored cross references first, then resolved by the
        provider.
        """
        source = (source or "").lower()
        if source not in EXTERNAL_ID_SOURCES:
            raise InvalidRequest(f"Unknown id source: {source!r}")

        if source == self.provider.name:
            try:
                upstream_id = int(external_id)
            except ValueError:
                raise InvalidRequest(f"Invalid {source} id: {external_id!r}")
            return await self.get_show_detail(db, upstream_id)

        show = store.find_show_by_external_id(db, source, external_id)
        if show:
            return show

        try:
            resolved: Optional[int] = await self.provider.find_by_external_id(
                source, external_id
            )
        except NotFound:
            resolved = None
        if resolved is None:
            raise NotFound(f"No {self.provider.name} show matches {source} id {external_id}")

        logger.info(f"Resolved {source} id {external_id} to {self.provider.name} id {resolved}")
        return await self.get_show_detail(db, resolved)
