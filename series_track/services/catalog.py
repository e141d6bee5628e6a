"""Curated show lists: popular, recent, top rated and genres.

The local store answers whenever it holds any shows. An empty store is
backfilled from the provider's matching list, one read-through detail fetch
per listed show; shows whose detail fetch fails are skipped and the list is
served with whatever made it into the store.
"""

import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from ..errors import SeriesTrackError
from ..models import Show
from . import store
from .provider import ShowSummary
from .sync import SyncService

logger = logging.getLogger(__name__)

# How many stored shows count as "the store can answer"
STORE_CHECK_LIMIT = 5


class CatalogService:
    """Local-store-first curated reads with upstream backfill."""

    def __init__(self, sync: SyncService):
        self.sync = sync

    async def _backfill(
        self, db: Session, fetch_list: Callable[[], Awaitable[list[ShowSummary]]], limit: int
    ) -> int:
        """Read through the first ``limit`` shows of an upstream list."""
        summaries = (await fetch_list())[:limit]
        logger.info(f"Backfilling {len(summaries)} shows from {self.sync.provider.name}")

        stored = 0
        # Sequential: each read-through writes through the same session
        for summary in summaries:
            try:
                await self.sync.get_show_detail(db, summary.upstream_id)
                stored += 1
            except SeriesTrackError as e:
                logger.warning(f"Skipping show {summary.upstream_id} during backfill: {e}")
        return stored

    async def get_popular_shows(
        self, db: Session, limit: int = 12, genre: Optional[str] = None
    ) -> list[Show]:
        if not store.popular_shows(db, STORE_CHECK_LIMIT):
            await self._backfill(db, self.sync.provider.get_popular_shows, limit)
        return store.popular_shows(db, limit, genre)

    async def get_recent_shows(self, db: Session, limit: int = 12) -> list[Show]:
        if not store.recent_shows(db, STORE_CHECK_LIMIT):
            await self._backfill(db, self.sync.provider.get_recent_shows, limit)
        return store.recent_shows(db, limit)

    async def get_top_rated_shows(
        self, db: Session, limit: int = 12, genre: Optional[str] = None
    ) -> list[Show]:
        if not store.top_rated_shows(db, STORE_CHECK_LIMIT):
            await self._backfill(db, self.sync.provider.get_top_rated_shows, limit)
        return store.top_rated_shows(db, limit, genre)

    async def get_all_genres(self, db: Session) -> list[str]:
        """Genres of stored shows, or the provider's genre list if none."""
        genres = store.all_genres(db)
        if genres:
            return genres
        return await self.sync.provider.get_genres()
