"""API endpoints for show metadata: search, detail, seasons, episodes and curated lists."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..services import ledger
from ..services.catalog import CatalogService
from ..services.sync import SyncService
from .dependencies import get_catalog_service, get_optional_user_id, get_sync_service

router = APIRouter(prefix="/api", tags=["shows"])


@router.get("/search")
async def search_shows(
    q: str = Query(...),
    sync: SyncService = Depends(get_sync_service),
):
    """Search the upstream provider for TV shows."""
    results = await sync.search_shows(q)
    return [r.model_dump() for r in results]


# Curated lists are declared before /shows/{show_id} so they are not
# captured by the detail route.
@router.get("/shows/popular")
async def get_popular_shows(
    limit: Optional[int] = Query(None, ge=1, le=100),
    genre: Optional[str] = None,
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Popular shows, optionally filtered by genre."""
    shows = await catalog.get_popular_shows(db, limit or settings.curated_limit, genre)
    return [show.to_dict() for show in shows]


@router.get("/shows/recent")
async def get_recent_shows(
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Most recently premiered shows."""
    shows = await catalog.get_recent_shows(db, limit or settings.curated_limit)
    return [show.to_dict() for show in shows]


@router.get("/shows/top-rated")
async def get_top_rated_shows(
    limit: Optional[int] = Query(None, ge=1, le=100),
    genre: Optional[str] = None,
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Highest rated shows, optionally filtered by genre."""
    shows = await catalog.get_top_rated_shows(db, limit or settings.curated_limit, genre)
    return [show.to_dict() for show in shows]


@router.get("/shows/lookup/{source}/{external_id}")
async def lookup_show(
    source: str,
    external_id: str,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
):
    """Resolve a show by its TMDB, TVDB or IMDb id."""
    show = await sync.get_show_by_external_id(db, source, external_id)
    return show.to_dict()


@router.get("/genres")
async def get_genres(
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """All known genres."""
    return await catalog.get_all_genres(db)


@router.get("/shows/{show_id}")
async def get_show(
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
):
    """Get a show by its upstream ID."""
    show = await sync.get_show_detail(db, show_id)
    return show.to_dict()


@router.get("/shows/{show_id}/seasons")
async def get_seasons(
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
):
    """Regular seasons of a show, specials excluded."""
    seasons = await sync.get_seasons(db, show_id)
    return [season.to_dict() for season in seasons]


@router.get("/shows/{show_id}/episodes")
async def get_episodes(
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: Optional[int] = Depends(get_optional_user_id),
):
    """Episodes of a show, with the caller's watch status when identified."""
    episodes = await sync.get_episodes(db, show_id)
    result = [ep.to_dict() for ep in episodes]

    if user_id is not None and episodes:
        statuses = ledger.get_watch_statuses(db, user_id, episodes[0].show_id)
        for ep_dict in result:
            ep_dict["watch_status"] = statuses.get(ep_dict["id"], "unwatched")

    return result


@router.get("/shows/{show_id}/cast")
async def get_cast(
    show_id: int,
    sync: SyncService = Depends(get_sync_service),
):
    """Top billed cast, read from the provider on every call."""
    cast = await sync.get_cast(show_id)
    return [member.model_dump() for member in cast]
