"""API endpoints for the caller's tracked shows, watch progress and custom lists."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NotTracked
from ..services import ledger
from ..services.sync import SyncService
from .dependencies import get_current_user_id, get_sync_service

router = APIRouter(prefix="/api", tags=["user"])


class SubscriptionUpdate(BaseModel):
    """Request model for updating a subscription."""

    status: Optional[str] = None
    favorite: Optional[bool] = None


class FavoriteUpdate(BaseModel):
    """Request model for toggling a favorite."""

    favorite: bool


class ListCreate(BaseModel):
    """Request model for creating a custom list."""

    name: str
    color: str = "blue"


class WatchStatusUpdate(BaseModel):
    """Request model for setting an episode's watch status.

    ``episode_id`` is the stored episode id; ``show_id`` is the upstream id.
    """

    episode_id: int
    show_id: int
    watch_status: str


@router.get("/user/shows")
async def get_user_shows(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Shows the caller tracks, optionally filtered by status."""
    return ledger.get_user_shows(db, user_id, status)


@router.get("/user/shows/watching")
async def get_watching_shows(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return ledger.get_user_shows(db, user_id, "watching")


@router.get("/user/favorites")
async def get_favorites(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return ledger.get_user_favorites(db, user_id)


@router.get("/user/shows/{show_id}")
async def get_user_show(
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    """The caller's subscription to a show."""
    show = await sync.get_show_detail(db, show_id)
    subscription = ledger.get_subscription(db, user_id, show.id)
    if not subscription:
        raise NotTracked(f"User {user_id} does not track show {show_id}")
    return subscription.to_dict()


@router.patch("/user/shows/{show_id}")
async def update_user_show(
    show_id: int,
    data: SubscriptionUpdate,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    """Update the caller's subscription status or favorite flag."""
    show = await sync.get_show_detail(db, show_id)
    fields = data.model_dump(exclude_none=True)
    subscription = ledger.update_subscription(db, user_id, show.id, **fields)
    return subscription.to_dict()


@router.post("/user/shows/{show_id}/track", status_code=201)
async def track_show(
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    """Start tracking a show; its metadata is backfilled if needed."""
    show = await sync.get_show_detail(db, show_id)
    subscription = ledger.track(db, user_id, show.id)
    return subscription.to_dict()


@router.delete("/user/shows/{show_id}/track")
async def untrack_show(
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    """Stop tracking a show and forget its watch history."""
    show = await sync.get_show_detail(db, show_id)
    ledger.untrack(db, user_id, show.id)
    return {"message": "Show untracked"}


@router.patch("/user/shows/{show_id}/favorite")
async def set_favorite(
    show_id: int,
    data: FavoriteUpdate,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    show = await sync.get_show_detail(db, show_id)
    subscription = ledger.update_subscription(db, user_id, show.id, favorite=data.favorite)
    return subscription.to_dict()


@router.get("/shows/{show_id}/progress")
async def get_show_progress(
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    """Per-season watched/total counts for the caller."""
    show = await sync.get_show_detail(db, show_id)
    seasons = ledger.get_season_progress(db, user_id, show.id)
    subscription = ledger.get_subscription(db, user_id, show.id)
    return {
        "seasons": {number: progress.to_dict() for number, progress in seasons.items()},
        "subscription": subscription.to_dict() if subscription else None,
    }


@router.patch("/episodes/watch-status")
async def set_watch_status(
    data: WatchStatusUpdate,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    """Set the caller's watch status for an episode and refresh progress."""
    show = await sync.get_show_detail(db, data.show_id)
    result = ledger.set_episode_watch_status(
        db, user_id, data.episode_id, show.id, data.watch_status
    )
    return result.to_dict()


@router.get("/lists")
async def get_lists(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """The caller's custom lists."""
    return ledger.get_user_lists(db, user_id)


@router.post("/lists", status_code=201)
async def create_list(
    data: ListCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    user_list = ledger.create_user_list(db, user_id, data.name, data.color)
    return user_list.to_dict()


@router.delete("/lists/{list_id}")
async def delete_list(
    list_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    ledger.delete_user_list(db, user_id, list_id)
    return {"message": "List deleted"}


@router.get("/lists/{list_id}/shows")
async def get_list_shows(
    list_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return ledger.get_list_shows(db, user_id, list_id)


@router.post("/lists/{list_id}/shows/{show_id}", status_code=201)
async def add_list_show(
    list_id: int,
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    """Add a show to one of the caller's lists; its metadata is backfilled if needed."""
    show = await sync.get_show_detail(db, show_id)
    ledger.add_show_to_list(db, user_id, list_id, show.id)
    return show.to_dict()


@router.delete("/lists/{list_id}/shows/{show_id}")
async def remove_list_show(
    list_id: int,
    show_id: int,
    db: Session = Depends(get_db),
    sync: SyncService = Depends(get_sync_service),
    user_id: int = Depends(get_current_user_id),
):
    show = await sync.get_show_detail(db, show_id)
    ledger.remove_show_from_list(db, user_id, list_id, show.id)
    return {"message": "Show removed from list"}
