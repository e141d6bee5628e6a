"""User tracking ledger: show subscriptions, episode watch status and custom lists."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    AlreadyTracked,
    InvalidRequest,
    NotFound,
    NotTracked,
    PersistenceError,
)
from ..models import (
    Show,
    User,
    UserShow,
    UserEpisode,
    UserList,
    ListShow,
    SUBSCRIPTION_STATUSES,
    WATCH_STATUSES,
)
from . import store
from .progress import (
    SeasonProgress,
    ShowProgress,
    compute_season_progress,
    recompute_show_progress,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"status", "favorite"}


@dataclass
class WatchStatusResult:
    """Outcome of a watch-status write.

    The write is committed even when ``recompute_error`` is set; in that
    case ``progress`` and ``subscription`` are None.
    """

    watch: UserEpisode
    progress: Optional[ShowProgress] = None
    subscription: Optional[UserShow] = None
    recompute_error: Optional[Exception] = None

    def to_dict(self) -> dict:
        return {
            "watch": self.watch.to_dict(),
            "progress": self.progress.to_dict() if self.progress else None,
            "subscription": self.subscription.to_dict() if self.subscription else None,
            "recompute_error": str(self.recompute_error) if self.recompute_error else None,
        }


def get_subscription(db: Session, user_id: int, show_id: int) -> Optional[UserShow]:
    return (
        db.query(UserShow)
        .filter(UserShow.user_id == user_id, UserShow.show_id == show_id)
        .first()
    )


def _require_user(db: Session, user_id: int):
    if db.query(User.id).filter(User.id == user_id).first() is None:
        raise NotFound(f"User {user_id} not found")


def track(db: Session, user_id: int, show_id: int) -> UserShow:
    """Subscribe the user to a show.

    ``total_episodes`` is a snapshot of the stored episodes; it is corrected
    by the first watch-status change.
    """
    _require_user(db, user_id)
    if store.get_show(db, show_id) is None:
        raise NotFound(f"Show {show_id} not found")
    if get_subscription(db, user_id, show_id) is not None:
        raise AlreadyTracked(f"User {user_id} already tracks show {show_id}")

    subscription = UserShow(
        user_id=user_id,
        show_id=show_id,
        status="watching",
        favorite=False,
        progress=0,
        total_episodes=store.count_episodes(db, show_id),
    )
    db.add(subscription)
    try:
        db.commit()
    except IntegrityError as e:
        # A concurrent request tracked the show first
        db.rollback()
        raise AlreadyTracked(f"User {user_id} already tracks show {show_id}") from e
    db.refresh(subscription)
    logger.info(f"User {user_id} tracked show {show_id}")
    return subscription


def untrack(db: Session, user_id: int, show_id: int):
    """Remove the subscription and the user's watch rows for the show together."""
    subscription = get_subscription(db, user_id, show_id)
    if subscription is None:
        raise NotTracked(f"User {user_id} does not track show {show_id}")
    try:
        db.query(UserEpisode).filter(
            UserEpisode.user_id == user_id, UserEpisode.show_id == show_id
        ).delete(synchronize_session=False)
        db.delete(subscription)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to untrack show {show_id}: {e}") from e
    logger.info(f"User {user_id} untracked show {show_id}")


def update_subscription(db: Session, user_id: int, show_id: int, **fields) -> UserShow:
    """Patch subscription fields (status, favorite) and stamp updated_at."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidRequest(f"Cannot update fields: {', '.join(sorted(unknown))}")
    if "status" in fields and fields["status"] not in SUBSCRIPTION_STATUSES:
        raise InvalidRequest(f"Invalid status: {fields['status']!r}")

    subscription = get_subscription(db, user_id, show_id)
    if subscription is None:
        raise NotTracked(f"User {user_id} does not track show {show_id}")

    for key, value in fields.items():
        setattr(subscription, key, value)
    subscription.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(subscription)
    return subscription


def _write_watch_status(
    db: Session, user_id: int, episode_id: int, show_id: int, status: str
) -> UserEpisode:
    """Insert or update the (user, episode) row and commit."""
    now = datetime.utcnow()
    watched_at = now if status == "watched" else None
    insert = store.dialect_insert(db)
    try:
        if insert is not None:
            stmt = insert(UserEpisode).values(
                user_id=user_id,
                episode_id=episode_id,
                show_id=show_id,
                watch_status=status,
                watched_at=watched_at,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "episode_id"],
                set_={"watch_status": status, "watched_at": watched_at, "updated_at": now},
            )
            db.execute(stmt)
        else:
            row = (
                db.query(UserEpisode)
                .filter(UserEpisode.user_id == user_id, UserEpisode.episode_id == episode_id)
                .first()
            )
            if row is None:
                row = UserEpisode(user_id=user_id, episode_id=episode_id, show_id=show_id)
                db.add(row)
            row.watch_status = status
            row.watched_at = watched_at
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to store watch status for episode {episode_id}: {e}") from e

    return (
        db.query(UserEpisode)
        .filter(UserEpisode.user_id == user_id, UserEpisode.episode_id == episode_id)
        .one()
    )


def set_episode_watch_status(
    db: Session, user_id: int, episode_id: int, show_id: int, status: str
) -> WatchStatusResult:
    """Record the user's watch status for an episode, then recompute progress.

    The recompute reads the row just committed. If it fails, the write
    stands and the failure is returned in the result.
    """
    if status not in WATCH_STATUSES:
        raise InvalidRequest(f"Invalid watch status: {status!r}")
    episode = store.get_episode(db, episode_id)
    if episode is None or episode.show_id != show_id:
        raise NotFound(f"Episode {episode_id} not found in show {show_id}")
    _require_user(db, user_id)

    watch = _write_watch_status(db, user_id, episode_id, show_id, status)

    try:
        progress = recompute_show_progress(db, user_id, show_id)
    except Exception as e:
        logger.error(
            f"Progress recompute failed for user {user_id} show {show_id}: {e}",
            exc_info=True,
        )
        return WatchStatusResult(watch=watch, recompute_error=e)

    return WatchStatusResult(
        watch=watch,
        progress=progress,
        subscription=get_subscription(db, user_id, show_id),
    )


def get_watch_statuses(db: Session, user_id: int, show_id: int) -> dict[int, str]:
    """Map episode id to the user's watch status for one show."""
    rows = (
        db.query(UserEpisode.episode_id, UserEpisode.watch_status)
        .filter(UserEpisode.user_id == user_id, UserEpisode.show_id == show_id)
        .all()
    )
    return {episode_id: status for episode_id, status in rows}


def get_season_progress(db: Session, user_id: int, show_id: int) -> dict[int, SeasonProgress]:
    return compute_season_progress(db, user_id, show_id)


def _user_show_rows(db: Session, user_id: int, *criteria) -> list[dict]:
    rows = (
        db.query(UserShow, Show)
        .join(Show, Show.id == UserShow.show_id)
        .filter(UserShow.user_id == user_id, *criteria)
        .order_by(UserShow.updated_at.desc(), UserShow.id.desc())
        .all()
    )
    return [{**show.to_dict(), "subscription": sub.to_dict()} for sub, show in rows]


def get_user_shows(db: Session, user_id: int, status: Optional[str] = None) -> list[dict]:
    """Tracked shows, optionally filtered by subscription status."""
    if status is None:
        return _user_show_rows(db, user_id)
    if status not in SUBSCRIPTION_STATUSES:
        raise InvalidRequest(f"Invalid status: {status!r}")
    return _user_show_rows(db, user_id, UserShow.status == status)


def get_user_favorites(db: Session, user_id: int) -> list[dict]:
    return _user_show_rows(db, user_id, UserShow.favorite.is_(True))


# --- Custom lists ----------------------------------------------------------

def _owned_list(db: Session, user_id: int, list_id: int) -> UserList:
    """The user's list; other users' lists are reported as missing."""
    user_list = (
        db.query(UserList)
        .filter(UserList.id == list_id, UserList.user_id == user_id)
        .first()
    )
    if user_list is None:
        raise NotFound(f"List {list_id} not found")
    return user_list


def get_user_lists(db: Session, user_id: int) -> list[dict]:
    """The user's lists ordered by name, each with its show count."""
    rows = (
        db.query(UserList, func.count(ListShow.id))
        .outerjoin(ListShow, ListShow.list_id == UserList.id)
        .filter(UserList.user_id == user_id)
        .group_by(UserList.id)
        .order_by(UserList.name, UserList.id)
        .all()
    )
    return [{**user_list.to_dict(), "show_count": count} for user_list, count in rows]


def create_user_list(db: Session, user_id: int, name: str, color: str = "blue") -> UserList:
    name = (name or "").strip()
    if not name:
        raise InvalidRequest("List name is required")
    _require_user(db, user_id)

    user_list = UserList(user_id=user_id, name=name, color=(color or "").strip() or "blue")
    db.add(user_list)
    db.commit()
    db.refresh(user_list)
    logger.info(f"User {user_id} created list '{name}'")
    return user_list


def delete_user_list(db: Session, user_id: int, list_id: int):
    """Delete a list; its memberships go with it."""
    user_list = _owned_list(db, user_id, list_id)
    try:
        db.query(ListShow).filter(ListShow.list_id == list_id).delete(synchronize_session=False)
        db.delete(user_list)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to delete list {list_id}: {e}") from e


def get_list_shows(db: Session, user_id: int, list_id: int) -> list[dict]:
    """Shows in a list, most recently added first."""
    _owned_list(db, user_id, list_id)
    rows = (
        db.query(Show)
        .join(ListShow, ListShow.show_id == Show.id)
        .filter(ListShow.list_id == list_id)
        .order_by(ListShow.created_at.desc(), ListShow.id.desc())
        .all()
    )
    return [show.to_dict() for show in rows]


def add_show_to_list(db: Session, user_id: int, list_id: int, show_id: int) -> ListShow:
    """Add a show to the user's list. Adding a show twice keeps one membership."""
    _owned_list(db, user_id, list_id)
    if store.get_show(db, show_id) is None:
        raise NotFound(f"Show {show_id} not found")

    query = db.query(ListShow).filter(ListShow.list_id == list_id, ListShow.show_id == show_id)
    existing = query.first()
    if existing is not None:
        return existing

    db.add(ListShow(list_id=list_id, show_id=show_id))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request added it first
        db.rollback()
    return query.one()


def remove_show_from_list(db: Session, user_id: int, list_id: int, show_id: int):
    _owned_list(db, user_id, list_id)
    deleted = (
        db.query(ListShow)
        .filter(ListShow.list_id == list_id, ListShow.show_id == show_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFound(f"Show {show_id} is not in list {list_id}")
    db.commit()
