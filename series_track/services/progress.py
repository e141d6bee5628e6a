"""Per-user progress aggregation over episode watch state."""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Episode, UserEpisode, UserShow


@dataclass
class SeasonProgress:
    watched: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ShowProgress:
    progress: int
    total_episodes: int
    watched_count: int
    last_watched_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "progress": self.progress,
            "total_episodes": self.total_episodes,
            "watched_count": self.watched_count,
            "last_watched_at": self.last_watched_at.isoformat() if self.last_watched_at else None,
        }


def percent(watched: int, total: int) -> int:
    """Whole percent watched, truncated: 1 of 3 is 33."""
    if total <= 0:
        return 0
    return watched * 100 // total


def _watched_query(db: Session, user_id: int, show_id: int):
    return db.query(UserEpisode).filter(
        UserEpisode.user_id == user_id,
        UserEpisode.show_id == show_id,
        UserEpisode.watch_status == "watched",
    )


def compute_season_progress(db: Session, user_id: int, show_id: int) -> dict[int, SeasonProgress]:
    """Watched/total episode counts per season number.

    Seasons come from the episode rows, so every season with episodes is
    present even when the user watched none of them.
    """
    progress: dict[int, SeasonProgress] = {}

    totals = (
        db.query(Episode.season_number, func.count(Episode.id))
        .filter(Episode.show_id == show_id)
        .group_by(Episode.season_number)
        .order_by(Episode.season_number)
    )
    for season_number, total in totals:
        progress[season_number] = SeasonProgress(watched=0, total=total)

    watched = (
        db.query(Episode.season_number, func.count(UserEpisode.id))
        .join(UserEpisode, UserEpisode.episode_id == Episode.id)
        .filter(
            Episode.show_id == show_id,
            UserEpisode.user_id == user_id,
            UserEpisode.watch_status == "watched",
        )
        .group_by(Episode.season_number)
    )
    for season_number, count in watched:
        if season_number in progress:
            progress[season_number].watched = count

    return progress


def compute_show_progress(db: Session, user_id: int, show_id: int) -> ShowProgress:
    """Aggregate the user's progress through a show without writing anything.

    ``total_episodes`` counts every stored episode of the show, regardless of
    the user's state.
    """
    total = db.query(func.count(Episode.id)).filter(Episode.show_id == show_id).scalar() or 0
    watched_count, last_watched_at = (
        _watched_query(db, user_id, show_id)
        .with_entities(func.count(UserEpisode.id), func.max(UserEpisode.watched_at))
        .one()
    )
    return ShowProgress(
        progress=percent(watched_count, total),
        total_episodes=total,
        watched_count=watched_count,
        last_watched_at=last_watched_at,
    )


def recompute_show_progress(db: Session, user_id: int, show_id: int) -> ShowProgress:
    """Recompute the user's progress and persist it onto the subscription.

    Reads and the update share one transaction, so the stored fields always
    reflect a single snapshot of the watch rows. Without a subscription the
    aggregate is still returned.
    """
    try:
        result = compute_show_progress(db, user_id, show_id)
        subscription = (
            db.query(UserShow)
            .filter(UserShow.user_id == user_id, UserShow.show_id == show_id)
            .first()
        )
        if subscription is not None:
            subscription.progress = result.progress
            subscription.total_episodes = result.total_episodes
            subscription.last_watched_at = result.last_watched_at
            subscription.updated_at = datetime.utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result
