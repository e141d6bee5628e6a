"""Per-user tracking models: show subscriptions and episode watch state."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base

SUBSCRIPTION_STATUSES = ("watching", "completed", "on-hold", "plan-to-watch")
WATCH_STATUSES = ("watched", "unwatched", "in-progress")


class UserShow(Base):
    """A user's subscription to a show, with cached progress."""

    __tablename__ = "user_shows"
    __table_args__ = (
        UniqueConstraint("user_id", "show_id", name="uq_user_shows_user_show"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    show_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shows.id", ondelete="CASCADE"), nullable=False
    )

    status: Mapped[str] = mapped_column(String(20), default="watching", nullable=False)
    # Status values: watching, completed, on-hold, plan-to-watch
    favorite: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_watched_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Derived from user_episodes, rewritten after every watch-status change
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_episodes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserShow(user_id={self.user_id}, show_id={self.show_id}, status='{self.status}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "show_id": self.show_id,
            "status": self.status,
            "favorite": self.favorite,
            "last_watched_at": self.last_watched_at.isoformat() if self.last_watched_at else None,
            "progress": self.progress,
            "total_episodes": self.total_episodes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class UserEpisode(Base):
    """Watch state of one episode for one user."""

    __tablename__ = "user_episodes"
    __table_args__ = (
        UniqueConstraint("user_id", "episode_id", name="uq_user_episodes_user_episode"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    episode_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("episodes.id", ondelete="CASCADE"), nullable=False
    )
    # Denormalized from the episode for per-show queries
    show_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shows.id", ondelete="CASCADE"), nullable=False, index=True
    )

    watch_status: Mapped[str] = mapped_column(String(20), default="unwatched", nullable=False)
    # Set exactly while watch_status is "watched"
    watched_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserEpisode(user_id={self.user_id}, episode_id={self.episode_id}, '{self.watch_status}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "episode_id": self.episode_id,
            "show_id": self.show_id,
            "watch_status": self.watch_status,
            "watched_at": self.watched_at.isoformat() if self.watched_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
