"""Show model for TV series."""

import json
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Text, Float
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class Show(Base):
    """TV Show model, keyed by the active provider's id."""

    __tablename__ = "shows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    upstream_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    provider: Mapped[str] = mapped_column(String(10), default="tmdb", nullable=False)

    # Cross-provider ids, used to reconcile ids from the other provider
    tmdb_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    tvdb_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    imdb_id: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    overview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    first_aired: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    last_aired: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    network: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    runtime_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    poster_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    banner_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    genres: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    year_label: Mapped[str] = mapped_column(String(20), default="Unknown", nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Show(id={self.id}, name='{self.name}', upstream_id={self.upstream_id})>"

    @property
    def genre_list(self) -> list[str]:
        return json.loads(self.genres) if self.genres else []

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "provider": self.provider,
            "tmdb_id": self.tmdb_id,
            "tvdb_id": self.tvdb_id,
            "imdb_id": self.imdb_id,
            "name": self.name,
            "overview": self.overview,
            "status": self.status,
            "first_aired": self.first_aired,
            "last_aired": self.last_aired,
            "network": self.network,
            "runtime_minutes": self.runtime_minutes,
            "poster_url": self.poster_url,
            "banner_url": self.banner_url,
            "rating": self.rating,
            "genres": self.genre_list,
            "year_label": self.year_label,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
