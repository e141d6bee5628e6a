"""Episode model for TV episodes."""

from typing import Optional

from sqlalchemy import String, Integer, Text, Float, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class Episode(Base):
    """TV Episode model."""

    __tablename__ = "episodes"
    __table_args__ = (
        UniqueConstraint("show_id", "upstream_id", name="uq_episodes_show_upstream"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    upstream_id: Mapped[int] = mapped_column(Integer, nullable=False)
    show_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shows.id", ondelete="CASCADE"), nullable=False, index=True
    )
    season_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False
    )

    # Episode info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    overview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    season_number: Mapped[int] = mapped_column(Integer, nullable=False)
    episode_number: Mapped[int] = mapped_column(Integer, nullable=False)
    first_aired: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    runtime_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    still_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<Episode(id={self.id}, show_id={self.show_id}, {self.episode_code})>"

    @property
    def episode_code(self) -> str:
        """Get episode code like S01E01."""
        return f"S{self.season_number:02d}E{self.episode_number:02d}"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "show_id": self.show_id,
            "season_id": self.season_id,
            "name": self.name,
            "overview": self.overview,
            "season_number": self.season_number,
            "episode_number": self.episode_number,
            "first_aired": self.first_aired,
            "runtime_minutes": self.runtime_minutes,
            "still_url": self.still_url,
            "rating": self.rating,
        }
