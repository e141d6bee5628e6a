"""Season model for TV seasons."""

from typing import Optional

from sqlalchemy import String, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class Season(Base):
    """TV Season model."""

    __tablename__ = "seasons"
    __table_args__ = (
        UniqueConstraint("show_id", "upstream_id", name="uq_seasons_show_upstream"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Only unique within a show
    upstream_id: Mapped[int] = mapped_column(Integer, nullable=False)
    show_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shows.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Season 0 holds specials
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    overview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    poster_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    # Provider reported, may disagree with the stored episode rows
    episode_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    year_label: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<Season(id={self.id}, show_id={self.show_id}, number={self.number})>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "show_id": self.show_id,
            "number": self.number,
            "name": self.name,
            "overview": self.overview,
            "poster_url": self.poster_url,
            "episode_count": self.episode_count,
            "year_label": self.year_label,
        }
