"""Local metadata store: typed queries and writes for shows, seasons, episodes.

Shows are upserted by upstream id. Seasons and episodes are insert-only
batches with a two-stage dedup (within the batch, then against the rows
already stored for the show). Unique constraints are the final arbiter:
conflicting inserts are skipped and the batch is re-read from the table.
"""

import json
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import PersistenceError
from ..models import Show, Season, Episode
from .provider import CanonicalShow, CanonicalSeason, CanonicalEpisode

logger = logging.getLogger(__name__)

# Rows per multi-row INSERT, keeps bound parameters under SQLite's limit
INSERT_CHUNK_SIZE = 500

_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def dialect_insert(db: Session):
    """Return the dialect's INSERT construct supporting ON CONFLICT, if any."""
    return _DIALECT_INSERTS.get(db.get_bind().dialect.name)


def _unique_by_upstream_id(items: Iterable) -> list:
    """Drop repeated upstream ids, first occurrence wins."""
    seen = set()
    unique = []
    for item in items:
        if item.upstream_id in seen:
            continue
        seen.add(item.upstream_id)
        unique.append(item)
    return unique


# --- Shows -----------------------------------------------------------------

def get_show(db: Session, show_id: int) -> Optional[Show]:
    return db.query(Show).filter(Show.id == show_id).first()


def get_show_by_upstream_id(db: Session, upstream_id: int) -> Optional[Show]:
    return db.query(Show).filter(Show.upstream_id == upstream_id).first()


def find_show_by_external_id(db: Session, source: str, external_id: str) -> Optional[Show]:
    """Look up a stored show by its id in another provider's id space."""
    if source == "imdb":
        return db.query(Show).filter(Show.imdb_id == external_id).first()
    column = {"tmdb": Show.tmdb_id, "tvdb": Show.tvdb_id}.get(source)
    if column is None:
        return None
    try:
        value = int(external_id)
    except (TypeError, ValueError):
        return None
    return db.query(Show).filter(column == value).first()


def _show_values(data: CanonicalShow, provider: str) -> dict:
    return {
        "upstream_id": data.upstream_id,
        "provider": provider,
        "tmdb_id": data.tmdb_id,
        "tvdb_id": data.tvdb_id,
        "imdb_id": data.imdb_id,
        "name": data.name,
        "overview": data.overview,
        "status": data.status,
        "first_aired": data.first_aired,
        "last_aired": data.last_aired,
        "network": data.network,
        "runtime_minutes": data.runtime_minutes,
        "poster_url": data.poster_url,
        "banner_url": data.banner_url,
        "rating": data.rating,
        "genres": json.dumps(data.genres),
        "year_label": data.year_label,
    }


def upsert_show(db: Session, data: CanonicalShow, provider: str) -> Show:
    """Insert the show, or update it when the upstream id is already stored.

    Safe against a concurrent writer inserting the same upstream id: the
    loser of the race turns into an update instead of failing.
    """
    values = _show_values(data, provider)
    now = datetime.utcnow()
    insert = dialect_insert(db)
    try:
        if insert is not None:
            stmt = insert(Show).values(**values, created_at=now, updated_at=now)
            stmt = stmt.on_conflict_do_update(
                index_elements=["upstream_id"],
                set_={
                    **{k: stmt.excluded[k] for k in values if k != "upstream_id"},
                    "updated_at": now,
                },
            )
            db.execute(stmt)
        else:
            _upsert_show_fallback(db, values)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to store show {data.upstream_id}: {e}") from e

    return get_show_by_upstream_id(db, data.upstream_id)


def _upsert_show_fallback(db: Session, values: dict):
    """Insert-then-update for dialects without ON CONFLICT."""
    try:
        with db.begin_nested():
            db.add(Show(**values))
    except IntegrityError:
        show = get_show_by_upstream_id(db, values["upstream_id"])
        for key, value in values.items():
            setattr(show, key, value)
        show.updated_at = datetime.utcnow()


# --- Seasons ---------------------------------------------------------------

def list_seasons(db: Session, show_id: int, include_specials: bool = False) -> list[Season]:
    query = db.query(Season).filter(Season.show_id == show_id)
    if not include_specials:
        query = query.filter(Season.number > 0)
    return query.order_by(Season.number).all()


def save_seasons(db: Session, show_id: int, seasons: list[CanonicalSeason]) -> list[Season]:
    """Persist a season batch for a show and return every season in it."""
    unique = _unique_by_upstream_id(seasons)
    if not unique:
        return []
    upstream_ids = [s.upstream_id for s in unique]

    existing = {
        row.upstream_id
        for row in db.query(Season.upstream_id).filter(
            Season.show_id == show_id, Season.upstream_id.in_(upstream_ids)
        )
    }
    to_create = [
        {
            "upstream_id": s.upstream_id,
            "show_id": show_id,
            "number": s.number,
            "name": s.name,
            "overview": s.overview,
            "poster_url": s.poster_url,
            "episode_count": s.episode_count,
            "year_label": s.year_label,
        }
        for s in unique
        if s.upstream_id not in existing
    ]
    if to_create:
        _insert_ignoring_conflicts(db, Season, to_create, ["show_id", "upstream_id"])
        logger.info(f"Stored {len(to_create)} new seasons for show {show_id}")

    return (
        db.query(Season)
        .filter(Season.show_id == show_id, Season.upstream_id.in_(upstream_ids))
        .order_by(Season.number)
        .all()
    )


# --- Episodes --------------------------------------------------------------

def list_episodes(db: Session, show_id: int) -> list[Episode]:
    return (
        db.query(Episode)
        .filter(Episode.show_id == show_id)
        .order_by(Episode.season_number, Episode.episode_number)
        .all()
    )


def get_episode(db: Session, episode_id: int) -> Optional[Episode]:
    return db.query(Episode).filter(Episode.id == episode_id).first()


def count_episodes(db: Session, show_id: int) -> int:
    return db.query(func.count(Episode.id)).filter(Episode.show_id == show_id).scalar() or 0


def save_episodes(
    db: Session,
    show_id: int,
    episodes: list[CanonicalEpisode],
    season_ids: dict[int, int],
) -> list[Episode]:
    """Persist an episode batch for a show and return every episode in it.

    ``season_ids`` maps season number to the stored season id; episodes of
    an unknown season are dropped with a warning.
    """
    unique = _unique_by_upstream_id(episodes)
    resolved = []
    for ep in unique:
        if ep.season_number not in season_ids:
            logger.warning(
                f"Dropping episode {ep.upstream_id} of show {show_id}: "
                f"no stored season {ep.season_number}"
            )
            continue
        resolved.append(ep)
    if not resolved:
        return []
    upstream_ids = [e.upstream_id for e in resolved]

    existing = {
        row.upstream_id
        for row in db.query(Episode.upstream_id).filter(
            Episode.show_id == show_id, Episode.upstream_id.in_(upstream_ids)
        )
    }
    to_create = [
        {
            "upstream_id": e.upstream_id,
            "show_id": show_id,
            "season_id": season_ids[e.season_number],
            "name": e.name,
            "overview": e.overview,
            "season_number": e.season_number,
            "episode_number": e.episode_number,
            "first_aired": e.first_aired,
            "runtime_minutes": e.runtime_minutes,
            "still_url": e.still_url,
            "rating": e.rating,
        }
        for e in resolved
        if e.upstream_id not in existing
    ]
    if to_create:
        _insert_ignoring_conflicts(db, Episode, to_create, ["show_id", "upstream_id"])
        logger.info(f"Stored {len(to_create)} new episodes for show {show_id}")

    return (
        db.query(Episode)
        .filter(Episode.show_id == show_id, Episode.upstream_id.in_(upstream_ids))
        .order_by(Episode.season_number, Episode.episode_number)
        .all()
    )


def _insert_ignoring_conflicts(db: Session, model, rows: list[dict], keys: list[str]):
    """Bulk insert, skipping rows another writer stored in the meantime."""
    insert = dialect_insert(db)
    try:
        if insert is not None:
            for start in range(0, len(rows), INSERT_CHUNK_SIZE):
                stmt = insert(model).values(rows[start:start + INSERT_CHUNK_SIZE])
                db.execute(stmt.on_conflict_do_nothing(index_elements=keys))
        else:
            for row in rows:
                try:
                    with db.begin_nested():
                        db.add(model(**row))
                except IntegrityError:
                    logger.debug(f"{model.__tablename__} row {row['upstream_id']} already stored")
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to store {model.__tablename__}: {e}") from e


# --- Curated queries -------------------------------------------------------

def _genre_filter(db: Session, query, genre: Optional[str]):
    if not genre:
        return query
    # genres is a JSON array; match the quoted element, case-sensitively
    element = json.dumps(genre)
    if db.get_bind().dialect.name == "sqlite":
        # SQLite LIKE folds ASCII case, instr does not
        return query.filter(func.instr(Show.genres, element) > 0)
    return query.filter(Show.genres.contains(element, autoescape=True))


def popular_shows(db: Session, limit: int = 12, genre: Optional[str] = None) -> list[Show]:
    query = _genre_filter(db, db.query(Show), genre)
    return query.order_by(Show.rating.desc().nulls_last(), Show.id).limit(limit).all()


def recent_shows(db: Session, limit: int = 12) -> list[Show]:
    return (
        db.query(Show)
        .order_by(Show.first_aired.desc().nulls_last(), Show.id)
        .limit(limit)
        .all()
    )


def top_rated_shows(db: Session, limit: int = 12, genre: Optional[str] = None) -> list[Show]:
    query = _genre_filter(db, db.query(Show).filter(Show.rating.isnot(None)), genre)
    return query.order_by(Show.rating.desc(), Show.id).limit(limit).all()


def all_genres(db: Session) -> list[str]:
    """Distinct genres across all stored shows, sorted."""
    genres = set()
    for (raw,) in db.query(Show.genres).filter(Show.genres.isnot(None)):
        genres.update(json.loads(raw))
    return sorted(genres)
