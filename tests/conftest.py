import asyncio
from collections import Counter
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from series_track.database import create_db_engine, get_db, init_database
from series_track.errors import NotFound
from series_track.models import User
from series_track.services.provider import (
    CanonicalEpisode,
    CanonicalSeason,
    CanonicalShow,
    CastMember,
    MetadataProvider,
    ShowSummary,
)


def make_show(upstream_id: int, name: str, **kwargs) -> CanonicalShow:
    values = {
        "overview": f"{name} overview",
        "status": "Returning Series",
        "first_aired": "2011-04-17",
        "rating": 8.0,
        "genres": ["Drama"],
        "year_label": "2011-Present",
    }
    values.update(kwargs)
    return CanonicalShow(upstream_id=upstream_id, name=name, **values)


def make_seasons(show_upstream_id: int, episode_counts: dict[int, int]) -> list[CanonicalSeason]:
    return [
        CanonicalSeason(
            upstream_id=show_upstream_id * 100 + number,
            number=number,
            name=f"Season {number}",
            episode_count=count,
        )
        for number, count in episode_counts.items()
    ]


def make_episodes(show_upstream_id: int, episode_counts: dict[int, int]) -> list[CanonicalEpisode]:
    return [
        CanonicalEpisode(
            upstream_id=show_upstream_id * 10000 + number * 100 + ep,
            season_number=number,
            episode_number=ep,
            name=f"Episode {ep}",
        )
        for number, count in episode_counts.items()
        for ep in range(1, count + 1)
    ]


class FakeProvider(MetadataProvider):
    """In-memory provider that counts calls per operation."""

    name = "tmdb"

    def __init__(self):
        super().__init__("http://provider.test")
        self.shows: dict[int, CanonicalShow] = {}
        self.seasons: dict[int, list[CanonicalSeason]] = {}
        self.episodes: dict[int, list[CanonicalEpisode]] = {}
        self.cast: dict[int, list[CastMember]] = {}
        self.popular: list[ShowSummary] = []
        self.recent: list[ShowSummary] = []
        self.top_rated: list[ShowSummary] = []
        self.genres: list[str] = []
        self.external: dict[tuple[str, str], int] = {}
        self.calls = Counter()

    def add_show(self, show: CanonicalShow, episode_counts: Optional[dict[int, int]] = None):
        self.shows[show.upstream_id] = show
        episode_counts = episode_counts or {}
        self.seasons[show.upstream_id] = make_seasons(show.upstream_id, episode_counts)
        self.episodes[show.upstream_id] = make_episodes(show.upstream_id, episode_counts)

    async def _called(self, operation: str):
        self.calls[operation] += 1
        # Let concurrent callers interleave like real network calls would
        await asyncio.sleep(0)

    async def search_shows(self, query: str) -> list[ShowSummary]:
        await self._called("search_shows")
        return [
            ShowSummary(upstream_id=s.upstream_id, name=s.name, year_label=s.year_label)
            for s in self.shows.values()
            if query.lower() in s.name.lower()
        ]

    async def get_show_detail(self, upstream_id: int) -> CanonicalShow:
        await self._called("get_show_detail")
        if upstream_id not in self.shows:
            raise NotFound(f"no show {upstream_id}")
        return self.shows[upstream_id]

    async def get_seasons(self, upstream_show_id: int) -> list[CanonicalSeason]:
        await self._called("get_seasons")
        return list(self.seasons.get(upstream_show_id, []))

    async def get_episodes(self, upstream_show_id, seasons):
        await self._called("get_episodes")
        # Episodes report their own season number, which may not be one of
        # the requested seasons
        return list(self.episodes.get(upstream_show_id, []))

    async def get_cast(self, upstream_show_id: int) -> list[CastMember]:
        await self._called("get_cast")
        return self.cast.get(upstream_show_id, [])[: self.cast_limit]

    async def get_popular_shows(self) -> list[ShowSummary]:
        await self._called("get_popular_shows")
        return self.popular

    async def get_recent_shows(self) -> list[ShowSummary]:
        await self._called("get_recent_shows")
        return self.recent

    async def get_top_rated_shows(self) -> list[ShowSummary]:
        await self._called("get_top_rated_shows")
        return self.top_rated

    async def get_genres(self) -> list[str]:
        await self._called("get_genres")
        return self.genres

    async def find_by_external_id(self, source: str, external_id: str) -> Optional[int]:
        await self._called("find_by_external_id")
        return self.external.get((source, external_id))


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def users(db):
    alice = User(username="alice")
    bob = User(username="bob")
    db.add_all([alice, bob])
    db.commit()
    return alice.id, bob.id


@pytest.fixture
def provider():
    """Provider knowing one show (upstream 1399) with seasons 1 (5 eps) and 2 (3 eps)."""
    fake = FakeProvider()
    fake.add_show(
        make_show(
            1399,
            "Game of Thrones",
            tvdb_id=121361,
            imdb_id="tt0944947",
            status="Ended",
            last_aired="2019-05-19",
            genres=["Drama", "Sci-Fi & Fantasy"],
            rating=8.4,
            year_label="2011-2019",
        ),
        {1: 5, 2: 3},
    )
    fake.add_show(
        make_show(
            66732,
            "Stranger Things",
            first_aired="2016-07-15",
            genres=["Drama", "Mystery"],
            rating=8.6,
            year_label="2016-Present",
        ),
        {1: 8},
    )
    return fake


@pytest.fixture
def client(session_factory, provider):
    from series_track.main import app
    from series_track.routers.dependencies import get_provider

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider] = lambda: provider
    # Not used as a context manager: the lifespan (real database and
    # provider) stays out of the tests.
    yield TestClient(app)
    app.dependency_overrides.clear()
