import asyncio

import pytest

from series_track.errors import AlreadyTracked, InvalidRequest, NotFound, NotTracked
from series_track.models import UserEpisode, UserShow
from series_track.services import ledger
from series_track.services.sync import SyncService


@pytest.fixture
def stored_show(db, provider):
    """Game of Thrones with all eight episodes stored."""
    episodes = asyncio.run(SyncService(provider).get_episodes(db, 1399))
    return episodes[0].show_id, episodes


def test_track_snapshots_episode_count(db, users, stored_show):
    user_id, _ = users
    show_id, _ = stored_show

    subscription = ledger.track(db, user_id, show_id)

    assert subscription.status == "watching"
    assert subscription.favorite is False
    assert subscription.progress == 0
    assert subscription.total_episodes == 8


def test_track_twice_is_rejected(db, users, stored_show):
    user_id, _ = users
    show_id, _ = stored_show
    ledger.track(db, user_id, show_id)

    with pytest.raises(AlreadyTracked):
        ledger.track(db, user_id, show_id)
    assert db.query(UserShow).count() == 1


def test_track_unknown_user_or_show(db, users, stored_show):
    user_id, _ = users
    show_id, _ = stored_show
    with pytest.raises(NotFound):
        ledger.track(db, 9999, show_id)
    with pytest.raises(NotFound):
        ledger.track(db, user_id, 9999)


def test_untrack_removes_watch_rows_and_retrack_starts_fresh(db, users, stored_show):
    alice, bob = users
    show_id, episodes = stored_show
    ledger.track(db, alice, show_id)
    ledger.track(db, bob, show_id)
    for ep in episodes[:4]:
        ledger.set_episode_watch_status(db, alice, ep.id, show_id, "watched")
    ledger.set_episode_watch_status(db, bob, episodes[0].id, show_id, "watched")

    ledger.untrack(db, alice, show_id)

    assert ledger.get_subscription(db, alice, show_id) is None
    assert db.query(UserEpisode).filter(UserEpisode.user_id == alice).count() == 0
    # Other users keep their history
    assert db.query(UserEpisode).filter(UserEpisode.user_id == bob).count() == 1

    again = ledger.track(db, alice, show_id)
    assert again.progress == 0
    assert again.total_episodes == 8
    assert again.last_watched_at is None


def test_untrack_without_subscription(db, users, stored_show):
    user_id, _ = users
    show_id, _ = stored_show
    with pytest.raises(NotTracked):
        ledger.untrack(db, user_id, show_id)


def test_watch_status_upserts_one_row(db, users, stored_show):
    user_id, _ = users
    show_id, episodes = stored_show
    ledger.track(db, user_id, show_id)
    episode_id = episodes[0].id

    watched = ledger.set_episode_watch_status(db, user_id, episode_id, show_id, "watched")
    assert watched.watch.watched_at is not None
    assert watched.subscription.progress == 12

    unwatched = ledger.set_episode_watch_status(db, user_id, episode_id, show_id, "unwatched")
    assert unwatched.watch.id == watched.watch.id
    assert unwatched.watch.watch_status == "unwatched"
    assert unwatched.watch.watched_at is None
    assert unwatched.subscription.progress == 0
    assert unwatched.subscription.last_watched_at is None
    assert db.query(UserEpisode).count() == 1


def test_watch_status_validation(db, users, stored_show, provider):
    user_id, _ = users
    show_id, episodes = stored_show
    other = asyncio.run(SyncService(provider).get_episodes(db, 66732))

    with pytest.raises(InvalidRequest):
        ledger.set_episode_watch_status(db, user_id, episodes[0].id, show_id, "binged")
    with pytest.raises(NotFound):
        ledger.set_episode_watch_status(db, user_id, 99999, show_id, "watched")
    with pytest.raises(NotFound):
        ledger.set_episode_watch_status(db, user_id, other[0].id, show_id, "watched")
    assert db.query(UserEpisode).count() == 0


def test_recompute_failure_keeps_the_write(db, users, stored_show, monkeypatch):
    user_id, _ = users
    show_id, episodes = stored_show
    ledger.track(db, user_id, show_id)

    def broken(*args, **kwargs):
        raise RuntimeError("aggregation failed")

    monkeypatch.setattr(ledger, "recompute_show_progress", broken)
    result = ledger.set_episode_watch_status(db, user_id, episodes[0].id, show_id, "watched")

    assert isinstance(result.recompute_error, RuntimeError)
    assert result.progress is None
    assert result.watch.watch_status == "watched"
    assert db.query(UserEpisode).count() == 1
    assert result.to_dict()["recompute_error"] == "aggregation failed"


def test_update_subscription(db, users, stored_show):
    user_id, _ = users
    show_id, _ = stored_show
    ledger.track(db, user_id, show_id)

    updated = ledger.update_subscription(db, user_id, show_id, status="on-hold", favorite=True)

    assert updated.status == "on-hold"
    assert updated.favorite is True
    with pytest.raises(InvalidRequest):
        ledger.update_subscription(db, user_id, show_id, status="dropped")
    with pytest.raises(InvalidRequest):
        ledger.update_subscription(db, user_id, show_id, progress=100)


def test_update_subscription_requires_tracking(db, users, stored_show):
    user_id, _ = users
    show_id, _ = stored_show
    with pytest.raises(NotTracked):
        ledger.update_subscription(db, user_id, show_id, favorite=True)


def test_user_show_listings(db, users, stored_show, provider):
    user_id, _ = users
    show_id, _ = stored_show
    other = asyncio.run(SyncService(provider).get_show_detail(db, 66732))
    ledger.track(db, user_id, show_id)
    ledger.track(db, user_id, other.id)
    ledger.update_subscription(db, user_id, other.id, status="completed", favorite=True)

    shows = ledger.get_user_shows(db, user_id)
    watching = ledger.get_user_shows(db, user_id, "watching")
    favorites = ledger.get_user_favorites(db, user_id)

    assert {s["upstream_id"] for s in shows} == {1399, 66732}
    assert [s["upstream_id"] for s in watching] == [1399]
    assert [s["upstream_id"] for s in favorites] == [66732]
    assert favorites[0]["subscription"]["status"] == "completed"
    with pytest.raises(InvalidRequest):
        ledger.get_user_shows(db, user_id, "dropped")


def test_watch_statuses_by_episode(db, users, stored_show):
    user_id, _ = users
    show_id, episodes = stored_show
    ledger.set_episode_watch_status(db, user_id, episodes[0].id, show_id, "watched")
    ledger.set_episode_watch_status(db, user_id, episodes[1].id, show_id, "in-progress")

    assert ledger.get_watch_statuses(db, user_id, show_id) == {
        episodes[0].id: "watched",
        episodes[1].id: "in-progress",
    }
