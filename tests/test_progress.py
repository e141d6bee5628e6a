import asyncio

from series_track.services import ledger
from series_track.services.progress import (
    SeasonProgress,
    compute_season_progress,
    compute_show_progress,
    percent,
    recompute_show_progress,
)
from series_track.services.sync import SyncService

from conftest import make_show


def _backfill(db, provider, upstream_id):
    episodes = asyncio.run(SyncService(provider).get_episodes(db, upstream_id))
    return episodes[0].show_id, episodes


def test_percent_truncates():
    assert percent(3, 10) == 30
    assert percent(1, 3) == 33
    assert percent(2, 3) == 66
    assert percent(8, 8) == 100
    assert percent(0, 0) == 0


def test_three_of_ten_is_thirty_percent(db, provider, users):
    user_id, _ = users
    provider.add_show(make_show(5, "Ten Parter"), {1: 10})
    show_id, episodes = _backfill(db, provider, 5)
    ledger.track(db, user_id, show_id)

    for ep in episodes[:3]:
        result = ledger.set_episode_watch_status(db, user_id, ep.id, show_id, "watched")

    assert result.progress.progress == 30
    assert result.progress.watched_count == 3
    assert result.subscription.progress == 30
    assert result.subscription.total_episodes == 10


def test_one_of_three_is_thirty_three_percent(db, provider, users):
    user_id, _ = users
    provider.add_show(make_show(6, "Mini Series"), {1: 3})
    show_id, episodes = _backfill(db, provider, 6)
    ledger.track(db, user_id, show_id)

    result = ledger.set_episode_watch_status(db, user_id, episodes[0].id, show_id, "watched")

    assert result.subscription.progress == 33


def test_in_progress_episodes_do_not_count(db, provider, users):
    user_id, _ = users
    show_id, episodes = _backfill(db, provider, 1399)

    ledger.set_episode_watch_status(db, user_id, episodes[0].id, show_id, "watched")
    ledger.set_episode_watch_status(db, user_id, episodes[1].id, show_id, "in-progress")

    progress = compute_show_progress(db, user_id, show_id)
    assert progress.watched_count == 1
    assert progress.total_episodes == 8
    assert progress.progress == 12
    assert progress.last_watched_at is not None


def test_season_progress_shape(db, provider, users):
    user_id, _ = users
    show_id, episodes = _backfill(db, provider, 1399)
    season_one = [e for e in episodes if e.season_number == 1]

    for ep in season_one[:2]:
        ledger.set_episode_watch_status(db, user_id, ep.id, show_id, "watched")

    assert compute_season_progress(db, user_id, show_id) == {
        1: SeasonProgress(watched=2, total=5),
        2: SeasonProgress(watched=0, total=3),
    }


def test_season_progress_is_per_user(db, provider, users):
    alice, bob = users
    show_id, episodes = _backfill(db, provider, 1399)
    ledger.set_episode_watch_status(db, alice, episodes[0].id, show_id, "watched")

    assert compute_season_progress(db, bob, show_id)[1] == SeasonProgress(watched=0, total=5)


def test_recompute_without_subscription_still_returns_aggregate(db, provider, users):
    user_id, _ = users
    show_id, episodes = _backfill(db, provider, 1399)
    ledger.set_episode_watch_status(db, user_id, episodes[0].id, show_id, "watched")

    progress = recompute_show_progress(db, user_id, show_id)

    assert progress.watched_count == 1
    assert ledger.get_subscription(db, user_id, show_id) is None
