import pytest

from series_track.errors import AuthenticationFailed


@pytest.fixture
def alice(client, users):
    user_id, _ = users
    return {"X-User-Id": str(user_id)}


def test_health_endpoint(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}


def test_search(client):
    r = client.get("/api/search", params={"q": "stranger"})
    assert r.status_code == 200
    assert [s["upstream_id"] for s in r.json()] == [66732]


def test_short_search_is_bad_request(client):
    r = client.get("/api/search", params={"q": "x"})
    assert r.status_code == 400
    assert "at least" in r.json()["detail"]


def test_show_detail_and_not_found(client):
    r = client.get("/api/shows/1399")
    assert r.status_code == 200
    assert r.json()["name"] == "Game of Thrones"
    assert r.json()["genres"] == ["Drama", "Sci-Fi & Fantasy"]

    assert client.get("/api/shows/404").status_code == 404


def test_upstream_errors_map_to_status(client, provider):
    async def rejected(upstream_id):
        raise AuthenticationFailed("bad key")

    provider.get_show_detail = rejected
    r = client.get("/api/shows/1")
    assert r.status_code == 502
    assert r.json() == {"detail": "bad key"}


def test_seasons_and_episodes(client):
    seasons = client.get("/api/shows/1399/seasons").json()
    assert [s["number"] for s in seasons] == [1, 2]

    episodes = client.get("/api/shows/1399/episodes").json()
    assert len(episodes) == 8
    assert "watch_status" not in episodes[0]


def test_curated_routes_are_not_show_ids(client):
    r = client.get("/api/shows/popular")
    assert r.status_code == 200
    assert client.get("/api/shows/recent").status_code == 200
    assert client.get("/api/shows/top-rated", params={"genre": "Drama"}).status_code == 200


def test_lookup_route(client):
    client.get("/api/shows/1399")
    r = client.get("/api/shows/lookup/tvdb/121361")
    assert r.status_code == 200
    assert r.json()["upstream_id"] == 1399
    assert client.get("/api/shows/lookup/anidb/1").status_code == 400


def test_user_routes_require_header(client):
    assert client.get("/api/user/shows").status_code == 401
    assert client.post("/api/user/shows/1399/track").status_code == 401


def test_track_flow(client, alice):
    r = client.post("/api/user/shows/1399/track", headers=alice)
    assert r.status_code == 201
    assert r.json()["status"] == "watching"

    assert client.post("/api/user/shows/1399/track", headers=alice).status_code == 409

    shows = client.get("/api/user/shows", headers=alice).json()
    assert [s["upstream_id"] for s in shows] == [1399]
    assert client.get("/api/user/shows/watching", headers=alice).json()[0]["name"] == "Game of Thrones"

    r = client.patch("/api/user/shows/1399/favorite", json={"favorite": True}, headers=alice)
    assert r.status_code == 200
    assert r.json()["favorite"] is True
    assert len(client.get("/api/user/favorites", headers=alice).json()) == 1

    r = client.patch("/api/user/shows/1399", json={"status": "completed"}, headers=alice)
    assert r.json()["status"] == "completed"
    assert client.get("/api/user/shows/1399", headers=alice).json()["status"] == "completed"

    r = client.delete("/api/user/shows/1399/track", headers=alice)
    assert r.status_code == 200
    assert client.delete("/api/user/shows/1399/track", headers=alice).status_code == 404
    assert client.get("/api/user/shows/1399", headers=alice).status_code == 404


def test_watch_status_flow(client, alice):
    client.post("/api/user/shows/1399/track", headers=alice)
    episodes = client.get("/api/shows/1399/episodes", headers=alice).json()
    assert {e["watch_status"] for e in episodes} == {"unwatched"}

    r = client.patch(
        "/api/episodes/watch-status",
        json={"episode_id": episodes[0]["id"], "show_id": 1399, "watch_status": "watched"},
        headers=alice,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["watch"]["watch_status"] == "watched"
    assert body["progress"]["progress"] == 12
    assert body["subscription"]["progress"] == 12
    assert body["recompute_error"] is None

    progress = client.get("/api/shows/1399/progress", headers=alice).json()
    assert progress["seasons"]["1"] == {"watched": 1, "total": 5}
    assert progress["seasons"]["2"] == {"watched": 0, "total": 3}

    episodes = client.get("/api/shows/1399/episodes", headers=alice).json()
    assert episodes[0]["watch_status"] == "watched"


def test_invalid_watch_status_is_bad_request(client, alice):
    episodes = client.get("/api/shows/1399/episodes").json()
    r = client.patch(
        "/api/episodes/watch-status",
        json={"episode_id": episodes[0]["id"], "show_id": 1399, "watch_status": "binged"},
        headers=alice,
    )
    assert r.status_code == 400


def test_genres_route(client):
    client.get("/api/shows/66732")
    assert client.get("/api/genres").json() == ["Drama", "Mystery"]


def test_untracked_subscription_is_not_found(client, alice):
    r = client.get("/api/user/shows/1399", headers=alice)
    assert r.status_code == 404
    assert "does not track show 1399" in r.json()["detail"]


def test_list_flow(client, alice):
    assert client.post("/api/lists", json={"name": " "}, headers=alice).status_code == 400

    r = client.post("/api/lists", json={"name": "Later"}, headers=alice)
    assert r.status_code == 201
    list_id = r.json()["id"]
    assert r.json()["color"] == "blue"

    r = client.post(f"/api/lists/{list_id}/shows/66732", headers=alice)
    assert r.status_code == 201
    assert r.json()["name"] == "Stranger Things"

    lists = client.get("/api/lists", headers=alice).json()
    assert [(entry["name"], entry["show_count"]) for entry in lists] == [("Later", 1)]
    shows = client.get(f"/api/lists/{list_id}/shows", headers=alice).json()
    assert [s["upstream_id"] for s in shows] == [66732]

    assert client.delete(f"/api/lists/{list_id}/shows/66732", headers=alice).status_code == 200
    assert client.delete(f"/api/lists/{list_id}/shows/66732", headers=alice).status_code == 404
    assert client.delete(f"/api/lists/{list_id}", headers=alice).status_code == 200
    assert client.get(f"/api/lists/{list_id}/shows", headers=alice).status_code == 404


def test_lists_require_header(client):
    assert client.get("/api/lists").status_code == 401
