from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from helpers import review_body
from reviewsync.app import app

client = TestClient(app)


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _create(**kwargs) -> dict:
    resp = client.post("/api/reviews", json=review_body(**kwargs))
    assert resp.status_code == 201
    return resp.json()


# ── Create / list ────────────────────────────────────────────────────────


def test_create_review_returns_server_id():
    body = _create()
    assert body["id"] > 0
    assert body["restaurant_id"] == 1001
    assert body["user_id"] == "user-a"
    assert body["reaction_counts"] == {}


def test_create_rejects_rating_out_of_range():
    for rating in (0.0, 5.1, -1.0):
        resp = client.post("/api/reviews", json=review_body(rating=rating))
        assert resp.status_code == 400


def test_create_accepts_rating_bounds():
    assert client.post("/api/reviews", json=review_body(1001, rating=1.0)).status_code == 201
    assert client.post("/api/reviews", json=review_body(1002, rating=5.0)).status_code == 201


def test_create_rejects_missing_fields():
    body = review_body()
    del body["restaurantName"]
    resp = client.post("/api/reviews", json=body)
    assert resp.status_code == 400
    assert "detail" in resp.json()


def test_list_orders_by_visit_date_desc():
    _create(restaurant_id=1, visitDate="2024-01-01")
    _create(restaurant_id=2, visitDate="2024-03-01")
    _create(restaurant_id=3, visitDate="2024-02-01")
    ids = [r["restaurant_id"] for r in client.get("/api/reviews").json()]
    assert ids == [2, 3, 1]


def test_list_by_user_and_restaurant():
    _create(restaurant_id=1, user_id="a")
    _create(restaurant_id=1, user_id="b")
    _create(restaurant_id=2, user_id="a")

    by_user = client.get("/api/reviews/user/a").json()
    assert sorted(r["restaurant_id"] for r in by_user) == [1, 2]

    by_restaurant = client.get("/api/reviews/restaurant/1").json()
    assert sorted(r["user_id"] for r in by_restaurant) == ["a", "b"]


def test_list_since_filters_on_updated_at():
    old = (datetime.now(timezone.utc) - timedelta(days=2)).isoformat()
    _create(restaurant_id=1, updatedAt=old, createdAt=old)
    _create(restaurant_id=2)

    cutoff = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    rows = client.get("/api/reviews", params={"since": cutoff}).json()
    assert [r["restaurant_id"] for r in rows] == [2]


# ── Update ───────────────────────────────────────────────────────────────


def test_update_by_owner():
    created = _create()
    resp = client.put(
        f"/api/reviews/{created['id']}",
        json={"rating": 2.0, "comment": "Worse", "visitDate": "2024-05-02", "userId": "user-a"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["rating"] == 2.0
    assert body["comment"] == "Worse"
    assert _ts(body["updated_at"]) >= _ts(created["updated_at"])


def test_update_by_other_user_403():
    created = _create()
    resp = client.put(
        f"/api/reviews/{created['id']}",
        json={"rating": 1.0, "visitDate": "2024-05-01", "userId": "intruder"},
    )
    assert resp.status_code == 403
    assert client.get("/api/reviews").json()[0]["rating"] == 4.0


def test_update_with_older_timestamp_409():
    created = _create()
    stale = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    resp = client.put(
        f"/api/reviews/{created['id']}",
        json={"rating": 1.0, "visitDate": "2024-05-01", "userId": "user-a", "updatedAt": stale},
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["detail"] == "Conflict: Server version is newer"
    assert body["serverVersion"]["rating"] == 4.0


def test_update_unknown_review_404():
    resp = client.put(
        "/api/reviews/999",
        json={"rating": 3.0, "visitDate": "2024-05-01", "userId": "user-a"},
    )
    assert resp.status_code == 404


def test_update_rejects_bad_rating():
    created = _create()
    resp = client.put(
        f"/api/reviews/{created['id']}",
        json={"rating": 6.0, "visitDate": "2024-05-01", "userId": "user-a"},
    )
    assert resp.status_code == 400


# ── Delete ───────────────────────────────────────────────────────────────


def test_delete_is_soft_and_hides_review():
    created = _create()
    resp = client.delete(f"/api/reviews/{created['id']}", params={"userId": "user-a"})
    assert resp.status_code == 204
    assert client.get("/api/reviews").json() == []
    assert client.get("/api/reviews/restaurant/1001").json() == []


def test_delete_requires_user_id():
    created = _create()
    resp = client.delete(f"/api/reviews/{created['id']}")
    assert resp.status_code == 400


def test_delete_by_other_user_403():
    created = _create()
    resp = client.delete(f"/api/reviews/{created['id']}", params={"userId": "intruder"})
    assert resp.status_code == 403
    assert len(client.get("/api/reviews").json()) == 1


def test_delete_unknown_review_404():
    resp = client.delete("/api/reviews/4242", params={"userId": "user-a"})
    assert resp.status_code == 404


# ── Pull ─────────────────────────────────────────────────────────────────

PULL_T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _pull(local_reviews: list[dict] | None) -> list[dict]:
    body = {} if local_reviews is None else {"localReviews": local_reviews}
    resp = client.post("/api/reviews/sync/pull", json=body)
    assert resp.status_code == 200
    return resp.json()


def _local(restaurant_id: int, updated: datetime, user_id: str = "user-a") -> dict:
    return {"restaurantId": restaurant_id, "userId": user_id, "updatedAt": updated.isoformat()}


def test_pull_sends_rows_missing_on_device():
    _create(restaurant_id=1, updatedAt=PULL_T0.isoformat())
    _create(restaurant_id=2, updatedAt=PULL_T0.isoformat())
    assert {r["restaurant_id"] for r in _pull(None)} == {1, 2}
    assert [r["restaurant_id"] for r in _pull([_local(1, PULL_T0)])] == [2]


def test_pull_sends_rows_newer_than_device_copy():
    _create(restaurant_id=1, updatedAt=PULL_T0.isoformat())
    pulled = _pull([_local(1, PULL_T0 - timedelta(minutes=1))])
    assert [r["restaurant_id"] for r in pulled] == [1]


def test_pull_skips_older_or_equal_server_rows():
    _create(restaurant_id=1, updatedAt=PULL_T0.isoformat())
    assert _pull([_local(1, PULL_T0)]) == []
    assert _pull([_local(1, PULL_T0 + timedelta(minutes=1))]) == []


def test_pull_matches_on_restaurant_and_user():
    _create(restaurant_id=1, user_id="user-a", updatedAt=PULL_T0.isoformat())
    _create(restaurant_id=1, user_id="user-b", updatedAt=PULL_T0.isoformat())
    pulled = _pull([_local(1, PULL_T0, user_id="user-a")])
    assert [r["user_id"] for r in pulled] == ["user-b"]


def test_pull_leaves_out_deleted_rows():
    created = _create(restaurant_id=1, updatedAt=PULL_T0.isoformat())
    client.delete(f"/api/reviews/{created['id']}", params={"userId": "user-a"})
    assert _pull([]) == []
