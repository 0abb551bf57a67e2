from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from helpers import local_review
from reviewsync.client.database import LocalDatabase
from reviewsync.client.models import RemoteReview
from reviewsync.client.reconcile import apply_bulk_result, merge_fetched
from reviewsync.client.review_store import LocalReviewStore
from reviewsync.timestamps import utcnow

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _store() -> LocalReviewStore:
    return LocalReviewStore(LocalDatabase("sqlite://"))


def _remote(id: int, restaurant_id: int = 1001, user_id: str = "me", updated=T0, **overrides) -> RemoteReview:
    fields = {
        "id": id,
        "restaurant_id": restaurant_id,
        "restaurant_name": "Zum Roten Ochsen",
        "restaurant_lat": 49.41206,
        "restaurant_lon": 8.71064,
        "rating": 4.0,
        "comment": "Good",
        "visit_date": date(2024, 5, 1),
        "user_id": user_id,
        "user_name": "Me",
        "created_at": T0,
        "updated_at": updated,
    }
    fields.update(overrides)
    return RemoteReview(**fields)


# ── After a bulk sync ────────────────────────────────────────────────────


def test_server_set_replaces_local_live_rows():
    store = _store()
    pushed = [store.insert(local_review(1001, user_id="me"))]

    received = apply_bulk_result(store, pushed, [_remote(10, 1001), _remote(11, 1002, "other")])

    assert received == 2
    rows = store.list_all()
    assert {r.id for r in rows} == {10, 11}
    assert all(r.synced_at is not None for r in rows)
    assert store.get_unsynced() == []


def test_confirmed_tombstone_is_purged():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", synced_at=T0, updated_at=T0)])
    store.mark_deleted(10)
    pushed = store.get_unsynced()

    apply_bulk_result(store, pushed, [])

    assert store.list_all(include_deleted=True) == []


def test_tombstone_still_listed_by_server_is_kept():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", synced_at=T0, updated_at=T0)])
    store.mark_deleted(10)
    pushed = store.get_unsynced()

    received = apply_bulk_result(store, pushed, [_remote(10)])

    assert received == 0
    assert [r.id for r in store.list_tombstones()] == [10]
    assert store.list_all() == []


def test_tombstone_created_during_sync_survives():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", synced_at=T0, updated_at=T0)])
    # Deleted after the push left; not part of ``pushed``
    store.mark_deleted(10)

    apply_bulk_result(store, [], [_remote(10)])

    assert [r.id for r in store.list_tombstones()] == [10]


def test_edit_made_during_sync_is_not_clobbered():
    store = _store()
    started = utcnow()
    store.upsert(
        [
            local_review(
                1001,
                id=10,
                user_id="me",
                comment="Edited mid-sync",
                updated_at=started + timedelta(seconds=1),
                synced_at=None,
            )
        ]
    )

    apply_bulk_result(store, [], [_remote(10, comment="Old")], started_at=started)

    assert store.get(10).comment == "Edited mid-sync"
    assert [r.id for r in store.get_unsynced()] == [10]


def test_row_saved_just_before_push_is_not_kept_twice():
    store = _store()
    started = utcnow()
    store.insert(local_review(1001, user_id="me"))
    pushed = store.get_unsynced()

    apply_bulk_result(store, pushed, [_remote(42, 1001)], started_at=started)

    assert [(r.id, r.restaurant_id) for r in store.list_all()] == [(42, 1001)]


def test_placeholder_edited_after_push_holds_back_its_server_copy():
    store = _store()
    started = utcnow()
    local = store.insert(local_review(1001, user_id="me", comment="Pushed"))
    pushed = store.get_unsynced()
    edited = local.model_copy(
        update={"comment": "Edited after push", "updated_at": local.updated_at + timedelta(seconds=1)}
    )
    store.upsert([edited])

    received = apply_bulk_result(store, pushed, [_remote(42, 1001)], started_at=started)

    assert received == 0
    assert [(r.id, r.comment) for r in store.list_all()] == [(local.id, "Edited after push")]


def test_tombstone_superseded_by_pushed_recreate():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", synced_at=T0, updated_at=T0)])
    store.mark_deleted(10)
    placeholder = store.insert(local_review(1001, user_id="me", comment="Again"))
    pushed = store.get_unsynced()

    apply_bulk_result(store, pushed, [_remote(10, comment="Again")])

    assert [(r.id, r.comment) for r in store.list_all()] == [(10, "Again")]
    assert store.list_tombstones() == []
    assert store.get(placeholder.id) is None


def test_placeholder_rows_replaced_by_server_ids():
    store = _store()
    local = store.insert(local_review(1001, user_id="me"))

    apply_bulk_result(store, [local], [_remote(42, 1001)])

    assert store.get(local.id) is None
    assert store.get(42).restaurant_id == 1001


# ── Read-only refresh ────────────────────────────────────────────────────


def test_merge_inserts_unknown_rows():
    store = _store()
    assert merge_fetched(store, [_remote(10), _remote(11, 1002)]) == 2
    assert {r.id for r in store.list_all()} == {10, 11}


def test_merge_keeps_newer_local_row():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", comment="Local", updated_at=T0 + timedelta(hours=1))])

    assert merge_fetched(store, [_remote(10, comment="Remote", updated=T0)]) == 0
    assert store.get(10).comment == "Local"


def test_merge_takes_newer_remote_row():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", comment="Local", updated_at=T0)])

    merge_fetched(store, [_remote(10, comment="Remote", updated=T0 + timedelta(hours=1))])
    assert store.get(10).comment == "Remote"
    assert store.get(10).synced_at is not None


def test_merge_never_resurrects_tombstone():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", updated_at=T0, synced_at=T0)])
    store.mark_deleted(10)

    merge_fetched(store, [_remote(10, updated=T0 + timedelta(days=1))], complete=True)

    assert store.list_all() == []
    assert [r.id for r in store.list_tombstones()] == [10]


def test_merge_matches_placeholder_by_identity():
    store = _store()
    local = store.insert(local_review(1001, user_id="me", updated_at=T0))

    merge_fetched(store, [_remote(10, updated=T0 + timedelta(hours=1), comment="From server")])

    assert store.get(local.id) is None
    assert store.get(10).comment == "From server"


def test_complete_merge_confirms_missing_tombstones():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", updated_at=T0, synced_at=T0)])
    store.mark_deleted(10)
    placeholder = store.insert(local_review(1002, user_id="me"))
    store.mark_deleted(placeholder.id)

    merge_fetched(store, [], complete=True)

    # The never-synced tombstone waits for the next push
    assert [r.id for r in store.list_tombstones()] == [placeholder.id]


def test_partial_merge_leaves_tombstones_alone():
    store = _store()
    store.upsert([local_review(1001, id=10, user_id="me", updated_at=T0, synced_at=T0)])
    store.mark_deleted(10)

    merge_fetched(store, [])

    assert [r.id for r in store.list_tombstones()] == [10]
