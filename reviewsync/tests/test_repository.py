from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from helpers import local_review
from reviewsync.client.database import LocalDatabase
from reviewsync.client.orchestrator import SyncOrchestrator
from reviewsync.client.repository import ReviewRepository
from reviewsync.client.review_store import LocalReviewStore
from reviewsync.client.user_store import LocalUserStore


def _repo():
    db = LocalDatabase("sqlite://")
    reviews = LocalReviewStore(db)
    users = LocalUserStore(db)
    me = users.ensure_default_user("device-1")
    sync = MagicMock(spec=SyncOrchestrator)
    return ReviewRepository(reviews, users, sync), reviews, me, sync


def test_save_stamps_current_user_and_triggers_sync():
    repo, _, me, sync = _repo()
    saved = repo.save_review(local_review(1001, user_id="spoofed", user_name="Mallory"))

    assert saved.id < 0
    assert saved.user_id == me.user_id
    assert saved.user_name == me.user_name
    sync.trigger_sync_if_enabled.assert_called_once_with("review_saved")


def test_save_over_pending_delete_revives_the_row():
    repo, reviews, me, _ = _repo()
    reviews.upsert([local_review(1001, id=7, user_id=me.user_id, comment="first")])
    repo.delete_review(7)

    saved = repo.save_review(local_review(1001, comment="second"))

    assert saved.id == 7
    assert not saved.is_deleted
    assert [(r.id, r.comment) for r in reviews.get_unsynced()] == [(7, "second")]
    assert reviews.list_tombstones() == []


@pytest.mark.parametrize("rating", [0.0, 5.1, -1.0])
def test_save_rejects_invalid_rating(rating):
    repo, reviews, _, sync = _repo()
    with pytest.raises(ValueError):
        repo.save_review(local_review(1001, rating=rating))
    assert reviews.list_all() == []
    sync.trigger_sync_if_enabled.assert_not_called()


def test_update_own_review():
    repo, _, _, sync = _repo()
    saved = repo.save_review(local_review(1001, rating=3.0))
    updated = repo.update_review(saved.model_copy(update={"rating": 4.0}))

    assert updated.rating == 4.0
    assert updated.synced_at is None
    sync.trigger_sync_if_enabled.assert_called_with("review_updated")


def test_update_foreign_review_forbidden():
    repo, reviews, _, sync = _repo()
    foreign = reviews.insert(local_review(1001, user_id="someone-else"))

    with pytest.raises(PermissionError):
        repo.update_review(foreign.model_copy(update={"rating": 1.0}))
    assert reviews.get(foreign.id).rating == 4.0
    sync.trigger_sync_if_enabled.assert_not_called()


def test_delete_own_review_leaves_tombstone():
    repo, reviews, _, sync = _repo()
    saved = repo.save_review(local_review(1001))
    repo.delete_review(saved.id)

    assert repo.list_reviews() == []
    assert [r.id for r in reviews.list_tombstones()] == [saved.id]
    sync.trigger_sync_if_enabled.assert_called_with("review_deleted")


def test_delete_foreign_review_forbidden():
    repo, reviews, _, _ = _repo()
    foreign = reviews.insert(local_review(1001, user_id="someone-else"))
    with pytest.raises(PermissionError):
        repo.delete_review(foreign.id)
    assert reviews.list_tombstones() == []


def test_missing_review_raises_lookup_error():
    repo, _, _, _ = _repo()
    with pytest.raises(LookupError):
        repo.delete_review(-99)


def test_restaurant_views():
    repo, reviews, _, _ = _repo()
    repo.save_review(local_review(1001, rating=4.0))
    reviews.insert(local_review(1001, rating=2.0, user_id="other"))
    repo.save_review(local_review(1002, rating=5.0))

    assert len(repo.reviews_for_restaurant(1001)) == 2
    assert repo.restaurant_stats(1001) == (3.0, 2)
    assert len(repo.list_reviews()) == 3


def test_works_without_orchestrator():
    db = LocalDatabase("sqlite://")
    users = LocalUserStore(db)
    users.ensure_default_user("device-1")
    repo = ReviewRepository(LocalReviewStore(db), users)
    assert repo.save_review(local_review(1001)).id == -1
