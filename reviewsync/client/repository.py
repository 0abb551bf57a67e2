from __future__ import annotations

import logging

from .models import Review, is_valid_rating
from .orchestrator import SyncOrchestrator
from .review_store import LocalReviewStore
from .user_store import LocalUserStore

logger = logging.getLogger(__name__)


class ReviewRepository:
    """What the app screens talk to: local writes, then an automatic sync."""

    def __init__(
        self,
        reviews: LocalReviewStore,
        users: LocalUserStore,
        orchestrator: SyncOrchestrator | None = None,
    ) -> None:
        self._reviews = reviews
        self._users = users
        self._orchestrator = orchestrator

    def _trigger(self, reason: str) -> None:
        if self._orchestrator is not None:
            self._orchestrator.trigger_sync_if_enabled(reason)

    def _current_user_id(self) -> str:
        user = self._users.get_current_user()
        if user is None:
            raise LookupError("No current user on this device")
        return user.user_id

    def _owned(self, review_id: int) -> Review:
        existing = self._reviews.get(review_id)
        if existing is None or existing.is_deleted:
            raise LookupError(f"Review {review_id} not found")
        if existing.user_id != self._current_user_id():
            raise PermissionError("You can only modify your own reviews")
        return existing

    def save_review(self, review: Review) -> Review:
        if not is_valid_rating(review.rating):
            raise ValueError(f"Rating must be between 1 and 5, got {review.rating}")
        user = self._users.get_current_user()
        if user is None:
            raise LookupError("No current user on this device")
        review = review.model_copy(update={"user_id": user.user_id, "user_name": user.user_name})
        # One row per (restaurant, user): writing over a pending delete revives it
        tombstone = self._reviews.find_by_identity(review.restaurant_id, user.user_id, deleted=True)
        if tombstone is not None:
            stored = self._reviews.update(review.model_copy(update={"id": tombstone.id}), revive=True)
            logger.info("Revived deleted review %s for restaurant %s", stored.id, stored.restaurant_id)
        else:
            stored = self._reviews.insert(review)
            logger.info("Saved review %s for restaurant %s", stored.id, stored.restaurant_id)
        self._trigger("review_saved")
        return stored

    def update_review(self, review: Review) -> Review:
        if not is_valid_rating(review.rating):
            raise ValueError(f"Rating must be between 1 and 5, got {review.rating}")
        existing = self._owned(review.id)
        updated = self._reviews.update(
            review.model_copy(update={"user_id": existing.user_id, "user_name": existing.user_name})
        )
        self._trigger("review_updated")
        return updated

    def delete_review(self, review_id: int) -> None:
        self._owned(review_id)
        self._reviews.mark_deleted(review_id)
        logger.info("Deleted review %s locally", review_id)
        self._trigger("review_deleted")

    def list_reviews(self) -> list[Review]:
        return self._reviews.list_all()

    def reviews_for_restaurant(self, restaurant_id: int) -> list[Review]:
        return self._reviews.list_by_restaurant(restaurant_id)

    def restaurant_stats(self, restaurant_id: int) -> tuple[float, int]:
        return self._reviews.restaurant_stats(restaurant_id)
