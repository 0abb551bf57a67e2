"""
Server half of the review reconciliation.

A device pushes its unsynced reviews (tombstones included) and receives the
full live review set back. Rows are matched by ``(restaurant_id, user_id)``
rather than by id: a client may still hold a local placeholder id for a
review the server already knows about.

Resolution is last-write-wins. Under ``ConflictPolicy.timestamp`` an incoming
row strictly older than the stored one is skipped; under
``ConflictPolicy.overwrite`` the last call wins unconditionally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..timestamps import ensure_utc, utcnow
from .config import ConflictPolicy
from .review_store import find_by_identity, list_reviews, mark_deleted
from .models import SyncReview
from .tables import ReviewRow
from .user_store import ensure_user

logger = logging.getLogger(__name__)


@dataclass
class BulkSyncResult:
    processed: int
    skipped_stale: int
    all_reviews: list[ReviewRow]


def _apply_tombstone(
    session: Session, review: SyncReview, recreated: set[tuple[int, str]]
) -> None:
    # Placeholder ids are never positive; nothing on the server to delete
    if review.id is None or review.id <= 0:
        logger.debug("Ignoring tombstone for never-synced review %s", review.id)
        return
    row = session.get(ReviewRow, review.id)
    if row is None:
        logger.debug("Ignoring tombstone for unknown review %s", review.id)
        return
    if (row.restaurant_id, row.user_id) in recreated:
        logger.info("Ignoring tombstone for review %s: re-created in the same batch", row.id)
        return
    if not row.is_deleted:
        mark_deleted(row)
        logger.info("Marked review %s as deleted", row.id)


def _is_stale(review: SyncReview, row: ReviewRow) -> bool:
    incoming = ensure_utc(review.updated_at)
    return incoming is not None and incoming < row.updated_at


def _overwrite(row: ReviewRow, review: SyncReview) -> None:
    row.rating = review.rating
    row.comment = review.comment
    row.visit_date = review.visit_date
    row.restaurant_name = review.restaurant_name
    row.restaurant_lat = review.restaurant_lat
    row.restaurant_lon = review.restaurant_lon
    row.restaurant_address = review.restaurant_address
    row.user_name = review.user_name
    row.updated_at = ensure_utc(review.updated_at) or utcnow()
    row.is_deleted = False


def _insert(session: Session, review: SyncReview, owner: str) -> ReviewRow:
    now = utcnow()
    row = ReviewRow(
        restaurant_id=review.restaurant_id,
        restaurant_name=review.restaurant_name,
        restaurant_lat=review.restaurant_lat,
        restaurant_lon=review.restaurant_lon,
        restaurant_address=review.restaurant_address,
        rating=review.rating,
        comment=review.comment,
        visit_date=review.visit_date,
        user_id=owner,
        user_name=review.user_name,
        created_at=ensure_utc(review.created_at) or now,
        updated_at=ensure_utc(review.updated_at) or now,
        is_deleted=False,
        reaction_counts={},
    )
    session.add(row)
    return row


def apply_bulk_sync(
    session: Session,
    user_id: str,
    reviews: list[SyncReview],
    policy: ConflictPolicy = ConflictPolicy.timestamp,
) -> BulkSyncResult:
    """Merge a pushed batch into the store and return the live review set.

    Runs inside the caller's transaction; the caller commits or rolls back
    the whole batch.
    """
    logger.info("Sync request from user %s with %d review(s)", user_id, len(reviews))
    processed = 0
    skipped = 0

    recreated = {
        (r.restaurant_id, r.user_id or user_id) for r in reviews if not r.is_deleted
    }

    for review in reviews:
        owner = review.user_id or user_id
        if review.is_deleted:
            _apply_tombstone(session, review, recreated)
        else:
            ensure_user(session, owner, review.user_name)
            existing = find_by_identity(session, review.restaurant_id, owner)
            if existing is None:
                _insert(session, review, owner)
                logger.debug("Inserted review for restaurant %s by %s", review.restaurant_id, owner)
            elif policy is ConflictPolicy.timestamp and _is_stale(review, existing):
                skipped += 1
                logger.info(
                    "Skipping stale review for restaurant %s by %s (server row %s is newer)",
                    review.restaurant_id,
                    owner,
                    existing.id,
                )
            else:
                _overwrite(existing, review)
                logger.debug("Updated review %s for restaurant %s", existing.id, review.restaurant_id)
        processed += 1
        session.flush()

    all_reviews = list_reviews(session)
    logger.info("Processed %d review(s), returning %d", processed, len(all_reviews))
    return BulkSyncResult(processed=processed, skipped_stale=skipped, all_reviews=all_reviews)
