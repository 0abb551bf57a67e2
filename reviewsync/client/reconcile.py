"""
Client half of the review reconciliation.

``apply_bulk_result`` runs after a successful push: the server's live set
replaces every local live row, and pushed tombstones are dropped once the
server no longer lists them.

``merge_fetched`` is the read-only refresh: no push, per-row last-write-wins,
and a local tombstone is never overwritten by a remote copy.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..timestamps import utcnow
from .models import RemoteReview, Review
from .review_store import LocalReviewStore

logger = logging.getLogger(__name__)


def apply_bulk_result(
    store: LocalReviewStore,
    pushed: list[Review],
    server_reviews: list[RemoteReview],
    started_at: datetime | None = None,
) -> int:
    """Make local live state equal the server set; returns rows received."""
    now = utcnow()
    server_ids = {r.id for r in server_reviews}
    recreated = {(r.restaurant_id, r.user_id) for r in pushed if not r.is_deleted}

    kept = store.purge_non_tombstones(
        keep_edited_since=started_at,
        pushed={r.id: r.updated_at for r in pushed},
    )
    if kept:
        logger.info("Keeping %d review(s) edited during sync", len(kept))
    # The server row for a kept placeholder waits until that edit is pushed
    held = {(r.restaurant_id, r.user_id) for r in map(store.get, kept) if r is not None}

    # A pushed tombstone is confirmed once the server stops listing its id,
    # or when the same push re-created the review
    for review in pushed:
        if not review.is_deleted:
            continue
        if review.id not in server_ids or (review.restaurant_id, review.user_id) in recreated:
            store.mark_synced(review.id, now)

    blocked = {t.id for t in store.list_tombstones() if t.synced_at is None} | kept
    incoming = [
        r.to_review(synced_at=now)
        for r in server_reviews
        if r.id not in blocked and (r.restaurant_id, r.user_id) not in held
    ]
    store.upsert(incoming)

    store.purge_synced_tombstones()
    return len(incoming)


def merge_fetched(
    store: LocalReviewStore,
    remote_reviews: list[RemoteReview],
    complete: bool = False,
) -> int:
    """Merge a downloaded review list; returns the number of new local rows.

    ``complete`` means the list is the server's full live set (no ``since``
    filter), so local tombstones the server no longer lists are confirmed.
    """
    now = utcnow()
    new_count = 0
    skipped = 0

    for remote in remote_reviews:
        local = store.get(remote.id) or store.find_by_identity(remote.restaurant_id, remote.user_id)

        if local is None:
            store.upsert([remote.to_review(synced_at=now)])
            new_count += 1
        elif local.is_deleted:
            logger.debug("Skipping review %s: deleted locally", remote.id)
            skipped += 1
        elif local.updated_at < remote.updated_at:
            replacement = remote.to_review(synced_at=now).model_copy(
                update={"created_at": local.created_at}
            )
            store.replace(local.id, replacement)
        else:
            skipped += 1

    if complete:
        listed = {r.id for r in remote_reviews}
        for tombstone in store.list_tombstones():
            if not tombstone.is_placeholder and tombstone.id not in listed:
                store.mark_synced(tombstone.id, now)
        store.purge_synced_tombstones()

    logger.info("Download merged: %d new, %d skipped", new_count, skipped)
    return new_count
