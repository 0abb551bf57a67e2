from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from ..timestamps import ensure_utc, utcnow
from .database import LocalDatabase, LocalReviewRow
from .models import Review

logger = logging.getLogger(__name__)

_COLUMNS = (
    "restaurant_id",
    "restaurant_name",
    "restaurant_lat",
    "restaurant_lon",
    "restaurant_address",
    "rating",
    "comment",
    "visit_date",
    "created_at",
    "updated_at",
    "user_id",
    "user_name",
    "synced_at",
    "is_deleted",
    "reaction_counts",
)


def _to_review(row: LocalReviewRow) -> Review:
    return Review(id=row.id, **{name: getattr(row, name) for name in _COLUMNS})


def _copy_into(row: LocalReviewRow, review: Review) -> None:
    for name in _COLUMNS:
        setattr(row, name, getattr(review, name))


def _unsynced_clause():
    return or_(
        LocalReviewRow.synced_at.is_(None),
        LocalReviewRow.updated_at > LocalReviewRow.synced_at,
        LocalReviewRow.is_deleted.is_(True),
    )


class LocalReviewStore:
    """Durable on-device review table with soft deletes and sync bookkeeping."""

    def __init__(self, db: LocalDatabase) -> None:
        self._db = db

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, review_id: int) -> Review | None:
        with self._db.transaction() as session:
            row = session.get(LocalReviewRow, review_id)
            return _to_review(row) if row else None

    def list_all(self, include_deleted: bool = False) -> list[Review]:
        stmt = select(LocalReviewRow)
        if not include_deleted:
            stmt = stmt.where(LocalReviewRow.is_deleted.is_(False))
        stmt = stmt.order_by(LocalReviewRow.visit_date.desc(), LocalReviewRow.id.asc())
        with self._db.transaction() as session:
            return [_to_review(r) for r in session.scalars(stmt)]

    def list_by_restaurant(self, restaurant_id: int) -> list[Review]:
        stmt = (
            select(LocalReviewRow)
            .where(
                LocalReviewRow.restaurant_id == restaurant_id,
                LocalReviewRow.is_deleted.is_(False),
            )
            .order_by(LocalReviewRow.visit_date.desc(), LocalReviewRow.id.asc())
        )
        with self._db.transaction() as session:
            return [_to_review(r) for r in session.scalars(stmt)]

    def find_by_identity(
        self, restaurant_id: int, user_id: str, deleted: bool | None = None
    ) -> Review | None:
        """First row for ``(restaurant_id, user_id)``, tombstones included.

        ``deleted`` narrows the lookup to tombstones (True) or live rows (False).
        """
        stmt = select(LocalReviewRow).where(
            LocalReviewRow.restaurant_id == restaurant_id,
            LocalReviewRow.user_id == user_id,
        )
        if deleted is not None:
            stmt = stmt.where(LocalReviewRow.is_deleted.is_(deleted))
        stmt = stmt.order_by(LocalReviewRow.id.asc()).limit(1)
        with self._db.transaction() as session:
            row = session.scalars(stmt).first()
            return _to_review(row) if row else None

    def get_unsynced(self) -> list[Review]:
        stmt = select(LocalReviewRow).where(_unsynced_clause()).order_by(LocalReviewRow.id.asc())
        with self._db.transaction() as session:
            return [_to_review(r) for r in session.scalars(stmt)]

    def list_tombstones(self) -> list[Review]:
        stmt = select(LocalReviewRow).where(LocalReviewRow.is_deleted.is_(True))
        with self._db.transaction() as session:
            return [_to_review(r) for r in session.scalars(stmt)]

    def restaurant_stats(self, restaurant_id: int) -> tuple[float, int]:
        """``(average_rating, review_count)`` over live reviews of a restaurant."""
        stmt = select(func.avg(LocalReviewRow.rating), func.count(LocalReviewRow.id)).where(
            LocalReviewRow.restaurant_id == restaurant_id,
            LocalReviewRow.is_deleted.is_(False),
        )
        with self._db.transaction() as session:
            avg, count = session.execute(stmt).one()
        return (round(float(avg), 2) if avg is not None else 0.0, int(count))

    # ── Local mutations ──────────────────────────────────────────────────

    def insert(self, review: Review) -> Review:
        """Store a new review under a fresh negative placeholder id."""
        with self._db.transaction() as session:
            placeholder = self._next_placeholder_id(session)
            now = utcnow()
            stored = review.model_copy(
                update={
                    "id": placeholder,
                    "created_at": review.created_at or now,
                    "updated_at": review.updated_at or now,
                    "synced_at": None,
                    "is_deleted": False,
                }
            )
            row = LocalReviewRow(id=placeholder)
            _copy_into(row, stored)
            session.add(row)
        logger.debug("Inserted local review %s", placeholder)
        return stored

    def update(self, review: Review, revive: bool = False) -> Review:
        """Apply an edit: ``updated_at`` moves forward and ``synced_at`` clears.

        With ``revive`` a tombstone becomes a live row again under its old id.
        """
        with self._db.transaction() as session:
            row = session.get(LocalReviewRow, review.id)
            if row is None:
                raise LookupError(f"Review {review.id} not found")
            updated = review.model_copy(
                update={
                    "created_at": row.created_at,
                    "updated_at": max(utcnow(), row.updated_at),
                    "synced_at": None,
                    "is_deleted": False if revive else row.is_deleted,
                }
            )
            _copy_into(row, updated)
        return updated

    def mark_deleted(self, review_id: int) -> None:
        with self._db.transaction() as session:
            row = session.get(LocalReviewRow, review_id)
            if row is None:
                raise LookupError(f"Review {review_id} not found")
            row.is_deleted = True
            row.updated_at = max(utcnow(), row.updated_at)
            row.synced_at = None

    # ── Sync bookkeeping ─────────────────────────────────────────────────

    def mark_synced(self, review_id: int, synced_at: datetime | None = None) -> None:
        with self._db.transaction() as session:
            row = session.get(LocalReviewRow, review_id)
            if row is not None:
                row.synced_at = max(synced_at or utcnow(), row.updated_at)

    def purge_synced_tombstones(self) -> int:
        stmt = delete(LocalReviewRow).where(
            LocalReviewRow.is_deleted.is_(True),
            LocalReviewRow.synced_at.is_not(None),
        )
        with self._db.transaction() as session:
            purged = session.execute(stmt).rowcount
        if purged:
            logger.info("Purged %d confirmed tombstone(s)", purged)
        return purged

    def purge_non_tombstones(
        self,
        keep_edited_since: datetime | None = None,
        pushed: dict[int, datetime] | None = None,
    ) -> set[int]:
        """Delete every live row, returning the ids that were kept.

        Rows still dirty and edited at or after ``keep_edited_since`` survive,
        unless ``pushed`` (id to pushed ``updated_at``) shows the server already
        received this exact version.
        """
        pushed = pushed or {}
        with self._db.transaction() as session:
            kept: set[int] = set()
            if keep_edited_since is not None:
                candidates = session.scalars(
                    select(LocalReviewRow).where(
                        LocalReviewRow.is_deleted.is_(False),
                        LocalReviewRow.synced_at.is_(None),
                        LocalReviewRow.updated_at >= ensure_utc(keep_edited_since),
                    )
                )
                kept = {
                    row.id
                    for row in candidates
                    if row.id not in pushed
                    or ensure_utc(row.updated_at) > ensure_utc(pushed[row.id])
                }
            session.execute(
                delete(LocalReviewRow).where(
                    LocalReviewRow.is_deleted.is_(False),
                    LocalReviewRow.id.not_in(list(kept)),
                )
            )
        return kept

    def upsert(self, reviews: list[Review]) -> int:
        """Insert or replace rows by id."""
        with self._db.transaction() as session:
            for review in reviews:
                row = session.get(LocalReviewRow, review.id)
                if row is None:
                    row = LocalReviewRow(id=review.id)
                    session.add(row)
                _copy_into(row, review)
        return len(reviews)

    def replace(self, old_id: int, review: Review) -> None:
        """Swap the row ``old_id`` for ``review`` (which may carry a new id)."""
        with self._db.transaction() as session:
            old = session.get(LocalReviewRow, old_id)
            if old is not None and old_id != review.id:
                session.delete(old)
                session.flush()
            row = session.get(LocalReviewRow, review.id)
            if row is None:
                row = LocalReviewRow(id=review.id)
                session.add(row)
            _copy_into(row, review)

    @staticmethod
    def _next_placeholder_id(session: Session) -> int:
        lowest = session.scalar(select(func.min(LocalReviewRow.id)))
        return min(lowest or 0, 0) - 1
