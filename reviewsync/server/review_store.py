from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..timestamps import ensure_utc, utcnow
from .errors import NotReviewOwner, ReviewNotFound, StaleUpdate
from .models import LocalVersion, ReviewCreate, ReviewOut, ReviewUpdate
from .tables import ReviewRow
from .user_store import ensure_user

logger = logging.getLogger(__name__)


def list_reviews(
    session: Session,
    since: datetime | None = None,
    user_id: str | None = None,
) -> list[ReviewRow]:
    """Every live review, newest visit first, optionally updated after ``since``."""
    stmt = select(ReviewRow).where(ReviewRow.is_deleted.is_(False))
    if user_id is not None:
        stmt = stmt.where(ReviewRow.user_id == user_id)
    if since is not None:
        stmt = stmt.where(ReviewRow.updated_at > ensure_utc(since))
    stmt = stmt.order_by(ReviewRow.visit_date.desc(), ReviewRow.id.asc())
    return list(session.scalars(stmt))


def list_for_restaurant(session: Session, restaurant_id: int) -> list[ReviewRow]:
    stmt = (
        select(ReviewRow)
        .where(ReviewRow.restaurant_id == restaurant_id, ReviewRow.is_deleted.is_(False))
        .order_by(ReviewRow.visit_date.desc(), ReviewRow.id.asc())
    )
    return list(session.scalars(stmt))


def newer_than_local(session: Session, local_versions: list[LocalVersion]) -> list[ReviewRow]:
    """Live rows the device lacks or holds an older copy of.

    A row is matched to the device's copy by ``(restaurant_id, user_id)`` and
    sent only when its ``updated_at`` is strictly newer.
    """
    known: dict[tuple[int, str], datetime] = {}
    for local in local_versions:
        known.setdefault((local.restaurant_id, local.user_id), ensure_utc(local.updated_at))

    fresh = []
    for row in list_reviews(session):
        local_time = known.get((row.restaurant_id, row.user_id))
        if local_time is None or row.updated_at > local_time:
            fresh.append(row)
    logger.info("Pull: %d of %d review(s) newer than the device copy", len(fresh), len(known))
    return fresh


def get_review(session: Session, review_id: int) -> ReviewRow:
    row = session.get(ReviewRow, review_id)
    if row is None:
        raise ReviewNotFound(review_id)
    return row


def find_by_identity(session: Session, restaurant_id: int, user_id: str) -> ReviewRow | None:
    """First row for ``(restaurant_id, user_id)``; a live row beats a deleted one."""
    stmt = (
        select(ReviewRow)
        .where(ReviewRow.restaurant_id == restaurant_id, ReviewRow.user_id == user_id)
        .order_by(ReviewRow.is_deleted.asc(), ReviewRow.id.asc())
        .limit(1)
    )
    return session.scalars(stmt).first()


def create_review(session: Session, body: ReviewCreate) -> ReviewRow:
    ensure_user(session, body.user_id, body.user_name)
    now = utcnow()
    row = ReviewRow(
        restaurant_id=body.restaurant_id,
        restaurant_name=body.restaurant_name,
        restaurant_lat=body.restaurant_lat,
        restaurant_lon=body.restaurant_lon,
        restaurant_address=body.restaurant_address,
        rating=body.rating,
        comment=body.comment,
        visit_date=body.visit_date,
        user_id=body.user_id,
        user_name=body.user_name,
        created_at=body.created_at or now,
        updated_at=body.updated_at or now,
        is_deleted=False,
        reaction_counts={},
    )
    session.add(row)
    session.flush()
    logger.info("Created review %s for restaurant %s by %s", row.id, row.restaurant_id, row.user_id)
    return row


def update_review(session: Session, review_id: int, body: ReviewUpdate) -> ReviewRow:
    """Single-row update: owner only, and never with an older ``updatedAt``."""
    row = get_review(session, review_id)
    if row.user_id != body.user_id:
        raise NotReviewOwner(review_id)

    if body.updated_at is not None and ensure_utc(body.updated_at) < row.updated_at:
        raise StaleUpdate(ReviewOut.model_validate(row))

    row.rating = body.rating
    row.comment = body.comment
    row.visit_date = body.visit_date
    row.updated_at = max(utcnow(), row.updated_at)
    session.flush()
    return row


def delete_review(session: Session, review_id: int, user_id: str) -> None:
    row = get_review(session, review_id)
    if row.user_id != user_id:
        raise NotReviewOwner(review_id)
    mark_deleted(row)
    session.flush()


def mark_deleted(row: ReviewRow) -> None:
    row.is_deleted = True
    row.updated_at = max(utcnow(), row.updated_at)
