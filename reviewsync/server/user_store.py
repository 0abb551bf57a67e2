from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..timestamps import utcnow
from .errors import UserNotFound
from .tables import ReviewRow, UserRow

logger = logging.getLogger(__name__)


def get_user(session: Session, user_id: str) -> UserRow:
    row = session.get(UserRow, user_id)
    if row is None:
        raise UserNotFound(user_id)
    return row


def list_users(session: Session) -> list[UserRow]:
    stmt = select(UserRow).order_by(UserRow.created_at.desc())
    return list(session.scalars(stmt))


def ensure_user(session: Session, user_id: str, user_name: str) -> UserRow:
    """Insert the user if unknown; an existing row is left as is."""
    row = session.get(UserRow, user_id)
    if row is None:
        row = UserRow(user_id=user_id, user_name=user_name)
        session.add(row)
        session.flush()
    return row


def upsert_user(session: Session, user_id: str, user_name: str) -> UserRow:
    """Create or rename a user and copy the name onto every review they wrote.

    Review ``updated_at`` is left alone: the name is a denormalized display
    field, and bumping the timestamp would make a pending client edit look
    stale to the bulk sync.
    """
    row = session.get(UserRow, user_id)
    if row is None:
        row = UserRow(user_id=user_id, user_name=user_name)
        session.add(row)
    elif row.user_name != user_name:
        row.user_name = user_name
        row.updated_at = utcnow()

    result = session.execute(
        update(ReviewRow)
        .where(ReviewRow.user_id == user_id, ReviewRow.user_name != user_name)
        .values(user_name=user_name)
    )
    if result.rowcount:
        logger.info("Renamed %d review(s) of user %s", result.rowcount, user_id)
    session.flush()
    return row
