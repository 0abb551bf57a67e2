from __future__ import annotations

import logging
import uuid

from sqlalchemy import select, update

from .database import LocalDatabase, LocalReviewRow, LocalUserRow
from .models import DEFAULT_USER_NAME, User

logger = logging.getLogger(__name__)

# Fixed namespace so the same device id always maps to the same user id
_DEVICE_NAMESPACE = uuid.UUID("6f1c2a52-8a3e-4f4e-9d0c-3b7f1e2d9a10")


def device_user_id(device_id: str) -> str:
    return str(uuid.uuid5(_DEVICE_NAMESPACE, device_id))


def _to_user(row: LocalUserRow) -> User:
    return User(
        user_id=row.user_id,
        user_name=row.user_name,
        created_at=row.created_at,
        is_current_user=row.is_current_user,
    )


class LocalUserStore:
    def __init__(self, db: LocalDatabase) -> None:
        self._db = db

    def get_current_user(self) -> User | None:
        stmt = select(LocalUserRow).where(LocalUserRow.is_current_user.is_(True)).limit(1)
        with self._db.transaction() as session:
            row = session.scalars(stmt).first()
            return _to_user(row) if row else None

    def get_user(self, user_id: str) -> User | None:
        with self._db.transaction() as session:
            row = session.get(LocalUserRow, user_id)
            return _to_user(row) if row else None

    def list_users(self) -> list[User]:
        with self._db.transaction() as session:
            return [_to_user(r) for r in session.scalars(select(LocalUserRow))]

    def create_user(self, device_id: str, user_name: str = DEFAULT_USER_NAME) -> User:
        """Return the user for this device, creating it if needed."""
        user_id = device_user_id(device_id)
        with self._db.transaction() as session:
            row = session.get(LocalUserRow, user_id)
            if row is None:
                row = LocalUserRow(user_id=user_id, user_name=user_name, is_current_user=False)
                session.add(row)
                session.flush()
            return _to_user(row)

    def set_current_user(self, user_id: str) -> None:
        """Move the current-user flag to ``user_id``; exactly one row keeps it."""
        with self._db.transaction() as session:
            if session.get(LocalUserRow, user_id) is None:
                raise LookupError(f"User {user_id} not found")
            session.execute(update(LocalUserRow).values(is_current_user=False))
            session.execute(
                update(LocalUserRow)
                .where(LocalUserRow.user_id == user_id)
                .values(is_current_user=True)
            )

    def ensure_default_user(self, device_id: str) -> User:
        current = self.get_current_user()
        if current is not None:
            return current
        user = self.create_user(device_id)
        self.set_current_user(user.user_id)
        logger.info("Initialized device user %s", user.user_id)
        return user.model_copy(update={"is_current_user": True})

    def update_user_name(self, user_id: str, user_name: str) -> None:
        """Rename the user and correct the name copied onto their reviews."""
        with self._db.transaction() as session:
            session.execute(
                update(LocalUserRow)
                .where(LocalUserRow.user_id == user_id)
                .values(user_name=user_name)
            )
            session.execute(
                update(LocalReviewRow)
                .where(LocalReviewRow.user_id == user_id)
                .values(user_name=user_name)
            )
