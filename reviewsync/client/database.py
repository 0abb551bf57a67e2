"""
Device-local SQLite tables.

Mirrors the server review shape plus the client-only ``synced_at`` column,
and a users table where exactly one row carries ``is_current_user``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from sqlalchemy import JSON, Boolean, Date, Float, Integer, String, Text, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..timestamps import UTCDateTime, utcnow

logger = logging.getLogger(__name__)


class LocalBase(DeclarativeBase):
    pass


class LocalReviewRow(LocalBase):
    __tablename__ = "reviews"

    # Not autoincrement: placeholders are negative, server ids positive
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    restaurant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    restaurant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    restaurant_lat: Mapped[float] = mapped_column(Float, nullable=False)
    restaurant_lon: Mapped[float] = mapped_column(Float, nullable=False)
    restaurant_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rating: Mapped[float] = mapped_column(Float, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    visit_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    synced_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reaction_counts: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class LocalUserRow(LocalBase):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    is_current_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class LocalDatabase:
    """Engine and session factory for one device database file."""

    def __init__(self, url: str = "sqlite:///./reviews.db") -> None:
        if url.startswith("sqlite:///") and url not in ("sqlite:///:memory:",):
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **kwargs)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        # One writer at a time; the sync worker and the UI thread share this
        self._lock = threading.RLock()
        LocalBase.metadata.create_all(bind=self.engine)
        logger.info("Local review database ready: %s", url)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Every write commits before the block returns."""
        with self._lock:
            session = self._sessions()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def close(self) -> None:
        self.engine.dispose()
