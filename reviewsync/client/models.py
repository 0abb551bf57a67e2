from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..timestamps import utcnow

RATING_MIN = 1.0
RATING_MAX = 5.0

DEFAULT_USER_NAME = "Anonym"

_SYNC_FIELDS = {
    "id",
    "restaurant_id",
    "restaurant_name",
    "restaurant_lat",
    "restaurant_lon",
    "restaurant_address",
    "rating",
    "comment",
    "visit_date",
    "user_id",
    "user_name",
    "created_at",
    "updated_at",
    "is_deleted",
}


def is_valid_rating(rating: float) -> bool:
    return RATING_MIN <= rating <= RATING_MAX


class Review(BaseModel):
    """A review as the device stores it.

    ``id`` is the server id once synced and a negative placeholder before.
    ``synced_at`` is ``None`` until the server has confirmed this exact row.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int = 0
    restaurant_id: int
    restaurant_name: str
    restaurant_lat: float
    restaurant_lon: float
    restaurant_address: str = ""
    rating: float
    comment: str = ""
    visit_date: date
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    user_id: str = ""
    user_name: str = DEFAULT_USER_NAME
    synced_at: datetime | None = None
    is_deleted: bool = False
    reaction_counts: dict[str, int] = Field(default_factory=dict)

    @property
    def is_placeholder(self) -> bool:
        return self.id <= 0

    def to_sync_payload(self) -> dict[str, Any]:
        """camelCase JSON body entry for ``POST /api/reviews/sync``."""
        return self.model_dump(mode="json", by_alias=True, include=_SYNC_FIELDS)


class RemoteReview(BaseModel):
    """A review row as the server returns it (snake_case keys)."""

    id: int
    restaurant_id: int
    restaurant_name: str
    restaurant_lat: float
    restaurant_lon: float
    restaurant_address: str = ""
    rating: float
    comment: str = ""
    visit_date: date
    user_id: str
    user_name: str = DEFAULT_USER_NAME
    created_at: datetime
    updated_at: datetime
    reaction_counts: dict[str, int] | None = None

    def to_review(self, synced_at: datetime | None = None) -> Review:
        return Review(
            id=self.id,
            restaurant_id=self.restaurant_id,
            restaurant_name=self.restaurant_name,
            restaurant_lat=self.restaurant_lat,
            restaurant_lon=self.restaurant_lon,
            restaurant_address=self.restaurant_address,
            rating=self.rating,
            comment=self.comment,
            visit_date=self.visit_date,
            created_at=self.created_at,
            updated_at=self.updated_at,
            user_id=self.user_id,
            user_name=self.user_name,
            synced_at=synced_at,
            is_deleted=False,
            reaction_counts=self.reaction_counts or {},
        )


class BulkSyncResponse(BaseModel):
    processed: int
    all_reviews: list[RemoteReview] = Field(alias="allReviews")


class User(BaseModel):
    user_id: str
    user_name: str = DEFAULT_USER_NAME
    created_at: datetime = Field(default_factory=utcnow)
    is_current_user: bool = False
