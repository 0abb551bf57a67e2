from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RATING_MIN = 1.0
RATING_MAX = 5.0


class _CamelModel(BaseModel):
    """Request bodies arrive with camelCase keys from the mobile client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ─────────────────────────────────────────────────────────────


class ReviewCreate(_CamelModel):
    restaurant_id: int
    restaurant_name: str = Field(..., min_length=1)
    restaurant_lat: float
    restaurant_lon: float
    restaurant_address: str = ""
    rating: float = Field(..., ge=RATING_MIN, le=RATING_MAX)
    comment: str = ""
    visit_date: date
    user_id: str = Field(..., min_length=1)
    user_name: str = Field(..., min_length=1)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ReviewUpdate(_CamelModel):
    rating: float = Field(..., ge=RATING_MIN, le=RATING_MAX)
    comment: str = ""
    visit_date: date
    user_id: str = Field(..., min_length=1)
    updated_at: datetime | None = None


class SyncReview(_CamelModel):
    id: int | None = None
    restaurant_id: int
    restaurant_name: str
    restaurant_lat: float
    restaurant_lon: float
    restaurant_address: str = ""
    rating: float = Field(..., ge=RATING_MIN, le=RATING_MAX)
    comment: str = ""
    visit_date: date
    user_id: str | None = None
    user_name: str = "Anonym"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_deleted: bool = False


class SyncRequest(_CamelModel):
    user_id: str = Field(..., min_length=1)
    reviews: list[SyncReview]


class LocalVersion(_CamelModel):
    restaurant_id: int
    user_id: str
    updated_at: datetime


class PullRequest(_CamelModel):
    local_reviews: list[LocalVersion] = Field(default_factory=list)


class UserUpsert(_CamelModel):
    user_name: str = Field(..., min_length=1, max_length=255)


class ReactionCreate(_CamelModel):
    user_id: str = Field(..., min_length=1)
    emoji: str


# ── Responses ────────────────────────────────────────────────────────────


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    restaurant_id: int
    restaurant_name: str
    restaurant_lat: float
    restaurant_lon: float
    restaurant_address: str
    rating: float
    comment: str
    visit_date: date
    user_id: str
    user_name: str
    created_at: datetime
    updated_at: datetime
    reaction_counts: dict[str, int] = Field(default_factory=dict)


class SyncResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    processed: int
    all_reviews: list[ReviewOut] = Field(alias="allReviews")


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    user_name: str
    avatar_url: str | None = None
    created_at: datetime
    updated_at: datetime


class ReactionOut(BaseModel):
    id: int
    review_id: int
    user_id: str
    user_name: str
    emoji: str
    created_at: datetime


class UserReactionOut(BaseModel):
    id: int
    review_id: int
    user_id: str
    emoji: str
    created_at: datetime
    restaurant_name: str


class ReactionsOut(BaseModel):
    reactions: list[ReactionOut]
    counts: dict[str, int]


class AvatarOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    avatar_url: str = Field(alias="avatarUrl")
    message: str


class HealthOut(BaseModel):
    status: str
    timestamp: datetime
    database: str
