from __future__ import annotations

import logging
from datetime import datetime

from fastapi import FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from .server import avatars, reactions, review_store, user_store
from .server.bulk_sync import apply_bulk_sync
from .server.config import DEFAULT_SERVER_CONFIG
from .server.database import init_db, ping, session_scope
from .server.errors import NotReviewOwner, ReviewNotFound, StaleUpdate, UserNotFound
from .server.models import (
    AvatarOut,
    HealthOut,
    PullRequest,
    ReactionCreate,
    ReactionsOut,
    ReviewCreate,
    ReviewOut,
    ReviewUpdate,
    SyncRequest,
    SyncResponse,
    UserOut,
    UserReactionOut,
    UserUpsert,
)
from .timestamps import utcnow

logger = logging.getLogger(__name__)

app = FastAPI(title="Review Sync API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[DEFAULT_SERVER_CONFIG.cors_origin],
    allow_methods=["*"],
    allow_headers=["*"],
)

init_db()
DEFAULT_SERVER_CONFIG.avatars_dir.mkdir(parents=True, exist_ok=True)


# ── Error handling ───────────────────────────────────────────────────────


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Missing fields and out-of-range ratings are plain 400s for the clients
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(SQLAlchemyError)
async def database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    # session_scope has already rolled back by the time this runs
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ── Health ───────────────────────────────────────────────────────────────


@app.get("/api/health", response_model=HealthOut)
def health(response: Response) -> HealthOut:
    if ping():
        return HealthOut(status="healthy", timestamp=utcnow(), database="connected")
    response.status_code = 503
    return HealthOut(status="unhealthy", timestamp=utcnow(), database="disconnected")


# ── Users ────────────────────────────────────────────────────────────────


@app.get("/api/users", response_model=list[UserOut])
def users() -> list[UserOut]:
    with session_scope() as session:
        return [UserOut.model_validate(u) for u in user_store.list_users(session)]


@app.get("/api/users/{user_id}", response_model=UserOut)
def user(user_id: str) -> UserOut:
    with session_scope() as session:
        try:
            return UserOut.model_validate(user_store.get_user(session, user_id))
        except UserNotFound:
            raise HTTPException(status_code=404, detail="User not found")


@app.put("/api/users/{user_id}", response_model=UserOut)
def upsert_user(user_id: str, body: UserUpsert) -> UserOut:
    with session_scope() as session:
        row = user_store.upsert_user(session, user_id, body.user_name)
        return UserOut.model_validate(row)


# ── Reviews ──────────────────────────────────────────────────────────────


@app.get("/api/reviews", response_model=list[ReviewOut])
def all_reviews(since: datetime | None = None) -> list[ReviewOut]:
    with session_scope() as session:
        rows = review_store.list_reviews(session, since=since)
        return [ReviewOut.model_validate(r) for r in rows]


@app.get("/api/reviews/user/{user_id}", response_model=list[ReviewOut])
def user_reviews(user_id: str, since: datetime | None = None) -> list[ReviewOut]:
    with session_scope() as session:
        rows = review_store.list_reviews(session, since=since, user_id=user_id)
        return [ReviewOut.model_validate(r) for r in rows]


@app.get("/api/reviews/restaurant/{restaurant_id}", response_model=list[ReviewOut])
def restaurant_reviews(restaurant_id: int) -> list[ReviewOut]:
    with session_scope() as session:
        rows = review_store.list_for_restaurant(session, restaurant_id)
        return [ReviewOut.model_validate(r) for r in rows]


@app.post("/api/reviews/sync", response_model=SyncResponse)
def sync_reviews(body: SyncRequest) -> SyncResponse:
    with session_scope() as session:
        result = apply_bulk_sync(
            session,
            body.user_id,
            body.reviews,
            policy=DEFAULT_SERVER_CONFIG.conflict_policy,
        )
        return SyncResponse(
            processed=result.processed,
            all_reviews=[ReviewOut.model_validate(r) for r in result.all_reviews],
        )


@app.post("/api/reviews/sync/pull", response_model=list[ReviewOut])
def pull_reviews(body: PullRequest) -> list[ReviewOut]:
    with session_scope() as session:
        rows = review_store.newer_than_local(session, body.local_reviews)
        return [ReviewOut.model_validate(r) for r in rows]


@app.post("/api/reviews", response_model=ReviewOut, status_code=201)
def create_review(body: ReviewCreate) -> ReviewOut:
    with session_scope() as session:
        return ReviewOut.model_validate(review_store.create_review(session, body))


@app.put("/api/reviews/{review_id}", response_model=ReviewOut)
def update_review(review_id: int, body: ReviewUpdate):
    with session_scope() as session:
        try:
            row = review_store.update_review(session, review_id, body)
        except ReviewNotFound:
            raise HTTPException(status_code=404, detail="Review not found")
        except NotReviewOwner:
            raise HTTPException(status_code=403, detail="Not authorized to update this review")
        except StaleUpdate as exc:
            return JSONResponse(
                status_code=409,
                content={
                    "detail": "Conflict: Server version is newer",
                    "serverVersion": jsonable_encoder(exc.server_version),
                },
            )
        return ReviewOut.model_validate(row)


@app.delete("/api/reviews/{review_id}", status_code=204)
def delete_review(
    review_id: int,
    user_id: str | None = Query(default=None, alias="userId"),
) -> Response:
    if not user_id:
        raise HTTPException(status_code=400, detail="userId is required")
    with session_scope() as session:
        try:
            review_store.delete_review(session, review_id, user_id)
        except ReviewNotFound:
            raise HTTPException(status_code=404, detail="Review not found")
        except NotReviewOwner:
            raise HTTPException(status_code=403, detail="Not authorized to delete this review")
    return Response(status_code=204)


# ── Reactions ────────────────────────────────────────────────────────────


@app.get("/api/reactions/review/{review_id}", response_model=ReactionsOut)
def review_reactions(review_id: int) -> ReactionsOut:
    with session_scope() as session:
        return reactions.get_reactions(session, review_id)


@app.post("/api/reactions/review/{review_id}")
def add_reaction(review_id: int, body: ReactionCreate) -> dict:
    with session_scope() as session:
        try:
            row = reactions.add_reaction(session, review_id, body.user_id, body.emoji)
        except reactions.InvalidEmoji:
            raise HTTPException(status_code=400, detail="Invalid emoji")
        except ReviewNotFound:
            raise HTTPException(status_code=404, detail="Review not found")
        return {
            "id": row.id,
            "review_id": row.review_id,
            "user_id": row.user_id,
            "emoji": row.emoji,
            "created_at": row.created_at,
        }


@app.delete("/api/reactions/review/{review_id}/user/{user_id}")
def remove_reaction(review_id: int, user_id: str) -> dict:
    with session_scope() as session:
        try:
            reactions.remove_reaction(session, review_id, user_id)
        except LookupError:
            raise HTTPException(status_code=404, detail="Reaction not found")
    return {"message": "Reaction removed"}


@app.get("/api/reactions/user/{user_id}", response_model=list[UserReactionOut])
def reactions_of_user(user_id: str) -> list[UserReactionOut]:
    with session_scope() as session:
        return reactions.user_reactions(session, user_id)


# ── Avatars ──────────────────────────────────────────────────────────────


@app.post("/api/avatars/{user_id}", response_model=AvatarOut)
async def upload_avatar(user_id: str, avatar: UploadFile = File(...)) -> AvatarOut:
    data = await avatar.read()
    with session_scope() as session:
        try:
            url = avatars.save_avatar(
                session, user_id, avatar.filename or "", avatar.content_type, data
            )
        except avatars.InvalidAvatar as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except UserNotFound:
            raise HTTPException(status_code=404, detail="User not found")
    return AvatarOut(avatar_url=url, message="Avatar uploaded successfully")


@app.delete("/api/avatars/{user_id}")
def remove_avatar(user_id: str) -> dict:
    with session_scope() as session:
        try:
            avatars.delete_avatar(session, user_id)
        except UserNotFound:
            raise HTTPException(status_code=404, detail="User not found")
    return {"message": "Avatar deleted successfully"}


app.mount(
    "/uploads",
    StaticFiles(directory=str(DEFAULT_SERVER_CONFIG.uploads_dir)),
    name="uploads",
)
