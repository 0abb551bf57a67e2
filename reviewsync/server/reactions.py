from __future__ import annotations

import logging
from collections import Counter

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..timestamps import utcnow
from .errors import ReviewNotFound
from .models import ReactionOut, ReactionsOut, UserReactionOut
from .tables import ReactionRow, ReviewRow, UserRow
from .user_store import ensure_user

logger = logging.getLogger(__name__)

ALLOWED_EMOJIS = ["❤️", "👍", "😂", "🤔", "😮"]


class InvalidEmoji(ValueError):
    pass


def _refresh_counts(session: Session, review: ReviewRow) -> dict[str, int]:
    """Recompute the emoji -> count map cached on the review row."""
    session.flush()
    emojis = session.scalars(select(ReactionRow.emoji).where(ReactionRow.review_id == review.id))
    counts = dict(Counter(emojis))
    review.reaction_counts = counts
    return counts


def get_reactions(session: Session, review_id: int) -> ReactionsOut:
    stmt = (
        select(ReactionRow, UserRow.user_name)
        .join(UserRow, ReactionRow.user_id == UserRow.user_id)
        .where(ReactionRow.review_id == review_id)
        .order_by(ReactionRow.created_at.desc(), ReactionRow.id.desc())
    )
    reactions: list[ReactionOut] = []
    counts: Counter[str] = Counter()
    for reaction, user_name in session.execute(stmt):
        reactions.append(
            ReactionOut(
                id=reaction.id,
                review_id=reaction.review_id,
                user_id=reaction.user_id,
                user_name=user_name,
                emoji=reaction.emoji,
                created_at=reaction.created_at,
            )
        )
        counts[reaction.emoji] += 1
    return ReactionsOut(reactions=reactions, counts=dict(counts))


def add_reaction(session: Session, review_id: int, user_id: str, emoji: str) -> ReactionRow:
    """One reaction per user per review; a second call swaps the emoji."""
    if emoji not in ALLOWED_EMOJIS:
        raise InvalidEmoji(emoji)

    review = session.get(ReviewRow, review_id)
    if review is None:
        raise ReviewNotFound(review_id)

    ensure_user(session, user_id, "Anonym")
    stmt = select(ReactionRow).where(
        ReactionRow.review_id == review_id, ReactionRow.user_id == user_id
    )
    reaction = session.scalars(stmt).first()
    if reaction is None:
        reaction = ReactionRow(review_id=review_id, user_id=user_id, emoji=emoji)
        session.add(reaction)
    else:
        reaction.emoji = emoji
        reaction.created_at = utcnow()

    _refresh_counts(session, review)
    return reaction


def remove_reaction(session: Session, review_id: int, user_id: str) -> None:
    stmt = select(ReactionRow).where(
        ReactionRow.review_id == review_id, ReactionRow.user_id == user_id
    )
    reaction = session.scalars(stmt).first()
    if reaction is None:
        raise LookupError(f"No reaction by {user_id} on review {review_id}")
    session.delete(reaction)

    review = session.get(ReviewRow, review_id)
    if review is not None:
        _refresh_counts(session, review)


def user_reactions(session: Session, user_id: str) -> list[UserReactionOut]:
    stmt = (
        select(ReactionRow, ReviewRow.restaurant_name)
        .join(ReviewRow, ReactionRow.review_id == ReviewRow.id)
        .where(ReactionRow.user_id == user_id)
        .order_by(ReactionRow.created_at.desc(), ReactionRow.id.desc())
    )
    return [
        UserReactionOut(
            id=reaction.id,
            review_id=reaction.review_id,
            user_id=reaction.user_id,
            emoji=reaction.emoji,
            created_at=reaction.created_at,
            restaurant_name=restaurant_name,
        )
        for reaction, restaurant_name in session.execute(stmt)
    ]
