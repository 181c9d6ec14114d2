# backend/spacezone/crud/friendships.py
"""Friendship oracle and friendship row access. Workflow rules live in services.friendships."""
from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from spacezone.db.base import pair_key
from spacezone.models.friendship import Friendship


def check_friendship(db: Session, user_a: int, user_b: int) -> Friendship | None:
    """Return the single relationship row between two users regardless of direction."""
    stmt = select(Friendship).where(Friendship.pair_key == pair_key(user_a, user_b))
    return db.execute(stmt).scalar_one_or_none()


def friendship_status(db: Session, user_a: int, user_b: int) -> str:
    friendship = check_friendship(db, user_a, user_b)
    return friendship.status if friendship else "none"


def are_friends(db: Session, user_a: int, user_b: int) -> bool:
    return friendship_status(db, user_a, user_b) == "accepted"


def get_by_id(db: Session, friendship_id: int) -> Friendship | None:
    return db.get(Friendship, friendship_id)


def _accepted_for(user_id: int):
    return (
        Friendship.status == "accepted",
        or_(Friendship.sender_id == user_id, Friendship.receiver_id == user_id),
    )


def list_accepted(db: Session, user_id: int, offset: int = 0, limit: int | None = None) -> list[Friendship]:
    stmt = (
        select(Friendship)
        .where(*_accepted_for(user_id))
        .order_by(Friendship.responded_at.desc(), Friendship.id.desc())
        .offset(offset)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars())


def count_accepted(db: Session, user_id: int) -> int:
    stmt = select(func.count(Friendship.id)).where(*_accepted_for(user_id))
    return db.execute(stmt).scalar_one()


def friend_ids(db: Session, user_id: int) -> set[int]:
    return {f.other_user_id(user_id) for f in list_accepted(db, user_id)}


def related_ids(db: Session, user_id: int) -> set[int]:
    """Every user with any relationship row (any status) to ``user_id``."""
    stmt = select(Friendship).where(or_(Friendship.sender_id == user_id, Friendship.receiver_id == user_id))
    return {f.other_user_id(user_id) for f in db.execute(stmt).scalars()}


def pending_received(db: Session, user_id: int, limit: int = 20) -> list[Friendship]:
    stmt = (
        select(Friendship)
        .where(Friendship.receiver_id == user_id, Friendship.status == "pending")
        .order_by(Friendship.requested_at.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())


def pending_sent(db: Session, user_id: int, limit: int = 20) -> list[Friendship]:
    stmt = (
        select(Friendship)
        .where(Friendship.sender_id == user_id, Friendship.status == "pending")
        .order_by(Friendship.requested_at.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())
