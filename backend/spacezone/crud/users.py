# backend/spacezone/crud/users.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from spacezone.core.security import hash_password
from spacezone.db.session import unit_of_work
from spacezone.models.user import User


def get_by_id(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_by_email(db: Session, email: str) -> User | None:
    stmt = select(User).where(User.email == email.lower())
    return db.execute(stmt).scalar_one_or_none()


def get_by_username(db: Session, username: str) -> User | None:
    stmt = select(User).where(User.username == username)
    return db.execute(stmt).scalar_one_or_none()


def find_profile(db: Session, user_id: int) -> dict | None:
    """User directory lookup: id -> {id, name, username, avatar} or None."""
    user = get_by_id(db, user_id)
    return user.profile() if user else None


def create_user(db: Session, name: str, username: str, email: str, password: str) -> User:
    u = User(
        name=name,
        username=username,
        email=email.lower(),
        password_hash=hash_password(password),
    )

    with unit_of_work(db):
        db.add(u)
    db.refresh(u)
    return u
