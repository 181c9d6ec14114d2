from __future__ import annotations

from datetime import datetime, timedelta, timezone

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from jose import ExpiredSignatureError, JWTError, jwt

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from spacezone.core.config import settings
from spacezone.core.errors import AuthError
from spacezone.db.session import get_db


_ph = PasswordHasher()


def hash_password(password: str) -> str:
    return _ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _ph.verify(password_hash, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    exp_min = settings.JWT_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_min)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and verify a bearer token. Raises AuthError when invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise AuthError("Token expired", code="TOKEN_EXPIRED")
    except JWTError:
        raise AuthError("Invalid token", code="INVALID_TOKEN")


def strip_bearer(raw: str | None) -> str | None:
    """Accept either "Bearer <token>" or a bare token."""
    if not raw:
        return None
    value = raw.strip()
    if value.lower().startswith("bearer "):
        value = value[7:].strip()
    return value or None


def user_from_token(db: Session, token: str | None):
    """
    Resolve the User a bearer token refers to.
    Raises AuthError if the token is absent, malformed, expired or the user no longer exists.
    """
    from spacezone.models.user import User  # avoid circular imports

    if not token:
        raise AuthError("No token provided", code="NO_TOKEN")

    payload = decode_access_token(token)
    sub = payload.get("sub")
    if not sub or not str(sub).isdigit():
        raise AuthError("Invalid token", code="INVALID_TOKEN")

    user = db.get(User, int(sub))
    if not user:
        raise AuthError("User not found", code="USER_NOT_FOUND")
    return user


_security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
    db: Session = Depends(get_db),
):
    """
    Dependency: Extract JWT token, verify it, and fetch User object from DB.
    Expects: Authorization: Bearer <token>
    """
    token = credentials.credentials if credentials else None
    return user_from_token(db, token)
