# backend/spacezone/api/routes/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spacezone.core.errors import AuthError, Conflict
from spacezone.core.security import create_access_token, get_current_user, verify_password
from spacezone.crud.users import create_user, get_by_email as get_user_by_email, get_by_username as get_user_by_username
from spacezone.db.session import get_db
from spacezone.models.user import User
from spacezone.schemas.auth import LoginIn, RegisterIn
from spacezone.schemas.common import ok
from spacezone.schemas.user import MeOut, UserProfileOut
from spacezone.security.rate_limit import login_throttle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    if get_user_by_email(db, payload.email):
        raise Conflict("Email is already registered", code="EMAIL_TAKEN")
    if get_user_by_username(db, payload.username):
        raise Conflict("Username is already taken", code="USERNAME_TAKEN")

    try:
        u = create_user(db, payload.name, payload.username, payload.email, payload.password)
    except IntegrityError:
        raise Conflict("Email or username is already registered", code="DUPLICATE_USER")

    logger.info("User %s registered", u.id)
    return ok(user=MeOut.model_validate(u).dump())


@router.post("/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    key = payload.email.lower()
    login_throttle.check(key)

    u = get_user_by_email(db, payload.email)
    if not u or not verify_password(payload.password, u.password_hash):
        login_throttle.record(key, success=False)
        raise AuthError("Invalid email or password", code="INVALID_CREDENTIALS")

    login_throttle.record(key, success=True)
    logger.info("User %s logged in", u.id)
    return ok(token=create_access_token(subject=str(u.id)), user=UserProfileOut.model_validate(u).dump())


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return ok(user=MeOut.model_validate(current_user).dump())
