# backend/spacezone/api/routes/users.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacezone.core.errors import NotFound
from spacezone.core.security import get_current_user
from spacezone.crud.users import get_by_username
from spacezone.db.session import get_db
from spacezone.models.user import User
from spacezone.schemas.common import ok
from spacezone.schemas.user import UserProfileOut

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/{username}")
def get_profile(
    username: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    u = get_by_username(db, username)
    if u is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    return ok(user=UserProfileOut.model_validate(u).dump())
