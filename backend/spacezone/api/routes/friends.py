# backend/spacezone/api/routes/friends.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from spacezone.core.security import get_current_user
from spacezone.db.session import get_db
from spacezone.models.user import User
from spacezone.schemas.common import iso, ok
from spacezone.schemas.friendship import FriendRequestIn, serialize_friendship
from spacezone.services import friendships

router = APIRouter(prefix="/api/friends", tags=["friends"])


@router.post("/requests", status_code=status.HTTP_201_CREATED)
def send_friend_request(
    payload: FriendRequestIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    friendship = friendships.send_request(db, current_user.id, payload.receiver_id, payload.message)
    return ok(friendship=serialize_friendship(friendship))


@router.post("/requests/{request_id}/accept")
def accept_friend_request(
    request_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    friendship = friendships.accept_request(db, request_id, current_user.id)
    return ok(friendship=serialize_friendship(friendship))


@router.post("/requests/{request_id}/reject")
def reject_friend_request(
    request_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    friendship = friendships.reject_request(db, request_id, current_user.id)
    return ok(friendship=serialize_friendship(friendship))


@router.post("/block/{user_id}")
def block_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    friendship = friendships.block_user(db, current_user.id, user_id)
    return ok(friendship=serialize_friendship(friendship))


@router.get("/requests")
def list_friend_requests(
    type: str = Query(default="received"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    requests = friendships.list_requests(db, current_user.id, type)
    return ok(**{kind: [serialize_friendship(f) for f in rows] for kind, rows in requests.items()})


@router.get("/suggestions")
def friend_suggestions(
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(suggestions=friendships.suggestions(db, current_user.id, limit))


@router.get("/status/{user_id}")
def friendship_status(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(**friendships.status_between(db, current_user.id, user_id))


@router.get("/")
def list_friends(
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    friends, total = friendships.list_friends(db, current_user.id, page, limit, search)
    for entry in friends:
        entry["friendsSince"] = iso(entry["friendsSince"])
    return ok(
        friends=friends,
        pagination={"page": page, "limit": limit, "total": total, "hasMore": page * limit < total},
    )


@router.delete("/{friend_id}")
def remove_friend(
    friend_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    friendships.remove_friend(db, current_user.id, friend_id)
    return ok(friendId=int(friend_id))
