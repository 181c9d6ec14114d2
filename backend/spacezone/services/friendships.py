# backend/spacezone/services/friendships.py
"""
Friend request workflow: request, accept, reject, block, remove.

Every mutation runs in one unit of work. Conversations are never touched
here; the messaging gate re-checks the relationship on every send.
"""
from __future__ import annotations

import logging
from collections import Counter

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spacezone.core.errors import Conflict, Forbidden, NotFound, ValidationError, parse_id
from spacezone.crud import friendships as friendships_crud
from spacezone.crud import users as users_crud
from spacezone.db.base import pair_key, utcnow
from spacezone.db.session import unit_of_work
from spacezone.models.friendship import Friendship
from spacezone.models.user import User
from spacezone.security.sanitizer import InputSanitizer

logger = logging.getLogger(__name__)

REQUEST_LIST_TYPES = ("received", "sent", "both")


def _other_user(db: Session, user_id: int, other_id, field_name: str) -> User:
    other_id = parse_id(other_id, field_name)
    if other_id == user_id:
        raise ValidationError("You cannot do this with yourself", code="SELF_TARGET")
    other = users_crud.get_by_id(db, other_id)
    if other is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    return other


def _clean_note(message: str | None) -> str | None:
    if message is None:
        return None
    try:
        cleaned = InputSanitizer.sanitize_string(message.strip(), max_length=200, allow_newlines=True)
    except ValueError as exc:
        raise ValidationError(str(exc))
    return cleaned or None


def send_request(db: Session, sender_id: int, receiver_id, message: str | None = None) -> Friendship:
    receiver = _other_user(db, sender_id, receiver_id, "receiverId")
    note = _clean_note(message)

    existing = friendships_crud.check_friendship(db, sender_id, receiver.id)
    if existing is not None:
        if existing.status == "accepted":
            raise Conflict("You are already friends", code="ALREADY_FRIENDS")
        if existing.status == "pending":
            raise Conflict("A friend request is already pending", code="REQUEST_PENDING")
        if existing.status == "blocked":
            raise Forbidden("You cannot send a friend request to this user", code="BLOCKED")

        # rejected: the same row goes back to pending
        with unit_of_work(db):
            existing.sender_id = sender_id
            existing.receiver_id = receiver.id
            existing.status = "pending"
            existing.message = note
            existing.requested_at = utcnow()
            existing.responded_at = None
        db.refresh(existing)
        logger.info("Friend request %s re-sent by %s to %s", existing.id, sender_id, receiver.id)
        return existing

    friendship = Friendship(
        sender_id=sender_id,
        receiver_id=receiver.id,
        pair_key=pair_key(sender_id, receiver.id),
        status="pending",
        message=note,
        requested_at=utcnow(),
    )
    try:
        with unit_of_work(db):
            db.add(friendship)
    except IntegrityError:
        raise Conflict("A relationship with this user already exists", code="DUPLICATE_RELATIONSHIP")

    db.refresh(friendship)
    logger.info("Friend request %s sent by %s to %s", friendship.id, sender_id, receiver.id)
    return friendship


def _respond(db: Session, request_id, user_id: int, new_status: str) -> Friendship:
    request_id = parse_id(request_id, "requestId")
    friendship = friendships_crud.get_by_id(db, request_id)
    if friendship is None:
        raise NotFound("Friend request not found", code="REQUEST_NOT_FOUND")
    if friendship.receiver_id != user_id:
        raise Forbidden("Only the recipient can answer this friend request")
    if friendship.status != "pending":
        raise Conflict("This friend request has already been answered", code="REQUEST_NOT_PENDING")

    with unit_of_work(db):
        friendship.status = new_status
        friendship.responded_at = utcnow()

    logger.info("Friend request %s %s by %s", friendship.id, new_status, user_id)
    return friendship


def accept_request(db: Session, request_id, user_id: int) -> Friendship:
    return _respond(db, request_id, user_id, "accepted")


def reject_request(db: Session, request_id, user_id: int) -> Friendship:
    return _respond(db, request_id, user_id, "rejected")


def block_user(db: Session, blocker_id: int, user_id) -> Friendship:
    target = _other_user(db, blocker_id, user_id, "userId")
    now = utcnow()

    friendship = friendships_crud.check_friendship(db, blocker_id, target.id)
    with unit_of_work(db):
        if friendship is None:
            friendship = Friendship(
                pair_key=pair_key(blocker_id, target.id),
                requested_at=now,
            )
            db.add(friendship)
        friendship.sender_id = blocker_id
        friendship.receiver_id = target.id
        friendship.status = "blocked"
        friendship.responded_at = now

    db.refresh(friendship)
    logger.info("User %s blocked %s", blocker_id, target.id)
    return friendship


def remove_friend(db: Session, user_id: int, friend_id) -> None:
    friend_id = parse_id(friend_id, "friendId")
    friendship = friendships_crud.check_friendship(db, user_id, friend_id)
    if friendship is None:
        raise NotFound("Friendship not found", code="FRIENDSHIP_NOT_FOUND")
    if friendship.status != "accepted":
        raise Conflict("You are not friends with this user", code="NOT_FRIENDS")

    with unit_of_work(db):
        db.delete(friendship)
    logger.info("User %s removed friend %s", user_id, friend_id)


def _friend_entry(friendship: Friendship, user_id: int) -> dict:
    friend = friendship.receiver if friendship.sender_id == user_id else friendship.sender
    return {
        **friend.profile(),
        "friendshipId": friendship.id,
        "friendsSince": friendship.responded_at,
    }


def list_friends(db: Session, user_id: int, page: int = 1, limit: int = 20, search: str | None = None) -> tuple[list[dict], int]:
    """Return ``(friends, total)``; ``friendsSince`` is left as a datetime for the caller to render."""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive integers", code="INVALID_PAGINATION")
    offset = (page - 1) * limit

    if not search:
        rows = friendships_crud.list_accepted(db, user_id, offset=offset, limit=limit)
        return [_friend_entry(f, user_id) for f in rows], friendships_crud.count_accepted(db, user_id)

    needle = search.strip().lower()
    matches = [
        entry
        for entry in (_friend_entry(f, user_id) for f in friendships_crud.list_accepted(db, user_id))
        if needle in entry["name"].lower() or needle in entry["username"].lower()
    ]
    return matches[offset:offset + limit], len(matches)


def list_requests(db: Session, user_id: int, request_type: str = "received") -> dict[str, list[Friendship]]:
    if request_type not in REQUEST_LIST_TYPES:
        raise ValidationError("type must be one of received, sent, both", code="INVALID_REQUEST_TYPE")

    result: dict[str, list[Friendship]] = {}
    if request_type in ("received", "both"):
        result["received"] = friendships_crud.pending_received(db, user_id)
    if request_type in ("sent", "both"):
        result["sent"] = friendships_crud.pending_sent(db, user_id)
    return result


def suggestions(db: Session, user_id: int, limit: int = 10) -> list[dict]:
    """Friends of friends with no relationship row to ``user_id``, most mutual friends first."""
    excluded = friendships_crud.related_ids(db, user_id) | {user_id}
    mutual = Counter()
    for friend_id in friendships_crud.friend_ids(db, user_id):
        for candidate in friendships_crud.friend_ids(db, friend_id):
            if candidate not in excluded:
                mutual[candidate] += 1

    ranked = sorted(mutual.items(), key=lambda item: (-item[1], item[0]))[:limit]
    result = []
    for candidate_id, count in ranked:
        profile = users_crud.find_profile(db, candidate_id)
        if profile is not None:
            result.append({**profile, "mutualFriends": count})
    return result


def status_between(db: Session, user_id: int, other_id) -> dict:
    other_id = parse_id(other_id, "userId")
    if other_id == user_id:
        raise ValidationError("You cannot do this with yourself", code="SELF_TARGET")

    friendship = friendships_crud.check_friendship(db, user_id, other_id)
    if friendship is None:
        return {"status": "none"}
    return {
        "status": friendship.status,
        "friendshipId": friendship.id,
        "direction": "sent" if friendship.sender_id == user_id else "received",
    }
