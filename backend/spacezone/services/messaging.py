# backend/spacezone/services/messaging.py
"""
Messaging rules shared by the REST routers and the realtime session manager.

Every function takes an open Session and the acting user's id, enforces
participancy and the friendship gate, and returns ORM objects. Callers
serialize while the session is still open.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spacezone.core.config import Settings, settings as default_settings
from spacezone.core.errors import Forbidden, NotFound, RateLimited, ServerError, ValidationError, parse_id
from spacezone.crud import conversations as conversations_crud
from spacezone.crud import friendships as friendships_crud
from spacezone.crud import messages as messages_crud
from spacezone.crud import users as users_crud
from spacezone.db.session import unit_of_work
from spacezone.models.conversation import Conversation
from spacezone.models.message import Message
from spacezone.security.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def conversation_for_participant(db: Session, conversation_id, user_id: int) -> Conversation:
    conversation_id = parse_id(conversation_id, "conversationId")
    conversation = conversations_crud.get_by_id(db, conversation_id)
    if conversation is None:
        raise NotFound("Conversation not found", code="CONVERSATION_NOT_FOUND")
    if not conversation.has_participant(user_id):
        raise Forbidden("You are not a participant of this conversation")
    return conversation


def ensure_friendship_gate(db: Session, conversation: Conversation, user_id: int) -> None:
    """Private conversations stay usable only while the two parties are accepted friends."""
    if conversation.type != "private":
        return
    other_id = conversation.other_participant_id(user_id)
    if other_id is None or not friendships_crud.are_friends(db, user_id, other_id):
        raise Forbidden(
            "This conversation is no longer available: you are not friends with this user",
            code="NOT_FRIENDS",
        )


def ensure_send_allowed(limiter: RateLimiter, user_id: int) -> None:
    if not limiter.is_allowed(user_id, "message:send"):
        raise RateLimited("You are sending messages too fast", code="RATE_LIMITED")


def list_conversations(db: Session, user_id: int) -> list[tuple[Conversation, int, str]]:
    """(conversation, unreadCount, friendshipStatus) for each non-archived conversation."""
    rows = []
    for conversation in conversations_crud.find_all_for_user(db, user_id):
        other_id = conversation.other_participant_id(user_id)
        status = friendships_crud.friendship_status(db, user_id, other_id) if other_id else "none"
        unread = messages_crud.unread_count(db, conversation.id, user_id)
        rows.append((conversation, unread, status))
    return rows


def create_or_get_conversation(db: Session, user_id: int, recipient_id) -> tuple[Conversation, bool]:
    """Return ``(conversation, is_new)`` for the private thread between the two users."""
    recipient_id = parse_id(recipient_id, "recipientId")
    if recipient_id == user_id:
        raise ValidationError("You cannot start a conversation with yourself", code="SELF_CONVERSATION")

    if users_crud.get_by_id(db, recipient_id) is None:
        raise NotFound("Recipient not found", code="USER_NOT_FOUND")

    if not friendships_crud.are_friends(db, user_id, recipient_id):
        raise Forbidden("You can only message your friends", code="NOT_FRIENDS")

    existing = conversations_crud.find_between_users(db, user_id, recipient_id)
    if existing is not None:
        return existing, False

    try:
        with unit_of_work(db):
            conversation = conversations_crud.create_private(db, user_id, recipient_id)
    except IntegrityError:
        # lost the race against a concurrent create for the same pair
        existing = conversations_crud.find_between_users(db, user_id, recipient_id)
        if existing is None:
            raise ServerError("Could not create conversation")
        logger.info("Conversation %s already created for pair %s/%s", existing.id, user_id, recipient_id)
        return existing, False

    logger.info("Conversation %s created between %s and %s", conversation.id, user_id, recipient_id)
    return conversation, True


def send_message(
    db: Session,
    user_id: int,
    conversation_id,
    content,
    message_type: str = "text",
    shared_post: dict | None = None,
    limiter: RateLimiter | None = None,
    config: Settings | None = None,
) -> Message:
    """
    Validate, authorize and persist one message. The rate limit is charged
    only once every other check has passed.
    """
    config = config or default_settings

    # content rules first: an invalid body never reaches the database
    messages_crud.validate_content(content, config.MESSAGE_MAX_LENGTH)
    messages_crud.validate_type(message_type)

    conversation = conversation_for_participant(db, conversation_id, user_id)
    ensure_friendship_gate(db, conversation, user_id)
    if limiter is not None:
        ensure_send_allowed(limiter, user_id)

    message = messages_crud.append_message(
        db, conversation, user_id, content, message_type, shared_post, config.MESSAGE_MAX_LENGTH
    )
    logger.info("Message %s sent by %s in conversation %s", message.id, user_id, conversation.id)
    return message


def _live_message(db: Session, message_id) -> Message:
    message_id = parse_id(message_id, "messageId")
    message = messages_crud.get_by_id(db, message_id)
    if message is None or message.is_deleted:
        raise NotFound("Message not found", code="MESSAGE_NOT_FOUND")
    return message


def mark_read(db: Session, user_id: int, message_id) -> tuple[Message, bool]:
    """Return ``(message, added)``; ``added`` is False for the sender and for repeat reads."""
    message = _live_message(db, message_id)
    conversation = conversations_crud.get_by_id(db, message.conversation_id)
    if conversation is None or not conversation.has_participant(user_id):
        raise Forbidden("You cannot access this message")

    added = messages_crud.mark_read_by(db, message, user_id)
    if added:
        logger.debug("Message %s read by %s", message.id, user_id)
    return message, added


def get_messages(
    db: Session, user_id: int, conversation_id, page=1, limit=None, config: Settings | None = None
) -> messages_crud.MessagePage:
    config = config or default_settings
    conversation = conversation_for_participant(db, conversation_id, user_id)

    page = 1 if page is None else page
    limit = config.MESSAGES_PAGE_SIZE if limit is None else limit
    if not isinstance(page, int) or not isinstance(limit, int) or page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive integers", code="INVALID_PAGINATION")
    limit = min(limit, config.MESSAGES_PAGE_SIZE_MAX)

    return messages_crud.page(db, conversation.id, page, limit)


def unread_count(db: Session, user_id: int, conversation_id) -> int:
    conversation = conversation_for_participant(db, conversation_id, user_id)
    return messages_crud.unread_count(db, conversation.id, user_id)


def clear_messages(db: Session, user_id: int, conversation_id) -> tuple[int, int]:
    """Return ``(conversation_id, deleted_count)``."""
    conversation = conversation_for_participant(db, conversation_id, user_id)
    deleted = messages_crud.clear_all(db, conversation)
    logger.info("User %s cleared %s messages from conversation %s", user_id, deleted, conversation.id)
    return conversation.id, deleted


def _own_message(db: Session, user_id: int, message_id) -> Message:
    message = _live_message(db, message_id)
    if message.sender_id != user_id:
        raise Forbidden("You can only change your own messages")
    return message


def edit_message(db: Session, user_id: int, message_id, content, config: Settings | None = None) -> Message:
    config = config or default_settings
    message = _own_message(db, user_id, message_id)
    return messages_crud.edit_content(db, message, content, config.MESSAGE_MAX_LENGTH)


def delete_message(db: Session, user_id: int, message_id) -> Message:
    message = _own_message(db, user_id, message_id)
    messages_crud.soft_delete(db, message)
    logger.info("Message %s deleted by %s", message.id, user_id)
    return message
