# backend/spacezone/crud/messages.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spacezone.core.config import settings
from spacezone.core.errors import ValidationError
from spacezone.crud import conversations as conversations_crud
from spacezone.db.base import utcnow
from spacezone.db.session import unit_of_work
from spacezone.models.conversation import Conversation
from spacezone.models.message import MESSAGE_TYPES, Message, MessageRead
from spacezone.security.sanitizer import InputSanitizer


@dataclass
class MessagePage:
    messages: List[Message]  # oldest first
    page: int
    limit: int
    total_messages: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_messages / self.limit) if self.total_messages else 0

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


def validate_content(content, max_length: int | None = None) -> str:
    """Return the trimmed content or raise ValidationError (1..max_length chars)."""
    max_length = settings.MESSAGE_MAX_LENGTH if max_length is None else max_length
    if not isinstance(content, str):
        raise ValidationError("Message content is required", code="INVALID_MESSAGE_DATA")
    try:
        cleaned = InputSanitizer.sanitize_content(content)
    except ValueError as exc:
        raise ValidationError(str(exc), code="INVALID_MESSAGE_DATA")
    if not cleaned:
        raise ValidationError("Message content cannot be empty", code="INVALID_MESSAGE_DATA")
    if len(cleaned) > max_length:
        raise ValidationError(
            f"Message content cannot exceed {max_length} characters",
            code="MESSAGE_TOO_LONG",
        )
    return cleaned


def validate_type(message_type) -> str:
    if message_type not in MESSAGE_TYPES:
        raise ValidationError("Invalid message type", code="INVALID_MESSAGE_TYPE")
    return message_type


def get_by_id(db: Session, message_id: int) -> Message | None:
    return db.get(Message, message_id)


def append_message(
    db: Session,
    conversation: Conversation,
    sender_id: int,
    content,
    message_type: str = "text",
    shared_post: dict | None = None,
    max_length: int | None = None,
) -> Message:
    """
    Persist a message and move the conversation's lastMessage/lastActivity
    pointers in the same transaction.
    """
    cleaned = validate_content(content, max_length)
    validate_type(message_type)
    if shared_post is not None and not isinstance(shared_post, dict):
        raise ValidationError("sharedPost must be an object", code="INVALID_MESSAGE_DATA")

    with unit_of_work(db):
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            content=cleaned,
            type=message_type,
            shared_post=shared_post if message_type == "share" else None,
        )
        db.add(message)
        db.flush()

        conversation.last_message_id = message.id
        conversations_crud.touch_activity(db, conversation)

    db.refresh(message)
    return message


def page(db: Session, conversation_id: int, page_number: int, limit: int) -> MessagePage:
    live = (Message.conversation_id == conversation_id, Message.is_deleted.is_(False))

    total = db.execute(select(func.count(Message.id)).where(*live)).scalar_one()

    stmt = (
        select(Message)
        .where(*live)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset((page_number - 1) * limit)
        .limit(limit)
    )
    newest_first = list(db.execute(stmt).scalars())
    newest_first.reverse()

    return MessagePage(messages=newest_first, page=page_number, limit=limit, total_messages=total)


def mark_read_by(db: Session, message: Message, user_id: int) -> bool:
    """
    Append a read receipt for ``user_id``. Idempotent; the sender is never
    added to their own readBy. Returns True only when a receipt was added.
    """
    if message.sender_id == user_id or message.is_read_by(user_id):
        return False

    try:
        with unit_of_work(db):
            message.read_by.append(MessageRead(user_id=user_id, read_at=utcnow()))
    except IntegrityError:
        # another connection of the same user recorded it first
        return False
    return True


def unread_count(db: Session, conversation_id: int, user_id: int) -> int:
    already_read = (
        select(MessageRead.id)
        .where(MessageRead.message_id == Message.id, MessageRead.user_id == user_id)
        .exists()
    )
    stmt = select(func.count(Message.id)).where(
        Message.conversation_id == conversation_id,
        Message.sender_id != user_id,
        Message.is_deleted.is_(False),
        ~already_read,
    )
    return db.execute(stmt).scalar_one()


def clear_all(db: Session, conversation: Conversation) -> int:
    """Hard-delete every message of the conversation and reset its lastMessage pointer."""
    with unit_of_work(db):
        message_ids = select(Message.id).where(Message.conversation_id == conversation.id)
        db.execute(
            delete(MessageRead).where(MessageRead.message_id.in_(message_ids)),
            execution_options={"synchronize_session": False},
        )
        result = db.execute(
            delete(Message).where(Message.conversation_id == conversation.id),
            execution_options={"synchronize_session": False},
        )

        conversation.last_message_id = None
        conversations_crud.touch_activity(db, conversation)

    db.expire_all()
    return result.rowcount or 0


def edit_content(db: Session, message: Message, content, max_length: int | None = None) -> Message:
    cleaned = validate_content(content, max_length)
    with unit_of_work(db):
        message.content = cleaned
        message.is_edited = True
        message.edited_at = utcnow()
    return message


def soft_delete(db: Session, message: Message) -> Message:
    """Flag the message deleted; a conversation pointing at it falls back to its newest live message."""
    with unit_of_work(db):
        message.is_deleted = True
        message.deleted_at = utcnow()

        conversation = db.get(Conversation, message.conversation_id)
        if conversation is not None and conversation.last_message_id == message.id:
            db.flush()
            conversation.last_message_id = db.execute(
                select(Message.id)
                .where(Message.conversation_id == conversation.id, Message.is_deleted.is_(False))
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(1)
            ).scalar_one_or_none()
    if conversation is not None:
        db.expire(conversation, ["last_message"])
    return message
