# backend/spacezone/crud/conversations.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from spacezone.db.base import pair_key, utcnow
from spacezone.models.conversation import Conversation, ConversationParticipant


def get_by_id(db: Session, conversation_id: int) -> Conversation | None:
    return db.get(Conversation, conversation_id)


def find_between_users(db: Session, user_a: int, user_b: int) -> Conversation | None:
    """The private conversation whose participant set is exactly {user_a, user_b}."""
    stmt = (
        select(Conversation)
        .where(Conversation.type == "private", Conversation.pair_key == pair_key(user_a, user_b))
        .options(selectinload(Conversation.last_message))
    )
    return db.execute(stmt).scalar_one_or_none()


def find_all_for_user(db: Session, user_id: int) -> list[Conversation]:
    """Non-archived conversations of ``user_id``, most recent activity first."""
    stmt = (
        select(Conversation)
        .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
        .where(ConversationParticipant.user_id == user_id, Conversation.is_archived.is_(False))
        .options(selectinload(Conversation.last_message))
        .order_by(Conversation.last_activity.desc(), Conversation.id.desc())
    )
    return list(db.execute(stmt).scalars().unique())


def create_private(db: Session, user_a: int, user_b: int) -> Conversation:
    """
    Stage a new private conversation. Must run inside a unit of work; a second
    conversation for the same pair fails on the unique pair key at flush.
    """
    conversation = Conversation(
        type="private",
        pair_key=pair_key(user_a, user_b),
        last_activity=utcnow(),
        participant_links=[
            ConversationParticipant(user_id=user_a, position=0),
            ConversationParticipant(user_id=user_b, position=1),
        ],
    )
    db.add(conversation)
    db.flush()
    return conversation


def touch_activity(db: Session, conversation: Conversation) -> Conversation:
    """Bump last_activity to now; never moves it backwards."""
    now = utcnow()
    if conversation.last_activity is None or now > conversation.last_activity:
        conversation.last_activity = now
    db.add(conversation)
    return conversation
