# backend/spacezone/models/conversation.py
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spacezone.db.base import Base, TimestampMixin, utcnow

CONVERSATION_TYPES = ("private", "group")


class ConversationParticipant(Base):
    __tablename__ = "conversation_participants"
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_conversation_participant"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    conversation = relationship("Conversation", back_populates="participant_links")
    user = relationship("User", lazy="joined")


class Conversation(TimestampMixin, Base):
    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(primary_key=True)

    type: Mapped[str] = mapped_column(String(16), default="private", nullable=False)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # "min:max" of the two participants; unique so a pair can only ever own one private thread.
    # NULL for group conversations.
    pair_key: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    # weak reference, no FK: the message may be hard-deleted by a bulk clear
    last_message_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_activity: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True, nullable=False)

    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    participant_links = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        order_by="ConversationParticipant.position",
        cascade="all,delete-orphan",
        lazy="selectin",
    )
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all,delete-orphan",
        passive_deletes=True,
    )
    last_message = relationship(
        "Message",
        primaryjoin="foreign(Conversation.last_message_id) == Message.id",
        viewonly=True,
        uselist=False,
    )

    @property
    def participant_ids(self) -> list[int]:
        return [link.user_id for link in self.participant_links]

    @property
    def participants(self) -> list:
        return [link.user for link in self.participant_links]

    def has_participant(self, user_id: int) -> bool:
        return user_id in self.participant_ids

    def other_participant_id(self, user_id: int) -> int | None:
        for pid in self.participant_ids:
            if pid != user_id:
                return pid
        return None
