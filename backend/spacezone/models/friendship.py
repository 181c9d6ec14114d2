# backend/spacezone/models/friendship.py
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spacezone.db.base import Base, TimestampMixin, utcnow

FRIENDSHIP_STATUSES = ("pending", "accepted", "rejected", "blocked")


class Friendship(TimestampMixin, Base):
    __tablename__ = "friendships"

    id: Mapped[int] = mapped_column(primary_key=True)

    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    receiver_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)

    # one relationship row per unordered pair
    pair_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    status: Mapped[str] = mapped_column(String(16), default="pending", index=True, nullable=False)
    message: Mapped[str | None] = mapped_column(String(200), nullable=True)

    requested_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])

    def other_user_id(self, user_id: int) -> int:
        return self.receiver_id if self.sender_id == user_id else self.sender_id
