# backend/spacezone/models/user.py
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spacezone.db.base import Base, TimestampMixin

DEFAULT_AVATAR = "/uploads/avatar/default.png"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    avatar: Mapped[str] = mapped_column(String(255), default=DEFAULT_AVATAR, nullable=False)

    sent_messages = relationship(
        "Message",
        back_populates="sender",
        cascade="all,delete",
    )

    def profile(self) -> dict:
        """Minimal snapshot used by presence and message enrichment."""
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "avatar": self.avatar,
        }
