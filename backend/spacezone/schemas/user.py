from __future__ import annotations

from spacezone.schemas.common import CamelModel, UtcDatetime


class UserProfileOut(CamelModel):
    id: int
    name: str
    username: str
    avatar: str


class MeOut(UserProfileOut):
    email: str
    created_at: UtcDatetime
