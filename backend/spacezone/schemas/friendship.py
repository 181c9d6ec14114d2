from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from spacezone.schemas.common import CamelModel, UtcDatetime
from spacezone.schemas.user import UserProfileOut


class FriendRequestIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    receiver_id: Any = None
    message: Optional[str] = Field(default=None, max_length=200)


class FriendshipOut(CamelModel):
    id: int
    sender: UserProfileOut
    receiver: UserProfileOut
    status: str
    message: Optional[str] = None
    requested_at: UtcDatetime
    responded_at: Optional[UtcDatetime] = None


def serialize_friendship(friendship) -> dict:
    return FriendshipOut.model_validate(friendship).dump()
