from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from spacezone.schemas.common import CamelModel, UtcDatetime
from spacezone.schemas.message import MessageOut
from spacezone.schemas.user import UserProfileOut


class ConversationCreateIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # parsed with parse_id so malformed ids share the domain error shape
    recipient_id: Any = None


class ConversationOut(CamelModel):
    id: int
    type: str
    name: Optional[str] = None
    participants: List[UserProfileOut]
    last_message: Optional[MessageOut] = None
    last_activity: UtcDatetime
    is_archived: bool
    created_at: UtcDatetime


def serialize_conversation(conversation, **extra) -> dict:
    data = ConversationOut.model_validate(conversation).dump()
    data.update(extra)
    return data
