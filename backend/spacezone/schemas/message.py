from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel

from spacezone.schemas.common import CamelModel, UtcDatetime
from spacezone.schemas.user import UserProfileOut


class MessageCreateIn(CamelModel):
    # content is checked by the message store so REST and realtime share one rule set
    content: Any = None
    type: str = "text"
    shared_post: Optional[dict] = None


class MessageEditIn(BaseModel):
    content: Any = None


class ReadReceiptOut(CamelModel):
    user_id: int
    read_at: UtcDatetime


class MessageOut(CamelModel):
    id: int
    conversation_id: int
    sender: UserProfileOut
    content: str
    type: str
    shared_post: Optional[dict] = None
    is_edited: bool
    edited_at: Optional[UtcDatetime] = None
    is_deleted: bool
    read_by: List[ReadReceiptOut] = []
    created_at: UtcDatetime
    updated_at: UtcDatetime


class PaginationOut(CamelModel):
    page: int
    limit: int
    total_messages: int
    total_pages: int
    has_more: bool


def serialize_message(message) -> dict:
    return MessageOut.model_validate(message).dump()


def serialize_page(result) -> dict:
    return {
        "messages": [serialize_message(m) for m in result.messages],
        "pagination": PaginationOut.model_validate(result).dump(),
    }
