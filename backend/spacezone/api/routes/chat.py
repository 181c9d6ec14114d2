# backend/spacezone/api/routes/chat.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from spacezone.api.deps import get_manager, get_presence, get_rate_limiter, get_settings
from spacezone.core.config import Settings
from spacezone.core.security import get_current_user
from spacezone.db.session import get_db
from spacezone.models.user import User
from spacezone.realtime import events
from spacezone.realtime.manager import MessagingSessionManager
from spacezone.realtime.presence import PresenceTracker
from spacezone.schemas.common import iso, ok
from spacezone.schemas.conversation import ConversationCreateIn, serialize_conversation
from spacezone.schemas.message import MessageCreateIn, MessageEditIn, serialize_message, serialize_page
from spacezone.security.rate_limiter import RateLimiter
from spacezone.services import messaging

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.get("/conversations")
async def list_conversations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    def _list():
        return [
            serialize_conversation(c, unreadCount=unread, friendshipStatus=friendship)
            for c, unread, friendship in messaging.list_conversations(db, current_user.id)
        ]

    conversations = await run_in_threadpool(_list)
    return ok(conversations=conversations, count=len(conversations))


@router.post("/conversations")
async def create_or_get_conversation(
    payload: ConversationCreateIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    def _create():
        conversation, is_new = messaging.create_or_get_conversation(db, current_user.id, payload.recipient_id)
        return serialize_conversation(conversation), is_new

    conversation, is_new = await run_in_threadpool(_create)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if is_new else status.HTTP_200_OK,
        content=ok(conversation=conversation, isNew=is_new),
    )


@router.get("/conversations/{conversation_id}/messages")
async def get_messages(
    conversation_id: str,
    page: int = 1,
    limit: int | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    def _page():
        return serialize_page(messaging.get_messages(db, current_user.id, conversation_id, page, limit, settings))

    return ok(**await run_in_threadpool(_page))


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: str,
    payload: MessageCreateIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    manager: MessagingSessionManager = Depends(get_manager),
    settings: Settings = Depends(get_settings),
):
    def _send():
        message = messaging.send_message(
            db,
            current_user.id,
            conversation_id,
            payload.content,
            payload.type,
            payload.shared_post,
            limiter=rate_limiter,
            config=settings,
        )
        return serialize_message(message)

    message = await run_in_threadpool(_send)
    await manager.publish(
        message["conversationId"],
        events.MESSAGE_NEW,
        {"conversationId": message["conversationId"], "message": message},
    )
    return ok(message=message)


@router.put("/messages/{message_id}/read")
async def mark_message_read(
    message_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    manager: MessagingSessionManager = Depends(get_manager),
):
    def _read():
        message, added = messaging.mark_read(db, current_user.id, message_id)
        read_at = next((r.read_at for r in message.read_by if r.user_id == current_user.id), None)
        return message.id, message.conversation_id, added, read_at

    mid, conversation_id, added, read_at = await run_in_threadpool(_read)
    if added:
        await manager.publish(conversation_id, events.MESSAGE_READ, {
            "conversationId": conversation_id,
            "messageId": mid,
            "userId": current_user.id,
            "readAt": iso(read_at),
        })
    return ok(messageId=mid, read=added)


@router.put("/messages/{message_id}")
async def edit_message(
    message_id: str,
    payload: MessageEditIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    manager: MessagingSessionManager = Depends(get_manager),
    settings: Settings = Depends(get_settings),
):
    def _edit():
        message = messaging.edit_message(db, current_user.id, message_id, payload.content, settings)
        return serialize_message(message)

    message = await run_in_threadpool(_edit)
    await manager.publish(
        message["conversationId"],
        events.MESSAGE_EDITED,
        {"conversationId": message["conversationId"], "message": message},
    )
    return ok(message=message)


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    manager: MessagingSessionManager = Depends(get_manager),
):
    def _delete():
        message = messaging.delete_message(db, current_user.id, message_id)
        return message.id, message.conversation_id

    mid, conversation_id = await run_in_threadpool(_delete)
    await manager.publish(conversation_id, events.MESSAGE_DELETED, {
        "conversationId": conversation_id,
        "messageId": mid,
    })
    return ok(messageId=mid)


@router.get("/conversations/{conversation_id}/unread-count")
async def unread_count(
    conversation_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count = await run_in_threadpool(messaging.unread_count, db, current_user.id, conversation_id)
    return ok(unreadCount=count)


@router.delete("/conversations/{conversation_id}/messages")
async def clear_messages(
    conversation_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    cid, deleted = await run_in_threadpool(messaging.clear_messages, db, current_user.id, conversation_id)
    return ok(conversationId=cid, deletedCount=deleted)


@router.get("/online-users")
async def online_users(
    current_user: User = Depends(get_current_user),
    presence: PresenceTracker = Depends(get_presence),
):
    users = presence.online_users()
    return ok(users=users, count=len(users))
