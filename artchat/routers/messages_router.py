"""Messages API: send, conversations, history, search, read receipts and blocking."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from artchat.commands.send_message_command import (
    SendMessageCommand,
    ensure_cross_role,
    screen_content,
)
from artchat.config import get_settings
from artchat.constants.messaging import BlockAction
from artchat.core.app_state import RealtimeState
from artchat.core.conversation_id import conversation_room, create_conversation_id, user_room
from artchat.core.errors import RateLimitedError, ValidationFailedError
from artchat.db import get_db
from artchat.infra.logging_config import get_logger
from artchat.models.user import User
from artchat.routers.utils.dependencies import (
    get_current_user,
    get_realtime,
    get_user_by_id,
)
from artchat.schemas.events import ConversationBlocked, MessagesRead
from artchat.schemas.message import (
    ConversationList,
    ConversationSearchResult,
    EditMessageRequest,
    MarkReadResult,
    MessageRead,
    MessageSearchResult,
    SendMessageRequest,
    SendMessageResult,
    UnreadCount,
    UserMessageStats,
)
from artchat.schemas.user import BlockToggleResult, ConnectionIdentity
from artchat.services.conversation_service import ConversationService
from artchat.services.message_service import MessageService
from artchat.services.user_service import UserService
from artchat.utils.rate_limit import check_search_rate_limit

logger = get_logger("messages")

messages_router = APIRouter(prefix="/messages", tags=["Messages"])


def _check_search_limit(current_user: User, realtime: RealtimeState) -> None:
    if not check_search_rate_limit(
        current_user.id,
        realtime.redis_client,
        get_settings().search_rate_limit_per_minute,
    ):
        logger.warning("Search rate limit exceeded for user %s", current_user.id)
        raise RateLimitedError("Too many search requests. Please wait before searching again.")


@messages_router.post(
    "/send", response_model=SendMessageResult, status_code=status.HTTP_201_CREATED
)
async def send_message(
    body: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    realtime: RealtimeState = Depends(get_realtime),
    db: Session = Depends(get_db),
) -> SendMessageResult:
    """Send a message; pushes it to the receiver when they are connected."""
    command = SendMessageCommand(db, realtime.settings, realtime.redis_client)
    sent = command.execute(
        ConnectionIdentity.from_user(current_user), body.receiver_id, body.content
    )
    receiver_online = realtime.chat.record_delivery(db, sent)
    for_sender = sent.for_sender()
    await realtime.chat.publish_message(for_sender, sent.for_receiver(), receiver_online)
    return for_sender


@messages_router.get("/conversations", response_model=ConversationList)
def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationList:
    """List the current user's conversations, most recent first."""
    return ConversationService(db).list_conversations(current_user.id, page, limit)


@messages_router.get("/conversations/search", response_model=ConversationSearchResult)
def search_conversations(
    q: str = Query(..., min_length=1, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeState = Depends(get_realtime),
    db: Session = Depends(get_db),
) -> ConversationSearchResult:
    _check_search_limit(current_user, realtime)
    return ConversationService(db).search_conversations(current_user.id, q, page, limit)


@messages_router.get("/conversation/{user_id}", response_model=Page[MessageRead])
def get_conversation_messages(
    params: Params = Depends(),
    other_user: User = Depends(get_user_by_id),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Page[MessageRead]:
    """Messages exchanged with another user, oldest first."""
    if other_user.id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot open a conversation with yourself")
    ensure_cross_role(current_user.role, other_user.role)
    conversation_id = create_conversation_id(current_user.id, other_user.id)
    query = MessageService(db).get_conversation_messages_query(conversation_id)
    return paginate(query, params=params)


@messages_router.put("/conversation/{user_id}/read", response_model=MarkReadResult)
async def mark_conversation_read(
    other_user: User = Depends(get_user_by_id),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeState = Depends(get_realtime),
    db: Session = Depends(get_db),
) -> MarkReadResult:
    ensure_cross_role(current_user.role, other_user.role)
    conversation_id = create_conversation_id(current_user.id, other_user.id)
    updated = MessageService(db).mark_read(conversation_id, current_user.id)
    await realtime.connections.send_to_group(
        user_room(other_user.id),
        MessagesRead(
            read_by_user_id=current_user.id,
            read_by_username=current_user.username,
            conversation_id=conversation_id,
        ),
    )
    return MarkReadResult(conversation_id=conversation_id, updated=updated)


@messages_router.get("/conversation/{user_id}/search", response_model=MessageSearchResult)
def search_conversation(
    q: str = Query(..., min_length=1, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    other_user: User = Depends(get_user_by_id),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeState = Depends(get_realtime),
    db: Session = Depends(get_db),
) -> MessageSearchResult:
    ensure_cross_role(current_user.role, other_user.role)
    _check_search_limit(current_user, realtime)
    return ConversationService(db).search_within_conversation(
        current_user.id, other_user.id, q, page, limit
    )


@messages_router.patch("/{message_id}", response_model=MessageRead)
def edit_message(
    message_id: UUID,
    body: EditMessageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageRead:
    """Edit one of the current user's messages; new content is screened like a send."""
    settings = get_settings()

    def screen(content: str) -> str:
        if len(content) > settings.message_max_length:
            raise ValidationFailedError(
                f"Message cannot exceed {settings.message_max_length} characters"
            )
        return screen_content(content, settings)

    message = MessageService(db).edit(message_id, current_user.id, body.content, screen=screen)
    return MessageRead.model_validate(message)


@messages_router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    """Soft delete one of the current user's messages."""
    MessageService(db).soft_delete(message_id, current_user.id)


@messages_router.put("/block/{user_id}", response_model=BlockToggleResult)
async def toggle_block(
    target: User = Depends(get_user_by_id),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeState = Depends(get_realtime),
    db: Session = Depends(get_db),
) -> BlockToggleResult:
    """Block the user, or unblock them if already blocked."""
    if target.id == current_user.id:
        raise ValidationFailedError("Invalid target user ID")
    ensure_cross_role(current_user.role, target.role, action="block")
    result = UserService(db).toggle_block(current_user.id, target.id)
    logger.info("User %s %s user %s", current_user.id, result.action, target.id)
    if result.action == BlockAction.BLOCKED:
        conversation_id = create_conversation_id(current_user.id, target.id)
        room = conversation_room(conversation_id)
        for connection_id in realtime.connections.members(room):
            if realtime.presence.user_connections.get(connection_id) == current_user.id:
                realtime.connections.leave(connection_id, room)
        await realtime.connections.send_to_group(
            user_room(target.id),
            ConversationBlocked(
                blocked_by_user_id=current_user.id, conversation_id=conversation_id
            ),
        )
    return result


@messages_router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCount:
    return UnreadCount(unread_count=MessageService(db).count_unread(current_user.id))


@messages_router.get("/stats", response_model=UserMessageStats)
def message_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserMessageStats:
    return UserMessageStats(**MessageService(db).get_user_stats(current_user.id))
