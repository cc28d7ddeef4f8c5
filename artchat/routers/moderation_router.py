"""Moderation API for admins: flag and remove messages, inspect live presence."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from artchat.core.app_state import RealtimeState
from artchat.db import get_db
from artchat.infra.logging_config import get_logger
from artchat.models.user import User
from artchat.routers.utils.dependencies import get_realtime, require_admin
from artchat.schemas.message import FlagMessageRequest, ModeratedMessageRead
from artchat.services.message_service import MessageService

logger = get_logger("moderation")

moderation_router = APIRouter(prefix="/moderation", tags=["Moderation"])


@moderation_router.get("/messages/{message_id}", response_model=ModeratedMessageRead)
def get_message(
    message_id: UUID,
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ModeratedMessageRead:
    """Get any message, including deleted ones, with its moderation fields."""
    message = MessageService(db).get_message(message_id, include_deleted=True)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return ModeratedMessageRead.model_validate(message)


@moderation_router.post("/messages/{message_id}/flag", response_model=ModeratedMessageRead)
def flag_message(
    message_id: UUID,
    body: FlagMessageRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ModeratedMessageRead:
    message = MessageService(db).flag(message_id, admin.id, body.reason)
    logger.info("Admin %s flagged message %s", admin.id, message_id)
    return ModeratedMessageRead.model_validate(message)


@moderation_router.delete("/messages/{message_id}", response_model=ModeratedMessageRead)
def remove_message(
    message_id: UUID,
    reason: Optional[str] = Query(None, max_length=255),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ModeratedMessageRead:
    """Soft delete any message regardless of who sent it."""
    message = MessageService(db).moderate_delete(message_id, admin.id, reason)
    logger.info("Admin %s removed message %s", admin.id, message_id)
    return ModeratedMessageRead.model_validate(message)


@moderation_router.get("/presence", response_model=dict)
def presence_overview(
    role: Optional[str] = Query(None),
    _admin: User = Depends(require_admin),
    realtime: RealtimeState = Depends(get_realtime),
) -> dict:
    """Online counts by role and the currently connected users."""
    presence = realtime.presence
    records = presence.users_by_role(role) if role else list(presence.online_users.values())
    return {
        "stats": presence.stats(),
        "users": [r.to_dict() for r in records],
    }


@moderation_router.post("/presence/{user_id}/disconnect", response_model=dict)
async def force_disconnect(
    user_id: UUID,
    reason: str = Query("Forced disconnect", max_length=255),
    admin: User = Depends(require_admin),
    realtime: RealtimeState = Depends(get_realtime),
) -> dict:
    logger.info("Admin %s requested disconnect of user %s", admin.id, user_id)
    disconnected = await realtime.presence.force_disconnect(user_id, reason)
    return {"user_id": str(user_id), "disconnected": disconnected}


@moderation_router.get("/conversations/stats", response_model=dict)
def conversation_stats(
    _admin: User = Depends(require_admin),
    realtime: RealtimeState = Depends(get_realtime),
    db: Session = Depends(get_db),
) -> dict:
    return {
        "realtime": realtime.chat.conversation_stats(),
        "messages": MessageService(db).get_global_stats(),
    }
