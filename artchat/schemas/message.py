"""Pydantic schemas for messages, conversations and paginated listings."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from artchat.schemas.user import UserSummary


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        skip = (page - 1) * limit
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
            has_next_page=skip + limit < total,
            has_prev_page=page > 1,
        )


class MessageRead(BaseModel):
    """Message as returned to participants."""

    id: UUID
    sender_id: UUID
    receiver_id: UUID
    content: str
    conversation_id: str
    timestamp: datetime
    read: bool
    read_at: Optional[datetime] = None
    message_status: str
    edited: bool = False
    edited_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ModeratedMessageRead(MessageRead):
    """Message with moderation fields, for moderators only."""

    deleted: bool
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[UUID] = None
    deletion_reason: Optional[str] = None
    flagged: bool
    flag_reason: Optional[str] = None
    flagged_by: Optional[UUID] = None
    flagged_at: Optional[datetime] = None
    original_content: Optional[str] = None


class LastMessage(BaseModel):
    id: UUID
    content: str
    timestamp: datetime
    sender_id: UUID
    is_sent_by_me: bool


class ConversationSummary(BaseModel):
    conversation_id: str
    other_user: Optional[UserSummary] = None
    last_message: LastMessage
    unread_count: int
    updated_at: datetime


class ConversationList(BaseModel):
    conversations: list[ConversationSummary]
    pagination: Pagination


class MatchingMessage(BaseModel):
    id: UUID
    content: str
    timestamp: datetime


class ConversationSearchHit(BaseModel):
    conversation_id: str
    other_user: Optional[UserSummary] = None
    matching_message: MatchingMessage


class ConversationSearchResult(BaseModel):
    conversations: list[ConversationSearchHit]
    pagination: Pagination


class MessageSearchResult(BaseModel):
    messages: list[MessageRead]
    pagination: Pagination


class ConversationContext(BaseModel):
    conversation_id: str
    other_user: UserSummary


class SendMessageResult(BaseModel):
    """Outcome of a successful send: the stored message and its conversation."""

    message: MessageRead
    conversation: ConversationContext


class SendMessageRequest(BaseModel):
    receiver_id: UUID
    content: str = Field(..., min_length=1)


class EditMessageRequest(BaseModel):
    content: str = Field(..., min_length=1)


class FlagMessageRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)


class ModerationDeleteRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class UnreadCount(BaseModel):
    unread_count: int


class MarkReadResult(BaseModel):
    conversation_id: str
    updated: int


class UserMessageStats(BaseModel):
    total_conversations: int
    total_messages: int
    unread_messages: int
