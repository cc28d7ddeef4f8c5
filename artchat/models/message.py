"""
Message model: one row per chat message between two users.

Conversations are not stored; they are the set of rows sharing a
conversation_id (sorted, underscore-joined participant ids).
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)

from artchat.constants.messaging import MessageStatus
from artchat.db import Base
from artchat.models.mixins import TimestampMixin


class Message(Base, TimestampMixin):
    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_conversation_timestamp", "conversation_id", "timestamp"),
        Index("ix_messages_receiver_read", "receiver_id", "read"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sender_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content = Column(Text, nullable=False)
    conversation_id = Column(String(80), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    message_status = Column(String(16), nullable=False, default=MessageStatus.SENT.value)

    deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(Uuid(as_uuid=True), nullable=True)
    deletion_reason = Column(String(255), nullable=True)

    # Set by moderators; may change between our own reads
    flagged = Column(Boolean, nullable=False, default=False)
    flag_reason = Column(String(255), nullable=True)
    flagged_by = Column(Uuid(as_uuid=True), nullable=True)
    flagged_at = Column(DateTime(timezone=True), nullable=True)

    edited = Column(Boolean, nullable=False, default=False)
    edited_at = Column(DateTime(timezone=True), nullable=True)
    original_content = Column(Text, nullable=True)
