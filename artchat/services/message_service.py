"""Message store: persistence and the aggregate queries the chat protocol needs."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from artchat.constants.messaging import STATUS_ORDER, MessageStatus
from artchat.core.conversation_id import create_conversation_id
from artchat.core.errors import ForbiddenError, NotFoundError, ValidationFailedError
from artchat.models.message import Message
from artchat.models.mixins import utcnow

logger = logging.getLogger(__name__)


class MonotonicClock:
    """UTC clock that never returns the same or an earlier instant twice."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        with self._lock:
            current = utcnow()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


message_clock = MonotonicClock()


def _statuses_before(status: MessageStatus) -> List[MessageStatus]:
    return [s for s, rank in STATUS_ORDER.items() if rank < STATUS_ORDER[status]]


def _content_contains(query_text: str):
    # % and _ in user input match literally
    return func.lower(Message.content).contains(query_text.lower(), autoescape=True)


class MessageService:
    def __init__(self, db: Session, clock: Optional[MonotonicClock] = None) -> None:
        self.db = db
        self.clock = clock or message_clock

    def _active(self) -> Query:
        return self.db.query(Message).filter(Message.deleted.is_(False))

    def get_message(self, message_id: UUID, include_deleted: bool = False) -> Optional[Message]:
        query = self.db.query(Message) if include_deleted else self._active()
        return query.filter(Message.id == message_id).first()

    def append(self, sender_id: UUID, receiver_id: UUID, content: str) -> Message:
        """Persist a new message in the sent state."""
        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            conversation_id=create_conversation_id(sender_id, receiver_id),
            timestamp=self.clock.now(),
            read=False,
            message_status=MessageStatus.SENT,
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        logger.info("Message %s sent from %s to %s", message.id, sender_id, receiver_id)
        return message

    def mark_delivered(self, message_id: UUID) -> bool:
        """Advance a message from sent to delivered. Returns False if it was past sent."""
        updated = (
            self.db.query(Message)
            .filter(
                Message.id == message_id,
                Message.message_status.in_(_statuses_before(MessageStatus.DELIVERED)),
            )
            .update(
                {Message.message_status: MessageStatus.DELIVERED},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated > 0

    def mark_read(self, conversation_id: str, reader_id: UUID) -> int:
        """
        Mark every unread message addressed to reader in the conversation as read.

        Idempotent: once everything is read, later calls update nothing.
        """
        now = utcnow()
        updated = (
            self._active()
            .filter(
                Message.conversation_id == conversation_id,
                Message.receiver_id == reader_id,
                Message.read.is_(False),
            )
            .update(
                {
                    Message.read: True,
                    Message.read_at: now,
                    Message.message_status: MessageStatus.READ,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        if updated:
            logger.info(
                "Marked %d messages read for %s in %s", updated, reader_id, conversation_id
            )
        return updated

    def soft_delete(self, message_id: UUID, actor_id: UUID) -> Message:
        """Self-service delete: only the sender may delete their message."""
        message = self.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if message.sender_id != actor_id:
            raise ForbiddenError("You can only delete your own messages")
        return self._mark_deleted(message, actor_id, reason=None)

    def moderate_delete(
        self, message_id: UUID, admin_id: UUID, reason: Optional[str] = None
    ) -> Message:
        """Privileged delete; skips the ownership check."""
        message = self.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        return self._mark_deleted(message, admin_id, reason=reason)

    def _mark_deleted(
        self, message: Message, actor_id: UUID, reason: Optional[str]
    ) -> Message:
        message.deleted = True
        message.deleted_at = utcnow()
        message.deleted_by = actor_id
        message.deletion_reason = reason
        self.db.commit()
        self.db.refresh(message)
        logger.info("Message %s deleted by %s", message.id, actor_id)
        return message

    def flag(self, message_id: UUID, actor_id: UUID, reason: str) -> Message:
        message = self.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        message.flagged = True
        message.flag_reason = reason
        message.flagged_by = actor_id
        message.flagged_at = utcnow()
        self.db.commit()
        self.db.refresh(message)
        logger.info("Message %s flagged by %s", message.id, actor_id)
        return message

    def edit(
        self,
        message_id: UUID,
        actor_id: UUID,
        new_content: str,
        screen: Optional[Callable[[str], str]] = None,
    ) -> Message:
        """
        Replace the content of the actor's own message, keeping the first original.

        ``screen`` runs only once ownership is established and returns the
        content to store.
        """
        if not new_content:
            raise ValidationFailedError("Message content is required")
        message = self.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if message.sender_id != actor_id:
            raise ForbiddenError("You can only edit your own messages")
        if screen is not None:
            new_content = screen(new_content)
        if not message.edited:
            message.original_content = message.content
        message.content = new_content
        message.edited = True
        message.edited_at = utcnow()
        self.db.commit()
        self.db.refresh(message)
        return message

    def count_unread(self, user_id: UUID) -> int:
        return (
            self._active()
            .filter(Message.receiver_id == user_id, Message.read.is_(False))
            .count()
        )

    def count_unread_in_conversation(self, conversation_id: str, user_id: UUID) -> int:
        return (
            self._active()
            .filter(
                Message.conversation_id == conversation_id,
                Message.receiver_id == user_id,
                Message.read.is_(False),
            )
            .count()
        )

    def get_conversation_messages_query(self, conversation_id: str) -> Query[Message]:
        """Messages of one conversation in write order (for pagination)."""
        return (
            self._active()
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.asc())
        )

    def get_conversation_messages(
        self, conversation_id: str, skip: int = 0, limit: int = 50
    ) -> List[Message]:
        return (
            self.get_conversation_messages_query(conversation_id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def _user_messages(self, user_id: UUID) -> Query:
        return self._active().filter(
            or_(Message.sender_id == user_id, Message.receiver_id == user_id)
        )

    def get_conversation_ids(self, user_id: UUID) -> List[str]:
        rows = (
            self._user_messages(user_id)
            .with_entities(Message.conversation_id)
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    def get_last_message(self, conversation_id: str) -> Optional[Message]:
        return (
            self._active()
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.desc())
            .first()
        )

    def get_conversation_partners(self, user_id: UUID) -> List[UUID]:
        """Distinct ids of every user this user has exchanged a message with."""
        senders = (
            self._active()
            .filter(Message.receiver_id == user_id)
            .with_entities(Message.sender_id)
            .distinct()
            .all()
        )
        receivers = (
            self._active()
            .filter(Message.sender_id == user_id)
            .with_entities(Message.receiver_id)
            .distinct()
            .all()
        )
        partners = {row[0] for row in senders} | {row[0] for row in receivers}
        partners.discard(user_id)
        return sorted(partners, key=str)

    def search_user_messages(self, user_id: UUID, query_text: str) -> List[Message]:
        """Case-insensitive substring match over the user's messages, newest first."""
        return (
            self._user_messages(user_id)
            .filter(_content_contains(query_text))
            .order_by(Message.timestamp.desc())
            .all()
        )

    def search_conversation_query(self, conversation_id: str, query_text: str) -> Query:
        return (
            self._active()
            .filter(
                Message.conversation_id == conversation_id,
                _content_contains(query_text),
            )
            .order_by(Message.timestamp.desc())
        )

    def get_user_stats(self, user_id: UUID) -> dict:
        return {
            "total_conversations": len(self.get_conversation_ids(user_id)),
            "total_messages": self._user_messages(user_id).count(),
            "unread_messages": self.count_unread(user_id),
        }

    def get_global_stats(self) -> dict:
        total = self.db.query(func.count(Message.id)).scalar() or 0
        deleted = (
            self.db.query(func.count(Message.id))
            .filter(Message.deleted.is_(True))
            .scalar()
            or 0
        )
        flagged = (
            self.db.query(func.count(Message.id))
            .filter(Message.flagged.is_(True))
            .scalar()
            or 0
        )
        conversations = (
            self._active()
            .with_entities(func.count(func.distinct(Message.conversation_id)))
            .scalar()
            or 0
        )
        unread = self._active().filter(Message.read.is_(False)).count()
        return {
            "total_messages": total,
            "deleted_messages": deleted,
            "flagged_messages": flagged,
            "total_conversations": conversations,
            "unread_messages": unread,
        }
