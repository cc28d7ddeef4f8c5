"""
Command to send a chat message from one user to another.

Shared by the realtime handler and the REST endpoint: validates the pair,
screens the content, then persists the sanitized text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from artchat.config import Settings, get_settings
from artchat.core import content_filter
from artchat.core.errors import (
    ContentRejectedError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    TransientIOError,
    ValidationFailedError,
)
from artchat.models.message import Message
from artchat.models.user import User
from artchat.schemas.message import ConversationContext, MessageRead, SendMessageResult
from artchat.schemas.user import ConnectionIdentity, UserSummary
from artchat.services.message_service import MessageService
from artchat.services.user_service import UserService
from artchat.utils.rate_limit import check_message_rate_limit

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Too many messages sent. Please wait before sending another message."


def screen_content(content: str, settings: Optional[Settings] = None) -> str:
    """
    Score content and return the text to store.

    Raises:
        ContentRejectedError: if the safety score is below the threshold.
    """
    settings = settings or get_settings()
    analysis = content_filter.analyze(
        content,
        words=settings.profanity_words,
        threshold=settings.content_safety_threshold,
    )
    if not analysis.acceptable:
        logger.info(
            "Rejected message content (score %d, categories %s)",
            analysis.score,
            analysis.categories,
        )
        raise ContentRejectedError(
            "Message contains prohibited content", violations=analysis.violations
        )
    return content_filter.sanitize(content, settings.profanity_words)


def ensure_cross_role(user_role: str, other_role: str, action: str = "message") -> None:
    if user_role == other_role:
        raise ForbiddenError(f"You can only {action} users with different roles")


@dataclass
class SentMessage:
    message: Message
    sender: User
    receiver: User

    @property
    def conversation_id(self) -> str:
        return self.message.conversation_id

    def for_sender(self) -> SendMessageResult:
        return SendMessageResult(
            message=MessageRead.model_validate(self.message),
            conversation=ConversationContext(
                conversation_id=self.conversation_id,
                other_user=UserSummary.model_validate(self.receiver),
            ),
        )

    def for_receiver(self) -> SendMessageResult:
        return SendMessageResult(
            message=MessageRead.model_validate(self.message),
            conversation=ConversationContext(
                conversation_id=self.conversation_id,
                other_user=UserSummary.model_validate(self.sender),
            ),
        )


class SendMessageCommand:
    """Validate, screen and persist one message."""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        redis_client: Optional[object] = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.redis_client = redis_client
        self.users = UserService(db)
        self.messages = MessageService(db)

    def execute(
        self,
        sender: ConnectionIdentity,
        receiver_id: Optional[UUID],
        content: Optional[str],
    ) -> SentMessage:
        """
        Send a message.

        Raises:
            ValidationFailedError: missing receiver or content, or sending to self.
            RateLimitedError: sender exceeded the per-minute limit.
            NotFoundError: receiver does not exist.
            ForbiddenError: same role, unverified receiver, or a block either way.
            ContentRejectedError: content failed the safety check.
            TransientIOError: the message could not be stored.
        """
        if receiver_id is None or not content or not content.strip() or receiver_id == sender.id:
            raise ValidationFailedError("Invalid message data")
        if len(content) > self.settings.message_max_length:
            raise ValidationFailedError(
                f"Message cannot exceed {self.settings.message_max_length} characters"
            )

        if not check_message_rate_limit(
            sender.id, self.redis_client, self.settings.message_rate_limit_per_minute
        ):
            raise RateLimitedError(RATE_LIMITED_MESSAGE)

        receiver = self.users.get_user(receiver_id)
        if receiver is None:
            raise NotFoundError("Receiver not found")
        ensure_cross_role(sender.role, receiver.role)
        if not receiver.is_verified:
            raise ForbiddenError("Cannot send message to unverified user")

        sender_user = self.users.get_user(sender.id)
        if sender_user is None:
            raise NotFoundError("Sender not found")
        if sender_user.has_blocked(receiver.id):
            raise ForbiddenError("You have blocked this user")
        # Do not reveal that the receiver blocked the sender
        if receiver.has_blocked(sender.id):
            raise ForbiddenError("Unable to send message")

        stored_content = screen_content(content, self.settings)

        try:
            message = self.messages.append(sender.id, receiver.id, stored_content)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Error storing message from %s to %s", sender.id, receiver.id)
            raise TransientIOError("Failed to send message")

        return SentMessage(message=message, sender=sender_user, receiver=receiver)
