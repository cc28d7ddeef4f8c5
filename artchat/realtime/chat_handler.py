"""
Chat protocol handler.

One instance serves every connection. Each inbound frame is parsed into a
typed event, dispatched to its handler, and any rejection is reported back
to the originating connection as a ``*_error`` event. The connection itself
is never closed for a business-rule rejection.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from artchat.commands.send_message_command import (
    SendMessageCommand,
    SentMessage,
    ensure_cross_role,
)
from artchat.config import Settings, get_settings
from artchat.constants.messaging import BlockAction, CONVERSATION_GROUP_PREFIX
from artchat.core.conversation_id import conversation_room, create_conversation_id, user_room
from artchat.core.errors import (
    ContentRejectedError,
    ForbiddenError,
    MessagingError,
    NotFoundError,
    TransientIOError,
    ValidationFailedError,
)
from artchat.models.mixins import utcnow
from artchat.realtime.connection_manager import ConnectionManager
from artchat.schemas.events import (
    ERROR_EVENT_FOR_TYPE,
    INBOUND_EVENT_TYPES,
    BlockUser,
    ConversationBlocked,
    ConversationJoined,
    ConversationLeft,
    ConversationMessage,
    JoinConversation,
    LeaveConversation,
    MarkAsRead,
    MessagesMarkedRead,
    MessagesRead,
    MessageSent,
    NewMessage,
    ProtocolError,
    SendMessage,
    TypingStart,
    TypingStop,
    UserBlockToggled,
    UserTyping,
    parse_inbound_event,
)
from artchat.schemas.message import SendMessageResult
from artchat.schemas.user import ConnectionIdentity
from artchat.services.message_service import MessageService
from artchat.services.presence_tracker import PresenceTracker
from artchat.services.user_service import UserService
from artchat.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)

INVALID_PAYLOAD_MESSAGES = {
    "join_conversation": "Invalid conversation data",
    "leave_conversation": "Invalid conversation data",
    "typing_start": "Invalid typing data",
    "typing_stop": "Invalid typing data",
    "send_message": "Invalid message data",
    "mark_as_read": "Invalid user ID",
    "block_user": "Invalid target user ID",
}

FAILURE_MESSAGES = {
    "join_conversation": "Failed to join conversation",
    "leave_conversation": "Failed to leave conversation",
    "typing_start": "Failed to update typing status",
    "typing_stop": "Failed to update typing status",
    "send_message": "Failed to send message",
    "mark_as_read": "Failed to mark messages as read",
    "block_user": "Failed to block/unblock user",
}

TypingKey = Tuple[UUID, UUID]


@dataclass
class TypingState:
    task: asyncio.Task
    connection_id: str
    username: str


class ChatProtocolHandler:
    def __init__(
        self,
        connections: ConnectionManager,
        presence: PresenceTracker,
        session_factory: Optional[Callable[[], Session]] = None,
        settings: Optional[Settings] = None,
        redis_client: Optional[object] = None,
        typing_timeout: Optional[float] = None,
    ) -> None:
        self.connections = connections
        self.presence = presence
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.redis_client = redis_client
        self.typing_timeout = (
            typing_timeout if typing_timeout is not None else self.settings.typing_timeout_seconds
        )
        # (sender, receiver) -> armed inactivity timer
        self.active_typing: Dict[TypingKey, TypingState] = {}
        self._handlers = {
            JoinConversation: self.join_conversation,
            LeaveConversation: self.leave_conversation,
            TypingStart: self.typing_start,
            TypingStop: self.typing_stop,
            SendMessage: self.send_message,
            MarkAsRead: self.mark_as_read,
            BlockUser: self.block_user,
        }

    async def dispatch(self, identity: ConnectionIdentity, connection_id: str, raw: Any) -> None:
        """Handle one inbound frame to completion."""
        await self.presence.touch(identity, connection_id)
        event_type = raw.get("type") if isinstance(raw, dict) else None
        if not isinstance(event_type, str) or event_type not in INBOUND_EVENT_TYPES:
            await self.connections.send(
                connection_id, ProtocolError(message=f"Unknown event type: {event_type}")
            )
            return

        error_event = ERROR_EVENT_FOR_TYPE[event_type]
        try:
            event = parse_inbound_event(raw)
        except ValidationError:
            await self.connections.send(
                connection_id, error_event(message=INVALID_PAYLOAD_MESSAGES[event_type])
            )
            return

        try:
            await self._handlers[type(event)](identity, connection_id, event)
        except MessagingError as e:
            if isinstance(e, TransientIOError):
                logger.error("Transient failure handling %s for %s", event_type, identity.id)
            else:
                logger.debug("Rejected %s from %s: %s", event_type, identity.id, e.message)
            violations = e.violations if isinstance(e, ContentRejectedError) else None
            await self.connections.send(
                connection_id, error_event(message=e.message, violations=violations)
            )
        except Exception:
            logger.exception("Error handling %s for user %s", event_type, identity.id)
            await self.connections.send(
                connection_id, error_event(message=FAILURE_MESSAGES[event_type])
            )

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def join_conversation(
        self, identity: ConnectionIdentity, connection_id: str, event: JoinConversation
    ) -> None:
        other_id = event.other_user_id
        if other_id is None or other_id == identity.id:
            raise ValidationFailedError("Invalid conversation data")

        with db_session(self.session_factory) as db:
            users = UserService(db)
            other = users.get_user(other_id)
            if other is None:
                raise NotFoundError("User not found")
            ensure_cross_role(identity.role, other.role)
            me = users.get_user(identity.id)
            if me is not None and users.is_blocked_between(me, other):
                raise ForbiddenError("Unable to join conversation")

        conversation_id = create_conversation_id(identity.id, other_id)
        room = conversation_room(conversation_id)
        self.connections.join(connection_id, room)
        await self.connections.send(
            connection_id,
            ConversationJoined(
                conversation_id=conversation_id, other_user_id=other_id, room_name=room
            ),
        )
        logger.debug("User %s joined conversation room %s", identity.id, room)

    async def leave_conversation(
        self, identity: ConnectionIdentity, connection_id: str, event: LeaveConversation
    ) -> None:
        other_id = event.other_user_id
        if other_id is None or other_id == identity.id:
            raise ValidationFailedError("Invalid conversation data")

        conversation_id = create_conversation_id(identity.id, other_id)
        self.connections.leave(connection_id, conversation_room(conversation_id))
        await self._stop_typing(identity.id, other_id)
        await self.connections.send(
            connection_id,
            ConversationLeft(conversation_id=conversation_id, other_user_id=other_id),
        )
        logger.debug("User %s left conversation %s", identity.id, conversation_id)

    # ------------------------------------------------------------------
    # Typing indicators
    # ------------------------------------------------------------------

    async def typing_start(
        self, identity: ConnectionIdentity, connection_id: str, event: TypingStart
    ) -> None:
        other_id = event.other_user_id
        if other_id is None or other_id == identity.id:
            raise ValidationFailedError("Invalid typing data")

        key = (identity.id, other_id)
        if key not in self.active_typing and not self._may_signal_typing(identity, other_id):
            return
        previous = self.active_typing.pop(key, None)
        if previous is not None:
            previous.task.cancel()
        self.active_typing[key] = TypingState(
            task=asyncio.create_task(self._expire_typing(key)),
            connection_id=connection_id,
            username=identity.username,
        )
        if previous is not None:
            return
        await self.connections.send_to_group(
            user_room(other_id),
            UserTyping(user_id=identity.id, username=identity.username, is_typing=True),
        )

    def _may_signal_typing(self, identity: ConnectionIdentity, other_id: UUID) -> bool:
        """Typing goes only to an existing cross-role peer; a block on either side drops it silently."""
        with db_session(self.session_factory) as db:
            users = UserService(db)
            other = users.get_user(other_id)
            if other is None:
                raise NotFoundError("User not found")
            ensure_cross_role(identity.role, other.role)
            me = users.get_user(identity.id)
            return me is None or not users.is_blocked_between(me, other)

    async def typing_stop(
        self, identity: ConnectionIdentity, connection_id: str, event: TypingStop
    ) -> None:
        other_id = event.other_user_id
        if other_id is None or other_id == identity.id:
            raise ValidationFailedError("Invalid typing data")
        await self._stop_typing(identity.id, other_id)

    async def _expire_typing(self, key: TypingKey) -> None:
        await asyncio.sleep(self.typing_timeout)
        state = self.active_typing.get(key)
        if state is not None and state.task is asyncio.current_task():
            await self._stop_typing(*key)

    async def _stop_typing(self, sender_id: UUID, receiver_id: UUID) -> bool:
        """Move a (sender, receiver) pair from typing to idle. No-op if already idle."""
        state = self.active_typing.pop((sender_id, receiver_id), None)
        if state is None:
            return False
        if state.task is not asyncio.current_task():
            state.task.cancel()
        await self.connections.send_to_group(
            user_room(receiver_id),
            UserTyping(user_id=sender_id, username=state.username, is_typing=False),
        )
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(
        self, identity: ConnectionIdentity, connection_id: str, event: SendMessage
    ) -> None:
        with db_session(self.session_factory) as db:
            sent = SendMessageCommand(db, self.settings, self.redis_client).execute(
                identity, event.receiver_id, event.content
            )
            receiver_id = sent.receiver.id
            receiver_online = self.record_delivery(db, sent)
            for_sender = sent.for_sender()
            for_receiver = sent.for_receiver()

        await self._stop_typing(identity.id, receiver_id)
        await self.connections.send(
            connection_id,
            MessageSent(message=for_sender.message, conversation=for_sender.conversation),
        )
        await self.publish_message(for_sender, for_receiver, receiver_online)
        logger.info("Real-time message sent from %s to %s", identity.id, receiver_id)

    def record_delivery(self, db: Session, sent: SentMessage) -> bool:
        """Advance a just-stored message to delivered if its receiver is online."""
        if not self.presence.is_online(sent.receiver.id):
            return False
        try:
            if MessageService(db).mark_delivered(sent.message.id):
                db.refresh(sent.message)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Error updating message %s status to delivered", sent.message.id)
        return True

    async def publish_message(
        self,
        for_sender: SendMessageResult,
        for_receiver: SendMessageResult,
        receiver_online: bool,
    ) -> None:
        """Push a stored message to the receiver and to its conversation room."""
        receiver_id = for_sender.conversation.other_user.id
        if receiver_online:
            await self.connections.send_to_group(
                user_room(receiver_id),
                NewMessage(message=for_receiver.message, conversation=for_receiver.conversation),
            )
        conversation_id = for_sender.conversation.conversation_id
        await self.connections.send_to_group(
            conversation_room(conversation_id),
            ConversationMessage(message=for_sender.message, conversation_id=conversation_id),
        )

    async def mark_as_read(
        self, identity: ConnectionIdentity, connection_id: str, event: MarkAsRead
    ) -> None:
        other_id = event.other_user_id
        if other_id is None or other_id == identity.id:
            raise ValidationFailedError("Invalid user ID")

        conversation_id = create_conversation_id(identity.id, other_id)
        with db_session(self.session_factory) as db:
            other = UserService(db).get_user(other_id)
            if other is None:
                raise NotFoundError("User not found")
            ensure_cross_role(identity.role, other.role)
            updated = MessageService(db).mark_read(conversation_id, identity.id)

        await self.connections.send_to_group(
            user_room(other_id),
            MessagesRead(
                read_by_user_id=identity.id,
                read_by_username=identity.username,
                conversation_id=conversation_id,
            ),
        )
        await self.connections.send(
            connection_id,
            MessagesMarkedRead(
                other_user_id=other_id, conversation_id=conversation_id, updated=updated
            ),
        )

    # ------------------------------------------------------------------
    # Blocking
    # ------------------------------------------------------------------

    async def block_user(
        self, identity: ConnectionIdentity, connection_id: str, event: BlockUser
    ) -> None:
        target_id = event.target_user_id
        if target_id is None or target_id == identity.id:
            raise ValidationFailedError("Invalid target user ID")

        with db_session(self.session_factory) as db:
            users = UserService(db)
            target = users.get_user(target_id)
            if target is None:
                raise NotFoundError("User not found")
            ensure_cross_role(identity.role, target.role, action="block")
            result = users.toggle_block(identity.id, target_id)

        await self.connections.send(
            connection_id,
            UserBlockToggled(
                target_user_id=target_id,
                action=result.action,
                blocked_users=result.blocked_users,
            ),
        )
        if result.action == BlockAction.BLOCKED:
            conversation_id = create_conversation_id(identity.id, target_id)
            self.connections.leave(connection_id, conversation_room(conversation_id))
            await self._stop_typing(identity.id, target_id)
            await self.connections.send_to_group(
                user_room(target_id),
                ConversationBlocked(blocked_by_user_id=identity.id, conversation_id=conversation_id),
            )
        logger.info("User %s %s user %s", identity.id, result.action, target_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def cleanup_connection(self, identity: ConnectionIdentity, connection_id: str) -> None:
        """Cancel every typing timer the connection armed."""
        owned = [
            key
            for key, state in self.active_typing.items()
            if state.connection_id == connection_id
        ]
        for sender_id, receiver_id in owned:
            await self._stop_typing(sender_id, receiver_id)
        logger.debug("Cleaned up connection %s for user %s", connection_id, identity.id)

    async def shutdown(self) -> None:
        for state in self.active_typing.values():
            state.task.cancel()
        self.active_typing.clear()

    def conversation_stats(self) -> dict:
        with db_session(self.session_factory) as db:
            totals = MessageService(db).get_global_stats()
        return {
            "total_messages": totals["total_messages"] - totals["deleted_messages"],
            "total_conversations": totals["total_conversations"],
            "active_connections": len(self.connections.active_connections),
            "active_rooms": self.connections.group_count(CONVERSATION_GROUP_PREFIX),
            "active_typing": len(self.active_typing),
            "timestamp": utcnow().isoformat(),
        }
