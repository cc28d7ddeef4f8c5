"""
Realtime protocol contracts.

Inbound frames are JSON objects tagged by ``type`` and parsed into a closed
discriminated union, so each event has exactly one payload shape. Outbound
frames are ``{"event": <name>, "data": {...}}``; every outbound payload model
carries its event name.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, ClassVar, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from artchat.schemas.message import ConversationContext, MessageRead


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProtocolModel(BaseModel):
    """Wire payloads use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------------------------------------------------------
# Inbound events
# -----------------------------------------------------------------------------


class JoinConversation(ProtocolModel):
    type: Literal["join_conversation"]
    other_user_id: Optional[UUID] = None


class LeaveConversation(ProtocolModel):
    type: Literal["leave_conversation"]
    other_user_id: Optional[UUID] = None


class TypingStart(ProtocolModel):
    type: Literal["typing_start"]
    other_user_id: Optional[UUID] = None


class TypingStop(ProtocolModel):
    type: Literal["typing_stop"]
    other_user_id: Optional[UUID] = None


class SendMessage(ProtocolModel):
    type: Literal["send_message"]
    receiver_id: Optional[UUID] = None
    content: Optional[str] = None


class MarkAsRead(ProtocolModel):
    type: Literal["mark_as_read"]
    other_user_id: Optional[UUID] = None


class BlockUser(ProtocolModel):
    type: Literal["block_user"]
    target_user_id: Optional[UUID] = None


InboundEvent = Annotated[
    Union[
        JoinConversation,
        LeaveConversation,
        TypingStart,
        TypingStop,
        SendMessage,
        MarkAsRead,
        BlockUser,
    ],
    Field(discriminator="type"),
]

inbound_event_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)

INBOUND_EVENT_TYPES = frozenset(
    {
        "join_conversation",
        "leave_conversation",
        "typing_start",
        "typing_stop",
        "send_message",
        "mark_as_read",
        "block_user",
    }
)


def parse_inbound_event(raw: Any) -> InboundEvent:
    """Parse a decoded JSON frame. Raises pydantic.ValidationError on bad shape."""
    return inbound_event_adapter.validate_python(raw)


# -----------------------------------------------------------------------------
# Outbound events
# -----------------------------------------------------------------------------


class OutboundEvent(ProtocolModel):
    event: ClassVar[str]

    def to_frame(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "data": self.model_dump(mode="json", by_alias=True),
        }


class Connected(OutboundEvent):
    event: ClassVar[str] = "connected"
    message: str
    user_id: UUID
    timestamp: datetime = Field(default_factory=_now)


class ConversationJoined(OutboundEvent):
    event: ClassVar[str] = "conversation_joined"
    conversation_id: str
    other_user_id: UUID
    room_name: str


class ConversationLeft(OutboundEvent):
    event: ClassVar[str] = "conversation_left"
    conversation_id: str
    other_user_id: UUID


class UserTyping(OutboundEvent):
    event: ClassVar[str] = "user_typing"
    user_id: UUID
    username: str
    is_typing: bool


class MessageSent(OutboundEvent):
    event: ClassVar[str] = "message_sent"
    message: MessageRead
    conversation: ConversationContext


class NewMessage(OutboundEvent):
    event: ClassVar[str] = "new_message"
    message: MessageRead
    conversation: ConversationContext


class ConversationMessage(OutboundEvent):
    event: ClassVar[str] = "conversation_message"
    message: MessageRead
    conversation_id: str


class MessagesRead(OutboundEvent):
    event: ClassVar[str] = "messages_read"
    read_by_user_id: UUID
    read_by_username: str
    conversation_id: str


class MessagesMarkedRead(OutboundEvent):
    event: ClassVar[str] = "messages_marked_read"
    other_user_id: UUID
    conversation_id: str
    updated: int
    timestamp: datetime = Field(default_factory=_now)


class UserStatusChange(OutboundEvent):
    event: ClassVar[str] = "user_status_change"
    user_id: UUID
    username: str
    role: str
    is_online: bool
    timestamp: datetime = Field(default_factory=_now)


class UserBlockToggled(OutboundEvent):
    event: ClassVar[str] = "user_block_toggled"
    target_user_id: UUID
    action: str
    blocked_users: list[str]


class ConversationBlocked(OutboundEvent):
    event: ClassVar[str] = "conversation_blocked"
    blocked_by_user_id: UUID
    conversation_id: str


class ForceDisconnect(OutboundEvent):
    event: ClassVar[str] = "force_disconnect"
    reason: str
    timestamp: datetime = Field(default_factory=_now)


class ErrorEvent(OutboundEvent):
    event: ClassVar[str] = "error"
    message: str
    violations: Optional[list[str]] = None

    def to_frame(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "data": self.model_dump(mode="json", by_alias=True, exclude_none=True),
        }


class MessageError(ErrorEvent):
    event: ClassVar[str] = "message_error"


class ConversationError(ErrorEvent):
    event: ClassVar[str] = "conversation_error"


class TypingError(ErrorEvent):
    event: ClassVar[str] = "typing_error"


class BlockError(ErrorEvent):
    event: ClassVar[str] = "block_error"


class ProtocolError(ErrorEvent):
    event: ClassVar[str] = "protocol_error"


# Error event used when an inbound frame of the given type is rejected.
ERROR_EVENT_FOR_TYPE: dict[str, type[ErrorEvent]] = {
    "join_conversation": ConversationError,
    "leave_conversation": ConversationError,
    "typing_start": TypingError,
    "typing_stop": TypingError,
    "send_message": MessageError,
    "mark_as_read": MessageError,
    "block_user": BlockError,
}
