"""Enumerations and fixed names used by the messaging core."""

from enum import StrEnum


class UserRole(StrEnum):
    """Marketplace roles. Messaging only happens across the artist/buyer boundary."""

    ARTIST = "artist"
    BUYER = "buyer"
    ADMIN = "admin"


class MessageStatus(StrEnum):
    """Delivery status; only ever advances SENT -> DELIVERED -> READ."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


STATUS_ORDER = {
    MessageStatus.SENT: 0,
    MessageStatus.DELIVERED: 1,
    MessageStatus.READ: 2,
}


class BlockAction(StrEnum):
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"


USER_GROUP_PREFIX = "user_"
CONVERSATION_GROUP_PREFIX = "conversation_"
