from artchat.models.message import Message
from artchat.models.user import User

__all__ = [
    "Message",
    "User",
]
