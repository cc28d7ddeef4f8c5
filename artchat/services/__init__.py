from artchat.services.conversation_service import ConversationService
from artchat.services.message_service import MessageService
from artchat.services.presence_tracker import PresenceTracker
from artchat.services.user_service import UserService

__all__ = [
    "ConversationService",
    "MessageService",
    "PresenceTracker",
    "UserService",
]
