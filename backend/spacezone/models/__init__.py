# backend/spacezone/models/__init__.py
from .user import User
from .friendship import Friendship
from .conversation import Conversation, ConversationParticipant
from .message import Message, MessageRead

__all__ = ["User", "Friendship", "Conversation", "ConversationParticipant", "Message", "MessageRead"]
