"""Direct and group messaging.

Components:
- ConversationManager: conversation aggregates (create, update, leave/delete)
- MessageLifecycle: message aggregates (send, edit, delete, forward, read, pin, star)
- ReactionLedger: one reaction per user per message
- DeliveryFanout: best-effort push to conversation and user topics
"""
from chat_server.messaging.models import (
    Conversation, ConversationType, Message, MessageType, MessageContent, Reaction, ReactionResult,
)
from chat_server.messaging.service import MessagingService, get_messaging_service, reset_messaging_service

__all__ = [
    'Conversation', 'ConversationType', 'Message', 'MessageType', 'MessageContent', 'Reaction',
    'ReactionResult', 'MessagingService', 'get_messaging_service', 'reset_messaging_service',
]
