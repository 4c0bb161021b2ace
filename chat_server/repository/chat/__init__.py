from chat_server.repository.chat.conversation_repository import ConversationRepository
from chat_server.repository.chat.chat_message_repository import ChatMessageRepository
from chat_server.repository.chat.notification_repository import NotificationRepository

__all__ = [
    'ConversationRepository',
    'ChatMessageRepository',
    'NotificationRepository',
]
