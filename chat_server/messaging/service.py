"""Messaging service layer.

``MessagingService`` wires the repositories, the access gate, the outbound
worker and the domain components together. Routes and the socket hub get it
through ``get_messaging_service()``.
"""
import logging

from chat_server.messaging.conversations import ConversationManager
from chat_server.messaging.delivery import DeliveryFanout
from chat_server.messaging.messages import MessageLifecycle
from chat_server.messaging.reactions import ReactionLedger
from chat_server.notification.dispatcher import NotificationDispatcher
from chat_server.social.access_gate import AccessGate

logger = logging.getLogger(__name__)


class MessagingService:
    """Facade over the messaging components sharing one set of repositories."""

    def __init__(self, repos, worker):
        from config import config

        self.repos = repos
        self.worker = worker
        self.access_gate = AccessGate(repos.user, repos.user_settings)
        self.fanout = DeliveryFanout(worker)
        self.notifications = NotificationDispatcher(
            repos.notification, self.access_gate, self.fanout, worker,
            message_max_length=config.NOTIFICATION_MESSAGE_MAX_LENGTH,
        )
        self.conversations = ConversationManager(
            repos.conversation, repos.chat_message, repos.user,
            self.access_gate, self.fanout, self.notifications,
        )
        self.reactions = ReactionLedger(repos.chat_message, self.access_gate, self.fanout)
        self.messages = MessageLifecycle(
            self.conversations, repos.chat_message, repos.conversation, repos.user, repos.post,
            self.access_gate, self.fanout, self.notifications, self.reactions, worker,
        )


# Singleton instance
_messaging_service = None


def get_messaging_service() -> MessagingService:
    """Get the messaging service singleton."""
    global _messaging_service
    if _messaging_service is None:
        from chat_server.repository.mongo_helper import MongoRepositorySingleton
        from chat_server.notification.worker import get_outbound_worker
        _messaging_service = MessagingService(MongoRepositorySingleton.get_instance(), get_outbound_worker())
    return _messaging_service


def set_messaging_service(service: MessagingService):
    global _messaging_service
    _messaging_service = service


def reset_messaging_service():
    global _messaging_service
    _messaging_service = None
