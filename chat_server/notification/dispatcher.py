"""NotificationDispatcher: preference-gated, fire-and-forget notifications.

``dispatch`` only queues work. The queued job checks the recipient's
preferences, persists the record and pushes ``new_notification`` to the
recipient's user topic. Failures are logged by the outbound worker and
never reach the operation that triggered them.
"""
import logging
from typing import Iterable, Optional

from chat_server.notification.models import Notification
from chat_server.social.models import NotificationEvent
from chat_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, notification_repo, access_gate, fanout, worker, message_max_length=200):
        self.notification_repo = notification_repo
        self.access_gate = access_gate
        self.fanout = fanout
        self.worker = worker
        self.message_max_length = message_max_length

    def dispatch(
        self,
        actor_id: str,
        recipient_ids: Iterable[str],
        notification_type: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action_url: Optional[str] = None,
        event_type: NotificationEvent = NotificationEvent.MESSAGE_RECEIVED,
    ) -> int:
        """Queue a notification for every recipient except the actor. Returns how many were queued."""
        queued = 0
        for recipient_id in dict.fromkeys(recipient_ids):
            if recipient_id == actor_id:
                continue
            notification = Notification(
                recipient_id=recipient_id,
                sender_id=actor_id,
                notification_type=notification_type,
                message=self.build_message(message),
                entity_type=entity_type,
                entity_id=entity_id,
                action_url=action_url,
            )
            self.worker.submit(f"notify->{recipient_id}", self.deliver, notification, event_type)
            queued += 1
        return queued

    def deliver(self, notification: Notification, event_type: NotificationEvent) -> bool:
        if not self.access_gate.should_notify(notification.recipient_id, event_type):
            logger.debug("Notification for %s muted by preference %s", notification.recipient_id, event_type.value)
            return False
        self.notification_repo.create(notification.to_db_doc())
        self.fanout.to_user(notification.recipient_id, EventEmitter.NOTIFICATION_NEW, {'notification': notification.to_dict()})
        logger.info("Notify %s: %s", notification.recipient_id, notification.message)
        return True

    def build_message(self, message: str) -> str:
        message = (message or '').strip()
        if len(message) > self.message_max_length:
            return message[:self.message_max_length - 3].rstrip() + '...'
        return message
