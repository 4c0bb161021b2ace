"""DeliveryFanout: best-effort, at-most-once push of chat events to live sessions.

Publishing snapshots the payload and puts a job on the outbound queue; the
worker emits it to the topic's room. Nothing is acknowledged, buffered for
later subscribers, or retried.
"""
import copy
import logging
from typing import Any, Dict

from chat_server.utils.helpers import normalize_datetime_fields
from chat_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)


class Event:
    def __init__(self, topic: str, event_type: str, payload: Dict[str, Any]):
        self.topic = topic
        self.type = event_type
        self.payload = payload

    def to_dict(self) -> Dict[str, Any]:
        return {'topic': self.topic, 'type': self.type, 'payload': self.payload}


class DeliveryFanout:
    def __init__(self, worker, emitter=EventEmitter):
        self.worker = worker
        self.emitter = emitter

    def publish(self, topic: str, event_type: str, payload: Dict[str, Any]) -> Event:
        event = Event(topic, event_type, normalize_datetime_fields(copy.deepcopy(payload)))
        self.worker.submit(f"{event_type}->{topic}", self._deliver, event)
        return event

    def to_conversation(self, conversation_id: str, event_type: str, payload: Dict[str, Any]) -> Event:
        return self.publish(self.emitter.conversation_topic(conversation_id), event_type, payload)

    def to_user(self, user_id: str, event_type: str, payload: Dict[str, Any]) -> Event:
        return self.publish(self.emitter.user_topic(user_id), event_type, payload)

    def evict(self, user_id: str, conversation_id: str):
        """Queue removal of the user's live sessions from the conversation topic."""
        topic = self.emitter.conversation_topic(conversation_id)
        self.worker.submit(f"evict:{user_id}->{topic}", self.emitter.remove_user_from_topic, user_id, topic)

    def _deliver(self, event: Event):
        if not self.emitter.emit_to_topic(event.topic, event.type, event.payload):
            logger.warning("Dropped %s for %s: no realtime broker", event.type, event.topic)
