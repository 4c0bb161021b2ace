"""Topic-based event emitter for real-time WebSocket communication.

Sessions join Socket.IO rooms named after topics:
- ``conversation:{id}`` for everyone viewing a conversation
- ``user:{id}`` for every connected device of a user

Usage:
    from chat_server.websocket.event_emitter import EventEmitter

    EventEmitter.emit_to_topic(EventEmitter.conversation_topic(cid), EventEmitter.MESSAGE_NEW, data)
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from chat_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

# Will be set when the WebSocket hub initializes
_socketio = None
_session_lookup: Optional[Callable[[str], List[str]]] = None


def set_socketio(socketio_instance):
    """Set the Socket.IO instance (or any object with a compatible ``emit``)."""
    global _socketio
    _socketio = socketio_instance
    logger.debug("EventEmitter initialized with Socket.IO instance")


def set_session_lookup(lookup: Optional[Callable[[str], List[str]]]):
    """Set the callable mapping a user id to that user's connected session ids."""
    global _session_lookup
    _session_lookup = lookup


def get_socketio():
    return _socketio


class EventEmitter:
    """Centralized emitter for chat events."""

    # =========================================================================
    # Event Type Constants
    # =========================================================================

    # Message Events
    MESSAGE_NEW = 'new_message'
    MESSAGE_EDITED = 'message_edited'
    MESSAGE_DELETED = 'message_deleted'
    MESSAGES_READ = 'messages_read'
    MESSAGE_PINNED = 'message_pinned'
    MESSAGE_UNPINNED = 'message_unpinned'

    # Reaction Events (add and update share one name)
    REACTION_ADDED = 'reaction_added'
    REACTION_REMOVED = 'reaction_removed'

    # Conversation Events
    CONVERSATION_UPDATED = 'conversation_updated'
    CONVERSATION_DELETED = 'conversation_deleted'

    # Notification Events
    NOTIFICATION_NEW = 'new_notification'

    # Typing Events
    TYPING_START = 'user_typing'
    TYPING_STOP = 'user_stop_typing'

    # =========================================================================
    # Topics
    # =========================================================================

    @staticmethod
    def conversation_topic(conversation_id: str) -> str:
        return f"conversation:{conversation_id}"

    @staticmethod
    def user_topic(user_id: str) -> str:
        return f"user:{user_id}"

    # =========================================================================
    # Emit Methods
    # =========================================================================

    @staticmethod
    def emit_to_topic(topic: str, event: str, data: Dict[str, Any]) -> bool:
        """Emit event to every session subscribed to ``topic``.

        Args:
            topic: Room name, e.g. ``conversation:abc``
            event: Event name, e.g. ``new_message``
            data: Event payload

        Returns:
            True if the event was handed to the Socket.IO server
        """
        if not _socketio:
            logger.error("EVENT_EMITTER: Socket.IO NOT initialized, cannot emit %s to %s", event, topic)
            return False

        target, _, target_id = topic.partition(':')
        payload = {
            **data,
            '_event': event,
            '_timestamp': utc_now().isoformat(),
            '_target': target,
            '_target_id': target_id,
        }
        _socketio.emit(event, payload, to=topic)
        logger.debug("EVENT_EMITTER: Emitted '%s' to %s", event, topic)
        return True

    @staticmethod
    def remove_user_from_topic(user_id: str, topic: str) -> int:
        """Take every connected session of ``user_id`` out of ``topic``.

        Returns:
            Number of sessions removed from the room
        """
        if not _socketio or _session_lookup is None:
            return 0
        session_ids = _session_lookup(user_id)
        for sid in session_ids:
            _socketio.server.leave_room(sid, topic, namespace='/')
        if session_ids:
            logger.debug("EVENT_EMITTER: Removed %d session(s) of %s from %s", len(session_ids), user_id, topic)
        return len(session_ids)
