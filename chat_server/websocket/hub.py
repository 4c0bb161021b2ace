"""WebSocket hub for chat sessions.

A connection authenticates with a JWT and is joined to its ``user:{id}``
room plus the ``conversation:{id}`` room of every conversation it belongs
to at connect time. Conversations joined later are picked up with
``subscribe``.
"""
import logging
from typing import Dict, List, Optional, Callable

from flask import Flask, request
from flask_socketio import SocketIO, emit, join_room, leave_room

from chat_server.exception.ChatError import ChatError
from chat_server.exception.UnauthorizedError import UnauthorizedError
from chat_server.security.authentication import AuthSecurity
from chat_server.utils.time_utils import utc_now
from chat_server.websocket.event_emitter import EventEmitter, set_socketio, set_session_lookup

logger = logging.getLogger(__name__)


class WebSocketHub:
    """Registers Socket.IO handlers and tracks which user owns each socket."""

    def __init__(self, service_getter: Callable = None):
        self.socketio = None
        self.service_getter = service_getter
        self.connected_users: Dict[str, str] = {}

    @property
    def service(self):
        if self.service_getter is None:
            from chat_server.messaging.service import get_messaging_service
            return get_messaging_service()
        return self.service_getter()

    def init_app(self, app: Flask, socketio: SocketIO):
        """Initialize the WebSocket hub."""
        logger.debug("WS_HUB: init app=%s, mode=%s", app.name, getattr(socketio, 'async_mode', '?'))
        self.socketio = socketio
        self.app = app
        set_socketio(socketio)
        set_session_lookup(self.sessions_for)
        self._register_handlers()

    def sessions_for(self, user_id: str) -> List[str]:
        """Session ids currently connected as ``user_id``."""
        return [sid for sid, uid in list(self.connected_users.items()) if uid == user_id]

    def _register_handlers(self):
        """Register WebSocket event handlers."""

        @self.socketio.on_error_default
        def default_error_handler(e):
            logger.error("WS error: %s", e)

        # =====================================================================
        # Connection Events
        # =====================================================================

        @self.socketio.on('connect')
        def handle_connect(auth=None):
            """Authenticate and join the user's rooms."""
            socket_id = request.sid
            token = None
            if auth and isinstance(auth, dict):
                token = auth.get('token')
            if not token:
                token = request.headers.get('Authorization', '').replace('Bearer ', '')
            if not token:
                token = request.args.get('token', '')

            user_id = self._authenticate(token)
            if not user_id:
                logger.warning("WS auth failed: sid=%s", socket_id)
                return False

            self.connected_users[socket_id] = user_id
            join_room(EventEmitter.user_topic(user_id))
            conversation_ids = self.service.repos.conversation.conversation_ids_for_user(user_id)
            for conversation_id in conversation_ids:
                join_room(EventEmitter.conversation_topic(conversation_id))

            logger.info("WS connected: user=%s, sid=%s, conversations=%d", user_id, socket_id, len(conversation_ids))
            emit('connected', {'message': 'Connected', 'userId': user_id, 'conversations': conversation_ids})
            return True

        @self.socketio.on('disconnect')
        def handle_disconnect(*args):
            user_id = self.connected_users.pop(request.sid, None)
            if user_id:
                logger.debug("WS disconnected: user=%s, sid=%s", user_id, request.sid)

        # =====================================================================
        # Subscription Events
        # =====================================================================

        @self.socketio.on('subscribe')
        def handle_subscribe(data):
            """Join a conversation topic the user participates in."""
            conversation_id = self._conversation_for_socket(data)
            if not conversation_id:
                return
            join_room(EventEmitter.conversation_topic(conversation_id))
            emit('subscribed', {'conversationId': conversation_id})

        @self.socketio.on('unsubscribe')
        def handle_unsubscribe(data):
            conversation_id = (data or {}).get('conversationId')
            if conversation_id:
                leave_room(EventEmitter.conversation_topic(conversation_id))
                emit('unsubscribed', {'conversationId': conversation_id})

        # =====================================================================
        # Typing Indicators
        # =====================================================================

        @self.socketio.on('typing')
        def handle_typing(data):
            self._relay_typing(data, EventEmitter.TYPING_START)

        @self.socketio.on('stop_typing')
        def handle_stop_typing(data):
            self._relay_typing(data, EventEmitter.TYPING_STOP)

        # =====================================================================
        # Ping/Pong
        # =====================================================================

        @self.socketio.on('ping')
        def handle_ping(data=None):
            emit('pong', {'timestamp': utc_now().isoformat()})

    def _relay_typing(self, data, event):
        conversation_id = self._conversation_for_socket(data)
        if not conversation_id:
            return
        emit(event, {'conversationId': conversation_id, 'userId': self.connected_users.get(request.sid)},
             to=EventEmitter.conversation_topic(conversation_id), include_self=False)

    def _conversation_for_socket(self, data) -> Optional[str]:
        """Resolve ``conversationId`` from the payload if the socket's user may see it."""
        user_id = self.connected_users.get(request.sid)
        if not user_id:
            emit('error', {'kind': UnauthorizedError.kind, 'error': 'Not authenticated'})
            return None
        conversation_id = (data or {}).get('conversationId')
        if not conversation_id:
            emit('error', {'kind': 'bad_request', 'error': 'conversationId required'})
            return None
        try:
            self.service.conversations.load_for_participant(conversation_id, user_id)
        except ChatError as e:
            emit('error', dict(e.to_dict(), conversationId=conversation_id))
            return None
        return conversation_id

    def _authenticate(self, token: str) -> Optional[str]:
        if not token:
            return None
        try:
            return AuthSecurity.user_id_from_payload(AuthSecurity.decode_token(token))
        except UnauthorizedError as e:
            logger.debug("WS auth error: %s", e)
            return None


# Singleton instance
_hub_instance: Optional[WebSocketHub] = None


def get_websocket_hub() -> WebSocketHub:
    """Get WebSocket hub singleton."""
    global _hub_instance
    if _hub_instance is None:
        _hub_instance = WebSocketHub()
    return _hub_instance


def init_websocket_hub(app: Flask, socketio: SocketIO) -> WebSocketHub:
    """Initialize WebSocket hub."""
    hub = get_websocket_hub()
    hub.init_app(app, socketio)
    return hub
