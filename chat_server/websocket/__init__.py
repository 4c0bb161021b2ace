"""Real-time delivery over Socket.IO.

``event_emitter`` publishes to topic rooms; ``hub`` owns connection
handling and is imported by the server when it builds the app.
"""
from chat_server.websocket.event_emitter import EventEmitter, set_socketio

__all__ = ['EventEmitter', 'set_socketio']
