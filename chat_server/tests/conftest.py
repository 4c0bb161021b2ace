"""
Test configuration and fixtures for chat tests.

This module provides:
- An in-memory MongoDB (mongomock) bound to the repository singleton
- An outbound worker that is never started; tests call ``worker.drain()``
- A recording broker standing in for the Socket.IO server
- A fully wired MessagingService and a small social graph of users

Usage:
    def test_example(service, direct_ab, worker, broker):
        service.messages.send(direct_ab.conversation_id, 'alice', text_request('hi'))
        worker.drain()
        assert broker.events('new_message')
"""

import mongomock
import pytest

from chat_server.dto.chat_dto import ConversationCreateRequest, MessageSendRequest, ReactionRequest
from chat_server.messaging.service import MessagingService, set_messaging_service, reset_messaging_service
from chat_server.notification.worker import OutboundWorker
from chat_server.repository.mongo_helper import MongoRepositorySingleton
from chat_server.security.authentication import AuthSecurity
from chat_server.websocket.event_emitter import set_socketio, set_session_lookup

TEST_SECRET = "test-chat-secret"


class RecordingBroker:
    """Captures ``emit(event, payload, to=room)`` and room removals instead of sending them."""

    def __init__(self):
        self.emitted = []
        self.left = []

    @property
    def server(self):
        return self

    def leave_room(self, sid, room, namespace=None):
        self.left.append((sid, room))

    def emit(self, event, payload, to=None):
        self.emitted.append({"event": event, "payload": payload, "to": to})

    def events(self, event=None, to=None):
        return [
            e for e in self.emitted
            if (event is None or e["event"] == event) and (to is None or e["to"] == to)
        ]

    def names(self):
        return [e["event"] for e in self.emitted]

    def clear(self):
        self.emitted = []
        self.left = []


# =============================================================================
# Helpers
# =============================================================================


def text_request(content, reply_to=None):
    return MessageSendRequest(content=content, message_type="text", reply_to=reply_to)


def reaction(category, name):
    return ReactionRequest(category, name)


def auth_header(user_id):
    token = AuthSecurity.encode_token({"user_id": user_id})
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def db():
    """A fresh in-memory database per test."""
    return mongomock.MongoClient().chat_test


@pytest.fixture
def repos(db):
    MongoRepositorySingleton.use_db(db)
    yield MongoRepositorySingleton.get_instance()
    MongoRepositorySingleton.reset()


@pytest.fixture
def worker():
    """Outbound worker that is never started; jobs run when the test drains it."""
    return OutboundWorker(poll_seconds=0.05)


@pytest.fixture
def broker():
    recording = RecordingBroker()
    set_socketio(recording)
    yield recording
    set_socketio(None)
    set_session_lookup(None)


@pytest.fixture
def service(repos, worker, broker):
    AuthSecurity.configure(TEST_SECRET)
    svc = MessagingService(repos, worker)
    set_messaging_service(svc)
    yield svc
    reset_messaging_service()


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def make_user(repos):
    """Create a user profile and, unless ``settings`` is None, a settings record."""

    def _make(user_id, following=(), settings=None, **profile):
        repos.user.create({
            "user_id": user_id,
            "username": profile.get("username", user_id),
            "name": profile.get("name", user_id.title()),
            "avatar": profile.get("avatar"),
            "following": list(following),
        })
        if settings is not None:
            repos.user_settings.create(dict(settings, user_id=user_id))
        return user_id

    return _make


def settings_doc(allow_messages_from="friends", blocked=(), muted=(), deactivated=False):
    return {
        "privacy": {"allow_messages_from": allow_messages_from, "profile_visibility": "public"},
        "security": {"blocked_users": list(blocked)},
        "notifications": {"in_app": {key: False for key in muted}},
        "account": {"is_deactivated": deactivated},
    }


@pytest.fixture
def users(make_user):
    """alice, bob, carol and dave all follow each other and keep friends-only privacy."""
    friends = ["alice", "bob", "carol", "dave"]
    for uid in friends:
        make_user(uid, following=[f for f in friends if f != uid], settings=settings_doc())
    return friends


@pytest.fixture
def stranger(make_user):
    """A user nobody follows, with friends-only privacy."""
    return make_user("eve", settings=settings_doc())


def update_settings(repos, user_id, changes):
    """Apply dotted-path ``$set`` changes to a user's settings record."""
    repos.user_settings.collection.update_one({"user_id": user_id}, {"$set": changes})


# =============================================================================
# Conversation Fixtures
# =============================================================================


@pytest.fixture
def direct_ab(service, users, worker, broker):
    """Direct conversation between alice and bob, with side effects flushed."""
    conversation, _ = service.conversations.create(
        "alice", ConversationCreateRequest(participant_ids=["bob"], type="direct"))
    worker.drain()
    broker.clear()
    return conversation


@pytest.fixture
def group_abc(service, users, worker, broker):
    """Group 'Team' with alice (admin), bob and carol."""
    conversation, _ = service.conversations.create(
        "alice", ConversationCreateRequest(participant_ids=["bob", "carol"], type="group", name="Team"))
    worker.drain()
    broker.clear()
    return conversation


@pytest.fixture
def message_from_alice(service, direct_ab, worker, broker):
    message = service.messages.send(direct_ab.conversation_id, "alice", text_request("hello bob"))
    worker.drain()
    broker.clear()
    return message
