"""
Tests for MessageLifecycle.

This module covers:
- Sending (content rules, message variants, replyTo, privacy re-check)
- Edit and delete (sender only, hard delete, no cascade)
- Forwarding
- History paging and message info
- Read receipts (idempotence, own messages, blocks)
- Pins (admin rule, interaction block) and stars
"""

from datetime import datetime, timedelta

import pytest

from chat_server.dto.chat_dto import MessageSendRequest
from chat_server.exception.ChatError import BadRequestError, ForbiddenError, NotFoundError
from chat_server.messaging.models import MessageType
from chat_server.tests.conftest import text_request, update_settings


# =============================================================================
# Send
# =============================================================================


class TestSend:
    def test_send_persists_and_fans_out(self, service, direct_ab, worker, broker, repos):
        message = service.messages.send(direct_ab.conversation_id, "alice", text_request("  hi bob  "))

        assert message.content.text == "hi bob"
        assert message.message_type == MessageType.TEXT
        assert repos.chat_message.get(message.message_id)["content"] == "hi bob"
        assert service.conversations.load(direct_ab.conversation_id).last_message == message.message_id

        # Nothing is pushed until the outbound queue runs
        assert broker.emitted == []
        worker.drain()
        events = broker.events("new_message", to=f"conversation:{direct_ab.conversation_id}")
        assert len(events) == 1
        assert events[0]["payload"]["message"]["id"] == message.message_id

    @pytest.mark.parametrize("content", [None, "", "   ", "x" * 1001])
    def test_invalid_content_rejected(self, service, direct_ab, content):
        with pytest.raises(BadRequestError):
            service.messages.send(direct_ab.conversation_id, "alice", text_request(content))

    def test_max_length_accepted(self, service, direct_ab):
        message = service.messages.send(direct_ab.conversation_id, "alice", text_request("x" * 1000))
        assert len(message.content.text) == 1000

    def test_non_participant_forbidden(self, service, direct_ab):
        with pytest.raises(ForbiddenError):
            service.messages.send(direct_ab.conversation_id, "carol", text_request("let me in"))

    def test_missing_conversation_not_found(self, service, users):
        with pytest.raises(NotFoundError):
            service.messages.send("missing", "alice", text_request("hello?"))

    def test_deactivated_sender_forbidden(self, service, direct_ab, repos):
        update_settings(repos, "alice", {"account.is_deactivated": True})

        with pytest.raises(ForbiddenError) as exc:
            service.messages.send(direct_ab.conversation_id, "alice", text_request("hi"))
        assert exc.value.reason == "deactivated"

    def test_direct_send_rechecks_privacy(self, service, direct_ab, repos):
        update_settings(repos, "bob", {"privacy.allow_messages_from": "none"})

        with pytest.raises(ForbiddenError) as exc:
            service.messages.send(direct_ab.conversation_id, "alice", text_request("hi"))
        assert exc.value.reason == "none"

    def test_group_send_ignores_messaging_tier(self, service, group_abc, repos):
        update_settings(repos, "bob", {"privacy.allow_messages_from": "none"})
        message = service.messages.send(group_abc.conversation_id, "alice", text_request("team update"))
        assert message.conversation_id == group_abc.conversation_id

    def test_reply_to_same_conversation(self, service, direct_ab, message_from_alice):
        reply = service.messages.send(
            direct_ab.conversation_id, "bob", text_request("hi back", reply_to=message_from_alice.message_id))
        assert reply.reply_to == message_from_alice.message_id

    def test_reply_to_other_conversation_rejected(self, service, direct_ab, group_abc, message_from_alice):
        with pytest.raises(BadRequestError):
            service.messages.send(
                group_abc.conversation_id, "alice", text_request("x", reply_to=message_from_alice.message_id))

    def test_reply_to_missing_message_rejected(self, service, direct_ab):
        with pytest.raises(BadRequestError):
            service.messages.send(direct_ab.conversation_id, "alice", text_request("x", reply_to="nope"))

    def test_image_requires_file_url(self, service, direct_ab):
        with pytest.raises(BadRequestError):
            service.messages.send(direct_ab.conversation_id, "alice",
                                  MessageSendRequest(content="look", message_type="image"))

        message = service.messages.send(direct_ab.conversation_id, "alice", MessageSendRequest(
            content="look", message_type="image", file_url="https://cdn/p.png", file_name="p.png"))
        data = message.to_dict()
        assert data["messageType"] == "image"
        assert data["fileUrl"] == "https://cdn/p.png"
        assert "postId" not in data

    def test_unknown_message_type_rejected(self, service, direct_ab):
        with pytest.raises(BadRequestError):
            service.messages.send(direct_ab.conversation_id, "alice",
                                  MessageSendRequest(content="x", message_type="sticker"))

    def test_notifies_other_participants(self, service, group_abc, worker, repos):
        message = service.messages.send(group_abc.conversation_id, "alice", text_request("hello team"))
        worker.drain()

        for recipient in ("bob", "carol"):
            docs = [d for d in repos.notification.find_for_recipient(recipient) if d["entity_type"] == "message"]
            assert len(docs) == 1
            assert docs[0]["message"] == "alice sent a new message"
            assert docs[0]["entity_id"] == message.message_id
            assert docs[0]["action_url"] == f"/chat/{group_abc.conversation_id}"
        assert [d for d in repos.notification.find_for_recipient("alice") if d["entity_type"] == "message"] == []


# =============================================================================
# Share post
# =============================================================================


class TestSharePost:
    def test_share_post_sends_post_variant_and_counts(self, service, direct_ab, repos, worker):
        repos.post.create({"_id": "post-1"})

        message = service.messages.share_post(direct_ab.conversation_id, "alice", "post-1")
        worker.drain()

        assert message.message_type == MessageType.POST
        assert message.content.post_id == "post-1"
        assert message.content.text == "Shared a post"
        assert repos.post.find_one({"_id": "post-1"})["share_count"] == 1

    def test_share_post_requires_post_id(self, service, direct_ab):
        with pytest.raises(BadRequestError):
            service.messages.share_post(direct_ab.conversation_id, "alice", None)

    def test_missing_post_does_not_fail_send(self, service, direct_ab, worker):
        message = service.messages.share_post(direct_ab.conversation_id, "alice", "ghost-post", "look")
        worker.drain()
        assert message.content.text == "look"


# =============================================================================
# Edit / delete
# =============================================================================


class TestEditDelete:
    def test_sender_edits(self, service, message_from_alice, worker, broker):
        edited = service.messages.edit(message_from_alice.message_id, "alice", " updated ")
        worker.drain()

        assert edited.content.text == "updated"
        assert edited.edited is True
        assert edited.edited_at is not None
        assert broker.names() == ["message_edited"]

    def test_other_user_cannot_edit(self, service, message_from_alice):
        with pytest.raises(ForbiddenError):
            service.messages.edit(message_from_alice.message_id, "bob", "hijack")

    def test_edit_validates_content(self, service, message_from_alice):
        with pytest.raises(BadRequestError):
            service.messages.edit(message_from_alice.message_id, "alice", "  ")

    def test_edit_missing_message(self, service, users):
        with pytest.raises(NotFoundError):
            service.messages.edit("missing", "alice", "x")

    def test_sender_deletes(self, service, message_from_alice, worker, broker, repos):
        result = service.messages.delete(message_from_alice.message_id, "alice")
        worker.drain()

        assert result["messageId"] == message_from_alice.message_id
        assert repos.chat_message.get(message_from_alice.message_id) is None
        assert broker.names() == ["message_deleted"]

    def test_other_user_cannot_delete(self, service, message_from_alice):
        with pytest.raises(ForbiddenError):
            service.messages.delete(message_from_alice.message_id, "bob")

    def test_delete_leaves_pins_stars_and_replies(self, service, direct_ab, message_from_alice, repos):
        mid = message_from_alice.message_id
        service.messages.pin(direct_ab.conversation_id, mid, "bob")
        service.messages.star(mid, "bob")
        reply = service.messages.send(direct_ab.conversation_id, "bob", text_request("re", reply_to=mid))

        service.messages.delete(mid, "alice")

        assert mid in service.conversations.load(direct_ab.conversation_id).pinned_messages
        assert mid in service.messages.list_starred("bob")
        assert service.messages.load(reply.message_id).reply_to == mid


# =============================================================================
# Forward
# =============================================================================


class TestForward:
    def test_forward_copies_content_as_actor(self, service, direct_ab, group_abc, message_from_alice, worker, broker):
        forwarded = service.messages.forward(message_from_alice.message_id, group_abc.conversation_id, "bob")
        worker.drain()

        assert forwarded.sender_id == "bob"
        assert forwarded.conversation_id == group_abc.conversation_id
        assert forwarded.content.text == "hello bob"
        assert forwarded.message_id != message_from_alice.message_id
        assert broker.events("new_message", to=f"conversation:{group_abc.conversation_id}")

    def test_forward_notification(self, service, group_abc, message_from_alice, worker, repos):
        service.messages.forward(message_from_alice.message_id, group_abc.conversation_id, "alice")
        worker.drain()

        docs = [d for d in repos.notification.find_for_recipient("carol") if d["entity_type"] == "message"]
        assert len(docs) == 1
        assert docs[0]["message"] == "alice forwarded a message"
        assert docs[0]["action_url"] == f"/conversation/{group_abc.conversation_id}"

    def test_forward_post_drops_reference(self, service, direct_ab, group_abc, worker):
        shared = service.messages.share_post(direct_ab.conversation_id, "alice", "post-9")
        forwarded = service.messages.forward(shared.message_id, group_abc.conversation_id, "alice")

        assert forwarded.message_type == MessageType.POST
        assert forwarded.content.post_id is None

    def test_forward_requires_target_participation(self, service, message_from_alice, users):
        from chat_server.dto.chat_dto import ConversationCreateRequest
        other, _ = service.conversations.create(
            "carol", ConversationCreateRequest(participant_ids=["dave"], type="direct"))

        with pytest.raises(ForbiddenError):
            service.messages.forward(message_from_alice.message_id, other.conversation_id, "alice")

    def test_forward_missing_source(self, service, group_abc):
        with pytest.raises(NotFoundError):
            service.messages.forward("missing", group_abc.conversation_id, "alice")


# =============================================================================
# History
# =============================================================================


class TestHistory:
    def test_pages_newest_first_each_chronological(self, service, direct_ab, repos):
        sent = [service.messages.send(direct_ab.conversation_id, "alice", text_request(f"m{i}")) for i in range(5)]
        base = datetime(2024, 1, 1)
        for i, message in enumerate(sent):
            repos.chat_message.collection.update_one(
                {"_id": message.message_id}, {"$set": {"created_at": base + timedelta(minutes=i)}})

        def page(n):
            return [m.content.text for m in service.messages.get_messages(direct_ab.conversation_id, "bob", n, 2)]

        assert page(1) == ["m3", "m4"]
        assert page(2) == ["m1", "m2"]
        assert page(3) == ["m0"]
        assert page(4) == []

    def test_history_requires_participation(self, service, direct_ab):
        with pytest.raises(ForbiddenError):
            service.messages.get_messages(direct_ab.conversation_id, "carol")

    def test_message_info_includes_receipts(self, service, direct_ab, message_from_alice):
        service.messages.mark_read(direct_ab.conversation_id, "bob")

        info = service.messages.message_info(message_from_alice.message_id, "alice")
        assert [r["userId"] for r in info.to_dict()["readBy"]] == ["bob"]

        with pytest.raises(ForbiddenError):
            service.messages.message_info(message_from_alice.message_id, "carol")


# =============================================================================
# Read receipts
# =============================================================================


class TestMarkRead:
    def test_marks_messages_from_others_only(self, service, direct_ab, repos):
        service.messages.send(direct_ab.conversation_id, "alice", text_request("one"))
        service.messages.send(direct_ab.conversation_id, "alice", text_request("two"))
        own = service.messages.send(direct_ab.conversation_id, "bob", text_request("three"))

        assert service.messages.mark_read(direct_ab.conversation_id, "bob") == 2
        assert repos.chat_message.get(own.message_id)["read_by"] == []

    def test_idempotent(self, service, direct_ab, repos):
        for text in ("one", "two"):
            service.messages.send(direct_ab.conversation_id, "alice", text_request(text))

        service.messages.mark_read(direct_ab.conversation_id, "bob")
        once = {m["_id"]: [r["user_id"] for r in m["read_by"]] for m in repos.chat_message.find()}

        for _ in range(3):
            assert service.messages.mark_read(direct_ab.conversation_id, "bob") == 0
        again = {m["_id"]: [r["user_id"] for r in m["read_by"]] for m in repos.chat_message.find()}

        assert once == again
        assert all(readers == ["bob"] for readers in again.values())

    def test_event_only_when_something_changed(self, service, message_from_alice, direct_ab, worker, broker):
        service.messages.mark_read(direct_ab.conversation_id, "bob")
        service.messages.mark_read(direct_ab.conversation_id, "bob")
        worker.drain()

        events = broker.events("messages_read")
        assert len(events) == 1
        assert events[0]["payload"]["count"] == 1
        assert events[0]["payload"]["userId"] == "bob"

    def test_ignores_blocks(self, service, message_from_alice, direct_ab, repos):
        update_settings(repos, "bob", {"security.blocked_users": ["alice"]})
        assert service.messages.mark_read(direct_ab.conversation_id, "bob") == 1

    def test_requires_participation(self, service, direct_ab):
        with pytest.raises(ForbiddenError):
            service.messages.mark_read(direct_ab.conversation_id, "carol")


# =============================================================================
# Pins
# =============================================================================


class TestPins:
    def test_direct_participant_pins_and_unpins(self, service, direct_ab, message_from_alice, worker, broker):
        mid = message_from_alice.message_id

        pinned = service.messages.pin(direct_ab.conversation_id, mid, "bob")
        assert pinned.pinned_messages == [mid]
        # Pinning twice keeps a single entry
        assert service.messages.pin(direct_ab.conversation_id, mid, "alice").pinned_messages == [mid]

        unpinned = service.messages.unpin(direct_ab.conversation_id, mid, "alice")
        assert unpinned.pinned_messages == []
        worker.drain()
        assert broker.names() == ["message_pinned", "message_pinned", "message_unpinned"]

    def test_group_pin_requires_admin(self, service, group_abc):
        message = service.messages.send(group_abc.conversation_id, "bob", text_request("pin me"))

        with pytest.raises(ForbiddenError):
            service.messages.pin(group_abc.conversation_id, message.message_id, "bob")
        pinned = service.messages.pin(group_abc.conversation_id, message.message_id, "alice")
        assert pinned.pinned_messages == [message.message_id]

    def test_pin_message_from_other_conversation(self, service, group_abc, message_from_alice):
        with pytest.raises(NotFoundError):
            service.messages.pin(group_abc.conversation_id, message_from_alice.message_id, "alice")

    def test_pin_blocked_by_sender(self, service, group_abc, repos):
        message = service.messages.send(group_abc.conversation_id, "bob", text_request("hi"))
        update_settings(repos, "bob", {"security.blocked_users": ["alice"]})

        with pytest.raises(ForbiddenError) as exc:
            service.messages.pin(group_abc.conversation_id, message.message_id, "alice")
        assert exc.value.reason == "blocked"

    def test_unpin_deleted_message(self, service, direct_ab, message_from_alice):
        mid = message_from_alice.message_id
        service.messages.pin(direct_ab.conversation_id, mid, "bob")
        service.messages.delete(mid, "alice")

        assert service.messages.unpin(direct_ab.conversation_id, mid, "bob").pinned_messages == []


# =============================================================================
# Stars
# =============================================================================


class TestStars:
    def test_star_is_a_set(self, service, message_from_alice):
        mid = message_from_alice.message_id
        assert service.messages.star(mid, "bob") == [mid]
        assert service.messages.star(mid, "bob") == [mid]
        assert service.messages.list_starred("bob") == [mid]

        assert service.messages.unstar(mid, "bob") == []
        assert service.messages.unstar(mid, "bob") == []

    def test_unknown_user(self, service, users):
        with pytest.raises(NotFoundError):
            service.messages.star("m1", "ghost")
        with pytest.raises(NotFoundError):
            service.messages.list_starred("ghost")
