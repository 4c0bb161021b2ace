"""
Tests for ConversationManager.

This module covers:
- Direct creation, privacy gating and pair deduplication
- Group creation, naming rules and the one-directional block check
- Updates (admin rights, participant merge, conversation_updated)
- Delete for direct conversations and leave for groups
"""

from datetime import datetime

import pytest
from pymongo.errors import DuplicateKeyError

from chat_server.dto.chat_dto import ConversationCreateRequest, ConversationUpdateRequest
from chat_server.exception.ChatError import BadRequestError, ForbiddenError, NotFoundError
from chat_server.exception.UnauthorizedError import UnauthorizedError
from chat_server.tests.conftest import text_request, update_settings
from chat_server.websocket.event_emitter import set_session_lookup


def direct(other):
    return ConversationCreateRequest(participant_ids=[other], type="direct")


def group(participants, name="Team", **kwargs):
    return ConversationCreateRequest(participant_ids=participants, type="group", name=name, **kwargs)


# =============================================================================
# Create: direct
# =============================================================================


class TestCreateDirect:
    def test_creates_direct_conversation(self, service, users):
        conversation, created = service.conversations.create("alice", direct("bob"))

        assert created is True
        assert conversation.is_direct
        assert set(conversation.participants) == {"alice", "bob"}
        assert conversation.admins == []

    def test_second_create_returns_existing_for_either_order(self, service, users, repos):
        first, _ = service.conversations.create("alice", direct("bob"))
        again, created_again = service.conversations.create("alice", direct("bob"))
        reverse, created_reverse = service.conversations.create("bob", direct("alice"))

        assert created_again is False and created_reverse is False
        assert again.conversation_id == first.conversation_id
        assert reverse.conversation_id == first.conversation_id
        assert repos.conversation.collection.count_documents({"conversation_type": "direct"}) == 1

    def test_duplicate_key_race_returns_winner(self, service, users, repos, monkeypatch):
        repos.conversation.collection.create_index([("direct_key", 1)], unique=True, sparse=True)
        winner, _ = service.conversations.create("bob", direct("alice"))

        calls = {"n": 0}
        original = repos.conversation.find_direct_between

        def racing_lookup(a, b):
            calls["n"] += 1
            # First lookup happens before the concurrent insert became visible
            return None if calls["n"] == 1 else original(a, b)

        monkeypatch.setattr(repos.conversation, "find_direct_between", racing_lookup)

        conversation, created = service.conversations.create("alice", direct("bob"))
        assert created is False
        assert conversation.conversation_id == winner.conversation_id

    def test_duplicate_key_is_raised_when_no_winner_found(self, service, users, repos, monkeypatch):
        def always_duplicate(doc):
            raise DuplicateKeyError("E11000 duplicate key")

        monkeypatch.setattr(repos.conversation, "create", always_duplicate)
        monkeypatch.setattr(repos.conversation, "find_direct_between", lambda a, b: None)

        with pytest.raises(DuplicateKeyError):
            service.conversations.create("alice", direct("bob"))

    def test_friends_only_recipient_rejects_non_friend(self, service, users, stranger):
        with pytest.raises(ForbiddenError) as exc:
            service.conversations.create("eve", direct("alice"))
        assert exc.value.reason == "friends"

    def test_blocked_pair_rejected_both_ways(self, service, users, repos):
        update_settings(repos, "alice", {"security.blocked_users": ["bob"]})

        with pytest.raises(ForbiddenError) as first:
            service.conversations.create("alice", direct("bob"))
        with pytest.raises(ForbiddenError) as second:
            service.conversations.create("bob", direct("alice"))
        assert first.value.reason == "blocked"
        assert second.value.reason == "blocked"

    @pytest.mark.parametrize("participants", [[], ["bob", "carol"]])
    def test_requires_exactly_one_other_participant(self, service, users, participants):
        with pytest.raises(BadRequestError):
            service.conversations.create("alice", ConversationCreateRequest(participants, "direct"))

    def test_self_direct_rejected(self, service, users):
        with pytest.raises(BadRequestError):
            service.conversations.create("alice", direct("alice"))

    def test_unknown_type_rejected(self, service, users):
        with pytest.raises(BadRequestError):
            service.conversations.create("alice", ConversationCreateRequest(["bob"], "channel"))

    def test_requires_actor(self, service, users):
        with pytest.raises(UnauthorizedError):
            service.conversations.create(None, direct("bob"))

    def test_notifies_other_participant(self, service, users, worker, repos):
        conversation, _ = service.conversations.create("alice", direct("bob"))
        worker.drain()

        notifications = repos.notification.find_for_recipient("bob")
        assert len(notifications) == 1
        assert notifications[0]["message"] == "alice added you to a direct conversation"
        assert notifications[0]["action_url"] == f"/conversation/{conversation.conversation_id}"
        assert repos.notification.find_for_recipient("alice") == []

    def test_deduplicated_create_does_not_notify(self, service, users, worker, repos):
        service.conversations.create("alice", direct("bob"))
        worker.drain()
        service.conversations.create("bob", direct("alice"))
        worker.drain()

        assert len(repos.notification.find_for_recipient("bob")) == 1
        assert repos.notification.find_for_recipient("alice") == []


# =============================================================================
# Create: group
# =============================================================================


class TestCreateGroup:
    def test_initiator_is_sole_admin(self, service, users):
        conversation, created = service.conversations.create("alice", group(["bob", "carol"]))

        assert created is True
        assert conversation.is_group
        assert conversation.admins == ["alice"]
        assert set(conversation.participants) == {"alice", "bob", "carol"}
        assert conversation.name == "Team"

    def test_name_required(self, service, users):
        with pytest.raises(BadRequestError):
            service.conversations.create("alice", group(["bob"], name="   "))

    def test_name_length_limit(self, service, users):
        service.conversations.create("alice", group(["bob"], name="x" * 50))
        with pytest.raises(BadRequestError):
            service.conversations.create("alice", group(["bob"], name="x" * 51))

    def test_description_length_limit(self, service, users):
        with pytest.raises(BadRequestError):
            service.conversations.create("alice", group(["bob"], description="d" * 201))

    def test_unknown_candidate_rejected(self, service, users, repos):
        with pytest.raises(BadRequestError) as exc:
            service.conversations.create("alice", group(["bob", "ghost"]))
        assert "ghost" in exc.value.message
        assert repos.conversation.list_for_user("alice") == []

    def test_messaging_tier_does_not_apply_to_groups(self, service, users, stranger):
        conversation, _ = service.conversations.create("alice", group(["eve"]))
        assert conversation.has_participant("eve")

    def test_candidate_blocking_initiator_rejected(self, service, users, repos):
        update_settings(repos, "carol", {"security.blocked_users": ["alice"]})

        with pytest.raises(ForbiddenError) as exc:
            service.conversations.create("alice", group(["bob", "carol"]))
        assert exc.value.reason == "blocked"

    def test_block_between_candidates_is_not_checked(self, service, users, repos):
        update_settings(repos, "bob", {"security.blocked_users": ["carol"]})

        conversation, _ = service.conversations.create("alice", group(["bob", "carol"]))
        assert {"bob", "carol"} <= set(conversation.participants)


# =============================================================================
# Update
# =============================================================================


class TestUpdate:
    def test_non_admin_cannot_rename(self, service, group_abc):
        with pytest.raises(ForbiddenError):
            service.conversations.update(group_abc.conversation_id, "bob", ConversationUpdateRequest(name="Mine"))

    def test_admin_rename_emits_conversation_updated(self, service, group_abc, worker, broker):
        updated = service.conversations.update(
            group_abc.conversation_id, "alice", ConversationUpdateRequest(name="Renamed"))
        worker.drain()

        assert updated.name == "Renamed"
        assert service.conversations.load(group_abc.conversation_id).name == "Renamed"
        events = broker.events("conversation_updated", to=f"conversation:{group_abc.conversation_id}")
        assert len(events) == 1
        assert events[0]["payload"]["conversation"]["name"] == "Renamed"

    def test_non_participant_forbidden(self, service, group_abc):
        with pytest.raises(ForbiddenError):
            service.conversations.update(group_abc.conversation_id, "dave", ConversationUpdateRequest(name="x"))

    def test_missing_conversation_not_found(self, service, users):
        with pytest.raises(NotFoundError):
            service.conversations.update("missing", "alice", ConversationUpdateRequest(name="x"))

    def test_add_participants_is_set_union(self, service, group_abc):
        updated = service.conversations.update(
            group_abc.conversation_id, "alice", ConversationUpdateRequest(participants=["bob", "dave", "dave"]))

        assert sorted(updated.participants) == ["alice", "bob", "carol", "dave"]

    def test_unknown_participant_rejected(self, service, group_abc):
        with pytest.raises(BadRequestError):
            service.conversations.update(
                group_abc.conversation_id, "alice", ConversationUpdateRequest(participants=["ghost"]))

    def test_blocked_participant_rejected(self, service, group_abc, repos):
        update_settings(repos, "dave", {"security.blocked_users": ["alice"]})

        with pytest.raises(ForbiddenError):
            service.conversations.update(
                group_abc.conversation_id, "alice", ConversationUpdateRequest(participants=["dave"]))

    def test_direct_participant_may_update_metadata(self, service, direct_ab):
        updated = service.conversations.update(
            direct_ab.conversation_id, "bob", ConversationUpdateRequest(avatar="https://cdn/x.png"))
        assert updated.avatar == "https://cdn/x.png"

    def test_direct_participants_cannot_change(self, service, direct_ab):
        with pytest.raises(BadRequestError):
            service.conversations.update(
                direct_ab.conversation_id, "alice", ConversationUpdateRequest(participants=["carol"]))


# =============================================================================
# Delete / leave
# =============================================================================


class TestDelete:
    def test_direct_delete_removes_everything(self, service, direct_ab, worker, broker, repos):
        service.messages.send(direct_ab.conversation_id, "alice", text_request("hi"))
        worker.drain()
        broker.clear()

        result = service.conversations.delete(direct_ab.conversation_id, "alice")
        worker.drain()

        assert result == {"conversationId": direct_ab.conversation_id, "deleted": True, "left": False}
        for user in ("alice", "bob"):
            with pytest.raises(NotFoundError):
                service.conversations.get(direct_ab.conversation_id, user)
        assert repos.conversation.collection.count_documents({}) == 0
        assert repos.chat_message.collection.count_documents({"conversation_id": direct_ab.conversation_id}) == 0
        assert broker.names() == ["conversation_deleted"]

    def test_delete_by_non_participant_forbidden(self, service, direct_ab):
        with pytest.raises(ForbiddenError):
            service.conversations.delete(direct_ab.conversation_id, "carol")

    def test_group_member_leaves(self, service, group_abc, worker, broker):
        result = service.conversations.delete(group_abc.conversation_id, "bob")
        worker.drain()

        assert result["left"] is True and result["deleted"] is False
        remaining = service.conversations.load(group_abc.conversation_id)
        assert not remaining.has_participant("bob")
        assert broker.events("conversation_updated", to=f"conversation:{group_abc.conversation_id}")
        assert broker.events("conversation_deleted", to="user:bob")

    def test_leaver_sessions_leave_conversation_topic(self, service, group_abc, worker, broker):
        set_session_lookup(lambda user_id: [f"{user_id}-phone", f"{user_id}-laptop"] if user_id == "bob" else [])

        service.conversations.delete(group_abc.conversation_id, "bob")
        worker.drain()

        topic = f"conversation:{group_abc.conversation_id}"
        assert broker.left == [("bob-phone", topic), ("bob-laptop", topic)]

    def test_direct_delete_removes_no_sessions(self, service, direct_ab, worker, broker):
        set_session_lookup(lambda user_id: [f"{user_id}-phone"])

        service.conversations.delete(direct_ab.conversation_id, "alice")
        worker.drain()
        assert broker.left == []

    def test_admin_leaving_is_removed_from_admins(self, service, group_abc):
        service.conversations.delete(group_abc.conversation_id, "alice")
        remaining = service.conversations.load(group_abc.conversation_id)
        assert remaining.admins == []

    def test_last_member_leaving_deletes_group(self, service, group_abc, repos):
        for user in ("bob", "carol"):
            service.conversations.delete(group_abc.conversation_id, user)
        result = service.conversations.delete(group_abc.conversation_id, "alice")

        assert result["deleted"] is True
        assert repos.conversation.get(group_abc.conversation_id) is None


# =============================================================================
# Lookups
# =============================================================================


class TestLookups:
    def test_list_for_user_most_recent_first(self, service, users, repos):
        older, _ = service.conversations.create("alice", direct("bob"))
        newer, _ = service.conversations.create("alice", direct("carol"))
        collection = repos.conversation.collection
        collection.update_one({"_id": older.conversation_id}, {"$set": {"updated_at": datetime(2024, 1, 1)}})
        collection.update_one({"_id": newer.conversation_id}, {"$set": {"updated_at": datetime(2024, 1, 2)}})

        service.messages.send(older.conversation_id, "alice", text_request("bump"))

        ids = [c.conversation_id for c in service.conversations.list_for_user("alice")]
        assert ids == [older.conversation_id, newer.conversation_id]
        assert [c.conversation_id for c in service.conversations.list_for_user("dave")] == []

    def test_get_requires_participation(self, service, direct_ab):
        assert service.conversations.get(direct_ab.conversation_id, "bob").conversation_id == direct_ab.conversation_id
        with pytest.raises(ForbiddenError):
            service.conversations.get(direct_ab.conversation_id, "carol")

    def test_display_name_falls_back(self, service, make_user):
        make_user("nameless", username=None, name=None)
        assert service.conversations.display_name("nameless") == "Someone"
        assert service.conversations.display_name("ghost") == "Someone"
