"""ConversationManager: creation, membership, admin rights and deletion.

Direct conversations hold exactly two participants and at most one exists
per unordered pair. Group conversations are named and carry an admin set.
"""
import logging
from typing import Optional, List, Tuple, Dict, Any

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from config import config
from chat_server.dto.chat_dto import ConversationCreateRequest, ConversationUpdateRequest
from chat_server.exception.ChatError import BadRequestError, ForbiddenError, NotFoundError
from chat_server.exception.UnauthorizedError import UnauthorizedError
from chat_server.messaging.models import Conversation, ConversationType
from chat_server.social.access_gate import AccessPolicy
from chat_server.social.models import NotificationEvent, UserProfile
from chat_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)


def require_actor(actor_id: Optional[str]) -> str:
    if not actor_id:
        raise UnauthorizedError('User not authenticated')
    return actor_id


class ConversationManager:
    def __init__(self, conversation_repo, message_repo, user_repo, access_gate, fanout, notifications):
        self.conversation_repo = conversation_repo
        self.message_repo = message_repo
        self.user_repo = user_repo
        self.access_gate = access_gate
        self.fanout = fanout
        self.notifications = notifications

    # =========================================================================
    # Lookups
    # =========================================================================

    def load(self, conversation_id: str) -> Conversation:
        doc = self.conversation_repo.get(conversation_id)
        if not doc:
            raise NotFoundError('Conversation not found')
        return Conversation.from_doc(doc)

    def load_for_participant(self, conversation_id: str, actor_id: str) -> Conversation:
        conversation = self.load(conversation_id)
        if not conversation.has_participant(actor_id):
            raise ForbiddenError('Not a participant of this conversation')
        return conversation

    def get(self, conversation_id: str, actor_id: str) -> Conversation:
        return self.load_for_participant(conversation_id, require_actor(actor_id))

    def list_for_user(self, actor_id: str) -> List[Conversation]:
        """Conversations the actor belongs to, most recently active first."""
        require_actor(actor_id)
        return [Conversation.from_doc(doc) for doc in self.conversation_repo.list_for_user(actor_id)]

    def display_name(self, user_id: str) -> str:
        doc = self.user_repo.get_profile(user_id)
        return UserProfile.from_doc(doc).display_name if doc else 'Someone'

    # =========================================================================
    # Create
    # =========================================================================

    def create(self, initiator_id: str, request: ConversationCreateRequest) -> Tuple[Conversation, bool]:
        """Create a conversation, or return the existing direct one for the pair.

        Returns:
            (conversation, created) where ``created`` is False for a deduplicated direct chat
        """
        initiator_id = require_actor(initiator_id)
        conversation_type = self._parse_type(request.type)
        participant_ids = list(dict.fromkeys(request.participant_ids or []))

        if conversation_type == ConversationType.DIRECT:
            if len(participant_ids) != 1:
                raise BadRequestError('Direct conversation must have exactly one other participant')
            other_id = participant_ids[0]
            if other_id == initiator_id:
                raise BadRequestError('Cannot start a direct conversation with yourself')
            self.access_gate.ensure(AccessPolicy.DIRECT_MESSAGE, initiator_id, other_id)

            existing = self.conversation_repo.find_direct_between(initiator_id, other_id)
            if existing:
                return Conversation.from_doc(existing), False
            conversation = Conversation(
                conversation_id=str(ObjectId()),
                conversation_type=ConversationType.DIRECT,
                participants=[initiator_id, other_id],
                created_by=initiator_id,
            )
        else:
            name = self._clean_name(request.name)
            if not name:
                raise BadRequestError('Group conversation must have a name')
            candidates = [p for p in participant_ids if p != initiator_id]
            self._ensure_known_users(candidates)
            self.access_gate.ensure_all(AccessPolicy.GROUP_MEMBERSHIP, initiator_id, candidates)
            conversation = Conversation(
                conversation_id=str(ObjectId()),
                conversation_type=ConversationType.GROUP,
                participants=candidates + [initiator_id],
                created_by=initiator_id,
                admins=[initiator_id],
                name=name,
                description=self._clean_description(request.description),
                avatar=request.avatar,
            )

        try:
            self.conversation_repo.create(conversation.to_db_doc())
        except DuplicateKeyError:
            # Lost a race with a concurrent create for the same pair
            existing = self.conversation_repo.find_direct_between(*conversation.participants)
            if not existing:
                raise
            return Conversation.from_doc(existing), False

        logger.info("Created %s conversation %s by %s", conversation_type.value,
                    conversation.conversation_id, initiator_id)
        self.notifications.dispatch(
            actor_id=initiator_id,
            recipient_ids=conversation.participants,
            notification_type='message',
            message=f"{self.display_name(initiator_id)} added you to a {conversation_type.value} conversation",
            entity_type='conversation',
            entity_id=conversation.conversation_id,
            action_url=f"/conversation/{conversation.conversation_id}",
            event_type=NotificationEvent.MESSAGE_RECEIVED,
        )
        return conversation, True

    # =========================================================================
    # Update
    # =========================================================================

    def update(self, conversation_id: str, actor_id: str, request: ConversationUpdateRequest) -> Conversation:
        actor_id = require_actor(actor_id)
        conversation = self.load(conversation_id)
        if not conversation.has_participant(actor_id) or (
                conversation.is_group and not conversation.is_admin(actor_id)):
            raise ForbiddenError('Not authorized to update this conversation')

        fields: Dict[str, Any] = {}
        if request.name:
            name = self._clean_name(request.name)
            if name:
                fields['name'] = name
        if request.description:
            fields['description'] = self._clean_description(request.description)
        if request.avatar:
            fields['avatar'] = request.avatar

        new_participants = []
        if request.participants:
            if conversation.is_direct:
                raise BadRequestError('Participants of a direct conversation cannot be changed')
            new_participants = [p for p in dict.fromkeys(request.participants) if not conversation.has_participant(p)]
            if new_participants:
                self._ensure_known_users(new_participants)
                self.access_gate.ensure_all(AccessPolicy.GROUP_MEMBERSHIP, actor_id, new_participants)

        doc = self.conversation_repo.update_fields(conversation_id, fields, new_participants)
        if not doc:
            raise NotFoundError('Conversation not found')
        updated = Conversation.from_doc(doc)
        self.fanout.to_conversation(conversation_id, EventEmitter.CONVERSATION_UPDATED,
                                    {'conversation': updated.to_dict()})
        return updated

    # =========================================================================
    # Delete / leave
    # =========================================================================

    def delete(self, conversation_id: str, actor_id: str) -> Dict[str, Any]:
        """Delete a direct conversation outright, or leave a group.

        Returns:
            {'conversationId', 'deleted': bool, 'left': bool}
        """
        actor_id = require_actor(actor_id)
        conversation = self.load_for_participant(conversation_id, actor_id)

        if conversation.is_direct:
            self._hard_delete(conversation_id)
            return {'conversationId': conversation_id, 'deleted': True, 'left': False}

        doc = self.conversation_repo.remove_member(conversation_id, actor_id)
        if doc is not None and not doc.get('participants'):
            if self.conversation_repo.delete_if_empty(conversation_id):
                self.message_repo.delete_for_conversation(conversation_id)
                logger.info("Deleted empty group %s after %s left", conversation_id, actor_id)
                self.fanout.to_conversation(conversation_id, EventEmitter.CONVERSATION_DELETED,
                                            {'conversationId': conversation_id})
                return {'conversationId': conversation_id, 'deleted': True, 'left': True}

        logger.info("%s left group %s", actor_id, conversation_id)
        self.fanout.evict(actor_id, conversation_id)
        if doc is not None:
            self.fanout.to_conversation(conversation_id, EventEmitter.CONVERSATION_UPDATED,
                                        {'conversation': Conversation.from_doc(doc).to_dict()})
        self.fanout.to_user(actor_id, EventEmitter.CONVERSATION_DELETED, {'conversationId': conversation_id})
        return {'conversationId': conversation_id, 'deleted': False, 'left': True}

    def _hard_delete(self, conversation_id: str):
        self.conversation_repo.delete_by_id(conversation_id)
        removed = self.message_repo.delete_for_conversation(conversation_id)
        logger.info("Deleted conversation %s and %d message(s)", conversation_id, removed)
        self.fanout.to_conversation(conversation_id, EventEmitter.CONVERSATION_DELETED,
                                    {'conversationId': conversation_id})

    # =========================================================================
    # Validation helpers
    # =========================================================================

    def _ensure_known_users(self, user_ids: List[str]):
        if not user_ids:
            return
        missing = set(user_ids) - self.user_repo.existing_ids(user_ids)
        if missing:
            raise BadRequestError(f"Unknown user(s): {', '.join(sorted(missing))}")

    @staticmethod
    def _parse_type(value) -> ConversationType:
        try:
            return ConversationType(value)
        except ValueError:
            raise BadRequestError("type must be 'direct' or 'group'")

    @staticmethod
    def _clean_name(name) -> Optional[str]:
        if name is None:
            return None
        if not isinstance(name, str):
            raise BadRequestError('name must be a string')
        name = name.strip()
        if len(name) > config.GROUP_NAME_MAX_LENGTH:
            raise BadRequestError(f'name must be at most {config.GROUP_NAME_MAX_LENGTH} characters')
        return name

    @staticmethod
    def _clean_description(description) -> Optional[str]:
        if description is None:
            return None
        if not isinstance(description, str):
            raise BadRequestError('description must be a string')
        description = description.strip()
        if len(description) > config.DESCRIPTION_MAX_LENGTH:
            raise BadRequestError(f'description must be at most {config.DESCRIPTION_MAX_LENGTH} characters')
        return description
