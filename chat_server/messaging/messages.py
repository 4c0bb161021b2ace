"""MessageLifecycle: send, edit, delete, forward, read receipts, pins and stars.

A message is Active, then Edited (repeatable, no history kept), and finally
Deleted, which removes the document outright. Pinned-message sets, stars
and other messages' ``reply_to`` pointers are left as they are when a message
is deleted.
"""
import logging
from typing import List, Dict, Any

from bson import ObjectId

from config import config
from chat_server.dto.chat_dto import MessageSendRequest, ReactionRequest
from chat_server.exception.ChatError import BadRequestError, ForbiddenError, NotFoundError
from chat_server.messaging.conversations import require_actor
from chat_server.messaging.models import Message, MessageContent, MessageType, Conversation
from chat_server.social.access_gate import AccessPolicy
from chat_server.social.models import NotificationEvent
from chat_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)


class MessageLifecycle:
    def __init__(self, conversations, message_repo, conversation_repo, user_repo, post_repo,
                 access_gate, fanout, notifications, reactions, worker):
        self.conversations = conversations
        self.message_repo = message_repo
        self.conversation_repo = conversation_repo
        self.user_repo = user_repo
        self.post_repo = post_repo
        self.access_gate = access_gate
        self.fanout = fanout
        self.notifications = notifications
        self.reactions = reactions
        self.worker = worker

    def load(self, message_id: str) -> Message:
        doc = self.message_repo.get(message_id)
        if not doc:
            raise NotFoundError('Message not found')
        return Message.from_doc(doc)

    # =========================================================================
    # Send / share / forward
    # =========================================================================

    def send(self, conversation_id: str, sender_id: str, request: MessageSendRequest) -> Message:
        sender_id = require_actor(sender_id)
        conversation = self.conversations.load_for_participant(conversation_id, sender_id)
        if self.access_gate.is_deactivated(sender_id):
            raise ForbiddenError('Your account is deactivated', reason='deactivated')
        # Privacy may have changed since the conversation was created
        self._ensure_can_deliver(conversation, sender_id)

        content = MessageContent.build(
            request.message_type,
            self._clean_text(request.content),
            file_url=request.file_url,
            file_name=request.file_name,
            post_id=request.post_id,
        )
        content.validate()

        if request.reply_to:
            replied = self.message_repo.get(request.reply_to)
            if not replied or replied.get('conversation_id') != conversation_id:
                raise BadRequestError('Invalid reply message')

        message = Message(
            message_id=str(ObjectId()),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            reply_to=request.reply_to,
        )
        self._persist_and_announce(conversation, message)

        if content.message_type == MessageType.POST:
            self.worker.submit(f"share_count->{content.post_id}", self.post_repo.increment_share_count, content.post_id)

        self.notifications.dispatch(
            actor_id=sender_id,
            recipient_ids=conversation.participants,
            notification_type='message',
            message=f"{self.conversations.display_name(sender_id)} sent a new message",
            entity_type='message',
            entity_id=message.message_id,
            action_url=f"/chat/{conversation_id}",
            event_type=NotificationEvent.MESSAGE_RECEIVED,
        )
        return message

    def share_post(self, conversation_id: str, sender_id: str, post_id: str, content: str = None) -> Message:
        """Send a post-variant message referencing ``post_id``."""
        if not post_id:
            raise BadRequestError('postId is required')
        request = MessageSendRequest(
            content=content or 'Shared a post',
            message_type=MessageType.POST.value,
            post_id=post_id,
        )
        return self.send(conversation_id, sender_id, request)

    def forward(self, message_id: str, target_conversation_id: str, actor_id: str) -> Message:
        actor_id = require_actor(actor_id)
        source = self.load(message_id)
        target = self.conversations.load(target_conversation_id)
        if not target.has_participant(actor_id):
            raise ForbiddenError('Not a participant of the target conversation')
        self._ensure_can_deliver(target, actor_id)

        # The copy is attributed to the forwarding user, not the original author
        message = Message(
            message_id=str(ObjectId()),
            conversation_id=target_conversation_id,
            sender_id=actor_id,
            content=source.content.forwarded_copy(),
        )
        self._persist_and_announce(target, message)

        self.notifications.dispatch(
            actor_id=actor_id,
            recipient_ids=target.participants,
            notification_type='message',
            message=f"{self.conversations.display_name(actor_id)} forwarded a message",
            entity_type='message',
            entity_id=message.message_id,
            action_url=f"/conversation/{target_conversation_id}",
            event_type=NotificationEvent.MESSAGE_RECEIVED,
        )
        return message

    def _ensure_can_deliver(self, conversation: Conversation, sender_id: str):
        if conversation.is_direct:
            other_id = conversation.other_participant(sender_id)
            if other_id:
                self.access_gate.ensure(AccessPolicy.DIRECT_MESSAGE, sender_id, other_id)

    def _persist_and_announce(self, conversation: Conversation, message: Message):
        self.message_repo.create(message.to_db_doc())
        self.conversation_repo.set_last_message(conversation.conversation_id, message.message_id)
        logger.info("Message %s sent to %s by %s", message.message_id, conversation.conversation_id, message.sender_id)
        self.fanout.to_conversation(conversation.conversation_id, EventEmitter.MESSAGE_NEW, {'message': message.to_dict()})

    # =========================================================================
    # Edit / delete
    # =========================================================================

    def edit(self, message_id: str, actor_id: str, new_content: str) -> Message:
        actor_id = require_actor(actor_id)
        message = self.load(message_id)
        if message.sender_id != actor_id:
            raise ForbiddenError('Only the sender can edit this message')
        doc = self.message_repo.edit_content(message_id, self._clean_text(new_content))
        if not doc:
            raise NotFoundError('Message not found')
        edited = Message.from_doc(doc)
        self.fanout.to_conversation(edited.conversation_id, EventEmitter.MESSAGE_EDITED, {'message': edited.to_dict()})
        return edited

    def delete(self, message_id: str, actor_id: str) -> Dict[str, Any]:
        actor_id = require_actor(actor_id)
        message = self.load(message_id)
        if message.sender_id != actor_id:
            raise ForbiddenError('Only the sender can delete this message')
        self.message_repo.delete_by_id(message_id)
        logger.info("Message %s deleted by %s", message_id, actor_id)
        payload = {'messageId': message_id, 'conversationId': message.conversation_id}
        self.fanout.to_conversation(message.conversation_id, EventEmitter.MESSAGE_DELETED, payload)
        return payload

    # =========================================================================
    # Reads
    # =========================================================================

    def get_messages(self, conversation_id: str, actor_id: str, page: int = 1, limit: int = None) -> List[Message]:
        """One page of history in chronological order; page 1 is the most recent."""
        actor_id = require_actor(actor_id)
        self.conversations.load_for_participant(conversation_id, actor_id)
        limit = limit or config.MESSAGES_PAGE_SIZE
        docs = self.message_repo.get_conversation_messages(conversation_id, page=page, limit=limit)
        return [Message.from_doc(doc) for doc in docs]

    def message_info(self, message_id: str, actor_id: str) -> Message:
        actor_id = require_actor(actor_id)
        message = self.load(message_id)
        self.conversations.load_for_participant(message.conversation_id, actor_id)
        return message

    def mark_read(self, conversation_id: str, user_id: str) -> int:
        """Add the user's receipt to every message from others that lacks one. Safe to repeat."""
        user_id = require_actor(user_id)
        self.conversations.load_for_participant(conversation_id, user_id)
        marked = self.message_repo.mark_read(conversation_id, user_id)
        if marked:
            self.fanout.to_conversation(conversation_id, EventEmitter.MESSAGES_READ,
                                        {'conversationId': conversation_id, 'userId': user_id, 'count': marked})
        return marked

    # =========================================================================
    # Pins
    # =========================================================================

    def pin(self, conversation_id: str, message_id: str, actor_id: str) -> Conversation:
        actor_id = require_actor(actor_id)
        conversation = self._load_for_pinning(conversation_id, actor_id)
        doc = self.message_repo.get(message_id)
        if not doc or doc.get('conversation_id') != conversation_id:
            raise NotFoundError('Message not found in this conversation')
        self.access_gate.ensure(AccessPolicy.INTERACTION, actor_id, doc.get('sender_id'))
        self.conversation_repo.add_pinned(conversation_id, message_id)
        self.fanout.to_conversation(conversation_id, EventEmitter.MESSAGE_PINNED,
                                    {'conversationId': conversation_id, 'messageId': message_id})
        return self.conversations.load(conversation.conversation_id)

    def unpin(self, conversation_id: str, message_id: str, actor_id: str) -> Conversation:
        actor_id = require_actor(actor_id)
        conversation = self._load_for_pinning(conversation_id, actor_id)
        doc = self.message_repo.get(message_id)
        # A deleted message can still be unpinned
        if doc and doc.get('conversation_id') != conversation_id:
            raise NotFoundError('Message not found in this conversation')
        self.conversation_repo.remove_pinned(conversation_id, message_id)
        self.fanout.to_conversation(conversation_id, EventEmitter.MESSAGE_UNPINNED,
                                    {'conversationId': conversation_id, 'messageId': message_id})
        return self.conversations.load(conversation.conversation_id)

    def _load_for_pinning(self, conversation_id: str, actor_id: str) -> Conversation:
        conversation = self.conversations.load_for_participant(conversation_id, actor_id)
        if conversation.is_group and not conversation.is_admin(actor_id):
            raise ForbiddenError('Only admins can pin messages in a group')
        return conversation

    # =========================================================================
    # Stars
    # =========================================================================

    def star(self, message_id: str, user_id: str) -> List[str]:
        user_id = require_actor(user_id)
        if not self.user_repo.add_starred(user_id, message_id):
            raise NotFoundError('User not found')
        return self.user_repo.get_starred(user_id)

    def unstar(self, message_id: str, user_id: str) -> List[str]:
        user_id = require_actor(user_id)
        if not self.user_repo.remove_starred(user_id, message_id):
            raise NotFoundError('User not found')
        return self.user_repo.get_starred(user_id)

    def list_starred(self, user_id: str) -> List[str]:
        user_id = require_actor(user_id)
        starred = self.user_repo.get_starred(user_id)
        if starred is None:
            raise NotFoundError('User not found')
        return starred

    # =========================================================================
    # Reactions
    # =========================================================================

    def toggle_reaction(self, message_id: str, user_id: str, request: ReactionRequest):
        request.validate()
        return self.reactions.toggle(message_id, require_actor(user_id), request.emoji_category, request.emoji_name)

    def remove_reaction(self, message_id: str, user_id: str) -> Message:
        return self.reactions.remove(message_id, require_actor(user_id))

    # =========================================================================
    # Validation helpers
    # =========================================================================

    @staticmethod
    def _clean_text(text) -> str:
        if not isinstance(text, str) or not text.strip():
            raise BadRequestError('Message content is required')
        text = text.strip()
        if len(text) > config.MESSAGE_MAX_LENGTH:
            raise BadRequestError(f'Message content must be at most {config.MESSAGE_MAX_LENGTH} characters')
        return text
