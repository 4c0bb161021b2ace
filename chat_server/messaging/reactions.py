"""ReactionLedger: at most one reaction per user on a message.

``toggle`` is applied as a short sequence of single-document conditional
updates rather than read-modify-write on the whole list:

1. pull the user's reaction if it has the same emoji category   -> removed
2. otherwise rewrite the user's reaction if its category differs -> updated
3. otherwise push a new reaction if the user still has none     -> added

Each step's filter states the precondition it relies on, so a concurrent
writer can only make a step miss, never create a duplicate. When every step
misses, the state moved under us and the sequence is retried.
"""
import logging
from typing import Tuple, Dict, Any, List

from config import config
from chat_server.exception.ChatError import NotFoundError, InternalError
from chat_server.messaging.models import Message, Reaction, ReactionResult
from chat_server.social.access_gate import AccessPolicy
from chat_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)


def dedupe_reaction_docs(reactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep the first reaction of each user."""
    seen = set()
    out = []
    for doc in reactions or []:
        if doc.get('user_id') in seen:
            continue
        seen.add(doc.get('user_id'))
        out.append(doc)
    return out


class ReactionLedger:
    def __init__(self, message_repo, access_gate, fanout, max_attempts=None):
        self.message_repo = message_repo
        self.access_gate = access_gate
        self.fanout = fanout
        self.max_attempts = max_attempts or config.REACTION_TOGGLE_MAX_ATTEMPTS

    def toggle(self, message_id: str, user_id: str, emoji_category: str, emoji_name: str) -> Tuple[ReactionResult, Message]:
        doc = self._get_normalized(message_id)
        self.access_gate.ensure(AccessPolicy.INTERACTION, user_id, doc.get('sender_id'))

        reaction = Reaction(user_id, emoji_category, emoji_name)
        result = self._apply_toggle(message_id, reaction)

        message = self._reload(message_id)
        event = EventEmitter.REACTION_REMOVED if result == ReactionResult.REMOVED else EventEmitter.REACTION_ADDED
        self.fanout.to_conversation(message.conversation_id, event, {
            'messageId': message_id,
            'conversationId': message.conversation_id,
            'userId': user_id,
            'result': result.value,
            'reaction': reaction.to_dict() if result != ReactionResult.REMOVED else None,
            'reactions': [r.to_dict() for r in message.reactions.values()],
        })
        return result, message

    def remove(self, message_id: str, user_id: str) -> Message:
        """Drop the user's reaction if there is one. Succeeds either way."""
        if not self.message_repo.pull_reaction(message_id, user_id):
            raise NotFoundError('Message not found')
        message = self._reload(message_id)
        self.fanout.to_conversation(message.conversation_id, EventEmitter.REACTION_REMOVED, {
            'messageId': message_id,
            'conversationId': message.conversation_id,
            'userId': user_id,
            'result': ReactionResult.REMOVED.value,
            'reaction': None,
            'reactions': [r.to_dict() for r in message.reactions.values()],
        })
        return message

    def _apply_toggle(self, message_id: str, reaction: Reaction) -> ReactionResult:
        for attempt in range(1, self.max_attempts + 1):
            if self.message_repo.pull_reaction_if_category(message_id, reaction.user_id, reaction.emoji_category):
                return ReactionResult.REMOVED
            if self.message_repo.replace_reaction(message_id, reaction.user_id, reaction.emoji_category, reaction.emoji_name):
                return ReactionResult.UPDATED
            if self.message_repo.push_reaction_if_absent(message_id, reaction.to_db_doc()):
                return ReactionResult.ADDED
            if not self.message_repo.get(message_id):
                raise NotFoundError('Message not found')
            logger.debug("Reaction toggle on %s raced (attempt %d)", message_id, attempt)
        raise InternalError('Reaction could not be applied, please retry')

    def _get_normalized(self, message_id: str) -> Dict[str, Any]:
        doc = self.message_repo.get(message_id)
        if not doc:
            raise NotFoundError('Message not found')
        reactions = doc.get('reactions') or []
        deduped = dedupe_reaction_docs(reactions)
        if len(deduped) != len(reactions):
            logger.warning("Repairing %d duplicate reaction(s) on %s", len(reactions) - len(deduped), message_id)
            self.message_repo.replace_reactions_if_unchanged(message_id, reactions, deduped)
            doc['reactions'] = deduped
        return doc

    def _reload(self, message_id: str) -> Message:
        doc = self.message_repo.get(message_id)
        if not doc:
            raise NotFoundError('Message not found')
        return Message.from_doc(doc)
