"""Chat message repository for the chat feature.

Reaction and read-receipt writes are expressed as single-document conditional
updates so concurrent callers cannot produce a second entry for the same user.
"""
import logging
from typing import Optional, Dict, Any, List

from chat_server.repository.base_repository import BaseRepository
from chat_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class ChatMessageRepository(BaseRepository):
    """Repository for chat messages."""

    def __init__(self, db, collection_name="chat_messages"):
        super().__init__(db=db, collection_name=collection_name)
        logger.debug("Initializing %s collection", self.collection_name)

    def create(self, data: Dict[str, Any]):
        return self.collection.insert_one(data)

    def get(self, message_id: str) -> Optional[Dict]:
        return self.collection.find_one({'_id': message_id})

    def get_conversation_messages(self, conversation_id: str, page: int = 1, limit: int = 50) -> List[Dict]:
        """Return one page of messages, newest page first, each page in chronological order."""
        cursor = (
            self.collection.find({'conversation_id': conversation_id})
            .sort([('created_at', -1), ('_id', -1)])
            .skip((page - 1) * limit)
            .limit(limit)
        )
        messages = list(cursor)
        messages.reverse()
        return messages

    def edit_content(self, message_id: str, content: str) -> Optional[Dict]:
        now = utc_now()
        self.collection.update_one(
            {'_id': message_id},
            {'$set': {'content': content, 'edited': True, 'edited_at': now, 'updated_at': now}}
        )
        return self.get(message_id)

    def delete_by_id(self, message_id: str) -> bool:
        result = self.collection.delete_one({'_id': message_id})
        return result.deleted_count > 0

    def delete_for_conversation(self, conversation_id: str) -> int:
        return self.collection.delete_many({'conversation_id': conversation_id}).deleted_count

    # ==========================================================================
    # Read receipts
    # ==========================================================================

    def mark_read(self, conversation_id: str, user_id: str) -> int:
        """Append a receipt for ``user_id`` to every unread message from someone else."""
        result = self.collection.update_many(
            {
                'conversation_id': conversation_id,
                'sender_id': {'$ne': user_id},
                'read_by.user_id': {'$ne': user_id},
            },
            {'$push': {'read_by': {'user_id': user_id, 'read_at': utc_now()}}}
        )
        return result.modified_count

    # ==========================================================================
    # Reactions
    # ==========================================================================

    def pull_reaction_if_category(self, message_id: str, user_id: str, emoji_category: str) -> bool:
        result = self.collection.update_one(
            {'_id': message_id, 'reactions': {'$elemMatch': {'user_id': user_id, 'emoji_category': emoji_category}}},
            {'$pull': {'reactions': {'user_id': user_id}}}
        )
        return result.matched_count > 0

    def replace_reaction(self, message_id: str, user_id: str, emoji_category: str, emoji_name: str) -> bool:
        result = self.collection.update_one(
            {'_id': message_id, 'reactions': {'$elemMatch': {'user_id': user_id, 'emoji_category': {'$ne': emoji_category}}}},
            {'$set': {'reactions.$.emoji_category': emoji_category, 'reactions.$.emoji_name': emoji_name}}
        )
        return result.matched_count > 0

    def push_reaction_if_absent(self, message_id: str, reaction: Dict[str, Any]) -> bool:
        result = self.collection.update_one(
            {'_id': message_id, 'reactions.user_id': {'$ne': reaction['user_id']}},
            {'$push': {'reactions': reaction}}
        )
        return result.matched_count > 0

    def pull_reaction(self, message_id: str, user_id: str) -> bool:
        result = self.collection.update_one({'_id': message_id}, {'$pull': {'reactions': {'user_id': user_id}}})
        return result.matched_count > 0

    def replace_reactions_if_unchanged(self, message_id: str, expected: List[Dict], reactions: List[Dict]) -> bool:
        """Compare-and-set the whole reaction list; used to repair duplicate entries."""
        result = self.collection.update_one(
            {'_id': message_id, 'reactions': expected},
            {'$set': {'reactions': reactions}}
        )
        return result.modified_count > 0
