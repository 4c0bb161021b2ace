"""Conversation repository for the chat feature.

Handles persistence for direct and group conversations.
"""
import logging
from typing import Optional, Dict, Any, List

from pymongo import ReturnDocument

from chat_server.repository.base_repository import BaseRepository
from chat_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class ConversationRepository(BaseRepository):
    """Repository for chat conversations."""

    def __init__(self, db, collection_name="conversations"):
        super().__init__(db=db, collection_name=collection_name)
        logger.debug("Initializing %s collection", self.collection_name)

    def create(self, data: Dict[str, Any]):
        return self.collection.insert_one(data)

    def get(self, conversation_id: str) -> Optional[Dict]:
        return self.collection.find_one({'_id': conversation_id})

    def find_direct_between(self, user_a: str, user_b: str) -> Optional[Dict]:
        """Find an existing direct conversation whose participants are exactly {user_a, user_b}."""
        return self.collection.find_one({
            'conversation_type': 'direct',
            'participants': {'$all': [user_a, user_b], '$size': 2},
        })

    def list_for_user(self, user_id: str) -> List[Dict]:
        cursor = self.collection.find({'participants': user_id}).sort([('updated_at', -1), ('_id', -1)])
        return list(cursor)

    def conversation_ids_for_user(self, user_id: str) -> List[str]:
        return [doc['_id'] for doc in self.collection.find({'participants': user_id}, {'_id': 1})]

    def update_fields(self, conversation_id: str, fields: Dict[str, Any], new_participants: List[str] = None) -> Optional[Dict]:
        """Set metadata fields and merge participants (set union). Returns the updated document."""
        update = {'$set': dict(fields, updated_at=utc_now())}
        if new_participants:
            update['$addToSet'] = {'participants': {'$each': list(new_participants)}}
        return self.collection.find_one_and_update(
            {'_id': conversation_id}, update, return_document=ReturnDocument.AFTER
        )

    def remove_member(self, conversation_id: str, user_id: str) -> Optional[Dict]:
        """Pull a user from participants and admins. Returns the updated document."""
        return self.collection.find_one_and_update(
            {'_id': conversation_id},
            {'$pull': {'participants': user_id, 'admins': user_id}, '$set': {'updated_at': utc_now()}},
            return_document=ReturnDocument.AFTER,
        )

    def delete_if_empty(self, conversation_id: str) -> bool:
        result = self.collection.delete_one({'_id': conversation_id, 'participants': {'$size': 0}})
        return result.deleted_count > 0

    def delete_by_id(self, conversation_id: str) -> bool:
        result = self.collection.delete_one({'_id': conversation_id})
        return result.deleted_count > 0

    def set_last_message(self, conversation_id: str, message_id: str):
        return self.collection.update_one(
            {'_id': conversation_id},
            {'$set': {'last_message': message_id, 'updated_at': utc_now()}}
        )

    def add_pinned(self, conversation_id: str, message_id: str) -> bool:
        result = self.collection.update_one({'_id': conversation_id}, {'$addToSet': {'pinned_messages': message_id}})
        return result.modified_count > 0

    def remove_pinned(self, conversation_id: str, message_id: str) -> bool:
        result = self.collection.update_one({'_id': conversation_id}, {'$pull': {'pinned_messages': message_id}})
        return result.modified_count > 0
