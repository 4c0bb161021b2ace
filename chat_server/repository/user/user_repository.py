"""User directory lookups used by the messaging core.

Users are owned by the account subsystem; the chat server only reads
profile fields and the follow graph, and maintains ``starred_messages``.
"""
import logging
from typing import Optional, Dict, Any, List, Iterable

from chat_server.repository.base_repository import BaseRepository

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {'_id': 0, 'user_id': 1, 'username': 1, 'name': 1, 'avatar': 1, 'following': 1}


class UserRepository(BaseRepository):

    def __init__(self, db, collection_name="users"):
        super().__init__(db=db, collection_name=collection_name)

    def create(self, data: Dict[str, Any]):
        data.setdefault('following', [])
        data.setdefault('starred_messages', [])
        return self.collection.insert_one(data)

    def get_profile(self, user_id: str) -> Optional[Dict]:
        return self.collection.find_one({'user_id': user_id}, PROFILE_FIELDS)

    def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, Dict]:
        docs = self.collection.find({'user_id': {'$in': list(user_ids)}}, PROFILE_FIELDS)
        return {doc['user_id']: doc for doc in docs}

    def existing_ids(self, user_ids: Iterable[str]) -> set:
        docs = self.collection.find({'user_id': {'$in': list(user_ids)}}, {'_id': 0, 'user_id': 1})
        return {doc['user_id'] for doc in docs}

    def add_starred(self, user_id: str, message_id: str) -> bool:
        result = self.collection.update_one({'user_id': user_id}, {'$addToSet': {'starred_messages': message_id}})
        return result.matched_count > 0

    def remove_starred(self, user_id: str, message_id: str) -> bool:
        result = self.collection.update_one({'user_id': user_id}, {'$pull': {'starred_messages': message_id}})
        return result.matched_count > 0

    def get_starred(self, user_id: str) -> Optional[List[str]]:
        doc = self.collection.find_one({'user_id': user_id}, {'_id': 0, 'starred_messages': 1})
        if doc is None:
            return None
        return doc.get('starred_messages', [])
