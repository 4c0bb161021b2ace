from typing import Optional, Dict, Any, Iterable

from chat_server.repository.base_repository import BaseRepository


class UserSettingsRepository(BaseRepository):
    """Read access to per-user privacy, security and notification settings."""

    def __init__(self, db, collection_name="user_settings"):
        super().__init__(db=db, collection_name=collection_name)

    def create(self, data: Dict[str, Any]):
        return self.collection.insert_one(data)

    def get_for_user(self, user_id: str) -> Optional[Dict]:
        return self.collection.find_one({'user_id': user_id})

    def get_for_users(self, user_ids: Iterable[str]) -> Dict[str, Dict]:
        return {doc['user_id']: doc for doc in self.collection.find({'user_id': {'$in': list(user_ids)}})}
