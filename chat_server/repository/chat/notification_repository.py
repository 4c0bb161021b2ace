from typing import Dict, Any, List

from chat_server.repository.base_repository import BaseRepository


class NotificationRepository(BaseRepository):
    """Append-only store for user notifications."""

    def __init__(self, db=None, collection_name="notifications"):
        super().__init__(db=db, collection_name=collection_name)

    def create(self, data: Dict[str, Any]):
        data.setdefault('is_read', False)
        return self.collection.insert_one(data)

    def find_for_recipient(self, recipient_id: str) -> List[Dict]:
        return list(self.collection.find({'recipient_id': recipient_id}).sort([('created_at', -1), ('_id', -1)]))
