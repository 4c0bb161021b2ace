from chat_server.repository.base_repository import BaseRepository


class PostRepository(BaseRepository):
    """Posts are owned by the content subsystem; chat only bumps the share counter."""

    def __init__(self, db, collection_name="posts"):
        super().__init__(db=db, collection_name=collection_name)

    def create(self, data):
        data.setdefault('share_count', 0)
        return self.collection.insert_one(data)

    def increment_share_count(self, post_id: str) -> bool:
        result = self.collection.update_one({'_id': post_id}, {'$inc': {'share_count': 1}})
        return result.matched_count > 0
