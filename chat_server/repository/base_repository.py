from abc import ABC, abstractmethod


class BaseRepository(ABC):
    """Common shape for collection-backed repositories.

    Subclasses bind ``self.collection`` via ``MongoRepositorySingleton.get_collection``
    and implement ``create``; the generic finders below cover the rest.
    """

    def __init__(self, db, collection_name):
        from chat_server.repository.mongo_helper import MongoRepositorySingleton
        self.collection_name = collection_name
        self.collection = MongoRepositorySingleton.get_collection(collection_name, db)

    @abstractmethod
    def create(self, data):
        """Insert a new document into the collection."""
        pass

    def find(self, query=None):
        """Find multiple documents matching the query."""
        return list(self.collection.find(query or {}))

    def find_one(self, query):
        """Find a single document matching the query."""
        return self.collection.find_one(query)

    def update(self, query, update_fields):
        """Update one document matching the query with the given fields."""
        return self.collection.update_one(query, {'$set': update_fields})

    def delete(self, query):
        """Delete one document matching the query."""
        return self.collection.delete_one(query)
