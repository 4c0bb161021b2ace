import logging

from pymongo import MongoClient

from config import config

logger = logging.getLogger(__name__)


class MongoRepositorySingleton:
    """Process-wide holder for the chat database and its repositories."""
    _instance = None
    _db_instance = None

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses MONGO_URI and CHAT_DB_NAME from config (YAML layers or env).
        """
        if cls._db_instance is not None:
            return cls._db_instance
        logger.info("Connecting to MongoDB database '%s'", config.CHAT_DB_NAME)
        client = MongoClient(config.MONGO_URI)
        cls._db_instance = client[config.CHAT_DB_NAME]
        return cls._db_instance

    @classmethod
    def use_db(cls, db):
        """Point the singleton at an already-open database (alternative runners, tests)."""
        cls._db_instance = db
        cls._instance = None

    @classmethod
    def reset(cls):
        cls._db_instance = None
        cls._instance = None

    @classmethod
    def get_collection(cls, collection_name, db=None):
        if db is None:
            db = cls.get_db()
        return db[collection_name]

    @classmethod
    def get_instance(cls):
        return cls.__new__(cls)

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init_repositories()
        return cls._instance

    def _init_repositories(self):
        from chat_server.repository.chat.conversation_repository import ConversationRepository
        from chat_server.repository.chat.chat_message_repository import ChatMessageRepository
        from chat_server.repository.chat.notification_repository import NotificationRepository
        from chat_server.repository.user.user_repository import UserRepository
        from chat_server.repository.user.user_settings_repository import UserSettingsRepository
        from chat_server.repository.post_repository import PostRepository

        db = self.get_db()
        self.conversation = ConversationRepository(db)
        self.chat_message = ChatMessageRepository(db)
        self.notification = NotificationRepository(db)
        self.user = UserRepository(db)
        self.user_settings = UserSettingsRepository(db)
        self.post = PostRepository(db)
        logger.debug('Initialized chat repositories')

    def ensure_indexes(self):
        """Create the indexes the chat query paths rely on (idempotent)."""
        db = self.get_db()
        db['conversations'].create_index([('participants', 1), ('updated_at', -1)], name='conversations_participants_updated')
        db['conversations'].create_index([('direct_key', 1)], unique=True, sparse=True, name='conversations_direct_key')
        db['chat_messages'].create_index([('conversation_id', 1), ('created_at', -1)], name='chat_messages_conversation_created')
        db['notifications'].create_index([('recipient_id', 1), ('created_at', -1)], name='notifications_recipient_created')
        db['user_settings'].create_index([('user_id', 1)], unique=True, name='user_settings_user_id')
        db['users'].create_index([('user_id', 1)], unique=True, name='users_user_id')
        logger.info('Ensured chat DB indexes')
