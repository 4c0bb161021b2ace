"""Migration script: create the indexes the chat server relies on.

This script creates:
1. participants/updated_at index for conversation listing
2. unique sparse direct_key index (one direct conversation per pair)
3. conversation/created_at index for message paging
4. recipient/created_at index for notifications
5. unique user_id indexes on users and user_settings

Usage:
    python scripts/add_indexes.py

Ensure MONGO_URI and CHAT_DB_NAME are set (config YAML or environment).
"""
import logging
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.errors import PyMongoError

from config import config
from chat_server.repository.mongo_helper import MongoRepositorySingleton

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def main():
    logger.info('Creating indexes on %s', config.CHAT_DB_NAME)
    try:
        MongoRepositorySingleton.get_instance().ensure_indexes()
    except PyMongoError:
        logger.exception('Index creation failed')
        return 1
    db = MongoRepositorySingleton.get_db()
    for name in ('conversations', 'chat_messages', 'notifications', 'users', 'user_settings'):
        logger.info('  %s: %s', name, ', '.join(sorted(db[name].index_information().keys())))
    logger.info('Done')
    return 0


if __name__ == '__main__':
    sys.exit(main())
