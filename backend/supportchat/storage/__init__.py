"""
Persistence gateway: one contract, two interchangeable stores.

The store is picked once at startup by create_storage() and kept for the
life of the process.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from supportchat.config import Settings, settings
from supportchat.database import (
    check_connection,
    create_db_engine,
    create_session_factory,
    init_db,
)
from supportchat.storage.base import (
    NEW_CHAT_ICON,
    NEW_CHAT_TITLE,
    WELCOME_CHAT_ICON,
    WELCOME_CHAT_TITLE,
    ChatNotFoundError,
    ChatStorage,
    StorageError,
)
from supportchat.storage.memory import MemoryStorage
from supportchat.storage.sql import DatabaseStorage

logger = logging.getLogger(__name__)

__all__ = [
    "ChatStorage",
    "ChatNotFoundError",
    "DatabaseStorage",
    "MemoryStorage",
    "StorageError",
    "NEW_CHAT_ICON",
    "NEW_CHAT_TITLE",
    "WELCOME_CHAT_ICON",
    "WELCOME_CHAT_TITLE",
    "create_storage",
]


def create_storage(config: Settings = settings) -> ChatStorage:
    """
    Select the chat store for this process.

    STORAGE_BACKEND=memory always uses memory. STORAGE_BACKEND=database
    fails if the database is unreachable. STORAGE_BACKEND=auto falls back to
    memory instead, so the service keeps running without a database.
    """
    if config.STORAGE_BACKEND == "memory":
        return MemoryStorage()

    try:
        engine = create_db_engine(config.DATABASE_URL, config.DATABASE_ECHO)
        check_connection(engine)
        init_db(engine)
    except (SQLAlchemyError, OSError, ImportError) as e:
        if config.STORAGE_BACKEND == "database":
            raise
        logger.warning(f"Database unavailable ({e}); using in-memory storage")
        return MemoryStorage()

    logger.info("Connected to database successfully")
    return DatabaseStorage(create_session_factory(engine))
