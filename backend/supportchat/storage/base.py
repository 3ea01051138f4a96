"""
Persistence contract shared by the durable and in-memory chat stores.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from supportchat.schemas import (
    ChatCreate,
    ChatRecord,
    MessageCreate,
    MessageRecord,
    UserCreate,
    UserRecord,
)

WELCOME_CHAT_TITLE = "Welcome"
WELCOME_CHAT_ICON = "robot"
NEW_CHAT_TITLE = "New Conversation"
NEW_CHAT_ICON = "comment"


class StorageError(Exception):
    """Backend failure on a storage call."""


class ChatNotFoundError(StorageError):
    """Chat does not exist or is not owned by the given user."""


def welcome_chat(user_id: int) -> ChatCreate:
    """Initial chat every user gets at registration."""
    return ChatCreate(
        user_id=user_id,
        title=WELCOME_CHAT_TITLE,
        last_message="",
        icon=WELCOME_CHAT_ICON,
        active=True,
    )


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChatStorage(ABC):
    """
    Storage of users, chats and messages.

    All operations may raise StorageError. Lookups return None when the
    record does not exist. No atomicity is promised across calls.
    """

    name = "abstract"

    # User operations
    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def create_user(self, user: UserCreate) -> UserRecord:
        """Create a user together with its active "Welcome" chat."""

    # Chat operations
    @abstractmethod
    async def create_chat(self, chat: ChatCreate) -> ChatRecord:
        ...

    @abstractmethod
    async def get_chat_by_id(self, chat_id: int) -> Optional[ChatRecord]:
        ...

    @abstractmethod
    async def get_chats_by_user_id(self, user_id: int) -> List[ChatRecord]:
        """Chats of a user, most recent lastMessageTime first."""

    @abstractmethod
    async def update_chat_title(self, chat_id: int, title: str) -> ChatRecord:
        ...

    @abstractmethod
    async def update_chat_last_message(self, chat_id: int, message: str) -> ChatRecord:
        """Refresh the preview text and set lastMessageTime to now."""

    @abstractmethod
    async def set_active_chat_by_id(self, user_id: int, chat_id: int) -> None:
        """
        Deactivate the user's other chats, then activate chat_id.

        Raises ChatNotFoundError if the chat is missing or belongs to
        another user.
        """

    @abstractmethod
    async def deactivate_other_chats(self, user_id: int, active_chat_id: int) -> None:
        ...

    # Message operations
    @abstractmethod
    async def create_message(self, message: MessageCreate) -> MessageRecord:
        """Store a message and refresh the parent chat's lastMessage."""

    @abstractmethod
    async def get_messages_by_chat_id(self, chat_id: int) -> List[MessageRecord]:
        """Messages of a chat, oldest first."""
