"""
In-memory chat store used when no database is available.

Nothing survives a restart. Ids start at 1 and only grow. Every method
finishes its mutation without awaiting, so calls from different connections
on the same event loop never interleave halfway through an update.
"""

import logging
from typing import List, Optional

from supportchat.schemas import (
    ChatCreate,
    ChatRecord,
    MessageCreate,
    MessageRecord,
    UserCreate,
    UserRecord,
    utcnow,
)
from supportchat.storage.base import ChatNotFoundError, ChatStorage, welcome_chat

logger = logging.getLogger(__name__)


class MemoryStorage(ChatStorage):
    name = "memory"

    def __init__(self):
        self._users: List[UserRecord] = []
        self._chats: List[ChatRecord] = []
        self._messages: List[MessageRecord] = []
        self._next_user_id = 1
        self._next_chat_id = 1
        self._next_message_id = 1
        logger.info("Using in-memory storage")

    def _find_chat(self, chat_id: int) -> Optional[ChatRecord]:
        return next((c for c in self._chats if c.id == chat_id), None)

    def _require_chat(self, chat_id: int) -> ChatRecord:
        chat = self._find_chat(chat_id)
        if chat is None:
            raise ChatNotFoundError(f"Chat with ID {chat_id} not found")
        return chat

    # User methods
    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        user = next((u for u in self._users if u.id == user_id), None)
        return user.model_copy() if user else None

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        user = next((u for u in self._users if u.username == username), None)
        return user.model_copy() if user else None

    async def create_user(self, user: UserCreate) -> UserRecord:
        record = UserRecord(id=self._next_user_id, **user.model_dump())
        self._next_user_id += 1
        self._users.append(record)

        await self.create_chat(welcome_chat(record.id))
        return record.model_copy()

    # Chat methods
    async def create_chat(self, chat: ChatCreate) -> ChatRecord:
        record = ChatRecord(id=self._next_chat_id, **chat.model_dump())
        self._next_chat_id += 1
        self._chats.append(record)
        return record.model_copy()

    async def get_chat_by_id(self, chat_id: int) -> Optional[ChatRecord]:
        chat = self._find_chat(chat_id)
        return chat.model_copy() if chat else None

    async def get_chats_by_user_id(self, user_id: int) -> List[ChatRecord]:
        chats = [c.model_copy() for c in self._chats if c.user_id == user_id]
        chats.sort(key=lambda c: c.last_message_time, reverse=True)
        return chats

    async def update_chat_title(self, chat_id: int, title: str) -> ChatRecord:
        chat = self._require_chat(chat_id)
        chat.title = title
        return chat.model_copy()

    async def update_chat_last_message(self, chat_id: int, message: str) -> ChatRecord:
        chat = self._require_chat(chat_id)
        chat.last_message = message
        chat.last_message_time = utcnow()
        return chat.model_copy()

    async def set_active_chat_by_id(self, user_id: int, chat_id: int) -> None:
        chat = self._find_chat(chat_id)
        if chat is None or chat.user_id != user_id:
            raise ChatNotFoundError(
                f"Chat with ID {chat_id} not found for user with ID {user_id}"
            )
        await self.deactivate_other_chats(user_id, chat_id)
        chat.active = True

    async def deactivate_other_chats(self, user_id: int, active_chat_id: int) -> None:
        for chat in self._chats:
            if chat.user_id == user_id and chat.id != active_chat_id:
                chat.active = False

    # Message methods
    async def create_message(self, message: MessageCreate) -> MessageRecord:
        chat = self._require_chat(message.chat_id)
        record = MessageRecord(id=self._next_message_id, **message.model_dump())
        self._next_message_id += 1
        self._messages.append(record)

        chat.last_message = record.content
        chat.last_message_time = record.timestamp
        return record.model_copy()

    async def get_messages_by_chat_id(self, chat_id: int) -> List[MessageRecord]:
        messages = [m.model_copy() for m in self._messages if m.chat_id == chat_id]
        # Stable sort keeps insertion order for equal timestamps
        messages.sort(key=lambda m: m.timestamp)
        return messages
