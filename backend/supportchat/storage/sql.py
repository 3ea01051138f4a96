"""
Durable chat store backed by SQLAlchemy.

Blocking ORM work runs in the threadpool with one session per call, so
concurrent connections never share a session.
"""

import logging
from typing import Callable, List, Optional, Type, TypeVar

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from supportchat.database import get_db_context
from supportchat.models.chat import Chat, Message
from supportchat.models.user import User
from supportchat.schemas import (
    ChatCreate,
    ChatRecord,
    MessageCreate,
    MessageRecord,
    UserCreate,
    UserRecord,
    utcnow,
)
from supportchat.storage.base import (
    ChatNotFoundError,
    ChatStorage,
    StorageError,
    as_utc,
    welcome_chat,
)
from supportchat.storage.identity import (
    collision_probability,
    derive_numeric_id,
    is_numeric_id,
    new_native_id,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Row = TypeVar("Row", User, Chat, Message)

MAX_ID_ATTEMPTS = 5


def _user_record(row: User) -> UserRecord:
    return UserRecord(id=row.id, username=row.username, credential=row.credential)


def _chat_record(row: Chat) -> ChatRecord:
    return ChatRecord(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        last_message=row.last_message or "",
        last_message_time=as_utc(row.last_message_time),
        icon=row.icon,
        active=bool(row.active),
    )


def _message_record(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        chat_id=row.chat_id,
        content=row.content,
        sender=row.sender,
        timestamp=as_utc(row.timestamp),
    )


class DatabaseStorage(ChatStorage):
    name = "database"

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def _run(self, operation: Callable[..., T], *args) -> T:
        try:
            return await run_in_threadpool(operation, *args)
        except StorageError:
            raise
        except (SQLAlchemyError, OverflowError) as e:
            logger.error(f"Database error in {operation.__name__}: {e}")
            raise StorageError(str(e)) from e

    def _insert(self, db: Session, model: Type[Row], **fields) -> Row:
        """Add a row under a fresh native key whose derived id is unused."""
        for _ in range(MAX_ID_ATTEMPTS):
            native_id = new_native_id()
            numeric_id = derive_numeric_id(native_id)
            taken = db.query(model.id).filter(model.id == numeric_id).first()
            if taken is None:
                row = model(native_id=native_id, id=numeric_id, **fields)
                db.add(row)
                db.flush()
                return row

            count = db.query(func.count(model.native_id)).scalar() or 0
            logger.warning(
                f"Derived id collision in {model.__tablename__} "
                f"({count} rows, estimated risk {collision_probability(count):.4f}), retrying"
            )
        raise StorageError(
            f"Could not allocate a unique id in {model.__tablename__} "
            f"after {MAX_ID_ATTEMPTS} attempts"
        )

    @staticmethod
    def _chat_row(db: Session, chat_id: int) -> Chat:
        row = None
        if is_numeric_id(chat_id):
            row = db.query(Chat).filter(Chat.id == chat_id).first()
        if row is None:
            raise ChatNotFoundError(f"Chat with ID {chat_id} not found")
        return row

    # User methods
    def _get_user(self, user_id: int) -> Optional[UserRecord]:
        if not is_numeric_id(user_id):
            return None
        with get_db_context(self._session_factory) as db:
            row = db.query(User).filter(User.id == user_id).first()
            return _user_record(row) if row else None

    def _get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with get_db_context(self._session_factory) as db:
            row = db.query(User).filter(User.username == username).first()
            return _user_record(row) if row else None

    def _create_user(self, user: UserCreate) -> UserRecord:
        with get_db_context(self._session_factory) as db:
            row = self._insert(
                db, User, username=user.username, credential=user.credential
            )
            chat = welcome_chat(row.id)
            self._insert(db, Chat, **chat.model_dump())
            db.commit()
            return _user_record(row)

    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        return await self._run(self._get_user, user_id)

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        return await self._run(self._get_user_by_username, username)

    async def create_user(self, user: UserCreate) -> UserRecord:
        return await self._run(self._create_user, user)

    # Chat methods
    def _create_chat(self, chat: ChatCreate) -> ChatRecord:
        with get_db_context(self._session_factory) as db:
            row = self._insert(db, Chat, **chat.model_dump())
            db.commit()
            return _chat_record(row)

    def _get_chat_by_id(self, chat_id: int) -> Optional[ChatRecord]:
        # Ids outside the derived range name no row and overflow SQLite INTEGER
        if not is_numeric_id(chat_id):
            return None
        with get_db_context(self._session_factory) as db:
            row = db.query(Chat).filter(Chat.id == chat_id).first()
            return _chat_record(row) if row else None

    def _get_chats_by_user_id(self, user_id: int) -> List[ChatRecord]:
        with get_db_context(self._session_factory) as db:
            rows = (
                db.query(Chat)
                .filter(Chat.user_id == user_id)
                .order_by(Chat.last_message_time.desc())
                .all()
            )
            return [_chat_record(row) for row in rows]

    def _update_chat_title(self, chat_id: int, title: str) -> ChatRecord:
        with get_db_context(self._session_factory) as db:
            row = self._chat_row(db, chat_id)
            row.title = title
            db.commit()
            return _chat_record(row)

    def _update_chat_last_message(self, chat_id: int, message: str) -> ChatRecord:
        with get_db_context(self._session_factory) as db:
            row = self._chat_row(db, chat_id)
            row.last_message = message
            row.last_message_time = utcnow()
            db.commit()
            return _chat_record(row)

    def _deactivate_other_chats(self, user_id: int, active_chat_id: int) -> None:
        with get_db_context(self._session_factory) as db:
            db.query(Chat).filter(
                Chat.user_id == user_id, Chat.id != active_chat_id
            ).update({Chat.active: False}, synchronize_session=False)
            db.commit()

    def _activate_chat(self, user_id: int, chat_id: int) -> None:
        with get_db_context(self._session_factory) as db:
            row = db.query(Chat).filter(Chat.id == chat_id).first()
            if row is None or row.user_id != user_id:
                raise ChatNotFoundError(
                    f"Chat with ID {chat_id} not found for user with ID {user_id}"
                )
            row.active = True
            db.commit()

    async def create_chat(self, chat: ChatCreate) -> ChatRecord:
        return await self._run(self._create_chat, chat)

    async def get_chat_by_id(self, chat_id: int) -> Optional[ChatRecord]:
        return await self._run(self._get_chat_by_id, chat_id)

    async def get_chats_by_user_id(self, user_id: int) -> List[ChatRecord]:
        return await self._run(self._get_chats_by_user_id, user_id)

    async def update_chat_title(self, chat_id: int, title: str) -> ChatRecord:
        return await self._run(self._update_chat_title, chat_id, title)

    async def update_chat_last_message(self, chat_id: int, message: str) -> ChatRecord:
        return await self._run(self._update_chat_last_message, chat_id, message)

    async def set_active_chat_by_id(self, user_id: int, chat_id: int) -> None:
        chat = await self.get_chat_by_id(chat_id)
        if chat is None or chat.user_id != user_id:
            raise ChatNotFoundError(
                f"Chat with ID {chat_id} not found for user with ID {user_id}"
            )
        # Two separate steps: a failure in between leaves no chat active
        await self.deactivate_other_chats(user_id, chat_id)
        await self._run(self._activate_chat, user_id, chat_id)

    async def deactivate_other_chats(self, user_id: int, active_chat_id: int) -> None:
        await self._run(self._deactivate_other_chats, user_id, active_chat_id)

    # Message methods
    def _create_message(self, message: MessageCreate) -> MessageRecord:
        with get_db_context(self._session_factory) as db:
            chat = self._chat_row(db, message.chat_id)
            row = self._insert(db, Message, **message.model_dump())
            chat.last_message = message.content
            chat.last_message_time = message.timestamp
            db.commit()
            return _message_record(row)

    def _get_messages_by_chat_id(self, chat_id: int) -> List[MessageRecord]:
        if not is_numeric_id(chat_id):
            return []
        with get_db_context(self._session_factory) as db:
            rows = (
                db.query(Message)
                .filter(Message.chat_id == chat_id)
                .order_by(Message.timestamp.asc())
                .all()
            )
            return [_message_record(row) for row in rows]

    async def create_message(self, message: MessageCreate) -> MessageRecord:
        return await self._run(self._create_message, message)

    async def get_messages_by_chat_id(self, chat_id: int) -> List[MessageRecord]:
        return await self._run(self._get_messages_by_chat_id, chat_id)
