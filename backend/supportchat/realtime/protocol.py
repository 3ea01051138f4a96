"""
Chat protocol engine: per-connection lifecycle and request dispatch.

A connection moves CONNECTING -> AUTHENTICATING -> ACTIVE -> CLOSED. Only
ACTIVE sessions receive events. Every inbound request runs in its own task,
so the simulated reply latency of one message never holds up other
requests on the same socket.
"""

import asyncio
import json
import logging
import random
import weakref
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from fastapi import WebSocket, status
from pydantic import ValidationError

from supportchat.core.logging import preview
from supportchat.realtime import events
from supportchat.realtime.connection import WebSocketConnection
from supportchat.realtime.registry import Connection, SessionRegistry
from supportchat.schemas import (
    REQUEST_TYPES,
    ChatCreate,
    ChatRecord,
    CreateChatRequest,
    GetChatsRequest,
    GetMessagesRequest,
    HistoryTurn,
    MessageCreate,
    MessageRecord,
    SelectChatRequest,
    SendMessageRequest,
    client_request_adapter,
)
from supportchat.services.completion_service import CompletionService
from supportchat.storage.base import (
    NEW_CHAT_ICON,
    NEW_CHAT_TITLE,
    ChatNotFoundError,
    ChatStorage,
    StorageError,
)

logger = logging.getLogger(__name__)

Authenticator = Callable[[WebSocket], Awaitable[Optional[int]]]


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    CLOSED = "closed"


ALLOWED_TRANSITIONS = {
    SessionState.CONNECTING: {SessionState.AUTHENTICATING, SessionState.CLOSED},
    SessionState.AUTHENTICATING: {SessionState.ACTIVE, SessionState.CLOSED},
    SessionState.ACTIVE: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


class InvalidTransitionError(RuntimeError):
    """Session asked to move between states that are not connected."""


class ChatSession:
    """State of one live connection."""

    def __init__(self, connection: Connection):
        self.connection = connection
        self.user_id: Optional[int] = None
        self.state = SessionState.CONNECTING
        self._tasks: Set[asyncio.Task] = set()

    def transition(self, new_state: SessionState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Cannot move session from {self.state.value} to {new_state.value}"
            )
        self.state = new_state

    async def send(self, event: Dict[str, Any]) -> bool:
        """Push an event; a no-op unless the session is ACTIVE."""
        if self.state is not SessionState.ACTIVE:
            return False
        return await self.connection.send(event)

    def spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


class ChatProtocolEngine:
    """Serves the /ws protocol for every connection in the process."""

    def __init__(
        self,
        storage: ChatStorage,
        completion: CompletionService,
        registry: SessionRegistry,
        authenticator: Optional[Authenticator] = None,
        reply_delay: Tuple[float, float] = (1.0, 2.0),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.storage = storage
        self.completion = completion
        self.registry = registry
        self.authenticator = authenticator
        self.reply_delay = reply_delay
        self._sleep = sleep
        self._chat_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    # --- Lifecycle ---

    async def serve(self, websocket: WebSocket) -> None:
        """Run one WebSocket from handshake to close."""
        session = ChatSession(WebSocketConnection(websocket))
        await websocket.accept()
        session.transition(SessionState.AUTHENTICATING)

        user_id = await self.authenticator(websocket) if self.authenticator else None
        if user_id is None:
            logger.warning("WebSocket rejected: authentication required")
            session.transition(SessionState.CLOSED)
            await session.connection.close(
                code=status.WS_1008_POLICY_VIOLATION, reason="Authentication required"
            )
            return

        await self.open_session(session, user_id)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    logger.warning(f"Ignoring binary frame from user {user_id}")
                    continue
                self.handle_frame(session, text)
        finally:
            self.close_session(session)

    async def open_session(self, session: ChatSession, user_id: int) -> None:
        """Authenticated: register the connection and push the chat list."""
        session.user_id = user_id
        session.transition(SessionState.ACTIVE)
        self.registry.register(user_id, session.connection)
        logger.info(f"WebSocket connected: User {user_id}")

        await session.send(events.chats_event(await self._read_chats(user_id)))

    def close_session(self, session: ChatSession) -> None:
        """Transport gone: stop delivering events and drop the registry entry."""
        if session.state is SessionState.CLOSED:
            return
        session.transition(SessionState.CLOSED)
        session.connection.mark_closed()
        if session.user_id is not None:
            self.registry.unregister(session.user_id, session.connection)
            logger.info(f"WebSocket disconnected: User {session.user_id}")

    # --- Inbound requests ---

    def handle_frame(self, session: ChatSession, raw: str) -> Optional[asyncio.Task]:
        """Parse one text frame and schedule its handler."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON frame from user {session.user_id}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Ignoring non-object frame from user {session.user_id}")
            return None

        request_type = data.get("type")
        if request_type not in REQUEST_TYPES:
            logger.info(f"Unknown message type: {request_type}")
            return None

        try:
            request = client_request_adapter.validate_python(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed '{request_type}' request: {e.errors()}")
            return None

        return session.spawn(self.dispatch(session, request))

    async def dispatch(self, session: ChatSession, request: Any) -> None:
        try:
            if isinstance(request, GetChatsRequest):
                await self.get_chats(session)
            elif isinstance(request, GetMessagesRequest):
                await self.get_messages(session, request.chat_id)
            elif isinstance(request, CreateChatRequest):
                await self.create_chat(session)
            elif isinstance(request, SelectChatRequest):
                await self.select_chat(session, request.chat_id)
            elif isinstance(request, SendMessageRequest):
                await self.send_message(session, request.chat_id, request.content)
        except Exception:
            logger.exception("Error processing WebSocket message")
            if isinstance(request, SendMessageRequest):
                await session.send(events.error_event(events.SEND_FAILED))

    # --- Handlers ---

    async def get_chats(self, session: ChatSession) -> None:
        await session.send(events.chats_event(await self._read_chats(session.user_id)))

    async def get_messages(self, session: ChatSession, chat_id: int) -> None:
        try:
            chat = await self._owned_chat(session, chat_id)
        except StorageError:
            await session.send(events.messages_event(chat_id, []))
            return
        if chat is None:
            await session.send(events.error_event(events.ACCESS_DENIED))
            return

        await session.send(events.messages_event(chat_id, await self._read_messages(chat_id)))

    async def create_chat(self, session: ChatSession) -> None:
        user_id = session.user_id
        try:
            chat = await self.storage.create_chat(
                ChatCreate(
                    user_id=user_id,
                    title=NEW_CHAT_TITLE,
                    last_message="",
                    icon=NEW_CHAT_ICON,
                    active=True,
                )
            )
            await self.storage.deactivate_other_chats(user_id, chat.id)
        except StorageError as e:
            logger.error(f"Error creating chat for user {user_id}: {e}")
            await session.send(events.error_event(events.CREATE_FAILED))
            return

        await self.get_chats(session)

    async def select_chat(self, session: ChatSession, chat_id: int) -> None:
        user_id = session.user_id
        try:
            chat = await self._owned_chat(session, chat_id)
            if chat is None:
                await session.send(events.error_event(events.ACCESS_DENIED))
                return
            await self.storage.set_active_chat_by_id(user_id, chat_id)
        except ChatNotFoundError:
            await session.send(events.error_event(events.ACCESS_DENIED))
            return
        except StorageError as e:
            logger.error(f"Error selecting chat {chat_id} for user {user_id}: {e}")
            await session.send(events.error_event(events.SELECT_FAILED))
            return

        await session.send(events.messages_event(chat_id, await self._read_messages(chat_id)))

    async def send_message(self, session: ChatSession, chat_id: int, content: str) -> None:
        """
        Full send pipeline for one user message.

        Persist, title the chat on its first message, ask for a reply,
        show typing, wait the simulated latency, persist and push the reply.
        Any storage failure stops the pipeline with a generic error event;
        the user's message stays stored.

        Reading the chat, storing the message and titling run under a
        per-chat lock, so only one of several racing first messages sees an
        empty chat. The reply runs outside the lock.
        """
        if not content.strip():
            logger.warning(f"Ignoring empty message from user {session.user_id}")
            return

        try:
            async with self._chat_lock(chat_id):
                chat = await self._owned_chat(session, chat_id)
                if chat is None:
                    await session.send(events.error_event(events.ACCESS_DENIED))
                    return
                user_message = await self._accept_message(session, chat, content)
            await self._reply(session, chat, content, user_message)
        except StorageError as e:
            logger.error(f"Error handling chat message in chat {chat_id}: {e}")
            await session.send(events.error_event(events.SEND_FAILED))

    async def _accept_message(
        self, session: ChatSession, chat: ChatRecord, content: str
    ) -> MessageRecord:
        user_id = session.user_id
        is_first_message = chat.last_message == ""

        user_message = await self.storage.create_message(
            MessageCreate(chat_id=chat.id, content=content, sender="user")
        )
        logger.info(f"User {user_id} -> chat {chat.id}: '{preview(content)}'")

        if is_first_message:
            title = await self.completion.generate_title(content)
            await self.storage.update_chat_title(chat.id, title)
            await session.send(
                events.chats_event(await self.storage.get_chats_by_user_id(user_id))
            )

        await self.storage.update_chat_last_message(chat.id, content)
        return user_message

    async def _reply(
        self,
        session: ChatSession,
        chat: ChatRecord,
        content: str,
        user_message: MessageRecord,
    ) -> None:
        history = [
            HistoryTurn.from_message(message)
            for message in await self.storage.get_messages_by_chat_id(chat.id)
            if message.id != user_message.id
        ]
        reply = await self.completion.generate_reply(content, history)

        await session.send(events.typing_event(True))
        await self._sleep(random.uniform(*self.reply_delay))

        await self.storage.create_message(
            MessageCreate(chat_id=chat.id, content=reply, sender="bot")
        )
        await self.storage.update_chat_last_message(chat.id, reply)

        await session.send(events.bot_response_event(reply))
        await session.send(events.typing_event(False))

    # --- Helpers ---

    def _chat_lock(self, chat_id: int) -> asyncio.Lock:
        lock = self._chat_locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._chat_locks[chat_id] = lock
        return lock

    async def _owned_chat(self, session: ChatSession, chat_id: int) -> Optional[ChatRecord]:
        """The chat if it exists and belongs to the session's user, else None."""
        chat = await self.storage.get_chat_by_id(chat_id)
        if chat is None or chat.user_id != session.user_id:
            logger.warning(f"User {session.user_id} denied access to chat {chat_id}")
            return None
        return chat

    async def _read_chats(self, user_id: int):
        try:
            return await self.storage.get_chats_by_user_id(user_id)
        except StorageError as e:
            logger.error(f"Error fetching chats for user {user_id}: {e}")
            return []

    async def _read_messages(self, chat_id: int):
        try:
            return await self.storage.get_messages_by_chat_id(chat_id)
        except StorageError as e:
            logger.error(f"Error fetching messages for chat {chat_id}: {e}")
            return []
