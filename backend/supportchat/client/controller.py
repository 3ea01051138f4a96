"""
Client-side mirror of the chat protocol.

Keeps a local view (chat list, selected chat, its messages, typing flag) in
sync with the server over one WebSocket, echoes sent messages locally, and
reconnects two seconds after every close for as long as it runs.
Everything happens on one asyncio loop; no method blocks.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from supportchat.config import settings

logger = logging.getLogger(__name__)

SEND_ERROR = "Unable to send message. Please try again."
CREATE_ERROR = "Unable to create a new chat. Please try again."


def _local_message(content: str, sender: str) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "id": str(int(now.timestamp() * 1000)),
        "content": content,
        "sender": sender,
        "timestamp": now.isoformat(),
    }


class ChatSessionController:
    """
    Args:
        url: WebSocket URL of the server, e.g. ws://localhost:8000/ws
        token: Access token of the signed-in user; nothing connects without one
        on_error: Called with a human-readable message for toasts
        on_change: Called after every local state change
        reconnect_delay: Seconds between a close and the next attempt
        connect: WebSocket connect factory (websockets.connect by default)
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_change: Optional[Callable[[], None]] = None,
        reconnect_delay: float = settings.RECONNECT_DELAY_SECONDS,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self.url = url
        self.token = token
        self.on_error = on_error
        self.on_change = on_change
        self.reconnect_delay = reconnect_delay
        self._connect = connect

        self.messages: List[Dict[str, Any]] = []
        self.chats: List[Dict[str, Any]] = []
        self.active_chat: Optional[Dict[str, Any]] = None
        self.is_typing = False

        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._running = False

    # --- Connection lifecycle ---

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    async def start(self) -> bool:
        """Open the connection once a user identity is known."""
        if not self.token or self._running:
            return False
        self._running = True
        self._open()
        return True

    async def stop(self) -> None:
        """Cancel any pending reconnect and close the connection."""
        self._running = False
        self._cancel_reconnect()
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

    def _open(self) -> None:
        self._reconnect_handle = None
        if self._running:
            self._reader = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        try:
            ws = await self._connect(
                self.url, additional_headers={"Authorization": f"Bearer {self.token}"}
            )
        except (OSError, InvalidHandshake, asyncio.TimeoutError) as e:
            logger.warning(f"WebSocket connection failed: {e}")
            self._on_close()
            return

        self._ws = ws
        self._on_open()
        try:
            async for raw in ws:
                self.handle_event(json.loads(raw))
        except ConnectionClosed as e:
            logger.info(f"WebSocket closed: {e}")
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError) as e:
            logger.error(f"Malformed event from server: {e}")
            await ws.close()
        finally:
            if self._ws is ws:
                self._ws = None
                self._on_close()

    def _on_open(self) -> None:
        logger.info("WebSocket connected")
        self._cancel_reconnect()
        asyncio.ensure_future(self._send({"type": "getChats"}))

    def _on_close(self) -> None:
        if not self._running:
            return
        logger.info(
            f"WebSocket disconnected. Attempting to reconnect in {self.reconnect_delay}s..."
        )
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._open)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    async def _send(self, payload: Dict[str, Any]) -> bool:
        if self._ws is None:
            return False
        try:
            await self._ws.send(json.dumps(payload))
            return True
        except ConnectionClosed:
            return False

    def _notify_error(self, message: str) -> None:
        if self.on_error:
            self.on_error(message)

    def _changed(self) -> None:
        if self.on_change:
            self.on_change()

    # --- Inbound events ---

    def handle_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")

        if event_type == "botResponse":
            self.is_typing = False
            self._add_message(_local_message(event.get("content", ""), "bot"))
        elif event_type == "typing":
            self.is_typing = bool(event.get("isTyping"))
        elif event_type == "chats":
            self.chats = list(event.get("chats", []))
            if self.chats and self.active_chat is None:
                active = next((chat for chat in self.chats if chat.get("active")), None)
                self._activate(active or self.chats[0])
        elif event_type == "messages":
            if self.active_chat and event.get("chatId") == self.active_chat["id"]:
                self.messages = list(event.get("messages", []))
        elif event_type == "error":
            self._notify_error(event.get("message", "Something went wrong"))
        else:
            logger.debug(f"Ignoring event type {event_type}")
            return

        self._changed()

    def _activate(self, chat: Dict[str, Any]) -> None:
        """Make chat the selected one and ask for its messages."""
        self.active_chat = chat
        if self.is_open:
            asyncio.ensure_future(self._send({"type": "getMessages", "chatId": chat["id"]}))

    def _add_message(self, message: Dict[str, Any]) -> None:
        self.messages.append(message)
        if self.active_chat is None:
            return
        for chat in self.chats:
            if chat["id"] == self.active_chat["id"]:
                chat["lastMessage"] = message["content"]
                chat["lastMessageTime"] = message["timestamp"]

    # --- User actions ---

    async def send_message(self, content: str) -> bool:
        """Echo the message locally, then send it to the server."""
        if not content.strip() or self.active_chat is None:
            return False

        self._add_message(_local_message(content, "user"))
        self._changed()

        sent = await self._send(
            {"type": "message", "chatId": self.active_chat["id"], "content": content}
        )
        if sent:
            self.is_typing = True
            self._changed()
        else:
            self._notify_error(SEND_ERROR)
        return sent

    async def create_new_chat(self) -> bool:
        sent = await self._send({"type": "createChat"})
        if not sent:
            self._notify_error(CREATE_ERROR)
        return sent

    async def select_chat(self, chat_id: int) -> bool:
        """Switch chats: clear the local list now, let the server refill it."""
        selected = next((chat for chat in self.chats if chat["id"] == chat_id), None)
        if selected is None:
            return False

        self.active_chat = selected
        self.messages = []
        for chat in self.chats:
            chat["active"] = chat["id"] == chat_id
        self._changed()

        return await self._send({"type": "selectChat", "chatId": chat_id})
