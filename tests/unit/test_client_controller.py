"""
Tests for the client-side session controller
"""
import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from supportchat.client.controller import (
    CREATE_ERROR,
    SEND_ERROR,
    ChatSessionController,
)

CHATS = [
    {"id": 1, "title": "Welcome", "lastMessage": "", "active": False},
    {"id": 2, "title": "Billing", "lastMessage": "Hi", "active": True},
]


class FakeSocket:
    """Server side of a client connection: replays frames, records sends"""

    def __init__(self, incoming=()):
        self.incoming = [json.dumps(event) for event in incoming]
        self.sent = []
        self.closed = False

    async def send(self, raw):
        self.sent.append(json.loads(raw))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for raw in self.incoming:
            await asyncio.sleep(0)
            yield raw
        await asyncio.sleep(0)


def _controller(**kwargs) -> ChatSessionController:
    kwargs.setdefault("token", "token-123")
    kwargs.setdefault("on_error", Mock())
    kwargs.setdefault("on_change", Mock())
    return ChatSessionController("ws://localhost:8000/ws", **kwargs)


def _chats():
    return [dict(chat) for chat in CHATS]


@pytest.mark.unit
class TestInboundEvents:

    def test_chats_selects_active_chat(self):
        controller = _controller()

        controller.handle_event({"type": "chats", "chats": _chats()})

        assert [chat["id"] for chat in controller.chats] == [1, 2]
        assert controller.active_chat["id"] == 2
        controller.on_change.assert_called_once()

    def test_chats_selects_first_when_none_active(self):
        controller = _controller()
        chats = _chats()
        chats[1]["active"] = False

        controller.handle_event({"type": "chats", "chats": chats})

        assert controller.active_chat["id"] == 1

    def test_chats_keeps_current_selection(self):
        controller = _controller()
        controller.handle_event({"type": "chats", "chats": _chats()})
        controller.active_chat = controller.chats[0]

        controller.handle_event({"type": "chats", "chats": _chats()})

        assert controller.active_chat["id"] == 1

    def test_bot_response_appends_and_stops_typing(self):
        controller = _controller()
        controller.handle_event({"type": "chats", "chats": _chats()})
        controller.is_typing = True

        controller.handle_event({"type": "botResponse", "content": "Sure, I can help."})

        assert controller.is_typing is False
        assert controller.messages[-1]["sender"] == "bot"
        assert controller.messages[-1]["content"] == "Sure, I can help."
        active = next(chat for chat in controller.chats if chat["id"] == 2)
        assert active["lastMessage"] == "Sure, I can help."

    def test_typing(self):
        controller = _controller()

        controller.handle_event({"type": "typing", "isTyping": True})
        assert controller.is_typing is True
        controller.handle_event({"type": "typing", "isTyping": False})
        assert controller.is_typing is False

    def test_messages_for_active_chat_replace_list(self):
        controller = _controller()
        controller.handle_event({"type": "chats", "chats": _chats()})
        history = [{"id": 5, "content": "Hi", "sender": "user"}]

        controller.handle_event({"type": "messages", "chatId": 1, "messages": history})
        assert controller.messages == []

        controller.handle_event({"type": "messages", "chatId": 2, "messages": history})
        assert controller.messages == history

    def test_error_is_reported(self):
        controller = _controller()

        controller.handle_event({"type": "error", "message": "Failed to create chat"})

        controller.on_error.assert_called_once_with("Failed to create chat")

    def test_unknown_event_is_ignored(self):
        controller = _controller()

        controller.handle_event({"type": "mystery"})

        controller.on_change.assert_not_called()


@pytest.mark.unit
class TestUserActions:

    async def test_send_message_echoes_and_sends(self):
        controller = _controller()
        controller.handle_event({"type": "chats", "chats": _chats()})
        socket = FakeSocket()
        controller._ws = socket

        assert await controller.send_message("Where is my invoice?") is True

        assert controller.messages[-1]["sender"] == "user"
        assert controller.messages[-1]["content"] == "Where is my invoice?"
        assert controller.is_typing is True
        assert socket.sent[-1] == {
            "type": "message",
            "chatId": 2,
            "content": "Where is my invoice?",
        }

    async def test_send_message_without_connection(self):
        controller = _controller()
        controller.handle_event({"type": "chats", "chats": _chats()})

        assert await controller.send_message("Hello?") is False

        assert controller.messages[-1]["content"] == "Hello?"
        assert controller.is_typing is False
        controller.on_error.assert_called_once_with(SEND_ERROR)

    async def test_blank_message_is_not_sent(self):
        controller = _controller()
        controller.handle_event({"type": "chats", "chats": _chats()})

        assert await controller.send_message("   ") is False
        assert controller.messages == []

    async def test_create_chat_without_connection(self):
        controller = _controller()

        assert await controller.create_new_chat() is False
        controller.on_error.assert_called_once_with(CREATE_ERROR)

    async def test_create_chat(self):
        controller = _controller()
        socket = FakeSocket()
        controller._ws = socket

        assert await controller.create_new_chat() is True
        assert socket.sent == [{"type": "createChat"}]

    async def test_select_chat(self):
        controller = _controller()
        controller.handle_event({"type": "chats", "chats": _chats()})
        controller.messages = [{"id": 1, "content": "old"}]
        socket = FakeSocket()
        controller._ws = socket

        assert await controller.select_chat(1) is True

        assert controller.active_chat["id"] == 1
        assert controller.messages == []
        assert [chat["active"] for chat in controller.chats] == [True, False]
        assert socket.sent == [{"type": "selectChat", "chatId": 1}]

    async def test_select_unknown_chat(self):
        controller = _controller()
        controller.handle_event({"type": "chats", "chats": _chats()})

        assert await controller.select_chat(99) is False
        assert controller.active_chat["id"] == 2


@pytest.mark.unit
class TestConnectionLifecycle:

    def test_default_reconnect_delay(self):
        assert _controller().reconnect_delay == 2.0

    async def test_start_requires_token(self):
        connect = AsyncMock()
        controller = _controller(token=None, connect=connect)

        assert await controller.start() is False
        connect.assert_not_called()

    async def test_open_loads_chats_then_messages(self):
        socket = FakeSocket([{"type": "chats", "chats": _chats()}])
        connect = AsyncMock(return_value=socket)
        controller = _controller(connect=connect, reconnect_delay=60)

        assert await controller.start() is True
        await controller._reader

        connect.assert_awaited_once_with(
            "ws://localhost:8000/ws",
            additional_headers={"Authorization": "Bearer token-123"},
        )
        assert socket.sent == [
            {"type": "getChats"},
            {"type": "getMessages", "chatId": 2},
        ]
        assert controller.active_chat["id"] == 2

        # the socket ran dry, so a reconnect is scheduled
        assert controller.is_open is False
        assert controller.reconnect_pending is True

        await controller.stop()
        assert controller.reconnect_pending is False

    @pytest.mark.parametrize(
        "frame",
        [[1, 2, 3], {"type": "chats", "chats": [{"title": "no id"}]}],
    )
    async def test_malformed_event_closes_socket(self, frame):
        socket = FakeSocket([frame])
        controller = _controller(connect=AsyncMock(return_value=socket), reconnect_delay=60)

        await controller.start()
        await controller._reader

        assert socket.closed is True
        assert controller.is_open is False
        assert controller.reconnect_pending is True

        await controller.stop()

    async def test_failed_connect_schedules_reconnect(self):
        connect = AsyncMock(side_effect=OSError("connection refused"))
        controller = _controller(connect=connect, reconnect_delay=60)

        await controller.start()
        await controller._reader

        assert controller.reconnect_pending is True
        assert connect.await_count == 1

        await controller.stop()
        assert controller.reconnect_pending is False

    async def test_reconnects_after_delay(self):
        pending = [FakeSocket(), FakeSocket()]
        opened = []

        async def connect(url, **kwargs):
            if not pending:
                raise OSError("connection refused")
            opened.append(pending.pop(0))
            return opened[-1]

        controller = _controller(connect=connect, reconnect_delay=0.01)

        await controller.start()
        for _ in range(200):
            if len(opened) == 2 and opened[1].sent:
                break
            await asyncio.sleep(0.01)
        await controller.stop()

        assert len(opened) == 2
        assert opened[0].sent == [{"type": "getChats"}]
        assert opened[1].sent == [{"type": "getChats"}]

    async def test_stop_closes_open_socket(self):
        socket = FakeSocket()
        controller = _controller(connect=AsyncMock(return_value=socket), reconnect_delay=60)
        controller._running = True
        controller._ws = socket

        await controller.stop()

        assert socket.closed is True
        assert controller.is_open is False
