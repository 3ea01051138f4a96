"""
Outbound WebSocket events.
"""

from typing import Any, Dict, List

from supportchat.schemas import ChatRecord, MessageRecord, dump_records

ACCESS_DENIED = "Chat not found or access denied"
SEND_FAILED = "Failed to process your message"
CREATE_FAILED = "Failed to create chat"
SELECT_FAILED = "Failed to select chat"


def chats_event(chats: List[ChatRecord]) -> Dict[str, Any]:
    return {"type": "chats", "chats": dump_records(chats)}


def messages_event(chat_id: int, messages: List[MessageRecord]) -> Dict[str, Any]:
    return {"type": "messages", "chatId": chat_id, "messages": dump_records(messages)}


def bot_response_event(content: str) -> Dict[str, Any]:
    return {"type": "botResponse", "content": content}


def typing_event(is_typing: bool) -> Dict[str, Any]:
    return {"type": "typing", "isTyping": is_typing}


def error_event(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}
