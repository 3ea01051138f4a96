"""
Database models for the support chat service.

All SQLAlchemy models are imported here so metadata sees every table.
"""

from supportchat.models.user import User
from supportchat.models.chat import Chat, Message

__all__ = [
    "User",
    "Chat",
    "Message",
]
