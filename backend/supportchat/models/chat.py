"""
Chat database models.
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from supportchat.database import Base
from supportchat.schemas import utcnow


class Chat(Base):
    """Chat model."""

    __tablename__ = "chats"

    native_id = Column(String(32), primary_key=True)
    id = Column(BigInteger, unique=True, index=True, nullable=False)
    user_id = Column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    title = Column(String(200), nullable=False)
    # Denormalized preview of the newest message
    last_message = Column(Text, nullable=False, default="")
    last_message_time = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    icon = Column(String(50), nullable=False, default="comment")
    active = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="chats")
    messages = relationship(
        "Message", back_populates="chat", cascade="all, delete-orphan"
    )


class Message(Base):
    """Message model."""

    __tablename__ = "messages"

    native_id = Column(String(32), primary_key=True)
    id = Column(BigInteger, unique=True, index=True, nullable=False)
    chat_id = Column(
        BigInteger, ForeignKey("chats.id", ondelete="CASCADE"), index=True, nullable=False
    )
    content = Column(Text, nullable=False)
    sender = Column(String(10), nullable=False)  # 'user' or 'bot'
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    chat = relationship("Chat", back_populates="messages")
