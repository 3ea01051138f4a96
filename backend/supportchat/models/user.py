"""
User database model.
"""

from sqlalchemy import BigInteger, Column, DateTime, String
from sqlalchemy.orm import relationship

from supportchat.database import Base
from supportchat.schemas import utcnow


class User(Base):
    """User model."""

    __tablename__ = "users"

    # Opaque native key; `id` is derived from it (see storage.identity)
    native_id = Column(String(32), primary_key=True)
    id = Column(BigInteger, unique=True, index=True, nullable=False)
    username = Column(String(50), unique=True, index=True, nullable=False)
    credential = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    chats = relationship("Chat", back_populates="user", cascade="all, delete-orphan")
