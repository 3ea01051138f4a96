"""
Authentication Service.
"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, status

from supportchat.config import settings
from supportchat.core import security
from supportchat.schemas import UserCreate, UserRecord
from supportchat.storage.base import ChatStorage, StorageError

logger = logging.getLogger(__name__)


class AuthService:
    async def authenticate_user(
        self, storage: ChatStorage, username: str, password: str
    ) -> Optional[UserRecord]:
        """Authenticate a user by username and password."""
        user = await storage.get_user_by_username(username)
        if not user:
            return None
        if not security.verify_password(password, user.credential):
            return None
        return user

    async def create_user(
        self, storage: ChatStorage, username: str, password: str
    ) -> UserRecord:
        """Create a new user (and, through the store, its Welcome chat)."""
        existing_user = await storage.get_user_by_username(username)
        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username already exists",
            )

        credential = security.get_password_hash(password)
        try:
            user = await storage.create_user(
                UserCreate(username=username, credential=credential)
            )
        except StorageError as e:
            logger.error(f"Error creating user '{username}': {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create user",
            )
        logger.info(f"Registered user {user.id} ({username})")
        return user

    def create_user_token(self, user: UserRecord) -> dict:
        """Create access token for user."""
        access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        access_token = security.create_access_token(
            data={"sub": user.username, "user_id": user.id},
            expires_delta=access_token_expires,
        )
        return {"access_token": access_token, "token_type": "bearer"}


auth_service = AuthService()
