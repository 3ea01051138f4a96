"""
Chat history endpoints for initial page load and polling.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from supportchat.dependencies import get_current_user, get_storage
from supportchat.schemas import ChatRecord, MessageRecord, UserRecord
from supportchat.storage.base import ChatStorage, StorageError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[ChatRecord], response_model_by_alias=True)
async def list_chats(
    current_user: UserRecord = Depends(get_current_user),
    storage: ChatStorage = Depends(get_storage),
):
    """List the caller's chats, most recent first."""
    try:
        return await storage.get_chats_by_user_id(current_user.id)
    except StorageError as e:
        logger.error(f"Error fetching chats for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch chats",
        )


@router.get(
    "/{chat_id}/messages",
    response_model=List[MessageRecord],
    response_model_by_alias=True,
)
async def get_messages(
    chat_id: int,
    current_user: UserRecord = Depends(get_current_user),
    storage: ChatStorage = Depends(get_storage),
):
    """Get messages for one of the caller's chats, oldest first."""
    try:
        chat = await storage.get_chat_by_id(chat_id)
        if not chat or chat.user_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Access denied"
            )
        return await storage.get_messages_by_chat_id(chat_id)
    except StorageError as e:
        logger.error(f"Error fetching messages for chat {chat_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch messages",
        )
