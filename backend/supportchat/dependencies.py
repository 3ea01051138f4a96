"""
Shared API dependencies.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import OAuth2PasswordBearer

from supportchat.config import settings
from supportchat.core import security
from supportchat.realtime.protocol import ChatProtocolEngine
from supportchat.schemas import UserRecord
from supportchat.storage.base import ChatStorage, StorageError

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_storage(request: Request) -> ChatStorage:
    """The chat store selected at startup."""
    return request.app.state.storage


def get_engine(websocket: WebSocket) -> ChatProtocolEngine:
    return websocket.app.state.engine


async def get_current_user(
    request: Request,
    storage: ChatStorage = Depends(get_storage),
    token: Optional[str] = Depends(oauth2_scheme),
) -> UserRecord:
    """
    Validate the access token (bearer header or cookie) and return the user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = security.decode_user_id(
        token or request.cookies.get(settings.ACCESS_TOKEN_COOKIE)
    )
    if user_id is None:
        raise credentials_exception

    try:
        user = await storage.get_user(user_id)
    except StorageError as e:
        logger.error(f"Error loading user {user_id}: {e}")
        raise credentials_exception

    if user is None:
        raise credentials_exception
    return user


def websocket_token(websocket: WebSocket) -> Optional[str]:
    """Access token from the handshake: cookie, bearer header, or ?token=."""
    token = websocket.cookies.get(settings.ACCESS_TOKEN_COOKIE)
    if token:
        return token

    authorization = websocket.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials

    return websocket.query_params.get("token")


async def resolve_websocket_user(websocket: WebSocket) -> Optional[int]:
    """
    Authenticated user id for a WebSocket handshake, or None.
    """
    user_id = security.decode_user_id(websocket_token(websocket))
    if user_id is None:
        return None

    storage: ChatStorage = websocket.app.state.storage
    try:
        user = await storage.get_user(user_id)
    except StorageError as e:
        logger.error(f"Error extracting user from session: {e}")
        return None
    return user.id if user else None
