"""
Authentication API endpoints.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordRequestForm

from supportchat.config import settings
from supportchat.core.limiter import limiter
from supportchat.dependencies import get_current_user, get_storage
from supportchat.schemas import RegisterRequest, Token, UserRecord, UserResponse
from supportchat.services.auth_service import auth_service
from supportchat.storage.base import ChatStorage

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.ACCESS_TOKEN_COOKIE,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
    )


@router.post("/token", response_model=Token)
@limiter.limit("5/minute")
async def login_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    storage: ChatStorage = Depends(get_storage),
) -> Any:
    """
    OAuth2 compatible token login, get an access token for future requests.

    The token is also set as an http-only cookie so the browser's
    WebSocket handshake carries it.
    """
    user = await auth_service.authenticate_user(
        storage, username=form_data.username, password=form_data.password
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incorrect username or password",
        )
    token = auth_service.create_user_token(user)
    _set_token_cookie(response, token["access_token"])
    return token


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_in: RegisterRequest,
    response: Response,
    storage: ChatStorage = Depends(get_storage),
) -> Any:
    """
    Register a new user. The user starts with one active "Welcome" chat.
    """
    user = await auth_service.create_user(
        storage, username=user_in.username, password=user_in.password
    )
    token = auth_service.create_user_token(user)
    _set_token_cookie(response, token["access_token"])
    return user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(response: Response) -> None:
    """Drop the access token cookie."""
    response.delete_cookie(settings.ACCESS_TOKEN_COOKIE)


@router.get("/users/me", response_model=UserResponse)
async def read_users_me(
    current_user: UserRecord = Depends(get_current_user),
) -> Any:
    """
    Get current user.
    """
    return current_user
