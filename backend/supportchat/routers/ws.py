"""
Real-time chat endpoint.
"""

from fastapi import APIRouter, Depends, WebSocket

from supportchat.dependencies import get_engine
from supportchat.realtime.protocol import ChatProtocolEngine

router = APIRouter()


@router.websocket("/ws")
async def chat_websocket(
    websocket: WebSocket,
    engine: ChatProtocolEngine = Depends(get_engine),
):
    """
    WebSocket chat session.

    Closes with 1008 when the handshake carries no valid access token.
    """
    await engine.serve(websocket)
