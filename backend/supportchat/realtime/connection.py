"""
Best-effort send handle over a live WebSocket.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """
    Wraps a WebSocket so that pushes never fault.

    Once the socket is gone every send is a no-op returning False.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.closed = False

    def mark_closed(self) -> None:
        self.closed = True

    async def send(self, event: Dict[str, Any]) -> bool:
        if self.closed or self.websocket.application_state != WebSocketState.CONNECTED:
            return False
        try:
            await self.websocket.send_json(event)
            return True
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug(f"Dropping '{event.get('type')}' event for closed socket: {e}")
            self.closed = True
            return False

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.websocket.close(code=code, reason=reason)
        except (RuntimeError, OSError) as e:
            logger.debug(f"Socket already closed: {e}")
