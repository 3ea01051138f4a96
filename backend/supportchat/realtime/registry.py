"""
Process-wide table of live connections, one per authenticated user.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Protocol


logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything the registry can push events to."""

    async def send(self, event: Dict[str, Any]) -> bool:
        ...

    def mark_closed(self) -> None:
        """Turn every later send into a no-op."""
        ...


class SessionRegistry:
    """
    Maps user id to that user's live connection.

    The last connection registered for a user wins; older ones are dropped
    from the table without being closed.
    """

    def __init__(self):
        self._connections: Dict[int, Connection] = {}
        self._lock = threading.Lock()

    def register(self, user_id: int, connection: Connection) -> Optional[Connection]:
        """Bind connection to user_id and return the connection it replaced."""
        with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = connection
        if previous is not None and previous is not connection:
            logger.info(f"Replacing existing connection for user {user_id}")
            return previous
        return None

    def unregister(self, user_id: int, connection: Optional[Connection] = None) -> bool:
        """
        Remove the entry for user_id.

        With a connection given, the entry is only removed while it still
        points at that connection.
        """
        with self._lock:
            current = self._connections.get(user_id)
            if current is None:
                return False
            if connection is not None and current is not connection:
                return False
            del self._connections[user_id]
            return True

    def get(self, user_id: int) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(user_id)

    def user_ids(self) -> List[int]:
        with self._lock:
            return list(self._connections)

    async def send_to_user(self, user_id: int, event: Dict[str, Any]) -> bool:
        """Push an event to a user's live connection, if there is one."""
        connection = self.get(user_id)
        if connection is None:
            return False
        return await connection.send(event)

    def __contains__(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
