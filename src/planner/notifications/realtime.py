"""
Real-time Channel

WebSocket connection manager: clients subscribe to a group channel and
receive reminder notifications as they fire.
"""
import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger("planner.notifications.realtime")


class ConnectionManager:
    """
    Manages WebSocket connections per group channel.

    Multiple connections per group are supported (several members, several tabs).
    """

    def __init__(self):
        self._connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, group_id: str, websocket: WebSocket) -> None:
        """Accept and register a WebSocket connection for a group"""
        await websocket.accept()
        self._connections.setdefault(group_id, set()).add(websocket)
        logger.debug(
            f"WebSocket joined group {group_id}. "
            f"Total connections: {len(self._connections[group_id])}"
        )

    def disconnect(self, group_id: str, websocket: WebSocket) -> None:
        """Unregister a WebSocket connection"""
        connections = self._connections.get(group_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            del self._connections[group_id]

    def connection_count(self, group_id: str) -> int:
        return len(self._connections.get(group_id, ()))

    async def broadcast(self, group_id: str, data: Dict[str, Any]) -> int:
        """
        Send a JSON message to every client of a group.

        Failed connections are dropped. Returns the number of clients reached.
        """
        connections = self._connections.get(group_id)
        if not connections:
            return 0

        delivered = 0
        dead: Set[WebSocket] = set()
        for connection in connections.copy():
            try:
                await connection.send_json(data)
                delivered += 1
            except Exception as e:
                logger.debug(f"Failed to send to WebSocket: {e}")
                dead.add(connection)

        for connection in dead:
            self.disconnect(group_id, connection)
        return delivered
