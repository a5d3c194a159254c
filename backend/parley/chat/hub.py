"""WebSocket connection hub.

Owns the live transport connections and their room memberships. The chat
core decides *which* room an event goes to; the hub knows *who* is in it.

Key features:
    - Backend-generated connection ids (never client-provided)
    - Connection-scoped room membership (join / leave / drop)
    - Concurrent fan-out with asyncio.gather()
    - Automatic dead connection cleanup on failed sends

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Tracks live connections and which rooms each one has joined.

    Connections are anything with an async ``send_json`` method; in
    production that is a Starlette ``WebSocket``.
    """

    def __init__(self) -> None:
        # connection_id -> live connection
        self.connections: Dict[str, Any] = {}

        # room_key -> set of connection_ids
        self.rooms: Dict[str, Set[str]] = {}

        # connection_id -> set of room_keys (for cleanup on drop)
        self.memberships: Dict[str, Set[str]] = {}

    async def accept(self, websocket: WebSocket) -> str:
        """Accept a WebSocket and register it under a new connection id."""
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.register(connection_id, websocket)
        return connection_id

    def register(self, connection_id: str, connection: Any) -> None:
        self.connections[connection_id] = connection
        self.memberships.setdefault(connection_id, set())
        logger.info(f"[Hub] Connection {connection_id} registered ({len(self.connections)} live)")

    def join(self, connection_id: str, room_key: str) -> None:
        """Add a connection to a room. Joining twice is a no-op."""
        if connection_id not in self.connections:
            logger.debug(f"[Hub] Ignoring join of {room_key} by unknown connection {connection_id}")
            return
        self.rooms.setdefault(room_key, set()).add(connection_id)
        self.memberships[connection_id].add(room_key)

    def leave(self, connection_id: str, room_key: str) -> None:
        members = self.rooms.get(room_key)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self.rooms[room_key]
        if connection_id in self.memberships:
            self.memberships[connection_id].discard(room_key)

    def drop(self, connection_id: str) -> None:
        """Forget a connection and every room membership it had."""
        for room_key in list(self.memberships.get(connection_id, ())):
            self.leave(connection_id, room_key)
        self.memberships.pop(connection_id, None)
        if self.connections.pop(connection_id, None) is not None:
            logger.info(f"[Hub] Connection {connection_id} dropped ({len(self.connections)} live)")

    def members(self, room_key: str) -> List[str]:
        return sorted(self.rooms.get(room_key, ()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self.memberships.get(connection_id, ()))

    async def send(self, connection_id: str, message: dict) -> bool:
        """Send a message to one connection.

        Returns:
            True if delivered, False if the connection is unknown or failed.
        """
        connection = self.connections.get(connection_id)
        if connection is None:
            return False
        return await self._safe_send(connection, message)

    async def broadcast(self, message: dict, room_key: str) -> int:
        """Send a message to every connection in a room concurrently.

        Connections whose send fails are removed from the room.

        Returns:
            Number of connections the message was delivered to.
        """
        connection_ids = [
            cid for cid in self.rooms.get(room_key, ()) if cid in self.connections
        ]
        if not connection_ids:
            return 0

        results = await asyncio.gather(
            *[self._safe_send(self.connections[cid], message) for cid in connection_ids],
            return_exceptions=True
        )

        failed = [
            cid for cid, success in zip(connection_ids, results)
            if success is not True
        ]
        self._cleanup_connections(room_key, failed)
        return len(connection_ids) - len(failed)

    async def _safe_send(self, connection: Any, message: dict) -> bool:
        """Send a message to a connection with error handling.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def _cleanup_connections(self, room_key: str, failed_connections: List[str]) -> None:
        for connection_id in failed_connections:
            self.leave(connection_id, room_key)
            logger.debug(f"Removed dead connection {connection_id} from room {room_key}")
