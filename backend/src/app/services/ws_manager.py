"""WebSocket connection manager for live auction viewers."""

import asyncio
import logging
import uuid
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages anonymous WebSocket connections organized by post rooms.

    Structure: {post_id: {connection_id: WebSocket}}
    """

    def __init__(self):
        self.active_connections: dict[str, dict[str, WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, post_id: str, websocket: WebSocket) -> str:
        """Accept connection and add it to the post room.

        Args:
            post_id: Post UUID string
            websocket: WebSocket connection

        Returns:
            Connection id to pass to disconnect
        """
        await websocket.accept()
        connection_id = uuid.uuid4().hex

        async with self._lock:
            room = self.active_connections.setdefault(post_id, {})
            room[connection_id] = websocket
            logger.info(
                f"WebSocket connected: post={post_id}, room_size={len(room)}"
            )
        return connection_id

    async def disconnect(self, post_id: str, connection_id: str) -> None:
        """Remove connection from the post room."""
        async with self._lock:
            room = self.active_connections.get(post_id)
            if room is None:
                return
            room.pop(connection_id, None)

            # Clean up empty rooms
            if not room:
                del self.active_connections[post_id]

    async def broadcast_to_post(self, post_id: str, message: dict[str, Any]) -> int:
        """Broadcast message to every viewer of a post using concurrent sends.

        Args:
            post_id: Post UUID string
            message: JSON-serializable message dict

        Returns:
            Number of viewers successfully sent to
        """
        # Copy to avoid modification during iteration
        connections = dict(self.active_connections.get(post_id, {}))
        if not connections:
            return 0

        async def send_to_one(connection_id: str, ws: WebSocket) -> tuple[str, bool]:
            try:
                await ws.send_json(message)
                return (connection_id, True)
            except Exception as e:
                logger.warning(f"Failed to broadcast to viewer {connection_id}: {e}")
                return (connection_id, False)

        results = await asyncio.gather(
            *[send_to_one(cid, ws) for cid, ws in connections.items()],
        )

        sent_count = 0
        for connection_id, success in results:
            if success:
                sent_count += 1
            else:
                await self.disconnect(post_id, connection_id)

        return sent_count

    def get_room_size(self, post_id: str) -> int:
        """Get number of viewers connected to a post."""
        return len(self.active_connections.get(post_id, {}))

    def get_active_posts(self) -> list[str]:
        """Get list of post IDs with active viewers."""
        return list(self.active_connections.keys())


# Global singleton instance
manager = ConnectionManager()
