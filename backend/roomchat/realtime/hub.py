"""WebSocket connection hub.

Owns the live WebSocket objects (keyed by connection id) and the room
channels, i.e. which connections are subscribed to receive a room's
broadcasts. Presence state lives in PresenceRegistry; the hub only knows
about sockets.

Performance Notes:
    - Fan-out uses asyncio.gather() for concurrent delivery
    - A failed send unsubscribes that connection from every channel
    - Uvicorn handles ping/pong at the protocol level, so a dead peer
      eventually surfaces as a WebSocketDisconnect in its receive loop
"""
import asyncio
import logging
from typing import Dict, Iterable, List

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Transport-side registry of sockets and room channel subscriptions."""

    def __init__(self) -> None:
        # connection_id -> WebSocket
        self.connections: Dict[str, WebSocket] = {}

        # room_id -> {connection_id: None}, insertion ordered
        self.channels: Dict[str, Dict[str, None]] = {}

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        self.connections[connection_id] = websocket

    def drop(self, connection_id: str) -> None:
        """Forget a connection and remove it from every channel."""
        self.connections.pop(connection_id, None)
        self._unsubscribe_all(connection_id)

    def subscribe(self, room_id: str, connection_id: str) -> None:
        self.channels.setdefault(room_id, {})[connection_id] = None

    def unsubscribe(self, room_id: str, connection_id: str) -> None:
        subscribers = self.channels.get(room_id)
        if subscribers is None:
            return
        subscribers.pop(connection_id, None)
        if not subscribers:
            del self.channels[room_id]

    def channel(self, room_id: str) -> List[str]:
        """Snapshot of the connection ids subscribed to a room."""
        return list(self.channels.get(room_id, {}))

    def connection_ids(self) -> List[str]:
        """Snapshot of every open connection id."""
        return list(self.connections)

    async def send(self, connection_ids: Iterable[str], message: dict) -> int:
        """Deliver ``message`` to each connection concurrently.

        Unknown connection ids are skipped. Delivery is best-effort: failures
        are logged and never raised.

        Returns:
            Number of successful deliveries.
        """
        targets = [
            (cid, self.connections[cid]) for cid in connection_ids
            if cid in self.connections
        ]
        if not targets:
            return 0

        results = await asyncio.gather(
            *[self._safe_send(ws, message) for _, ws in targets],
            return_exceptions=True
        )

        failed = [cid for (cid, _), ok in zip(targets, results) if ok is not True]
        for cid in failed:
            self._unsubscribe_all(cid)
            logger.debug(f"[Hub] Removed dead connection {cid} from its channels")
        return len(targets) - len(failed)

    async def _safe_send(self, connection: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection with error handling.

        Returns:
            True if successful, False if the connection failed.
        """
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def _unsubscribe_all(self, connection_id: str) -> None:
        for room_id in [r for r, subs in self.channels.items() if connection_id in subs]:
            self.unsubscribe(room_id, connection_id)

    def clear(self) -> None:
        self.connections.clear()
        self.channels.clear()
