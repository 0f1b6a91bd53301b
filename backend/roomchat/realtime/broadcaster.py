"""Room broadcast coordinator.

Decides who should hear an event and hands the payload to the hub. It owns
no state: membership comes from PresenceRegistry, subscribers from the
ConnectionHub. Recipients are snapshotted synchronously before the first
await, so a broadcast always reflects one consistent registry state.

Outbound frames:
    {"type": "online_users", "users": [...]}
    {"type": "room_users", "roomId": "...", "users": [...]}
    plus whatever payload the session handler passes to deliver_*.
"""
import logging
from typing import Optional

from ..presence import PresenceRegistry
from .hub import ConnectionHub

logger = logging.getLogger(__name__)


class RoomBroadcaster:
    """Computes delivery sets and drives fan-out through the hub."""

    def __init__(self, registry: PresenceRegistry, hub: ConnectionHub) -> None:
        self.registry = registry
        self.hub = hub

    async def broadcast_room_users(self, room_id: str) -> None:
        """Send the room's current presence list to everyone on its channel."""
        payload = {
            "type": "room_users",
            "roomId": room_id,
            "users": self.registry.room_usernames(room_id),
        }
        await self.hub.send(self.hub.channel(room_id), payload)

    async def broadcast_online_users(self) -> None:
        """Send the global online list to every open connection."""
        payload = {"type": "online_users", "users": self.registry.online_usernames()}
        await self.hub.send(self.hub.connection_ids(), payload)

    async def deliver_to_room(
        self, room_id: str, payload: dict, exclude: Optional[str] = None
    ) -> None:
        """Deliver to every connection on the room channel, minus ``exclude``."""
        targets = [cid for cid in self.hub.channel(room_id) if cid != exclude]
        await self.hub.send(targets, payload)

    async def deliver_to_user(self, username: str, payload: dict) -> None:
        """Deliver to every connection of ``username``.

        Offline users are a silent no-op: there is no queue, delivery is
        at-most-once.
        """
        targets = self.registry.connections_for(username)
        if not targets:
            logger.debug("[Broadcast] %s is offline, dropping %s", username, payload.get("type"))
            return
        await self.hub.send(targets, payload)

    async def deliver_to_connection(self, connection_id: str, payload: dict) -> None:
        await self.hub.send([connection_id], payload)
