"""In-memory presence registry.

Tracks which usernames are online, which connections belong to each user,
and who is currently present in each room. Three maps are kept in step:

    connections_by_user:    username      -> connection ids
    users_by_room:          room id       -> usernames currently joined
    username_by_connection: connection id -> username

Invariants:
    - A username is a key of ``connections_by_user`` iff it has at least one
      connection. Absence of the key means offline.
    - ``username_by_connection`` is the exact inverse of
      ``connections_by_user``.

Room presence is distinct from the durable ``Room.members`` list: a user
leaves ``users_by_room`` on leave/disconnect but is never removed from the
durable record.

Thread Safety:
    All operations are synchronous and meant to be called from the single
    asyncio event loop; a mutation completes before any other event is
    processed. It is NOT thread-safe for concurrent access from multiple
    threads.

Ordering:
    Every map uses insertion-ordered dicts as sets, so snapshots list users in
    the order they came online / joined.
"""
import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Process-wide presence state for connections, users and rooms."""

    def __init__(self) -> None:
        # username -> {connection_id: None}
        self._connections_by_user: Dict[str, Dict[str, None]] = {}

        # room_id -> {username: None}
        self._users_by_room: Dict[str, Dict[str, None]] = {}

        # connection_id -> username
        self._username_by_connection: Dict[str, str] = {}

    # =========================================================================
    # Connections
    # =========================================================================

    def bind(self, connection_id: str, username: str) -> None:
        """Record that ``connection_id`` belongs to ``username``.

        A user may hold several connections at once (multi-device).

        Raises:
            ValueError: If either argument is empty.
        """
        if not connection_id or not username:
            raise ValueError("connection_id and username are required")

        previous = self._username_by_connection.get(connection_id)
        if previous is not None and previous != username:
            # A connection's claim never changes; rebinding replaces it wholesale.
            self.unbind(connection_id)

        self._connections_by_user.setdefault(username, {})[connection_id] = None
        self._username_by_connection[connection_id] = username

    def unbind(self, connection_id: str) -> Optional[str]:
        """Remove a connection.

        Returns:
            The username the connection was bound to, or None if it was never
            bound. Use ``is_online`` afterwards to tell whether that was the
            user's last connection.
        """
        username = self._username_by_connection.pop(connection_id, None)
        if username is None:
            return None

        connections = self._connections_by_user.get(username)
        if connections is not None:
            connections.pop(connection_id, None)
            if not connections:
                del self._connections_by_user[username]
                logger.debug("[Presence] %s is now offline", username)
        return username

    def is_online(self, username: str) -> bool:
        return username in self._connections_by_user

    def username_for(self, connection_id: str) -> Optional[str]:
        return self._username_by_connection.get(connection_id)

    def online_usernames(self) -> List[str]:
        """Snapshot of every username with at least one bound connection."""
        return list(self._connections_by_user)

    def connections_for(self, username: str) -> List[str]:
        """Snapshot of the connection ids currently bound to ``username``."""
        return list(self._connections_by_user.get(username, {}))

    # =========================================================================
    # Rooms
    # =========================================================================

    def join_room(self, room_id: str, username: str) -> None:
        """Add ``username`` to the room's presence set. Idempotent."""
        self._users_by_room.setdefault(room_id, {})[username] = None

    def leave_room(self, room_id: str, username: str) -> bool:
        """Remove ``username`` from the room's presence set.

        Returns:
            True if the user was present (a broadcast is needed), else False.
        """
        members = self._users_by_room.get(room_id)
        if members is None or username not in members:
            return False
        del members[username]
        if not members:
            del self._users_by_room[room_id]
        return True

    def remove_user_from_all_rooms(self, username: str) -> List[str]:
        """Purge ``username`` from every room.

        Returns:
            The ids of rooms whose membership actually changed.
        """
        affected = [
            room_id for room_id, members in self._users_by_room.items()
            if username in members
        ]
        for room_id in affected:
            self.leave_room(room_id, username)
        return affected

    def room_usernames(self, room_id: str) -> List[str]:
        """Snapshot of the usernames present in a room, in join order."""
        return list(self._users_by_room.get(room_id, {}))

    def clear(self) -> None:
        """Drop all presence state (process restart semantics, used by tests)."""
        self._connections_by_user.clear()
        self._users_by_room.clear()
        self._username_by_connection.clear()
