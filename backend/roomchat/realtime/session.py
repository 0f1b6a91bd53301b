"""Realtime session handler.

Drives the lifecycle of each WebSocket connection and turns validated
inbound events into presence mutations, storage writes and broadcasts.

Session states:
    CONNECTING -> BOUND -> ACTIVE -> CLOSED

    - CONNECTING -> BOUND: on open, if the client supplied a username claim
      it is bound in the registry and ``online_users`` is broadcast. Without
      a claim the session stays anonymous but may still use room events with
      per-event usernames.
    - -> ACTIVE: on the first ``join_room``. A session may be in any number
      of rooms at once.
    - ACTIVE self-loops: leave_room, message, private_message, typing,
      stop_typing.
    - -> CLOSED: on disconnect. If that was the user's last connection,
      ``online_users`` is broadcast and the user leaves every room.

Sender identity:
    With ``realtime.bind_sender_to_claim`` enabled (the default), a bound
    connection may only join, leave, send or type as the username it
    claimed at connect time; mismatching events are dropped with a warning.
    Anonymous connections are not checked.

Error handling:
    Each event is isolated: any exception is logged and swallowed so one bad
    event never takes down the connection or affects other clients. There is
    no error channel back to the sender.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from fastapi import WebSocket
from pydantic import BaseModel

from ..config import get_config
from ..presence import PresenceRegistry
from ..storage import ChatStore, get_store, run_blocking
from .broadcaster import RoomBroadcaster
from .events import (
    JoinRoomEvent,
    LeaveRoomEvent,
    PrivateMessageEvent,
    RoomMessageEvent,
    TypingEvent,
    parse_event,
)
from .hub import ConnectionHub

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    BOUND = "bound"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class Session:
    """Per-connection state.

    Attributes:
        connection_id: Transport-assigned id, unique for the connection's lifetime.
        username: Connect-time claim, or None for anonymous sessions.
        state: Lifecycle state.
        rooms: (room_id, username) pairs this connection joined.
    """
    connection_id: str
    username: Optional[str] = None
    state: SessionState = SessionState.CONNECTING
    rooms: Set[Tuple[str, str]] = field(default_factory=set)

    @property
    def is_bound(self) -> bool:
        return self.username is not None


class SessionHandler:
    """Wires connection events to the presence registry and broadcaster."""

    def __init__(
        self,
        registry: PresenceRegistry,
        hub: ConnectionHub,
        store_provider: Callable[[], ChatStore] = get_store,
        bind_sender_to_claim: Optional[bool] = None,
    ) -> None:
        self.registry = registry
        self.hub = hub
        self.broadcaster = RoomBroadcaster(registry, hub)
        self.sessions: Dict[str, Session] = {}
        self._store_provider = store_provider
        self._bind_sender_to_claim = bind_sender_to_claim

        self._handlers: Dict[str, Callable[[Session, BaseModel], Awaitable[None]]] = {
            "join_room": self._on_join_room,
            "leave_room": self._on_leave_room,
            "message": self._on_message,
            "private_message": self._on_private_message,
            "typing": self._on_typing,
            "stop_typing": self._on_stop_typing,
        }

    @property
    def store(self) -> ChatStore:
        return self._store_provider()

    def _enforce_claim(self) -> bool:
        if self._bind_sender_to_claim is not None:
            return self._bind_sender_to_claim
        return get_config().realtime.bind_sender_to_claim

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(
        self, connection_id: str, websocket: WebSocket, username: Optional[str] = None
    ) -> Session:
        """Register a freshly accepted connection and bind its username claim."""
        self.hub.register(connection_id, websocket)
        session = Session(connection_id=connection_id)
        self.sessions[connection_id] = session

        claim = (username or "").strip()
        if not claim:
            logger.info(f"[Session] {connection_id} connected anonymously")
            return session

        self.registry.bind(connection_id, claim)
        session.username = claim
        session.state = SessionState.BOUND
        logger.info(f"[Session] {connection_id} bound as {claim}")
        await self.broadcaster.broadcast_online_users()
        return session

    async def close(self, connection_id: str) -> None:
        """Tear down a connection and broadcast the resulting presence changes."""
        session = self.sessions.pop(connection_id, None)
        self.hub.drop(connection_id)
        if session is None:
            return
        session.state = SessionState.CLOSED

        # Mutate first, then broadcast from the settled state.
        username = self.registry.unbind(connection_id)
        went_offline = username is not None and not self.registry.is_online(username)

        affected: List[str] = []
        if went_offline:
            affected.extend(self.registry.remove_user_from_all_rooms(username))

        # Per-event identities used by this connection that nobody holds anymore.
        for room_id, user in sorted(session.rooms):
            if user == username or self.registry.is_online(user):
                continue
            if self.registry.leave_room(room_id, user) and room_id not in affected:
                affected.append(room_id)

        logger.info(
            f"[Session] {connection_id} closed (user={username}, offline={went_offline}, "
            f"rooms_affected={len(affected)})"
        )

        if went_offline:
            await self.broadcaster.broadcast_online_users()
        for room_id in affected:
            await self.broadcaster.broadcast_room_users(room_id)

    async def handle(self, connection_id: str, data: dict) -> None:
        """Validate and dispatch one inbound frame. Never raises."""
        session = self.sessions.get(connection_id)
        if session is None or session.state is SessionState.CLOSED:
            return

        parsed = parse_event(data)
        if parsed is None:
            return
        event_type, event = parsed

        try:
            await self._handlers[event_type](session, event)
        except Exception:
            logger.exception(f"[Session] {event_type} from {connection_id} failed")

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def _on_join_room(self, session: Session, event: JoinRoomEvent) -> None:
        if not self._claim_matches(session, event.username, "join_room"):
            return

        self.hub.subscribe(event.roomId, session.connection_id)
        self.registry.join_room(event.roomId, event.username)
        session.rooms.add((event.roomId, event.username))
        session.state = SessionState.ACTIVE
        logger.info(f"[Session] {event.username} joined room {event.roomId}")

        await self._sync_membership(event.roomId, event.username)
        await self.broadcaster.broadcast_room_users(event.roomId)

    async def _on_leave_room(self, session: Session, event: LeaveRoomEvent) -> None:
        if not self._claim_matches(session, event.username, "leave_room"):
            return

        self.hub.unsubscribe(event.roomId, session.connection_id)
        session.rooms.discard((event.roomId, event.username))
        if self.registry.leave_room(event.roomId, event.username):
            logger.info(f"[Session] {event.username} left room {event.roomId}")
            await self.broadcaster.broadcast_room_users(event.roomId)

    async def _on_message(self, session: Session, event: RoomMessageEvent) -> None:
        if not self._claim_matches(session, event.sender, "message"):
            return

        # A storage failure propagates to handle(): nothing is broadcast.
        message = await run_blocking(
            self.store.create_room_message, event.roomId, event.sender, event.content
        )
        await self.broadcaster.deliver_to_room(
            event.roomId, {"type": "message", **message.model_dump(mode="json")}
        )

    async def _on_private_message(self, session: Session, event: PrivateMessageEvent) -> None:
        if not self._claim_matches(session, event.sender, "private_message"):
            return

        message = await run_blocking(
            self.store.create_private_message, event.sender, event.to, event.content
        )
        payload = {"type": "private_message", **message.model_dump(mode="json")}
        await self.broadcaster.deliver_to_user(event.to, payload)
        await self.broadcaster.deliver_to_connection(session.connection_id, payload)

    async def _on_typing(self, session: Session, event: TypingEvent) -> None:
        await self._route_typing(session, event, "typing")

    async def _on_stop_typing(self, session: Session, event: TypingEvent) -> None:
        await self._route_typing(session, event, "stop_typing")

    async def _route_typing(self, session: Session, event: TypingEvent, event_type: str) -> None:
        if not self._claim_matches(session, event.sender, event_type):
            return

        if event.isPrivate and event.to:
            await self.broadcaster.deliver_to_user(
                event.to,
                {"type": event_type, "sender": event.sender, "isPrivate": True, "to": event.to},
            )
        elif event.roomId:
            await self.broadcaster.deliver_to_room(
                event.roomId,
                {"type": event_type, "roomId": event.roomId, "sender": event.sender},
                exclude=session.connection_id,
            )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _claim_matches(self, session: Session, username: str, event_type: str) -> bool:
        if not session.is_bound or not self._enforce_claim() or username == session.username:
            return True
        logger.warning(
            f"[Session] Dropping {event_type} from {session.connection_id}: "
            f"bound as {session.username} but acting as {username}"
        )
        return False

    async def _sync_membership(self, room_id: str, username: str) -> bool:
        """Best-effort append of ``username`` to the durable room members.

        The in-memory join has already happened and is broadcast regardless;
        a storage failure here is logged and otherwise ignored.

        Returns:
            True if the durable record changed.
        """
        try:
            added = await run_blocking(self.store.add_room_member, room_id, username)
        except Exception as e:
            logger.warning(f"[Session] Membership sync failed for {username} in {room_id}: {e}")
            return False
        if added:
            logger.debug(f"[Session] Recorded {username} as member of {room_id}")
        return added

    def reset(self) -> None:
        """Drop all sessions and presence state (process restart semantics)."""
        self.sessions.clear()
        self.registry.clear()
        self.hub.clear()


# Global singleton instance used by the WebSocket endpoint
handler = SessionHandler(PresenceRegistry(), ConnectionHub())
