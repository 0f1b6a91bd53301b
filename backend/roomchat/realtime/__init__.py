"""Realtime chat over WebSockets: sessions, room channels and broadcasts."""

from .broadcaster import RoomBroadcaster
from .hub import ConnectionHub
from .router import router
from .session import Session, SessionHandler, SessionState, handler

__all__ = [
    "ConnectionHub",
    "RoomBroadcaster",
    "Session",
    "SessionHandler",
    "SessionState",
    "handler",
    "router",
]
