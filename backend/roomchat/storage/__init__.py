"""Durable storage for users, rooms and messages."""

from .schemas import Message, Room, User
from .service import ChatStore, RoomExistsError, StorageError, get_store, run_blocking

__all__ = [
    "ChatStore",
    "Message",
    "Room",
    "RoomExistsError",
    "StorageError",
    "User",
    "get_store",
    "run_blocking",
]
