"""Pydantic schemas for the durable chat records.

These are the shapes returned by ChatStore and sent over the wire, both by
the REST endpoints and by realtime broadcasts (a broadcast message is always
the stored record, never the raw client input).
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """A user created lazily on first login.

    Attributes:
        id: Unique record identifier.
        username: Unique, trimmed username.
        createdAt: When the user first logged in (UTC).
    """
    id: str = Field(..., description="User ID")
    username: str = Field(..., description="Unique username")
    createdAt: datetime = Field(..., description="Creation time (UTC)")


class Room(BaseModel):
    """A chat room.

    ``members`` is the durable "has ever joined" list. It only grows: leaving
    a room or disconnecting never removes a username from it.

    Attributes:
        id: Unique room identifier.
        name: Unique, trimmed room name.
        members: Usernames in first-join order.
        createdAt: Creation time (UTC).
    """
    id: str = Field(..., description="Room ID")
    name: str = Field(..., description="Unique room name")
    members: List[str] = Field(default_factory=list, description="Usernames that ever joined")
    createdAt: datetime = Field(..., description="Creation time (UTC)")


class Message(BaseModel):
    """An immutable chat message.

    A room message carries ``roomId``; a direct message carries the two
    ``participants`` ``[sender, recipient]`` instead.
    """
    id: str = Field(..., description="Message ID")
    sender: str = Field(..., description="Sender username")
    content: str = Field(..., description="Message text")
    roomId: Optional[str] = Field(default=None, description="Room for room messages")
    participants: Optional[List[str]] = Field(
        default=None, description="[sender, recipient] for direct messages"
    )
    timestamp: datetime = Field(..., description="Creation time (UTC)")

    @property
    def is_private(self) -> bool:
        return self.participants is not None
