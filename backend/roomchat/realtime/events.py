"""Schemas for inbound realtime events.

Every frame a client sends is a JSON object whose ``type`` names the event;
the other keys are validated against the matching model before anything
touches presence or storage. Invalid frames are dropped silently: realtime
clients have no error channel.

Protocol Message Types:
    - join_room:       {roomId, username}
    - leave_room:      {roomId, username}
    - message:         {roomId, content, sender}
    - private_message: {to, sender, content}
    - typing:          {roomId?, sender, to?, isPrivate?}
    - stop_typing:     same as typing
"""
import logging
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class JoinRoomEvent(BaseModel):
    roomId: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)


class LeaveRoomEvent(BaseModel):
    roomId: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)


class RoomMessageEvent(BaseModel):
    roomId: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    sender: str = Field(..., min_length=1)


class PrivateMessageEvent(BaseModel):
    to: str = Field(..., min_length=1)
    sender: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class TypingEvent(BaseModel):
    """Typing indicator; routed privately when ``isPrivate`` and ``to`` are set."""
    sender: str = Field(..., min_length=1)
    roomId: Optional[str] = None
    to: Optional[str] = None
    isPrivate: Optional[bool] = False


EVENT_SCHEMAS: Dict[str, Type[BaseModel]] = {
    "join_room": JoinRoomEvent,
    "leave_room": LeaveRoomEvent,
    "message": RoomMessageEvent,
    "private_message": PrivateMessageEvent,
    "typing": TypingEvent,
    "stop_typing": TypingEvent,
}


def parse_event(data: Any) -> Optional[Tuple[str, BaseModel]]:
    """Validate a raw frame.

    Returns:
        ``(event_type, model)``, or None if the frame is not an object, has an
        unknown type, or fails validation.
    """
    if not isinstance(data, dict):
        logger.debug("[Events] Ignoring non-object frame")
        return None

    event_type = data.get("type")
    schema = EVENT_SCHEMAS.get(event_type) if isinstance(event_type, str) else None
    if schema is None:
        logger.debug("[Events] Ignoring unknown event type: %r", event_type)
        return None

    payload = {k: v for k, v in data.items() if k != "type"}
    try:
        return event_type, schema.model_validate(payload)
    except ValidationError as e:
        logger.debug("[Events] Rejected %s: %s", event_type, e.errors())
        return None
