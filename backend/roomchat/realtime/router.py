"""WebSocket endpoint for realtime chat.

    WebSocket /ws?username=<claim>

Protocol Flow:
    1. Client connects with an optional username claim
       → Server broadcasts: {type: "online_users", users: [...]}
    2. Client sends: {type: "join_room", roomId, username}
       → Server broadcasts to the room: {type: "room_users", roomId, users: [...]}
    3. Client sends: {type: "message", roomId, sender, content}
       → Server broadcasts to the room: {type: "message", ...storedMessage}
    4. Client sends: {type: "private_message", to, sender, content}
       → Server sends to every connection of `to` and echoes to the sender:
         {type: "private_message", ...storedMessage}
    5. Client sends: {type: "typing" | "stop_typing", roomId?, sender, to?, isPrivate?}
       → Server relays to the room (except sender) or to `to`'s connections
    6. Client sends: {type: "leave_room", roomId, username}
       → Server broadcasts: {type: "room_users", ...} if membership changed
    7. On disconnect of a user's last connection
       → Server broadcasts: {type: "online_users"} and {type: "room_users"}
         for every room the user was in
"""
import json
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ..config import get_config
from .session import handler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    username: Optional[str] = Query(None, description="Connect-time username claim"),
) -> None:
    """Run one client's realtime session from accept to disconnect.

    Args:
        websocket: The WebSocket connection.
        username: Optional username claim. Without it the connection stays
            anonymous and receives no user-targeted events.
    """
    origin = websocket.headers.get("origin")
    if not get_config().server.origin_allowed(origin):
        logger.warning(f"[WS] Rejecting connection from disallowed origin {origin}")
        await websocket.close(code=1008)  # 1008 = Policy Violation
        return

    await websocket.accept()
    connection_id = str(uuid.uuid4())
    logger.info(f"[WS] Connection {connection_id} accepted (username={username})")

    try:
        await handler.open(connection_id, websocket, username)

        # Main message loop
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            raw = message.get("text")
            if raw is None:
                logger.debug(f"[WS] Ignoring binary frame from {connection_id}")
                continue
            try:
                data = json.loads(raw)
            except ValueError:
                logger.debug(f"[WS] Ignoring malformed frame from {connection_id}")
                continue
            logger.debug("[WS] %s received: type=%s", connection_id,
                         data.get("type", "?") if isinstance(data, dict) else "?")
            await handler.handle(connection_id, data)

    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection_id} disconnected")
    finally:
        await handler.close(connection_id)
