"""REST endpoints for login, rooms and message history.

Endpoints:
    POST /login                   - Log in (creates the user on first login)
    GET  /rooms                   - List rooms, oldest first
    POST /rooms                   - Create a room
    GET  /rooms/{room_id}/messages - Room history, oldest first
    GET  /private/{user1}/{user2} - Direct message history, oldest first

These are thin pass-throughs to ChatStore. Errors are returned as
``{"error": "..."}`` bodies: 400 for validation errors, 500 for storage
failures.
"""
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse

from ..storage import RoomExistsError, get_store, run_blocking

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def _text_field(body: Any, key: str) -> str:
    """Stripped string value of ``key``, or "" when the body or field is unusable."""
    value = body.get(key) if isinstance(body, dict) else None
    return value.strip() if isinstance(value, str) else ""


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.post("/login")
async def login(body: Any = Body(default=None)) -> JSONResponse:
    """Log in by username.

    Login is idempotent: the user is created on first login and reused
    afterwards. ``sessionId`` is a fresh opaque token; it is an identity hint
    for the client and is never validated by the server.

    Returns:
        ``{user, sessionId}``, 400 if username is missing, 500 on storage failure.
    """
    username = _text_field(body, "username")
    if not username:
        return _error("Username is required", 400)

    try:
        user = await run_blocking(get_store().get_or_create_user, username)
    except Exception as e:
        logger.error(f"[API] Login failed for {username}: {e}")
        return _error("Login failed", 500)

    return JSONResponse({"user": user.model_dump(mode="json"), "sessionId": str(uuid.uuid4())})


@router.get("/rooms")
async def list_rooms() -> JSONResponse:
    """List all rooms ordered by creation time ascending."""
    try:
        rooms = await run_blocking(get_store().list_rooms)
    except Exception as e:
        logger.error(f"[API] Failed to fetch rooms: {e}")
        return _error("Failed to fetch rooms", 500)
    return JSONResponse([room.model_dump(mode="json") for room in rooms])


@router.post("/rooms", status_code=201)
async def create_room(body: Any = Body(default=None)) -> JSONResponse:
    """Create a room with no members.

    Returns:
        The created room (201), 400 if the name is missing or already taken,
        500 on storage failure.
    """
    name = _text_field(body, "name")
    if not name:
        return _error("Name is required", 400)

    try:
        room = await run_blocking(get_store().create_room, name)
    except RoomExistsError:
        return _error("Room already exists", 400)
    except Exception as e:
        logger.error(f"[API] Failed to create room {name}: {e}")
        return _error("Failed to create room", 500)

    logger.info(f"[API] Created room {room.name} ({room.id})")
    return JSONResponse(room.model_dump(mode="json"), status_code=201)


@router.get("/rooms/{room_id}/messages")
async def room_messages(room_id: str) -> JSONResponse:
    """Messages of a room ordered by timestamp ascending."""
    try:
        messages = await run_blocking(get_store().list_room_messages, room_id)
    except Exception as e:
        logger.error(f"[API] Failed to fetch messages for room {room_id}: {e}")
        return _error("Failed to fetch messages", 500)
    return JSONResponse([m.model_dump(mode="json") for m in messages])


@router.get("/private/{user1}/{user2}")
async def private_messages(user1: str, user2: str) -> JSONResponse:
    """Direct messages between exactly ``user1`` and ``user2``, oldest first."""
    try:
        messages = await run_blocking(get_store().list_private_messages, user1, user2)
    except Exception as e:
        logger.error(f"[API] Failed to fetch direct messages {user1}/{user2}: {e}")
        return _error("Failed to fetch direct messages", 500)
    return JSONResponse([m.model_dump(mode="json") for m in messages])
