"""DuckDB-backed persistence gateway for users, rooms and messages.

This module provides durable storage for the three chat entities using
DuckDB, an embedded database. The service implements the singleton pattern
so the REST endpoints and the realtime session handler share one connection.

Database Schema:
    users table:
        - id, username (UNIQUE), created_at
    rooms table:
        - id, name (UNIQUE), created_at, seq (insertion order)
    room_members table:
        - room_id, username, seq; (room_id, username) is the primary key.
          Rows are only ever inserted, so durable membership never shrinks.
    messages table:
        - id, sender, content, room_id (room messages),
          participant_a / participant_b (direct messages), timestamp, seq

Thread Safety:
    Every public method takes an internal lock, so the service can be called
    from the default executor (see ``run_blocking``) without two threads
    sharing the DuckDB connection at once.

Usage:
    store = ChatStore.get_instance()
    user = store.get_or_create_user("alice")
    msg = await run_blocking(store.create_room_message, room_id, "alice", "hi")
"""
import asyncio
import functools
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

import duckdb

from ..config import get_config
from .schemas import Message, Room, User

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageError(Exception):
    """Raised when the durable store is unreachable or rejects an operation."""


class RoomExistsError(StorageError):
    """Raised when creating a room whose name is already taken."""


def _utcnow() -> datetime:
    # TIMESTAMP columns hold naive UTC values.
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a synchronous store call in the default executor.

    Storage calls are the only suspension points of the realtime handlers;
    running them off the event loop keeps other connections' events flowing.
    """
    return await asyncio.get_event_loop().run_in_executor(
        None, functools.partial(func, *args, **kwargs)
    )


class ChatStore:
    """Singleton service for the durable chat records in DuckDB.

    Attributes:
        _instance: Singleton instance of the service.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["ChatStore"] = None
    _db_path: str = "roomchat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Open the database and create the schema if needed.

        Args:
            db_path: Path to DuckDB file, or ``:memory:``.
        """
        if db_path:
            self._db_path = db_path
        self._lock = threading.Lock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        with self._guard():
            self._initialize_db()
        logger.info("[Store] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "ChatStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and clear the singleton (used by tests)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    @property
    def db_path(self) -> str:
        return self._db_path

    # -----------------------------------------------------------------------
    # Connection handling
    # -----------------------------------------------------------------------

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    @contextmanager
    def _guard(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Serialize access to the connection and translate DuckDB errors."""
        with self._lock:
            try:
                yield self._get_connection()
            except StorageError:
                raise
            except duckdb.Error as exc:
                logger.error("[Store] Database error: %s", exc)
                raise StorageError(str(exc)) from exc

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("CREATE SEQUENCE IF NOT EXISTS rooms_seq START 1")
        conn.execute("CREATE SEQUENCE IF NOT EXISTS room_members_seq START 1")
        conn.execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id          VARCHAR PRIMARY KEY,
                username    VARCHAR NOT NULL UNIQUE,
                created_at  TIMESTAMP NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS rooms (
                id          VARCHAR PRIMARY KEY,
                name        VARCHAR NOT NULL UNIQUE,
                created_at  TIMESTAMP NOT NULL,
                seq         BIGINT DEFAULT nextval('rooms_seq')
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS room_members (
                room_id     VARCHAR NOT NULL,
                username    VARCHAR NOT NULL,
                seq         BIGINT DEFAULT nextval('room_members_seq'),
                PRIMARY KEY (room_id, username)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id             VARCHAR PRIMARY KEY,
                sender         VARCHAR NOT NULL,
                content        VARCHAR NOT NULL,
                room_id        VARCHAR,
                participant_a  VARCHAR,
                participant_b  VARCHAR,
                timestamp      TIMESTAMP NOT NULL,
                seq            BIGINT DEFAULT nextval('messages_seq')
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room_id)")

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    def find_user(self, username: str) -> Optional[User]:
        with self._guard() as conn:
            return self._find_user(conn, username)

    def create_user(self, username: str) -> User:
        with self._guard() as conn:
            return self._insert_user(conn, username)

    def get_or_create_user(self, username: str) -> User:
        """Return the user, creating it on first login. Idempotent."""
        with self._guard() as conn:
            user = self._find_user(conn, username)
            if user is None:
                user = self._insert_user(conn, username)
                logger.info("[Store] Created user %s", username)
            return user

    def _find_user(self, conn: duckdb.DuckDBPyConnection, username: str) -> Optional[User]:
        row = conn.execute(
            "SELECT id, username, created_at FROM users WHERE username = ?",
            [username],
        ).fetchone()
        return User(id=row[0], username=row[1], createdAt=row[2]) if row else None

    def _insert_user(self, conn: duckdb.DuckDBPyConnection, username: str) -> User:
        user = User(id=str(uuid.uuid4()), username=username, createdAt=_utcnow())
        conn.execute(
            "INSERT INTO users (id, username, created_at) VALUES (?, ?, ?)",
            [user.id, user.username, user.createdAt],
        )
        return user

    # -----------------------------------------------------------------------
    # Rooms
    # -----------------------------------------------------------------------

    def list_rooms(self) -> List[Room]:
        """All rooms, oldest first."""
        with self._guard() as conn:
            rows = conn.execute(
                "SELECT id, name, created_at FROM rooms ORDER BY created_at ASC, seq ASC"
            ).fetchall()
            members = self._members_by_room(conn)
        return [
            Room(id=r[0], name=r[1], createdAt=r[2], members=members.get(r[0], []))
            for r in rows
        ]

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT id, name, created_at FROM rooms WHERE id = ?", [room_id]
            ).fetchone()
            if row is None:
                return None
            return Room(
                id=row[0], name=row[1], createdAt=row[2],
                members=self._members_by_room(conn, room_id).get(row[0], []),
            )

    def find_room_by_name(self, name: str) -> Optional[Room]:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT id FROM rooms WHERE name = ?", [name]
            ).fetchone()
        return self.get_room(row[0]) if row else None

    def create_room(self, name: str) -> Room:
        """Create an empty room.

        Raises:
            RoomExistsError: If a room with this name already exists. The
                UNIQUE constraint decides, so racing creations cannot both win.
        """
        room = Room(id=str(uuid.uuid4()), name=name, members=[], createdAt=_utcnow())
        with self._guard() as conn:
            try:
                conn.execute(
                    "INSERT INTO rooms (id, name, created_at) VALUES (?, ?, ?)",
                    [room.id, room.name, room.createdAt],
                )
            except duckdb.ConstraintException as exc:
                raise RoomExistsError(f"Room already exists: {name}") from exc
        logger.info("[Store] Created room %s (%s)", room.name, room.id)
        return room

    def add_room_member(self, room_id: str, username: str) -> bool:
        """Append ``username`` to the room's durable members if absent.

        Returns:
            True if the membership record changed, False if the user was
            already a member or the room does not exist.
        """
        with self._guard() as conn:
            exists = conn.execute(
                "SELECT 1 FROM rooms WHERE id = ?", [room_id]
            ).fetchone()
            if exists is None:
                return False
            already = conn.execute(
                "SELECT 1 FROM room_members WHERE room_id = ? AND username = ?",
                [room_id, username],
            ).fetchone()
            if already is not None:
                return False
            conn.execute(
                "INSERT INTO room_members (room_id, username) VALUES (?, ?)",
                [room_id, username],
            )
            return True

    def _members_by_room(
        self, conn: duckdb.DuckDBPyConnection, room_id: Optional[str] = None
    ) -> Dict[str, List[str]]:
        if room_id is None:
            rows = conn.execute(
                "SELECT room_id, username FROM room_members ORDER BY seq ASC"
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT room_id, username FROM room_members WHERE room_id = ? ORDER BY seq ASC",
                [room_id],
            ).fetchall()
        members: Dict[str, List[str]] = {}
        for rid, username in rows:
            members.setdefault(rid, []).append(username)
        return members

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    _MESSAGE_COLUMNS = "id, sender, content, room_id, participant_a, participant_b, timestamp"

    def create_room_message(self, room_id: str, sender: str, content: str) -> Message:
        message = Message(
            id=str(uuid.uuid4()),
            sender=sender,
            content=content,
            roomId=room_id,
            timestamp=_utcnow(),
        )
        self._insert_message(message, (None, None))
        return message

    def create_private_message(self, sender: str, to: str, content: str) -> Message:
        message = Message(
            id=str(uuid.uuid4()),
            sender=sender,
            content=content,
            participants=[sender, to],
            timestamp=_utcnow(),
        )
        self._insert_message(message, (sender, to))
        return message

    def list_room_messages(self, room_id: str) -> List[Message]:
        """Messages of a room, oldest first."""
        with self._guard() as conn:
            rows = conn.execute(
                f"SELECT {self._MESSAGE_COLUMNS} FROM messages "
                "WHERE room_id = ? ORDER BY timestamp ASC, seq ASC",
                [room_id],
            ).fetchall()
        return [self._row_to_message(r) for r in rows]

    def list_private_messages(self, user1: str, user2: str) -> List[Message]:
        """Direct messages whose participants are exactly {user1, user2}, oldest first."""
        with self._guard() as conn:
            rows = conn.execute(
                f"SELECT {self._MESSAGE_COLUMNS} FROM messages "
                "WHERE (participant_a = ? AND participant_b = ?) "
                "   OR (participant_a = ? AND participant_b = ?) "
                "ORDER BY timestamp ASC, seq ASC",
                [user1, user2, user2, user1],
            ).fetchall()
        return [self._row_to_message(r) for r in rows]

    def _insert_message(self, message: Message, participants: Tuple[Optional[str], Optional[str]]) -> None:
        with self._guard() as conn:
            conn.execute(
                f"INSERT INTO messages ({self._MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    message.id, message.sender, message.content, message.roomId,
                    participants[0], participants[1], message.timestamp,
                ],
            )

    @staticmethod
    def _row_to_message(row) -> Message:
        participants = [row[4], row[5]] if row[4] is not None else None
        return Message(
            id=row[0],
            sender=row[1],
            content=row[2],
            roomId=row[3],
            participants=participants,
            timestamp=row[6],
        )


def get_store() -> ChatStore:
    """Return the shared store, opening it at the configured path on first use."""
    return ChatStore.get_instance(get_config().database.path)
