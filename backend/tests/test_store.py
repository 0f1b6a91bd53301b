"""Tests for the DuckDB-backed ChatStore."""
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor

import pytest

from roomchat.storage import ChatStore, RoomExistsError


@pytest.fixture
def temp_db():
    """Create a temporary database path for testing."""
    db_path = tempfile.mktemp(suffix=".duckdb")

    yield db_path

    for path in (db_path, db_path + ".wal"):
        if os.path.exists(path):
            os.remove(path)


class TestUsers:

    def test_get_or_create_user_is_idempotent(self, memory_store):
        first = memory_store.get_or_create_user("alice")
        second = memory_store.get_or_create_user("alice")
        assert first.id == second.id
        assert first.username == "alice"

    def test_find_user_missing(self, memory_store):
        assert memory_store.find_user("nobody") is None

    def test_create_then_find(self, memory_store):
        created = memory_store.create_user("bob")
        found = memory_store.find_user("bob")
        assert found is not None
        assert found.id == created.id


class TestRooms:

    def test_create_room_starts_empty(self, memory_store):
        room = memory_store.create_room("general")
        assert room.name == "general"
        assert room.members == []
        assert memory_store.get_room(room.id).name == "general"

    def test_duplicate_room_name_rejected(self, memory_store):
        memory_store.create_room("general")
        with pytest.raises(RoomExistsError):
            memory_store.create_room("general")
        assert [r.name for r in memory_store.list_rooms()] == ["general"]

    def test_concurrent_creation_has_single_winner(self, memory_store):
        def attempt(_):
            try:
                memory_store.create_room("dup")
                return True
            except RoomExistsError:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(8)))

        assert results.count(True) == 1
        assert [r.name for r in memory_store.list_rooms()] == ["dup"]

    def test_list_rooms_oldest_first(self, memory_store):
        for name in ("first", "second", "third"):
            memory_store.create_room(name)
        assert [r.name for r in memory_store.list_rooms()] == ["first", "second", "third"]

    def test_find_room_by_name(self, memory_store):
        room = memory_store.create_room("general")
        assert memory_store.find_room_by_name("general").id == room.id
        assert memory_store.find_room_by_name("missing") is None

    def test_get_room_missing(self, memory_store):
        assert memory_store.get_room("no-such-room") is None

    def test_add_room_member_only_once(self, memory_store):
        room = memory_store.create_room("general")

        assert memory_store.add_room_member(room.id, "alice") is True
        assert memory_store.add_room_member(room.id, "bob") is True
        assert memory_store.add_room_member(room.id, "alice") is False

        assert memory_store.get_room(room.id).members == ["alice", "bob"]

    def test_add_room_member_unknown_room(self, memory_store):
        assert memory_store.add_room_member("no-such-room", "alice") is False

    def test_members_listed_with_rooms(self, memory_store):
        general = memory_store.create_room("general")
        memory_store.create_room("random")
        memory_store.add_room_member(general.id, "alice")

        rooms = {r.name: r for r in memory_store.list_rooms()}
        assert rooms["general"].members == ["alice"]
        assert rooms["random"].members == []


class TestMessages:

    def test_room_messages_in_order(self, memory_store):
        room = memory_store.create_room("general")
        memory_store.create_room_message(room.id, "alice", "one")
        memory_store.create_room_message(room.id, "bob", "two")
        memory_store.create_room_message("other-room", "bob", "elsewhere")

        messages = memory_store.list_room_messages(room.id)
        assert [m.content for m in messages] == ["one", "two"]
        assert all(m.roomId == room.id and m.participants is None for m in messages)

    def test_private_message_record(self, memory_store):
        message = memory_store.create_private_message("alice", "bob", "hi")
        assert message.participants == ["alice", "bob"]
        assert message.roomId is None
        assert message.is_private

    def test_private_messages_match_exact_pair_in_either_order(self, memory_store):
        memory_store.create_private_message("alice", "bob", "hi bob")
        memory_store.create_private_message("bob", "alice", "hi alice")
        memory_store.create_private_message("alice", "carol", "hi carol")
        memory_store.create_room_message("general", "alice", "room noise")

        forward = memory_store.list_private_messages("alice", "bob")
        backward = memory_store.list_private_messages("bob", "alice")

        assert [m.content for m in forward] == ["hi bob", "hi alice"]
        assert [m.id for m in backward] == [m.id for m in forward]

    def test_records_survive_restart(self, temp_db):
        store = ChatStore(db_path=temp_db)
        room = store.create_room("general")
        store.add_room_member(room.id, "alice")
        store.create_room_message(room.id, "alice", "persisted")
        store.close()

        reopened = ChatStore(db_path=temp_db)
        try:
            assert reopened.get_room(room.id).members == ["alice"]
            assert [m.content for m in reopened.list_room_messages(room.id)] == ["persisted"]
        finally:
            reopened.close()
