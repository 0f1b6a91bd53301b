"""Tests for inbound realtime event validation."""
from roomchat.realtime.events import (
    JoinRoomEvent,
    PrivateMessageEvent,
    RoomMessageEvent,
    TypingEvent,
    parse_event,
)


def test_parse_join_room():
    event_type, event = parse_event({"type": "join_room", "roomId": "r1", "username": "alice"})
    assert event_type == "join_room"
    assert isinstance(event, JoinRoomEvent)
    assert event.roomId == "r1"


def test_parse_message_requires_all_fields():
    assert parse_event({"type": "message", "roomId": "r1", "content": "hi"}) is None
    assert parse_event({"type": "message", "roomId": "r1", "sender": "alice"}) is None
    assert parse_event({"type": "message", "content": "hi", "sender": "alice"}) is None

    _, event = parse_event({"type": "message", "roomId": "r1", "content": "hi", "sender": "alice"})
    assert isinstance(event, RoomMessageEvent)


def test_parse_rejects_empty_strings():
    assert parse_event({"type": "message", "roomId": "r1", "content": "", "sender": "alice"}) is None
    assert parse_event({"type": "private_message", "to": "", "sender": "alice", "content": "x"}) is None


def test_parse_rejects_wrong_types():
    assert parse_event({"type": "join_room", "roomId": 42, "username": "alice"}) is None
    assert parse_event({"type": "join_room", "roomId": "r1", "username": ["alice"]}) is None


def test_parse_private_message():
    _, event = parse_event({"type": "private_message", "to": "bob", "sender": "alice", "content": "hi"})
    assert isinstance(event, PrivateMessageEvent)
    assert event.to == "bob"


def test_parse_typing_defaults():
    event_type, event = parse_event({"type": "stop_typing", "sender": "alice", "roomId": "r1"})
    assert event_type == "stop_typing"
    assert isinstance(event, TypingEvent)
    assert event.isPrivate is False
    assert event.to is None


def test_parse_typing_null_is_private():
    _, event = parse_event({"type": "typing", "sender": "alice", "roomId": "r1", "isPrivate": None})
    assert not event.isPrivate


def test_parse_typing_requires_sender():
    assert parse_event({"type": "typing", "roomId": "r1"}) is None


def test_parse_unknown_or_malformed_frames():
    assert parse_event({"type": "end_session"}) is None
    assert parse_event({"roomId": "r1"}) is None
    assert parse_event(["join_room"]) is None
    assert parse_event("join_room") is None
