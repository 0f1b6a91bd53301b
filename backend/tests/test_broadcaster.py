"""Tests for ConnectionHub fan-out and RoomBroadcaster delivery sets."""
import pytest

from roomchat.presence import PresenceRegistry
from roomchat.realtime import ConnectionHub, RoomBroadcaster


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
def registry():
    return PresenceRegistry()


@pytest.fixture
def broadcaster(registry, hub):
    return RoomBroadcaster(registry, hub)


class TestConnectionHub:

    def test_subscribe_and_drop(self, hub, fake_ws):
        hub.register("c1", fake_ws())
        hub.subscribe("general", "c1")
        hub.subscribe("random", "c1")

        hub.drop("c1")

        assert hub.connection_ids() == []
        assert hub.channel("general") == []
        assert hub.channel("random") == []

    def test_unsubscribe_unknown_room(self, hub):
        hub.unsubscribe("nowhere", "c1")
        assert hub.channels == {}

    @pytest.mark.asyncio
    async def test_send_skips_unknown_connections(self, hub, fake_ws):
        ws = fake_ws()
        hub.register("c1", ws)

        delivered = await hub.send(["c1", "ghost"], {"type": "ping"})

        assert delivered == 1
        assert ws.sent == [{"type": "ping"}]

    @pytest.mark.asyncio
    async def test_failed_send_unsubscribes_connection(self, hub, fake_ws):
        good, dead = fake_ws(), fake_ws(fail=True)
        hub.register("good", good)
        hub.register("dead", dead)
        hub.subscribe("general", "good")
        hub.subscribe("general", "dead")

        delivered = await hub.send(hub.channel("general"), {"type": "ping"})

        assert delivered == 1
        assert good.sent == [{"type": "ping"}]
        assert hub.channel("general") == ["good"]


class TestRoomBroadcaster:

    @pytest.mark.asyncio
    async def test_room_users_goes_to_channel_only(self, broadcaster, registry, hub, fake_ws):
        inside, outside = fake_ws(), fake_ws()
        hub.register("in", inside)
        hub.register("out", outside)
        hub.subscribe("general", "in")
        registry.join_room("general", "alice")

        await broadcaster.broadcast_room_users("general")

        assert inside.sent == [{"type": "room_users", "roomId": "general", "users": ["alice"]}]
        assert outside.sent == []

    @pytest.mark.asyncio
    async def test_online_users_goes_to_every_connection(self, broadcaster, registry, hub, fake_ws):
        anonymous, bound = fake_ws(), fake_ws()
        hub.register("anon", anonymous)
        hub.register("c1", bound)
        registry.bind("c1", "alice")

        await broadcaster.broadcast_online_users()

        assert anonymous.sent == bound.sent == [{"type": "online_users", "users": ["alice"]}]

    @pytest.mark.asyncio
    async def test_deliver_to_room_excludes_connection(self, broadcaster, hub, fake_ws):
        a, b = fake_ws(), fake_ws()
        hub.register("a", a)
        hub.register("b", b)
        hub.subscribe("general", "a")
        hub.subscribe("general", "b")

        await broadcaster.deliver_to_room("general", {"type": "typing"}, exclude="a")

        assert a.sent == []
        assert b.sent == [{"type": "typing"}]

    @pytest.mark.asyncio
    async def test_deliver_to_offline_user_is_dropped(self, broadcaster, hub, fake_ws):
        ws = fake_ws()
        hub.register("c1", ws)

        await broadcaster.deliver_to_user("bob", {"type": "private_message"})

        assert ws.sent == []

    @pytest.mark.asyncio
    async def test_deliver_to_user_reaches_every_device(self, broadcaster, registry, hub, fake_ws):
        phone, laptop = fake_ws(), fake_ws()
        hub.register("phone", phone)
        hub.register("laptop", laptop)
        registry.bind("phone", "bob")
        registry.bind("laptop", "bob")

        await broadcaster.deliver_to_user("bob", {"type": "private_message"})

        assert phone.sent == laptop.sent == [{"type": "private_message"}]
