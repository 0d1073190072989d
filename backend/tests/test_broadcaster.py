"""Tests for the EventBroadcaster."""
import pytest

from roomhub.rooms.broadcaster import EventBroadcaster
from roomhub.rooms.membership import MembershipManager


@pytest.fixture
def membership():
    return MembershipManager()


@pytest.fixture
def broadcaster(membership):
    return EventBroadcaster(membership)


class TestDelivery:

    @pytest.mark.asyncio
    async def test_to_one(self, broadcaster, make_socket):
        socket = make_socket()
        broadcaster.register("c1", socket)

        assert await broadcaster.to_one("c1", "ping", {"n": 1}) is True
        assert socket.sent == [{"event": "ping", "data": {"n": 1}}]

    @pytest.mark.asyncio
    async def test_to_one_missing_connection_is_silent(self, broadcaster):
        assert await broadcaster.to_one("ghost", "ping", {}) is False

    @pytest.mark.asyncio
    async def test_to_room_only_reaches_members(self, broadcaster, membership, make_socket):
        a, b, c = make_socket(), make_socket(), make_socket()
        for cid, sock in (("a", a), ("b", b), ("c", c)):
            broadcaster.register(cid, sock)
        membership.join("a", "lobby")
        membership.join("b", "lobby")

        delivered = await broadcaster.to_room("lobby", "newMessage", {"message": "hi"})

        assert delivered == 2
        assert a.events("newMessage") and b.events("newMessage")
        assert c.sent == []

    @pytest.mark.asyncio
    async def test_to_room_excludes_sender(self, broadcaster, membership, make_socket):
        a, b = make_socket(), make_socket()
        broadcaster.register("a", a)
        broadcaster.register("b", b)
        membership.join("a", "arena")
        membership.join("b", "arena")

        await broadcaster.to_room("arena", "gameMessage", {"message": "move"}, exclude="a")

        assert a.sent == []
        assert b.events("gameMessage") == [{"message": "move"}]

    @pytest.mark.asyncio
    async def test_to_all(self, broadcaster, make_socket):
        sockets = [make_socket() for _ in range(3)]
        for i, sock in enumerate(sockets):
            broadcaster.register(f"c{i}", sock)

        assert await broadcaster.to_all("availableRooms", {"rooms": []}) == 3
        assert all(s.events("availableRooms") for s in sockets)


class TestDeadConnections:

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self, broadcaster, membership, make_socket):
        good, dead = make_socket(), make_socket(fail=True)
        broadcaster.register("good", good)
        broadcaster.register("dead", dead)
        membership.join("good", "lobby")
        membership.join("dead", "lobby")

        delivered = await broadcaster.to_room("lobby", "newMessage", {})

        assert delivered == 1
        assert not broadcaster.is_connected("dead")
        assert membership.members_of("lobby") == {"good"}

    @pytest.mark.asyncio
    async def test_unregistered_connection_gets_nothing(self, broadcaster, membership, make_socket):
        socket = make_socket()
        broadcaster.register("c1", socket)
        membership.join("c1", "lobby")

        broadcaster.unregister("c1")
        await broadcaster.to_room("lobby", "newMessage", {})
        await broadcaster.to_all("availableRooms", {})
        await broadcaster.to_one("c1", "ping", {})

        assert socket.sent == []
        assert membership.rooms_of("c1") == set()
