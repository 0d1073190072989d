"""Tests for the in-memory MembershipManager."""
from roomhub.rooms.membership import MembershipManager


class TestJoinLeave:

    def test_join_adds_member(self):
        mgr = MembershipManager()
        assert mgr.join("c1", "lobby") is True
        assert mgr.members_of("lobby") == {"c1"}
        assert mgr.rooms_of("c1") == {"lobby"}

    def test_join_twice_then_leave_once(self):
        """join is idempotent, so a single leave undoes any number of joins."""
        mgr = MembershipManager()
        mgr.join("c1", "lobby")
        assert mgr.join("c1", "lobby") is False
        mgr.leave("c1", "lobby")
        assert not mgr.is_member("c1", "lobby")
        assert mgr.members_of("lobby") == set()

    def test_leave_room_not_joined_is_noop(self):
        mgr = MembershipManager()
        mgr.join("c1", "lobby")
        assert mgr.leave("c1", "other") is False
        assert mgr.leave("c2", "lobby") is False
        assert mgr.members_of("lobby") == {"c1"}

    def test_connection_in_many_rooms(self):
        mgr = MembershipManager()
        mgr.join("c1", "arena")
        mgr.join("c1", "arena-chat")
        mgr.join("c2", "arena")
        assert mgr.rooms_of("c1") == {"arena", "arena-chat"}
        assert mgr.members_of("arena") == {"c1", "c2"}


class TestBulkRemoval:

    def test_leave_all(self):
        mgr = MembershipManager()
        mgr.join("c1", "a")
        mgr.join("c1", "b")
        mgr.join("c2", "b")

        assert mgr.leave_all("c1") == {"a", "b"}
        assert mgr.members_of("a") == set()
        assert mgr.members_of("b") == {"c2"}
        assert mgr.rooms_of("c1") == set()

    def test_leave_all_unknown_connection(self):
        assert MembershipManager().leave_all("ghost") == set()

    def test_drop_room(self):
        mgr = MembershipManager()
        mgr.join("c1", "lobby")
        mgr.join("c2", "lobby")
        mgr.join("c2", "other")

        assert mgr.drop_room("lobby") == {"c1", "c2"}
        assert mgr.members_of("lobby") == set()
        assert mgr.rooms_of("c1") == set()
        assert mgr.rooms_of("c2") == {"other"}

    def test_members_of_is_a_snapshot(self):
        mgr = MembershipManager()
        mgr.join("c1", "lobby")
        snapshot = mgr.members_of("lobby")
        mgr.join("c2", "lobby")
        assert snapshot == {"c1"}
