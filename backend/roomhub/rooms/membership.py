"""In-memory membership between live connections and rooms.

Nothing here is persisted. All methods are synchronous and never await, so
under a single event loop each call is atomic with respect to broadcasts.
"""
import logging
from typing import Dict, Set

logger = logging.getLogger(__name__)


class MembershipManager:
    """Tracks which connections are in which rooms (many-to-many)."""

    def __init__(self) -> None:
        # room -> connection ids
        self._members: Dict[str, Set[str]] = {}
        # connection id -> rooms
        self._rooms_by_connection: Dict[str, Set[str]] = {}

    def join(self, connection_id: str, room: str) -> bool:
        """Add a connection to a room. Joining twice is a no-op.

        Returns:
            True if the connection was not already a member.
        """
        members = self._members.setdefault(room, set())
        if connection_id in members:
            return False
        members.add(connection_id)
        self._rooms_by_connection.setdefault(connection_id, set()).add(room)
        logger.debug("[Membership] %s joined %s (%d members)", connection_id, room, len(members))
        return True

    def leave(self, connection_id: str, room: str) -> bool:
        """Remove a connection from a room. Leaving a room not joined is a no-op.

        Returns:
            True if the connection was a member.
        """
        members = self._members.get(room)
        if not members or connection_id not in members:
            return False
        members.discard(connection_id)
        if not members:
            del self._members[room]

        rooms = self._rooms_by_connection.get(connection_id)
        if rooms is not None:
            rooms.discard(room)
            if not rooms:
                del self._rooms_by_connection[connection_id]
        logger.debug("[Membership] %s left %s", connection_id, room)
        return True

    def leave_all(self, connection_id: str) -> Set[str]:
        """Drop every membership of a connection (used on disconnect).

        Returns:
            The rooms the connection was removed from.
        """
        rooms = self._rooms_by_connection.pop(connection_id, set())
        for room in rooms:
            members = self._members.get(room)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._members[room]
        if rooms:
            logger.debug("[Membership] %s dropped from %d rooms", connection_id, len(rooms))
        return rooms

    def drop_room(self, room: str) -> Set[str]:
        """Remove every member of a room (used after the room is deleted).

        Returns:
            The connections that were members.
        """
        members = self._members.pop(room, set())
        for connection_id in members:
            rooms = self._rooms_by_connection.get(connection_id)
            if rooms is None:
                continue
            rooms.discard(room)
            if not rooms:
                del self._rooms_by_connection[connection_id]
        return members

    def members_of(self, room: str) -> Set[str]:
        """Snapshot of the current members of a room."""
        return set(self._members.get(room, ()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._rooms_by_connection.get(connection_id, ()))

    def is_member(self, connection_id: str, room: str) -> bool:
        return connection_id in self._members.get(room, ())
