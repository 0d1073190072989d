"""Event delivery to one connection, a room, or every connection.

Sockets are anything with an async ``send_json`` (a Starlette ``WebSocket``
in production). Delivery to several sockets runs concurrently with
``asyncio.gather()``; a socket whose send fails is treated as gone and is
unregistered, which also drops its memberships.

Race window:
    ``to_room`` resolves the member set when it is called. A connection that
    joins while the fan-out is in flight may or may not get the event.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from .membership import MembershipManager

logger = logging.getLogger(__name__)


class EventBroadcaster:
    """Owns the connection id -> socket table and fans events out.

    Outbound frames are ``{"event": event, "data": payload}``.
    """

    def __init__(self, membership: MembershipManager) -> None:
        self.membership = membership
        self.connections: Dict[str, Any] = {}

    def register(self, connection_id: str, socket: Any) -> None:
        self.connections[connection_id] = socket
        logger.debug("[Broadcaster] Registered %s (%d live)", connection_id, len(self.connections))

    def unregister(self, connection_id: str) -> None:
        """Forget a connection and all of its memberships.

        Once this returns, no later broadcast can resolve the connection.
        """
        self.connections.pop(connection_id, None)
        self.membership.leave_all(connection_id)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.connections

    async def to_one(self, connection_id: str, event: str, payload: dict) -> bool:
        """Single attempt, no retry. A missing connection is skipped silently."""
        socket = self.connections.get(connection_id)
        if socket is None:
            return False
        ok = await self._safe_send(socket, {"event": event, "data": payload})
        if not ok:
            self.unregister(connection_id)
        return ok

    async def to_room(
        self,
        room: str,
        event: str,
        payload: dict,
        exclude: Optional[str] = None,
    ) -> int:
        """Send to the room's members as of now, optionally minus one."""
        targets = [c for c in self.membership.members_of(room) if c != exclude]
        return await self.to_many(targets, event, payload)

    async def to_all(self, event: str, payload: dict) -> int:
        """Send to every live connection. Used for room-list updates."""
        return await self.to_many(list(self.connections), event, payload)

    async def to_many(self, connection_ids: Iterable[str], event: str, payload: dict) -> int:
        """Send to an explicit set of connections.

        Returns:
            Number of successful deliveries.
        """
        targets = [(cid, self.connections[cid]) for cid in connection_ids if cid in self.connections]
        if not targets:
            return 0

        message = {"event": event, "data": payload}
        results = await asyncio.gather(
            *[self._safe_send(socket, message) for _, socket in targets],
            return_exceptions=True,
        )

        failed: List[str] = [
            cid for (cid, _), success in zip(targets, results) if success is not True
        ]
        for cid in failed:
            logger.debug("[Broadcaster] Dropping dead connection %s", cid)
            self.unregister(cid)
        return len(targets) - len(failed)

    async def _safe_send(self, socket: Any, message: dict) -> bool:
        """Send one frame to a socket, swallowing transport errors.

        Args:
            socket: Object with an async ``send_json``.
            message: JSON-serializable frame to send.

        Returns:
            True if sent, False if the socket failed.
        """
        try:
            await socket.send_json(message)
            return True
        except Exception as e:
            logger.debug("[Broadcaster] Failed to send to connection: %s", e)
            return False
