"""Wiring of the room components around one injected store."""
import logging
import uuid
from typing import Any, List, Set

from .broadcaster import EventBroadcaster
from .handlers import EventDispatcher, Outbound
from .membership import MembershipManager
from .messaging import MessageRouter
from .registry import DEFAULT_MAX_NAME_LENGTH, RoomRegistry
from .store import RoomStore

logger = logging.getLogger(__name__)


class RoomHub:
    """Owns the registry, membership, router, broadcaster and dispatcher.

    One hub is created per application (see ``roomhub.main``) and reached
    through ``app.state.hub``.
    """

    def __init__(
        self,
        store: RoomStore,
        history_limit: int = 50,
        companion_suffix: str = "-chat",
        max_name_length: int = DEFAULT_MAX_NAME_LENGTH,
    ) -> None:
        self.store = store
        self.history_limit = history_limit
        self.companion_suffix = companion_suffix
        self.membership = MembershipManager()
        self.registry = RoomRegistry(store, self.membership, max_name_length)
        self.broadcaster = EventBroadcaster(self.membership)
        self.router = MessageRouter(self.registry, store)
        self.dispatcher = EventDispatcher(self)

    @classmethod
    def from_config(cls, config) -> "RoomHub":
        db = config.database
        store = RoomStore(
            db_path=db.path,
            pool_size=db.pool_size,
            pool_timeout=db.pool_timeout,
            query_timeout=db.query_timeout,
        )
        return cls(
            store,
            history_limit=config.rooms.history_limit,
            companion_suffix=config.rooms.companion_suffix,
            max_name_length=config.rooms.max_name_length,
        )

    def open(self) -> None:
        self.store.open()

    def close(self) -> None:
        self.store.close()

    def connect(self, socket: Any) -> str:
        """Register an accepted socket and return its connection id."""
        connection_id = str(uuid.uuid4())
        self.broadcaster.register(connection_id, socket)
        return connection_id

    def disconnect(self, connection_id: str) -> Set[str]:
        """Forget a connection. Returns the rooms it was in."""
        rooms = self.membership.rooms_of(connection_id)
        self.broadcaster.unregister(connection_id)
        logger.info("[Hub] %s disconnected (was in %d rooms)", connection_id, len(rooms))
        return rooms

    async def handle(self, connection_id: str, frame: dict) -> List[Outbound]:
        return await self.dispatcher.handle(connection_id, frame)
