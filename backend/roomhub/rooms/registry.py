"""Room registry: the authority on which rooms exist and what kind they are.

Every answer comes from the store; nothing is cached between calls, so two
callers racing on the same name always see the store's verdict. Creation
relies on the store's primary key instead of checking existence first: the
loser of a race gets ``RoomAlreadyExistsError`` and the winner proceeds.
"""
import logging
from typing import List, Optional

from .errors import InvalidRoomNameError, RoomNotFoundError
from .membership import MembershipManager
from .schemas import Room, RoomType
from .store import RoomStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_NAME_LENGTH = 128


class RoomRegistry:
    """Creates, removes, lists and looks up rooms.

    Args:
        store: The room store.
        membership: Notified to drop members when a room is removed.
        max_name_length: Longest accepted room name.
    """

    def __init__(
        self,
        store: RoomStore,
        membership: MembershipManager,
        max_name_length: int = DEFAULT_MAX_NAME_LENGTH,
    ) -> None:
        self.store = store
        self.membership = membership
        self.max_name_length = max_name_length

    def validate_name(self, name) -> str:
        if not isinstance(name, str) or not name.strip():
            raise InvalidRoomNameError("Room name is required")
        if len(name) > self.max_name_length:
            raise InvalidRoomNameError(
                f"Room name is longer than {self.max_name_length} characters"
            )
        return name

    async def exists(self, name: str) -> bool:
        return await self.store.get_room(name) is not None

    async def create(self, name: str, room_type: RoomType) -> Room:
        """Create a room.

        Raises:
            InvalidRoomNameError: Name is empty or too long.
            RoomAlreadyExistsError: Name is taken.
            StoreFailureError: The store call failed.
        """
        self.validate_name(name)
        room = await self.store.insert_room(name, room_type)
        logger.info("[Registry] Created %s room %s", room_type.value, name)
        return room

    async def remove(self, name: str) -> None:
        """Delete a room and its messages, then drop its members.

        Raises:
            RoomNotFoundError: No room with this name.
            StoreFailureError: The store call failed.
        """
        deleted = await self.store.delete_room(name)
        if not deleted:
            raise RoomNotFoundError(name)
        dropped = self.membership.drop_room(name)
        logger.info("[Registry] Removed room %s (%d members dropped)", name, len(dropped))

    async def list(self, room_type: Optional[RoomType] = None) -> List[str]:
        return await self.store.list_rooms(room_type)

    async def get(self, name: str) -> Room:
        room = await self.store.get_room(name)
        if room is None:
            raise RoomNotFoundError(name)
        return room

    async def get_type(self, name: str) -> RoomType:
        return (await self.get(name)).type
