"""Message routing by room type.

A room only carries messages of its own kind. For each inbound message the
router:

1. Looks up the room's stored type (``RoomNotFoundError`` if absent).
2. Drops the message silently if its kind does not match the room.
3. Persists it (chat only) before anything is delivered.
4. Describes the fan-out: chat goes to every member including the sender,
   game goes to every member except the sender.

Persistence is fail-closed: if the chat insert fails the ``StoreFailureError``
propagates and nothing is delivered.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import RoomNotFoundError, RoomTypeMismatchError
from .registry import RoomRegistry
from .schemas import RoomMessagePayload, RoomType, StoredMessage
from .store import RoomStore

logger = logging.getLogger(__name__)


@dataclass
class RoutedMessage:
    """A validated message and where it should go."""
    room: str
    room_type: RoomType
    sender: str
    body: str
    stored: Optional[StoredMessage] = None
    exclude: Optional[str] = None

    @property
    def event(self) -> str:
        return "newMessage" if self.room_type is RoomType.CHAT else "gameMessage"

    def payload(self) -> dict:
        data = {"room": self.room, "sender": self.sender, "message": self.body}
        if self.stored is not None:
            data["createdAt"] = self.stored.createdAt
        return data


class MessageRouter:
    """Validates, persists and targets room messages."""

    def __init__(self, registry: RoomRegistry, store: RoomStore) -> None:
        self.registry = registry
        self.store = store

    async def _check_type(self, room: str, intent: RoomType) -> None:
        actual = await self.registry.get_type(room)
        if actual is not intent:
            raise RoomTypeMismatchError(room, intent.value, actual.value)

    async def route(
        self, connection_id: str, message: RoomMessagePayload, intent: RoomType
    ) -> Optional[RoutedMessage]:
        """Route one message sent by ``connection_id``.

        Returns:
            The routed message, or None if it was dropped for a type mismatch.

        Raises:
            RoomNotFoundError: The room does not exist (or vanished mid-send).
            StoreFailureError: The lookup or the chat insert failed.
        """
        try:
            await self._check_type(message.room, intent)
        except RoomTypeMismatchError as exc:
            logger.info("[Router] Dropped %s message from %s: %s", intent.value, connection_id, exc)
            return None

        if intent is RoomType.GAME:
            return RoutedMessage(
                room=message.room,
                room_type=intent,
                sender=message.sender,
                body=message.message,
                exclude=connection_id,
            )

        try:
            stored = await self.store.insert_message(
                message.room, message.sender, message.message, intent
            )
        except Exception:
            logger.error("[Router] Chat message to %s not stored; not delivering", message.room)
            raise
        if stored is None:
            raise RoomNotFoundError(message.room)

        return RoutedMessage(
            room=message.room,
            room_type=intent,
            sender=message.sender,
            body=message.message,
            stored=stored,
        )
