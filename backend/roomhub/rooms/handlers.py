"""Event handlers and the dispatcher that runs them.

Each inbound event name maps to one handler. A handler receives the hub, the
id of the connection that sent the event and the event payload. It applies
state changes through the hub (store, registry, membership) and returns the
outbound events to deliver, without touching sockets itself. The dispatcher
delivers what the handler returned, in order.

Handled events:
    - createRoom: {name, type}
    - createGameRoom: {roomName, gameType}
    - joinGameRoom: {roomName, userName}
    - join-room: {room, userName}
    - message: {room, message, sender}
    - gameMessage: {room, message, sender}
    - leave-room: {room, userName}
    - removeRoom: {roomName}
    - getRooms: {type?}

Errors are connection-scoped. A handler answers its own expected failures;
anything that escapes is answered with an ``error`` event to the sender
only and never reaches other connections.
"""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, FrozenSet, List, Optional

from pydantic import ValidationError

from .errors import (
    RoomAlreadyExistsError,
    RoomError,
    RoomNotFoundError,
    StoreFailureError,
)
from .schemas import (
    CreateGameRoomPayload,
    CreateRoomPayload,
    GetRoomsPayload,
    JoinGameRoomPayload,
    JoinRoomPayload,
    LeaveRoomPayload,
    RemoveRoomPayload,
    RoomMessagePayload,
    RoomType,
)

if TYPE_CHECKING:
    from .hub import RoomHub

logger = logging.getLogger(__name__)


# =============================================================================
# Outbound effects
# =============================================================================


@dataclass(frozen=True)
class Outbound:
    """One event to deliver.

    Attributes:
        event: Outbound event name (the frame's "event").
        payload: Event body.
        scope: "one", "room", "many" or "all".
        target: Connection id for "one", room name for "room".
        targets: Connection ids for "many".
        exclude: Connection id left out of a "room" fan-out.
    """
    event: str
    payload: dict
    scope: str
    target: Optional[str] = None
    targets: FrozenSet[str] = field(default_factory=frozenset)
    exclude: Optional[str] = None


def reply(connection_id: str, event: str, payload: dict) -> Outbound:
    return Outbound(event, payload, "one", target=connection_id)


def to_room(room: str, event: str, payload: dict, exclude: Optional[str] = None) -> Outbound:
    return Outbound(event, payload, "room", target=room, exclude=exclude)


def to_many(connection_ids, event: str, payload: dict) -> Outbound:
    return Outbound(event, payload, "many", targets=frozenset(connection_ids))


def to_all(event: str, payload: dict) -> Outbound:
    return Outbound(event, payload, "all")


Handler = Callable[["RoomHub", str, dict], Awaitable[List[Outbound]]]

EVENT_HANDLERS: Dict[str, Handler] = {}


def handles(event: str) -> Callable[[Handler], Handler]:
    """Register a handler for an inbound event name."""
    def decorator(fn: Handler) -> Handler:
        EVENT_HANDLERS[event] = fn
        return fn
    return decorator


async def _room_list_update(hub: "RoomHub", room_type: Optional[RoomType]) -> List[Outbound]:
    """availableRooms for everyone. Skipped (and logged) if the listing fails."""
    try:
        rooms = await hub.registry.list(room_type)
    except StoreFailureError as exc:
        logger.error("[Handlers] Could not list rooms for broadcast: %s", exc)
        return []
    return [to_all("availableRooms", {
        "rooms": rooms,
        "roomType": room_type.value if room_type else None,
    })]


def _create_failed(error: str) -> dict:
    return {"success": False, "error": error}


# =============================================================================
# Room creation
# =============================================================================


@handles("createRoom")
async def create_room(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    """Create a room of the requested type; the creator joins it."""
    payload = CreateRoomPayload(**data)
    if not payload.name or not payload.type:
        return [reply(connection_id, "createRoomResponse",
                      _create_failed("Room name and type are required!"))]
    try:
        room_type = RoomType(payload.type)
    except ValueError:
        return [reply(connection_id, "createRoomResponse",
                      _create_failed(f"Unknown room type: {payload.type}"))]

    try:
        room = await hub.registry.create(payload.name, room_type)
    except StoreFailureError:
        return [reply(connection_id, "createRoomResponse",
                      _create_failed("Server error while creating room"))]
    except RoomError as exc:
        return [reply(connection_id, "createRoomResponse", _create_failed(exc.message))]

    hub.membership.join(connection_id, room.name)
    effects = [reply(connection_id, "createRoomResponse", {
        "success": True,
        "room": room.name,
        "roomType": room.type.value,
    })]
    effects.extend(await _room_list_update(hub, room.type))
    return effects


@handles("createGameRoom")
async def create_game_room(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    """Create a game room plus its companion chat room.

    The companion is best-effort: if its name is taken (or it cannot be
    created for any other reason) the game room stands alone and the
    response carries ``companion: None``.
    """
    payload = CreateGameRoomPayload(**data)
    if not payload.roomName:
        return [reply(connection_id, "createRoomResponse",
                      _create_failed("Room name is required!"))]

    try:
        room = await hub.registry.create(payload.roomName, RoomType.GAME)
    except StoreFailureError:
        return [reply(connection_id, "createRoomResponse",
                      _create_failed("Error creating room"))]
    except RoomError as exc:
        return [reply(connection_id, "createRoomResponse", _create_failed(exc.message))]

    companion: Optional[str] = room.name + hub.companion_suffix
    try:
        await hub.registry.create(companion, RoomType.CHAT)
    except RoomAlreadyExistsError:
        logger.warning("[Handlers] Companion room %s already exists; game room %s has none",
                       companion, room.name)
        companion = None
    except RoomError as exc:
        logger.warning("[Handlers] Could not create companion room %s: %s", companion, exc)
        companion = None

    hub.membership.join(connection_id, room.name)
    if companion:
        hub.membership.join(connection_id, companion)

    effects = [reply(connection_id, "createRoomResponse", {
        "success": True,
        "room": room.name,
        "roomType": room.type.value,
        "companion": companion,
        "gameType": payload.gameType,
    })]
    effects.extend(await _room_list_update(hub, RoomType.GAME))
    return effects


# =============================================================================
# Joining and leaving
# =============================================================================


@handles("joinGameRoom")
async def join_game_room(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    payload = JoinGameRoomPayload(**data)
    try:
        room = await hub.registry.get(payload.roomName)
    except RoomNotFoundError:
        room = None
    except StoreFailureError:
        return [reply(connection_id, "joinRoomError",
                      {"error": "An error occurred while joining the game room."})]

    if room is None or room.type is not RoomType.GAME:
        return [reply(connection_id, "joinRoomError", {"error": "Game room not found!"})]

    hub.membership.join(connection_id, room.name)
    return [to_room(room.name, "user_joined", {
        "room": room.name,
        "userName": payload.userName,
        "message": f"{payload.userName} has joined the game!",
    })]


@handles("join-room")
async def join_chat_room(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    """Join a chat room: history goes to the joiner, user_joined to the room."""
    payload = JoinRoomPayload(**data)
    try:
        room = await hub.registry.get(payload.room)
        if room.type is not RoomType.CHAT:
            room = None
        history = await hub.store.list_messages(payload.room, limit=hub.history_limit) if room else []
    except RoomNotFoundError:
        room = None
    except StoreFailureError:
        return [reply(connection_id, "joinRoomError",
                      {"error": "An error occurred while joining the chat room."})]

    if room is None:
        return [reply(connection_id, "joinRoomError", {"error": "Chat room does not exist!"})]

    hub.membership.join(connection_id, room.name)
    return [
        reply(connection_id, "messageHistory", {
            "room": room.name,
            "messages": [m.to_wire() for m in history],
        }),
        to_room(room.name, "user_joined", {
            "room": room.name,
            "userName": payload.userName,
            "message": f"{payload.userName} has joined the room: {room.name}",
        }),
    ]


@handles("leave-room")
async def leave_room(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    payload = LeaveRoomPayload(**data)
    if not hub.membership.leave(connection_id, payload.room):
        return []
    logger.info("[Handlers] %s has left the room: %s", payload.userName, payload.room)
    return [to_room(payload.room, "user_left", {
        "room": payload.room,
        "userName": payload.userName,
        "message": f"{payload.userName} has left the room",
    }, exclude=connection_id)]


# =============================================================================
# Messages
# =============================================================================


async def _route(
    hub: "RoomHub", connection_id: str, data: dict, intent: RoomType
) -> List[Outbound]:
    payload = RoomMessagePayload(**data)
    try:
        routed = await hub.router.route(connection_id, payload, intent)
    except RoomNotFoundError as exc:
        return [reply(connection_id, "messageError", {"room": payload.room, "error": exc.message})]
    except StoreFailureError:
        return [reply(connection_id, "messageError", {
            "room": payload.room,
            "error": "Message could not be delivered",
        })]

    if routed is None:
        return []
    return [to_room(routed.room, routed.event, routed.payload(), exclude=routed.exclude)]


@handles("message")
async def chat_message(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    return await _route(hub, connection_id, data, RoomType.CHAT)


@handles("gameMessage")
async def game_message(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    return await _route(hub, connection_id, data, RoomType.GAME)


# =============================================================================
# Removal and listing
# =============================================================================


@handles("removeRoom")
async def remove_room(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    """Delete a room; its members are told, then everyone gets the new list."""
    payload = RemoveRoomPayload(**data)
    name = payload.roomName
    try:
        room = await hub.registry.get(name)
        members = hub.membership.members_of(name)
        await hub.registry.remove(name)
    except RoomNotFoundError as exc:
        return [reply(connection_id, "room_removed_error", {"room": name, "error": exc.message})]
    except StoreFailureError:
        return [reply(connection_id, "room_removed_error", {
            "room": name,
            "error": "An error occurred while deleting the room.",
        })]

    effects = [to_many(members, "room_removed", {
        "room": name,
        "message": f'Room "{name}" has been removed.',
    })]
    effects.extend(await _room_list_update(hub, room.type))
    return effects


@handles("getRooms")
async def get_rooms(hub: "RoomHub", connection_id: str, data: dict) -> List[Outbound]:
    payload = GetRoomsPayload(**data)
    try:
        rooms = await hub.registry.list(payload.type)
    except StoreFailureError:
        return [reply(connection_id, "error", {
            "event": "getRooms",
            "error": "An error occurred while listing rooms.",
        })]
    return [reply(connection_id, "availableRooms", {
        "rooms": rooms,
        "roomType": payload.type.value if payload.type else None,
    })]


# =============================================================================
# Dispatcher
# =============================================================================


class EventDispatcher:
    """Maps inbound frames to handlers and delivers their outbound events."""

    def __init__(self, hub: "RoomHub", handlers: Optional[Dict[str, Handler]] = None) -> None:
        self.hub = hub
        self.handlers = handlers if handlers is not None else EVENT_HANDLERS

    async def dispatch(self, connection_id: str, frame: dict) -> List[Outbound]:
        """Run the handler for ``frame["event"]`` and return its effects.

        Never raises for a bad frame or a failing handler; the sender gets an
        ``error`` event instead.
        """
        event = frame.get("event") if isinstance(frame, dict) else None
        handler = self.handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            logger.warning("[Dispatcher] Unknown event %r from %s", event, connection_id)
            return [reply(connection_id, "error", {"event": event, "error": "Unknown event"})]

        data = frame.get("data") or {}
        if not isinstance(data, dict):
            return [reply(connection_id, "error", {"event": event, "error": "Invalid payload"})]
        try:
            return await handler(self.hub, connection_id, data)
        except ValidationError as exc:
            logger.info("[Dispatcher] Invalid %s payload from %s: %s",
                        event, connection_id, exc.errors())
            return [reply(connection_id, "error", {"event": event, "error": "Invalid payload"})]
        except StoreFailureError as exc:
            logger.error("[Dispatcher] %s from %s hit a store failure: %s", event, connection_id, exc)
            return [reply(connection_id, "error", {"event": event, "error": "Server error"})]
        except RoomError as exc:
            logger.warning("[Dispatcher] %s from %s failed: %s", event, connection_id, exc)
            return [reply(connection_id, "error", {"event": event, "error": exc.message})]
        except Exception:
            logger.exception("[Dispatcher] Unhandled error in %s from %s", event, connection_id)
            return [reply(connection_id, "error", {"event": event, "error": "Internal server error"})]

    async def deliver(self, effects: List[Outbound]) -> None:
        broadcaster = self.hub.broadcaster
        for effect in effects:
            if effect.scope == "one":
                await broadcaster.to_one(effect.target, effect.event, effect.payload)
            elif effect.scope == "room":
                await broadcaster.to_room(effect.target, effect.event, effect.payload,
                                          exclude=effect.exclude)
            elif effect.scope == "many":
                await broadcaster.to_many(effect.targets, effect.event, effect.payload)
            elif effect.scope == "all":
                await broadcaster.to_all(effect.event, effect.payload)
            else:
                logger.error("[Dispatcher] Unknown scope %r for %s", effect.scope, effect.event)

    async def handle(self, connection_id: str, frame: dict) -> List[Outbound]:
        effects = await self.dispatch(connection_id, frame)
        await self.deliver(effects)
        return effects
