"""Room router providing the realtime WebSocket and read-only HTTP endpoints.

This module provides:
    - WebSocket /ws: realtime room events
    - GET /rooms: Room names, optionally filtered by type
    - GET /rooms/{name}: A single room
    - GET /rooms/{name}/messages: Paged chat history

The WebSocket protocol:
    1. Client connects → Server assigns a connection id
       → Server sends: {event: "connected", data: {connectionId: "xxx"}}
    2. Client sends: {event: "<name>", data: {...payload}}
       → Server answers and/or broadcasts per ``roomhub.rooms.handlers``
    3. On disconnect → the connection leaves every room before any further
       broadcast is resolved.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect

from .errors import RoomNotFoundError, StoreFailureError
from .hub import RoomHub
from .schemas import Room, RoomHistoryResponse, RoomListResponse, RoomType

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


def get_hub(request: Request) -> RoomHub:
    return request.app.state.hub


@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms(
    type: Optional[RoomType] = Query(None, description="Only rooms of this type"),
    hub: RoomHub = Depends(get_hub),
) -> RoomListResponse:
    try:
        rooms = await hub.registry.list(type)
    except StoreFailureError:
        raise HTTPException(status_code=503, detail="Room store unavailable")
    return RoomListResponse(rooms=rooms)


@router.get("/rooms/{name}", response_model=Room)
async def get_room(name: str, hub: RoomHub = Depends(get_hub)) -> Room:
    try:
        return await hub.registry.get(name)
    except RoomNotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StoreFailureError:
        raise HTTPException(status_code=503, detail="Room store unavailable")


@router.get("/rooms/{name}/messages", response_model=RoomHistoryResponse)
async def get_room_messages(
    name: str,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Messages per page"),
    offset: int = Query(0, ge=0, description="Newest messages to skip"),
    hub: RoomHub = Depends(get_hub),
) -> RoomHistoryResponse:
    """Get a page of a room's chat history, oldest first.

    ``offset=0`` is the most recent page; larger offsets walk back in time.
    """
    try:
        await hub.registry.get(name)
        messages = await hub.store.list_messages(name, limit=limit, offset=offset)
    except RoomNotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StoreFailureError:
        raise HTTPException(status_code=503, detail="Room store unavailable")
    return RoomHistoryResponse(room=name, messages=[m.to_wire() for m in messages])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """One connection's event stream. Frames are handled strictly in order."""
    hub: RoomHub = websocket.app.state.hub

    await websocket.accept()
    connection_id = hub.connect(websocket)
    logger.info(f"[WS] Connection {connection_id} accepted")

    try:
        await hub.broadcaster.to_one(connection_id, "connected", {"connectionId": connection_id})

        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await hub.broadcaster.to_one(connection_id, "error", {"event": None, "error": "Invalid JSON"})
                continue
            except (KeyError, TypeError):
                # Binary frame: there is no text to decode.
                await hub.broadcaster.to_one(connection_id, "error", {"event": None, "error": "Invalid frame"})
                continue

            if not isinstance(data, dict):
                await hub.broadcaster.to_one(connection_id, "error", {"event": None, "error": "Invalid frame"})
                continue

            logger.debug("[WS] %s received: event=%s", connection_id, data.get("event", "?"))
            await hub.handle(connection_id, data)

    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection_id} closed")
    finally:
        hub.disconnect(connection_id)
