"""Pydantic models for rooms, messages and realtime event payloads.

Inbound payload models mirror the fields clients send with each event.
Field names follow the camelCase used on the wire.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class RoomType(str, Enum):
    """Kind of room. Immutable after creation.

    Attributes:
        CHAT: Persistent text chat; messages are stored.
        GAME: Game channel; messages are relayed, never stored.
    """
    CHAT = "chat"
    GAME = "game"


class Room(BaseModel):
    """A named, typed room row."""
    name: str = Field(..., description="Unique, case-sensitive room name")
    type: RoomType = Field(..., description="chat or game")


class StoredMessage(BaseModel):
    """A chat message row as read back from the store."""
    id: int
    room: str
    sender: str
    body: str
    type: RoomType
    createdAt: float = Field(..., description="Server-assigned seconds since epoch")

    def to_wire(self) -> dict:
        return {"sender": self.sender, "message": self.body, "createdAt": self.createdAt}


# =============================================================================
# Inbound payloads
# =============================================================================


class CreateRoomPayload(BaseModel):
    """createRoom: {name, type}. Both are checked by the handler."""
    name: Optional[str] = None
    type: Optional[str] = None


class CreateGameRoomPayload(BaseModel):
    roomName: Optional[str] = None
    gameType: Optional[str] = None


class JoinRoomPayload(BaseModel):
    """join-room: join a chat room and receive its history."""
    room: str
    userName: str = ""


class JoinGameRoomPayload(BaseModel):
    roomName: str
    userName: str = ""


class RoomMessagePayload(BaseModel):
    """message / gameMessage: {room, message, sender}."""
    room: str
    message: str
    sender: str = ""


class LeaveRoomPayload(BaseModel):
    room: str
    userName: str = ""


class RemoveRoomPayload(BaseModel):
    roomName: str


class GetRoomsPayload(BaseModel):
    type: Optional[RoomType] = None


# =============================================================================
# HTTP responses
# =============================================================================


class RoomListResponse(BaseModel):
    rooms: List[str]


class RoomHistoryResponse(BaseModel):
    room: str
    messages: List[dict]
