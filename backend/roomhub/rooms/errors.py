"""Errors raised by the room components.

Every error here is scoped to the connection that triggered it. The
dispatcher turns them into an outbound event for the initiator only.
"""


class RoomError(Exception):
    """Base exception for room operations."""
    code = "room_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class RoomAlreadyExistsError(RoomError):
    """Raised when a room name is already taken."""
    code = "already_exists"

    def __init__(self, name: str):
        self.name = name
        super().__init__("Room already exists")


class RoomNotFoundError(RoomError):
    """Raised when an operation references a room that does not exist."""
    code = "not_found"

    def __init__(self, name: str, message: str = "Room not found"):
        self.name = name
        super().__init__(message)


class InvalidRoomNameError(RoomError):
    """Raised when a room name is empty or too long."""
    code = "invalid_name"


class RoomTypeMismatchError(RoomError):
    """Raised when a message targets a room of the other kind."""
    code = "type_mismatch"

    def __init__(self, name: str, expected: str, actual: str):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(f"Room {name} is a {actual} room, not {expected}")


class StoreFailureError(RoomError):
    """Raised when a store call fails, times out or cannot get a slot."""
    code = "store_failure"


class StoreUnavailableError(StoreFailureError):
    """Raised when the store cannot be opened at startup."""
    code = "store_unavailable"
