"""DuckDB-backed storage for rooms and chat messages.

This module is the only place that talks to the database. Everything above it
(registry, message router) sees async methods that either return plain models
or raise a ``RoomError``.

Database Schema:
    rooms table:
        - name: Primary key, case-sensitive room name
        - type: 'chat' or 'game'
        - created_at: Seconds since epoch
    messages table:
        - id: Sequence-backed primary key (insertion order)
        - room_name: Owning room
        - sender, body, type
        - created_at: Server-assigned, strictly increasing per store

Concurrency:
    One root DuckDB connection is opened per store. Each call takes a slot from
    an asyncio semaphore (the pool), opens a cursor on the root connection,
    runs the statement on a worker thread and closes the cursor again. Every
    call is bounded by ``query_timeout`` and the wait for a slot by
    ``pool_timeout``; either expiring raises ``StoreFailureError``. A call
    that runs out of time has its cursor interrupted.

    Room uniqueness is enforced by the primary key alone. A message insert
    reads the room row and appends in a single statement and never writes
    to ``rooms``, so any number of senders can write to one room at once.
    Messages older than their room row are not part of its history; an
    insert that raced ``delete_room`` stays invisible if the name is reused.

Usage:
    store = RoomStore(":memory:")
    store.open()
    await store.insert_room("lobby", RoomType.CHAT)
    messages = await store.list_messages("lobby")
"""
import asyncio
import logging
import time
from typing import Callable, List, Optional, TypeVar

import duckdb

from .errors import RoomAlreadyExistsError, StoreFailureError, StoreUnavailableError
from .schemas import Room, RoomType, StoredMessage

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CREATE_ROOMS = """
CREATE TABLE IF NOT EXISTS rooms (
    name            VARCHAR PRIMARY KEY,
    type            VARCHAR NOT NULL,
    created_at      DOUBLE NOT NULL
)
"""

_CREATE_MESSAGES_SEQ = "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1"

_CREATE_MESSAGES = """
CREATE TABLE IF NOT EXISTS messages (
    id         BIGINT DEFAULT nextval('messages_seq') PRIMARY KEY,
    room_name  VARCHAR NOT NULL,
    sender     VARCHAR NOT NULL,
    body       VARCHAR NOT NULL,
    type       VARCHAR NOT NULL,
    created_at DOUBLE NOT NULL
)
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room_name)"

_MESSAGE_COLUMNS = "id, room_name, sender, body, type, created_at"

# Messages of the current incarnation of a room; params: room, room.
_ROOM_MESSAGES = (
    "room_name = ? AND created_at > (SELECT r.created_at FROM rooms r WHERE r.name = ?)"
)

_CONFLICT_RETRIES = 5
_CONFLICT_BACKOFF = 0.01
_TS_STEP = 1e-6


def _row_to_message(row) -> StoredMessage:
    return StoredMessage(
        id=row[0],
        room=row[1],
        sender=row[2],
        body=row[3],
        type=RoomType(row[4]),
        createdAt=row[5],
    )


class RoomStore:
    """Async facade over a DuckDB database holding rooms and messages.

    Attributes:
        db_path: DuckDB file path, or ":memory:".
        pool_size: Maximum number of concurrent store calls.
        pool_timeout: Seconds to wait for a free slot.
        query_timeout: Seconds a single call may take.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        pool_size: int = 10,
        pool_timeout: float = 30.0,
        query_timeout: float = 5.0,
    ) -> None:
        self.db_path = db_path
        self.pool_size = pool_size
        self.pool_timeout = pool_timeout
        self.query_timeout = query_timeout
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._slots = asyncio.Semaphore(pool_size)
        self._last_ts = 0.0

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def open(self) -> None:
        """Connect and create the schema.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        try:
            conn = duckdb.connect(self.db_path)
            conn.execute(_CREATE_ROOMS)
            conn.execute(_CREATE_MESSAGES_SEQ)
            conn.execute(_CREATE_MESSAGES)
            conn.execute(_INDEX)
        except duckdb.Error as exc:
            logger.error("[RoomStore] Failed to open %s: %s", self.db_path, exc)
            raise StoreUnavailableError(f"Cannot open store at {self.db_path}: {exc}") from exc
        self._conn = conn
        logger.info("[RoomStore] Connected to %s (pool_size=%d)", self.db_path, self.pool_size)

    def close(self) -> None:
        """Close the root connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("[RoomStore] Closed %s", self.db_path)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # -----------------------------------------------------------------------
    # Call plumbing
    # -----------------------------------------------------------------------

    def _with_cursor(self, fn: Callable[[duckdb.DuckDBPyConnection], T]) -> T:
        if self._conn is None:
            raise StoreFailureError("Store is not open")
        cursor = self._conn.cursor()
        try:
            return fn(cursor)
        finally:
            cursor.close()

    async def _call(self, op: str, fn: Callable[[duckdb.DuckDBPyConnection], T]) -> T:
        """Run ``fn`` with a scoped cursor on a worker thread.

        ``RoomError`` subclasses raised by ``fn`` pass through untouched;
        driver errors and timeouts become ``StoreFailureError``. On timeout
        the running statement is interrupted, so a write that has not
        committed yet is abandoned.
        """
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.pool_timeout)
        except asyncio.TimeoutError:
            logger.error("[RoomStore] %s: no free connection after %ss", op, self.pool_timeout)
            raise StoreFailureError(f"{op}: store is busy")

        cursors = []

        def tracked(cur):
            cursors.append(cur)
            return fn(cur)

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._with_cursor, tracked),
                timeout=self.query_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("[RoomStore] %s timed out after %ss", op, self.query_timeout)
            self._interrupt(op, cursors)
            raise StoreFailureError(f"{op}: store timed out")
        except duckdb.Error as exc:
            logger.error("[RoomStore] %s failed: %s", op, exc)
            raise StoreFailureError(f"{op}: {exc}") from exc
        finally:
            self._slots.release()

    def _interrupt(self, op: str, cursors) -> None:
        for cur in cursors:
            try:
                cur.interrupt()
            except duckdb.Error as exc:
                # The statement finished and its cursor closed meanwhile.
                logger.debug("[RoomStore] %s: interrupt skipped: %s", op, exc)

    def _next_timestamp(self) -> float:
        # Strictly increasing. Called on the event loop only, so no lock is needed.
        ts = max(time.time(), self._last_ts + _TS_STEP)
        self._last_ts = ts
        return ts

    # -----------------------------------------------------------------------
    # Rooms
    # -----------------------------------------------------------------------

    async def get_room(self, name: str) -> Optional[Room]:
        """Point lookup by name. Returns None when absent."""
        def run(cur):
            return cur.execute(
                "SELECT name, type FROM rooms WHERE name = ?", [name]
            ).fetchone()

        row = await self._call("get_room", run)
        if row is None:
            return None
        return Room(name=row[0], type=RoomType(row[1]))

    async def list_rooms(self, room_type: Optional[RoomType] = None) -> List[str]:
        """Room names, optionally filtered by type, ordered by name."""
        def run(cur):
            if room_type is None:
                return cur.execute("SELECT name FROM rooms ORDER BY name").fetchall()
            return cur.execute(
                "SELECT name FROM rooms WHERE type = ? ORDER BY name",
                [room_type.value],
            ).fetchall()

        rows = await self._call("list_rooms", run)
        return [row[0] for row in rows]

    async def insert_room(self, name: str, room_type: RoomType) -> Room:
        """Insert a room row; the primary key is the only uniqueness check.

        Raises:
            RoomAlreadyExistsError: If ``name`` is already taken, including
                when a concurrent insert of the same name commits first.
        """
        created_at = self._next_timestamp()

        def run(cur):
            for attempt in range(_CONFLICT_RETRIES):
                try:
                    cur.execute(
                        "INSERT INTO rooms (name, type, created_at) VALUES (?, ?, ?)",
                        [name, room_type.value, created_at],
                    )
                    return
                except duckdb.ConstraintException:
                    raise RoomAlreadyExistsError(name)
                except duckdb.TransactionException:
                    # Another writer touched the same key; retrying lets its
                    # outcome surface as a constraint violation or a success.
                    if attempt == _CONFLICT_RETRIES - 1:
                        raise
                    time.sleep(_CONFLICT_BACKOFF)

        await self._call("insert_room", run)
        return Room(name=name, type=room_type)

    async def delete_room(self, name: str) -> bool:
        """Delete a room's messages, then the room, in one transaction.

        Returns:
            True if a room row was deleted, False if no such room existed.
        """
        def run(cur):
            cur.begin()
            try:
                cur.execute("DELETE FROM messages WHERE room_name = ?", [name])
                deleted = cur.execute(
                    "DELETE FROM rooms WHERE name = ? RETURNING name", [name]
                ).fetchall()
                cur.commit()
            except Exception:
                cur.rollback()
                raise
            return bool(deleted)

        return await self._call("delete_room", run)

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    async def insert_message(
        self, room: str, sender: str, body: str, room_type: RoomType
    ) -> Optional[StoredMessage]:
        """Append a message to a room that exists with ``room_type``.

        The room check and the insert are one statement, so concurrent
        senders to the same room never write the same row.

        Returns:
            The stored message, or None if the room is gone (or changed kind)
            by the time the insert runs.
        """
        created_at = self._next_timestamp()

        def run(cur):
            return cur.execute(
                "INSERT INTO messages (room_name, sender, body, type, created_at) "
                "SELECT name, ?::VARCHAR, ?::VARCHAR, type, ?::DOUBLE FROM rooms "
                "WHERE name = ? AND type = ? "
                f"RETURNING {_MESSAGE_COLUMNS}",
                [sender, body, created_at, room, room_type.value],
            ).fetchone()

        row = await self._call("insert_message", run)
        return _row_to_message(row) if row is not None else None

    async def list_messages(
        self, room: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[StoredMessage]:
        """Messages of a room, oldest first.

        Only messages newer than the room row count, so a late insert that
        raced a ``delete_room`` never shows up in a room recreated under the
        same name.

        Args:
            room: Room name.
            limit: If given, only the ``limit`` most recent messages after
                skipping the ``offset`` newest ones.
            offset: Number of newest messages to skip (only with ``limit``).
        """
        def run(cur):
            if limit is None:
                return cur.execute(
                    f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE {_ROOM_MESSAGES} "
                    "ORDER BY created_at ASC, id ASC",
                    [room, room],
                ).fetchall()
            return cur.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM ("
                f"  SELECT {_MESSAGE_COLUMNS} FROM messages WHERE {_ROOM_MESSAGES} "
                "   ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
                ") ORDER BY created_at ASC, id ASC",
                [room, room, limit, offset],
            ).fetchall()

        rows = await self._call("list_messages", run)
        return [_row_to_message(row) for row in rows]

    async def count_messages(self, room: str) -> int:
        def run(cur):
            return cur.execute(
                f"SELECT count(*) FROM messages WHERE {_ROOM_MESSAGES}", [room, room]
            ).fetchone()[0]

        return await self._call("count_messages", run)
