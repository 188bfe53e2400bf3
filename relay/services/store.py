"""Message store adapters: ordered append/read/update of messages per thread."""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

import aiosqlite

from relay.errors import PersistenceError
from relay.models.messages import DEFAULT_THREAD_TITLE, Message, Thread, generate_id, utc_now
from relay.utils.logging import get_logger

logger = get_logger(__name__)

UPDATABLE_MESSAGE_FIELDS = {"parts"}


class MessageStore(Protocol):
    """Interface for thread and message persistence.

    Implementations must return a thread's messages in creation order and give
    read-your-writes consistency within a thread.
    """

    async def add_message(self, message: Message) -> Message:
        """Append a message to its thread.

        Raises:
            PersistenceError: If the message cannot be stored
        """
        ...

    async def get_messages(self, thread_id: str, limit: int | None = None, offset: int | None = None) -> list[Message]:
        """Get messages for a thread in creation order."""
        ...

    async def update_message(self, message_id: str, partial: dict[str, Any]) -> Message:
        """Update fields of a stored message and return the stored result.

        Raises:
            PersistenceError: If the message does not exist or cannot be written
        """
        ...

    async def count_messages(self, thread_id: str) -> int: ...

    async def delete_message(self, message_id: str) -> bool: ...

    async def add_thread(self, title: str = DEFAULT_THREAD_TITLE, thread_id: str | None = None) -> Thread: ...

    async def get_thread(self, thread_id: str) -> Thread | None: ...

    async def get_threads(self) -> list[Thread]: ...

    async def update_thread(self, thread_id: str, title: str) -> Thread | None: ...

    async def delete_thread(self, thread_id: str) -> bool: ...


def _check_partial(partial: dict[str, Any]) -> None:
    unknown = set(partial) - UPDATABLE_MESSAGE_FIELDS
    if unknown:
        raise PersistenceError(f"Cannot update message fields: {', '.join(sorted(unknown))}")


class InMemoryMessageStore:
    """In-memory message store.

    Messages are kept per thread in insertion order. Copies are handed out so
    callers cannot mutate stored state.
    """

    def __init__(self):
        self.threads: dict[str, Thread] = {}
        self.messages: dict[str, list[Message]] = {}
        self._thread_by_message: dict[str, str] = {}

    async def add_message(self, message: Message) -> Message:
        if message.thread_id not in self.threads:
            raise PersistenceError(f"Thread {message.thread_id} does not exist")
        if message.id in self._thread_by_message:
            raise PersistenceError(f"Message {message.id} already exists")

        stored = message.model_copy(deep=True)
        self.messages.setdefault(message.thread_id, []).append(stored)
        self._thread_by_message[message.id] = message.thread_id
        self._touch(message.thread_id)
        return stored.model_copy(deep=True)

    async def get_messages(self, thread_id: str, limit: int | None = None, offset: int | None = None) -> list[Message]:
        messages = self.messages.get(thread_id, [])
        start = offset or 0
        end = start + limit if limit is not None else None
        return [message.model_copy(deep=True) for message in messages[start:end]]

    async def update_message(self, message_id: str, partial: dict[str, Any]) -> Message:
        _check_partial(partial)

        thread_id = self._thread_by_message.get(message_id)
        if thread_id is None:
            raise PersistenceError(f"Message {message_id} not found")

        messages = self.messages[thread_id]
        index = next(i for i, message in enumerate(messages) if message.id == message_id)
        updated = Message.model_validate({**messages[index].model_dump(), **partial})
        messages[index] = updated
        self._touch(thread_id)
        return updated.model_copy(deep=True)

    async def count_messages(self, thread_id: str) -> int:
        return len(self.messages.get(thread_id, []))

    async def delete_message(self, message_id: str) -> bool:
        thread_id = self._thread_by_message.pop(message_id, None)
        if thread_id is None:
            return False
        self.messages[thread_id] = [m for m in self.messages[thread_id] if m.id != message_id]
        return True

    async def add_thread(self, title: str = DEFAULT_THREAD_TITLE, thread_id: str | None = None) -> Thread:
        thread = Thread(id=thread_id or generate_id(), title=title)
        if thread.id in self.threads:
            raise PersistenceError(f"Thread {thread.id} already exists")
        self.threads[thread.id] = thread
        self.messages[thread.id] = []
        return thread.model_copy()

    async def get_thread(self, thread_id: str) -> Thread | None:
        thread = self.threads.get(thread_id)
        return thread.model_copy() if thread else None

    async def get_threads(self) -> list[Thread]:
        threads = sorted(self.threads.values(), key=lambda t: t.updated_at, reverse=True)
        return [thread.model_copy() for thread in threads]

    async def update_thread(self, thread_id: str, title: str) -> Thread | None:
        thread = self.threads.get(thread_id)
        if thread is None:
            return None
        thread.title = title
        thread.updated_at = utc_now()
        return thread.model_copy()

    async def delete_thread(self, thread_id: str) -> bool:
        if self.threads.pop(thread_id, None) is None:
            return False
        for message in self.messages.pop(thread_id, []):
            self._thread_by_message.pop(message.id, None)
        return True

    def _touch(self, thread_id: str) -> None:
        self.threads[thread_id].updated_at = utc_now()


SCHEMA = """
CREATE TABLE IF NOT EXISTS threads (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    thread_id TEXT NOT NULL REFERENCES threads (id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK (role IN ('user', 'model')),
    parts TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_thread_seq ON messages (thread_id, seq);
CREATE INDEX IF NOT EXISTS idx_threads_updated_at ON threads (updated_at);
"""


class SQLiteMessageStore:
    """SQLite-backed message store using aiosqlite.

    Message order comes from an autoincrement sequence column, so two messages
    written in the same instant still read back in write order.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        async with self._acquire() as conn:
            await conn.executescript(SCHEMA)
        logger.info(f"SQLite message store ready at {self.db_path}")

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection with foreign keys on; commit on success, roll back on error."""
        try:
            async with aiosqlite.connect(self.db_path) as conn:
                await conn.execute("PRAGMA foreign_keys = ON")
                conn.row_factory = aiosqlite.Row
                try:
                    yield conn
                    await conn.commit()
                except Exception:
                    await conn.rollback()
                    raise
        except aiosqlite.Error as e:
            logger.error(f"Database operation failed: {e}", exc_info=True)
            raise PersistenceError(str(e)) from e

    async def add_message(self, message: Message) -> Message:
        now = utc_now().isoformat()
        async with self._acquire() as conn:
            await conn.execute(
                "INSERT INTO messages (id, thread_id, role, parts, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    message.id,
                    message.thread_id,
                    message.role,
                    _dump_parts(message),
                    message.created_at.isoformat(),
                    now,
                ),
            )
            await conn.execute("UPDATE threads SET updated_at = ? WHERE id = ?", (now, message.thread_id))
        return message.model_copy(deep=True)

    async def get_messages(self, thread_id: str, limit: int | None = None, offset: int | None = None) -> list[Message]:
        query = "SELECT * FROM messages WHERE thread_id = ? ORDER BY seq ASC"
        params: list[Any] = [thread_id]
        if limit is not None or offset is not None:
            query += " LIMIT ? OFFSET ?"
            params += [limit if limit is not None else -1, offset or 0]

        async with self._acquire() as conn:
            async with conn.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_message(row) for row in rows]

    async def update_message(self, message_id: str, partial: dict[str, Any]) -> Message:
        _check_partial(partial)
        now = utc_now().isoformat()

        async with self._acquire() as conn:
            async with conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)) as cursor:
                row = await cursor.fetchone()
            if row is None:
                raise PersistenceError(f"Message {message_id} not found")

            updated = Message.model_validate({**_row_to_message(row).model_dump(), **partial})
            await conn.execute(
                "UPDATE messages SET parts = ?, updated_at = ? WHERE id = ?",
                (_dump_parts(updated), now, message_id),
            )
            await conn.execute("UPDATE threads SET updated_at = ? WHERE id = ?", (now, updated.thread_id))
        return updated

    async def count_messages(self, thread_id: str) -> int:
        async with self._acquire() as conn:
            async with conn.execute("SELECT COUNT(*) FROM messages WHERE thread_id = ?", (thread_id,)) as cursor:
                row = await cursor.fetchone()
        return row[0] if row else 0

    async def delete_message(self, message_id: str) -> bool:
        async with self._acquire() as conn:
            cursor = await conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
            return cursor.rowcount > 0

    async def add_thread(self, title: str = DEFAULT_THREAD_TITLE, thread_id: str | None = None) -> Thread:
        thread = Thread(id=thread_id or generate_id(), title=title)
        async with self._acquire() as conn:
            await conn.execute(
                "INSERT INTO threads (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (thread.id, thread.title, thread.created_at.isoformat(), thread.updated_at.isoformat()),
            )
        return thread

    async def get_thread(self, thread_id: str) -> Thread | None:
        async with self._acquire() as conn:
            async with conn.execute("SELECT * FROM threads WHERE id = ?", (thread_id,)) as cursor:
                row = await cursor.fetchone()
        return Thread.model_validate(dict(row)) if row else None

    async def get_threads(self) -> list[Thread]:
        async with self._acquire() as conn:
            async with conn.execute("SELECT * FROM threads ORDER BY updated_at DESC") as cursor:
                rows = await cursor.fetchall()
        return [Thread.model_validate(dict(row)) for row in rows]

    async def update_thread(self, thread_id: str, title: str) -> Thread | None:
        async with self._acquire() as conn:
            await conn.execute(
                "UPDATE threads SET title = ?, updated_at = ? WHERE id = ?",
                (title, utc_now().isoformat(), thread_id),
            )
        return await self.get_thread(thread_id)

    async def delete_thread(self, thread_id: str) -> bool:
        async with self._acquire() as conn:
            cursor = await conn.execute("DELETE FROM threads WHERE id = ?", (thread_id,))
            return cursor.rowcount > 0


def _dump_parts(message: Message) -> str:
    return json.dumps([part.model_dump(mode="json") for part in message.parts])


def _row_to_message(row: aiosqlite.Row) -> Message:
    return Message.model_validate(
        {
            "id": row["id"],
            "thread_id": row["thread_id"],
            "role": row["role"],
            "parts": json.loads(row["parts"]),
            "created_at": row["created_at"],
        }
    )
