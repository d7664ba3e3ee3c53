"""
Entry SQLite store for EntryLog.

This module manages the single SQLite database that stores user entries.
It is the only writer of the id-to-row mapping: callers never choose the
id of a new entry.

Invariants:
    - Every mutation runs in one explicit transaction (BEGIN IMMEDIATE)
    - Mutations are serialized per store by an asyncio.Lock
    - Listeners are notified after commit, outside the lock
    - list_all() returns entries newest first (timestamp DESC, id DESC)
    - replace_all() commits the complete new contents or nothing
    - Ids come from AUTOINCREMENT and are never reused

How to change safely:
    - Schema changes go through store/migrations.py, never ad hoc ALTERs
    - Keep row <-> Entry mapping in _row_to_entry() and _entry_params()
    - Use transactions for all write operations

Table schema (version 2):
    entries:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - timestamp INTEGER (Unix ms, UTC)
        - value INTEGER
        - note TEXT (nullable)

    schema_version:
        - version INTEGER PRIMARY KEY
        - applied_at INTEGER (Unix ms)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

from ..errors import EntryNotFoundError, StorageError
from .migrations import CURRENT_SCHEMA_VERSION, migrate, read_schema_version

logger = logging.getLogger(__name__)

EntryListener = Callable[[list["Entry"]], Awaitable[None] | None]


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to Unix milliseconds.

    Raises:
        ValueError: If value is naive
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"timestamp must be timezone-aware: {value!r}")
    delta = value - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(ms: int) -> datetime:
    """Convert Unix milliseconds to a UTC datetime."""
    seconds, millis = divmod(ms, 1000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=millis * 1000)


def normalize_timestamp(value: datetime) -> datetime:
    """Normalize an aware datetime to UTC at millisecond precision."""
    return from_epoch_ms(to_epoch_ms(value))


@dataclass
class Entry:
    """A single recorded value.

    Attributes:
        id: Store-assigned identifier (None before creation)
        timestamp: When the value was recorded (UTC)
        value: Recorded value; positivity is enforced by EntryRepository
        note: Optional free text
    """

    timestamp: datetime
    value: int
    note: str | None = None
    id: int | None = None


class EntryStore:
    """SQLite store for entries.

    This class manages the entries database, providing:
    - Entry CRUD operations
    - Ordered snapshot reads
    - Atomic full replacement for restores
    - Forward schema migration on initialize()
    - Change notification for subscribers

    Thread safety:
        Each operation opens its own connection. Writers are serialized by
        an asyncio.Lock within a process and by SQLite locking across
        processes.

    Example:
        >>> store = EntryStore("/var/lib/entrylog/entries.db")
        >>> await store.initialize()
        >>> entry = await store.create_entry(
        ...     timestamp=datetime.now(timezone.utc),
        ...     value=42,
        ...     note="after lunch",
        ... )
    """

    SCHEMA_VERSION = CURRENT_SCHEMA_VERSION

    def __init__(
        self,
        db_path: str | Path,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the entry store.

        Args:
            db_path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = asyncio.Lock()
        self._initialized = False
        self._listeners: list[EntryListener] = []

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the database.

        Yields:
            SQLite connection in autocommit mode

        Raises:
            StorageError: If the database cannot be opened
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}", operation="open") from e

        conn.row_factory = sqlite3.Row
        try:
            try:
                conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
                if self.wal_mode:
                    conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = NORMAL")
            except sqlite3.Error as e:
                raise StorageError(
                    f"Cannot configure database {self.db_path}: {e}", operation="open"
                ) from e

            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run the body in one write transaction.

        Commits on success. On any exception rolls back and re-raises,
        wrapping sqlite3 errors and integer overflow in StorageError.
        """
        self._ensure_initialized()
        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"{operation} failed: {e}", operation=operation) from e
            try:
                yield conn
                conn.execute("COMMIT")
            except (sqlite3.Error, OverflowError) as e:
                conn.execute("ROLLBACK")
                raise StorageError(f"{operation} failed: {e}", operation=operation) from e
            except BaseException:
                conn.execute("ROLLBACK")
                raise

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise StorageError(
                "Entry store used before initialize()",
                operation="open",
            )

    async def initialize(self) -> int:
        """Open the database, creating or migrating the schema.

        Must be awaited before any other operation. Pending migrations are
        applied in one transaction; on failure the file keeps its previous
        version and the store stays unusable.

        Returns:
            Schema version now on disk

        Raises:
            MigrationError: If a migration step fails or the file is newer
            StorageError: If the database cannot be opened
        """
        async with self._lock:
            with self._get_connection() as conn:
                previous = migrate(conn, target=self.SCHEMA_VERSION)
            self._initialized = True
            logger.info(
                f"Initialized entry store: {self.db_path}",
                extra={"previous_version": previous, "schema_version": self.SCHEMA_VERSION},
            )
            return self.SCHEMA_VERSION

    async def schema_version(self) -> int:
        """Return the schema version recorded on disk."""
        with self._get_connection() as conn:
            try:
                return read_schema_version(conn)
            except sqlite3.Error as e:
                raise StorageError(f"schema_version failed: {e}", operation="schema_version") from e

    async def create_entry(
        self,
        timestamp: datetime,
        value: int,
        note: str | None = None,
    ) -> Entry:
        """Create a new entry.

        Args:
            timestamp: When the value was recorded (timezone-aware)
            value: Recorded value
            note: Optional note

        Returns:
            Created Entry including its assigned id

        Raises:
            StorageError: On database failure
        """
        ts_ms = to_epoch_ms(timestamp)

        async with self._lock:
            with self._transaction("create_entry") as conn:
                cursor = conn.execute(
                    "INSERT INTO entries (timestamp, value, note) VALUES (?, ?, ?)",
                    (ts_ms, value, note),
                )
                entry_id = cursor.lastrowid

        logger.debug("Created entry", extra={"entry_id": entry_id, "value": value})
        await self._notify()

        return Entry(id=entry_id, timestamp=from_epoch_ms(ts_ms), value=value, note=note)

    async def update_entry(self, entry: Entry) -> Entry:
        """Replace the stored fields of an existing entry.

        Args:
            entry: Entry carrying the id to update and the new fields

        Returns:
            The entry as stored

        Raises:
            EntryNotFoundError: If no entry has entry.id
            StorageError: If entry.id is None or on database failure
        """
        if entry.id is None:
            raise StorageError("Cannot update an entry without an id", operation="update_entry")

        ts_ms = to_epoch_ms(entry.timestamp)

        async with self._lock:
            with self._transaction("update_entry") as conn:
                cursor = conn.execute(
                    "UPDATE entries SET timestamp = ?, value = ?, note = ? WHERE id = ?",
                    (ts_ms, entry.value, entry.note, entry.id),
                )
                if cursor.rowcount == 0:
                    raise EntryNotFoundError(entry.id)

        logger.debug("Updated entry", extra={"entry_id": entry.id})
        await self._notify()

        return Entry(id=entry.id, timestamp=from_epoch_ms(ts_ms), value=entry.value, note=entry.note)

    async def delete_entry(self, entry_id: int) -> None:
        """Delete an entry.

        Args:
            entry_id: Entry identifier

        Raises:
            EntryNotFoundError: If no entry has entry_id
            StorageError: On database failure
        """
        async with self._lock:
            with self._transaction("delete_entry") as conn:
                cursor = conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
                if cursor.rowcount == 0:
                    raise EntryNotFoundError(entry_id)

        logger.debug("Deleted entry", extra={"entry_id": entry_id})
        await self._notify()

    async def get_entry(self, entry_id: int) -> Entry | None:
        """Get an entry by id.

        Returns:
            Entry or None if not found
        """
        self._ensure_initialized()
        with self._get_connection() as conn:
            try:
                row = conn.execute(
                    "SELECT id, timestamp, value, note FROM entries WHERE id = ?",
                    (entry_id,),
                ).fetchone()
            except (sqlite3.Error, OverflowError) as e:
                raise StorageError(f"get_entry failed: {e}", operation="get_entry") from e
            return self._row_to_entry(row) if row else None

    async def list_all(self) -> list[Entry]:
        """Return every entry, newest first.

        The result comes from a single SELECT, so it reflects the store
        either before or after any concurrent mutation.

        Returns:
            Entries ordered by timestamp DESC, then id DESC
        """
        self._ensure_initialized()
        with self._get_connection() as conn:
            try:
                rows = conn.execute(
                    "SELECT id, timestamp, value, note FROM entries ORDER BY timestamp DESC, id DESC"
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"list_all failed: {e}", operation="list_all") from e
            return [self._row_to_entry(row) for row in rows]

    async def count(self) -> int:
        """Return the number of stored entries."""
        self._ensure_initialized()
        with self._get_connection() as conn:
            try:
                return conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]
            except sqlite3.Error as e:
                raise StorageError(f"count failed: {e}", operation="count") from e

    async def replace_all(self, entries: Sequence[Entry]) -> int:
        """Atomically replace the whole contents of the store.

        Deletes every row and inserts the given entries in one transaction.
        Entries keep their ids; entries without an id receive fresh ones.
        If anything fails the transaction is rolled back and the previous
        contents remain. Duplicate ids are such a failure: rows are inserted
        with a plain INSERT, not INSERT OR REPLACE, so a backup repeating an
        id is rejected as a whole instead of keeping the last occurrence.

        Args:
            entries: New complete contents

        Returns:
            Number of entries written

        Raises:
            StorageError: If the replacement failed and was rolled back
        """
        params = [self._entry_params(e) for e in entries]

        async with self._lock:
            try:
                with self._transaction("replace_all") as conn:
                    conn.execute("DELETE FROM entries")
                    self._insert_rows(conn, params)
            except StorageError:
                logger.warning(
                    "replace_all rolled back",
                    extra={"entry_count": len(params)},
                )
                raise

        logger.info("Replaced all entries", extra={"entry_count": len(params)})
        await self._notify()

        return len(params)

    def _insert_rows(
        self,
        conn: sqlite3.Connection,
        params: Sequence[tuple[int | None, int, int, str | None]],
    ) -> None:
        conn.executemany(
            "INSERT INTO entries (id, timestamp, value, note) VALUES (?, ?, ?, ?)",
            params,
        )

    def subscribe(self, listener: EntryListener) -> Callable[[], None]:
        """Receive a fresh list_all() snapshot after every committed mutation.

        Listeners may be plain callables or coroutine functions. They run
        after the commit, so an exception raised by a listener reaches the
        mutating caller but does not undo the mutation. The write lock is
        released before listeners run, so a listener may itself mutate the
        store; a listener that mutates on every snapshot recurses forever.

        Args:
            listener: Called with the current entries

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = await self.list_all()
        for listener in list(self._listeners):
            result = listener(list(snapshot))
            if inspect.isawaitable(result):
                await result

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> Entry:
        return Entry(
            id=row["id"],
            timestamp=from_epoch_ms(row["timestamp"]),
            value=row["value"],
            note=row["note"],
        )

    @staticmethod
    def _entry_params(entry: Entry) -> tuple[int | None, int, int, str | None]:
        return (entry.id, to_epoch_ms(entry.timestamp), entry.value, entry.note)

    def __repr__(self) -> str:
        return f"EntryStore(db_path={str(self.db_path)!r})"
