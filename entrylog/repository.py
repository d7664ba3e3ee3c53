"""
Validating entry repository for EntryLog.

Callers that record or edit entries go through EntryRepository, which
enforces the value invariant before anything reaches the store.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Callable

from .backup.codec import INT32_MAX
from .errors import InvalidEntryError
from .store.entry_store import Entry, EntryListener, EntryStore

logger = logging.getLogger(__name__)


def validate_entry(value: int, timestamp: datetime | None = None) -> None:
    """Check an entry's fields.

    Raises:
        InvalidEntryError: If value is not a positive 32-bit integer or
            the timestamp is naive
    """
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidEntryError("entryValue must be a positive integer", field_name="value")
    if value > INT32_MAX:
        raise InvalidEntryError(
            f"entryValue must not exceed {INT32_MAX}", field_name="value"
        )
    if timestamp is not None and timestamp.tzinfo is None:
        raise InvalidEntryError("timestamp must be timezone-aware", field_name="timestamp")


class EntryRepository:
    """Storage-facing facade over EntryStore.

    Example:
        >>> repo = EntryRepository(store)
        >>> await repo.save_entry(value=12, note="morning")
    """

    def __init__(self, store: EntryStore) -> None:
        self.store = store

    async def save_entry(
        self,
        value: int,
        timestamp: datetime | None = None,
        note: str | None = None,
    ) -> Entry:
        """Validate and create an entry (timestamp defaults to now)."""
        validate_entry(value, timestamp)
        return await self.store.create_entry(
            timestamp=timestamp or datetime.now(timezone.utc),
            value=value,
            note=note,
        )

    async def update_entry(self, entry: Entry) -> Entry:
        validate_entry(entry.value, entry.timestamp)
        return await self.store.update_entry(entry)

    async def delete_entry(self, entry_id: int) -> None:
        await self.store.delete_entry(entry_id)

    async def get_entry(self, entry_id: int) -> Entry | None:
        return await self.store.get_entry(entry_id)

    async def list_entries(self) -> list[Entry]:
        return await self.store.list_all()

    async def replace_all_entries(self, entries: Sequence[Entry]) -> int:
        """Validate every entry, then replace the store contents atomically."""
        for entry in entries:
            validate_entry(entry.value, entry.timestamp)
        return await self.store.replace_all(entries)

    def watch(self, listener: EntryListener) -> Callable[[], None]:
        """Subscribe to entry list changes. Returns an unsubscribe function."""
        return self.store.subscribe(listener)
