"""
Store module for EntryLog - SQLite persistence and schema evolution.

This module handles:
- The entries table (create, update, delete, ordered listing)
- Atomic full replacement used by restores
- Ordered, forward-only schema migrations

Invariants:
    - The store assigns entry ids; callers never pick one for a new entry
    - Every write is a single SQLite transaction
    - A failed migration leaves the file at its previous version

How to change safely:
    - Add schema changes as new Migration steps in migrations.py
    - Test migrations against a file created at every older version
"""

from .entry_store import Entry, EntryStore, from_epoch_ms, normalize_timestamp, to_epoch_ms
from .migrations import CURRENT_SCHEMA_VERSION, MIGRATIONS, AddColumn, Migration

__all__ = [
    "Entry",
    "EntryStore",
    "from_epoch_ms",
    "to_epoch_ms",
    "normalize_timestamp",
    "CURRENT_SCHEMA_VERSION",
    "MIGRATIONS",
    "Migration",
    "AddColumn",
]
