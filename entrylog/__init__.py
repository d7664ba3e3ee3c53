"""
EntryLog - local numeric entry log with portable JSON backups.

This package implements:
- A SQLite entry store with ordered, forward-only schema migrations
- A JSON backup codec (metadata + full entry set)
- A major-version compatibility gate for restores
- An archiver that exports the store and restores it atomically

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌──────────────┐
    │   CLI /     │────▶│   Entry      │────▶│  EntryStore  │
    │   caller    │     │  Repository  │     │   (SQLite)   │
    └──────┬──────┘     └──────────────┘     └──────▲───────┘
           │                                        │ list_all / replace_all
           ▼                                        │
    ┌──────────────┐    ┌──────────────┐    ┌───────┴──────┐
    │ sink/source  │◀──▶│ BackupCodec  │◀──▶│BackupArchiver│
    │  (bytes)     │    │ VersionGate  │    │              │
    └──────────────┘    └──────────────┘    └──────────────┘

Invariants:
    - Entry ids are assigned by the store and never reused
    - list_all() is ordered by timestamp, newest first
    - A restore either replaces the whole store or changes nothing
    - Only backups sharing the running major version are restored

How to change safely:
    - Schema changes are new Migration steps, never edits to old ones
    - New backup fields must be optional so older readers ignore them
    - Bump the major version only when old backups can no longer be read
"""

from ._version import __version__

__all__ = ["__version__"]
