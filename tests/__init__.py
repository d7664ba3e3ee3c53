"""
EntryLog Test Suite.

This package contains:
- unit/: Unit tests (codec, version gate, store, migrations, config)
- integration/: Integration tests (backup archiver and CLI against real SQLite files)
"""
