"""
Schema migrations for the EntryLog SQLite store.

The on-disk layout of the entries table is versioned. Each Migration
moves the schema from exactly one version to the next:

    v1: entries(id, timestamp, value)
    v2: + note TEXT DEFAULT NULL

Version history is kept in the schema_version table, one row per version
reached. A file that has an entries table but no schema_version table
predates version tracking and is treated as v1.

Invariants:
    - Steps are applied in order, only forward, one version at a time
    - All pending steps run inside the caller's transaction
    - Each step is a no-op when replayed against an already-changed table
    - Adding a column never rewrites existing values in other columns

How to change safely:
    - Append a new Migration and bump CURRENT_SCHEMA_VERSION
    - Never edit or reorder a released step
    - New columns must be nullable or carry a DEFAULT
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Protocol, Sequence

from ..errors import MigrationError

logger = logging.getLogger(__name__)

ENTRIES_TABLE = "entries"

# Schema version 1. New files start here and are migrated forward.
BASE_SCHEMA = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL,
        timestamp INTEGER NOT NULL,
        value INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_entries_timestamp ON entries(timestamp DESC);
"""

BASE_SCHEMA_VERSION = 1


class SchemaChange(Protocol):
    """A structural change applied by one migration step."""

    def apply(self, conn: sqlite3.Connection) -> None: ...

    def describe(self) -> str: ...


def table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    """Return the column names of a table, in declaration order."""
    return [row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]


@dataclass(frozen=True)
class AddColumn:
    """Add a column; existing rows receive the column default.

    Attributes:
        table: Table to alter
        column: New column name
        sql_type: SQLite type affinity
        default: SQL literal used for existing and future rows (None = NULL)
    """

    table: str
    column: str
    sql_type: str
    default: str | None = None

    def apply(self, conn: sqlite3.Connection) -> None:
        if self.column in table_columns(conn, self.table):
            logger.info(f"Column {self.table}.{self.column} already present, skipping")
            return
        default = self.default if self.default is not None else "NULL"
        conn.execute(
            f"ALTER TABLE {self.table} ADD COLUMN {self.column} {self.sql_type} DEFAULT {default}"
        )

    def describe(self) -> str:
        return f"add column {self.table}.{self.column} {self.sql_type}"


@dataclass(frozen=True)
class Migration:
    """One forward schema step.

    Attributes:
        from_version: Version the step starts from
        to_version: Version reached after the step
        change: Structural change to apply
    """

    from_version: int
    to_version: int
    change: SchemaChange

    def apply(self, conn: sqlite3.Connection) -> None:
        logger.info(
            f"Applying schema migration {self.from_version} -> {self.to_version}: "
            f"{self.change.describe()}"
        )
        self.change.apply(conn)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (self.to_version, int(time.time() * 1000)),
        )


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        from_version=1,
        to_version=2,
        change=AddColumn(table=ENTRIES_TABLE, column="note", sql_type="TEXT"),
    ),
)

CURRENT_SCHEMA_VERSION = MIGRATIONS[-1].to_version if MIGRATIONS else BASE_SCHEMA_VERSION


def read_schema_version(conn: sqlite3.Connection) -> int:
    """Return the schema version recorded in the database.

    Returns:
        0 for an empty database, the recorded version otherwise.
    """
    tables = {
        row[0]
        for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    }
    if "schema_version" not in tables:
        # Entries written before version tracking existed
        return BASE_SCHEMA_VERSION if ENTRIES_TABLE in tables else 0

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    if row[0] is None:
        return BASE_SCHEMA_VERSION if ENTRIES_TABLE in tables else 0
    return int(row[0])


def pending_migrations(
    on_disk: int,
    target: int = CURRENT_SCHEMA_VERSION,
    migrations: Sequence[Migration] = MIGRATIONS,
) -> list[Migration]:
    """Select the steps that take on_disk to target, in order.

    Raises:
        MigrationError: If on_disk is newer than target or the chain has a gap
    """
    if on_disk > target:
        raise MigrationError(
            f"Database schema version {on_disk} is newer than supported version {target}",
            from_version=on_disk,
            to_version=target,
        )

    by_source = {m.from_version: m for m in migrations}
    steps: list[Migration] = []
    version = on_disk
    while version < target:
        step = by_source.get(version)
        if step is None or step.to_version != version + 1:
            raise MigrationError(
                f"No migration path from schema version {version} to {target}",
                from_version=on_disk,
                to_version=target,
            )
        steps.append(step)
        version = step.to_version
    return steps


def migrate(
    conn: sqlite3.Connection,
    target: int = CURRENT_SCHEMA_VERSION,
    migrations: Sequence[Migration] = MIGRATIONS,
) -> int:
    """Bring the database schema up to target inside one transaction.

    Creates the base schema for an empty database, then applies each
    pending step. On any failure the transaction is rolled back and the
    file stays at its previous version.

    Args:
        conn: Connection in autocommit mode (isolation_level=None)
        target: Schema version to reach
        migrations: Ordered migration steps

    Returns:
        The schema version before migrating (0 for a new database)

    Raises:
        MigrationError: If any step fails or no path exists
    """
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        raise MigrationError(f"Cannot lock database for migration: {e}", to_version=target) from e

    try:
        on_disk = read_schema_version(conn)
        start = on_disk or BASE_SCHEMA_VERSION
        steps = pending_migrations(start, target, migrations)

        if on_disk == 0:
            for statement in _split_statements(BASE_SCHEMA):
                conn.execute(statement)
        else:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS schema_version ("
                "version INTEGER PRIMARY KEY, applied_at INTEGER NOT NULL)"
            )
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (start, int(time.time() * 1000)),
        )

        for step in steps:
            step.apply(conn)

        conn.execute("COMMIT")
    except MigrationError:
        conn.execute("ROLLBACK")
        raise
    except sqlite3.Error as e:
        conn.execute("ROLLBACK")
        raise MigrationError(
            f"Schema migration failed: {e}",
            to_version=target,
        ) from e

    if steps:
        logger.info(
            "Schema migrated",
            extra={"from_version": on_disk, "to_version": target, "steps": len(steps)},
        )
    return on_disk


def _split_statements(script: str) -> list[str]:
    """Split a DDL script into single statements.

    executescript() would commit the open transaction, so statements are
    run one by one instead.
    """
    return [s.strip() for s in script.split(";") if s.strip()]
