"""
Command line tool for EntryLog.

Commands:
- add: Record a new entry
- list: Print all entries, newest first
- export: Write a JSON backup of the whole store
- import: Replace the store contents with a JSON backup

Usage:
    entrylog add 42 --note "after lunch"
    entrylog list
    entrylog export backup.json
    entrylog import backup.json

Configuration comes from ENTRYLOG_* environment variables (see config.py);
--db and --log-level override them.

Invariants:
    - Exit code 0 on success, 1 on EntryLogError or file errors, 2 on usage errors
    - A rejected import leaves the store unchanged

How to change safely:
    - Add new commands, don't change the meaning of existing ones
    - Keep list output stable for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from datetime import datetime
from typing import Sequence

import json_log_formatter

from ..backup import BackupArchiver
from ..backup.codec import format_instant
from ..config import AppConfig
from ..errors import EntryLogError
from ..repository import EntryRepository
from ..store import EntryStore

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Application configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def _parse_timestamp(text: str) -> datetime:
    value = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if value.tzinfo is None:
        raise argparse.ArgumentTypeError(f"timestamp must include an offset: {text}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="entrylog", description="EntryLog entry store tool")
    parser.add_argument("--db", help="SQLite database file (overrides ENTRYLOG_DB_PATH)")
    parser.add_argument("--log-level", help="Logging level (overrides ENTRYLOG_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    add_parser = subparsers.add_parser("add", help="Record a new entry")
    add_parser.add_argument("value", type=int, help="Positive integer value")
    add_parser.add_argument("--note", help="Optional note")
    add_parser.add_argument(
        "--timestamp", type=_parse_timestamp, help="ISO-8601 instant (default: now)"
    )

    subparsers.add_parser("list", help="List entries, newest first")

    export_parser = subparsers.add_parser("export", help="Export a JSON backup")
    export_parser.add_argument("output", help="Backup file to write")

    import_parser = subparsers.add_parser("import", help="Restore from a JSON backup")
    import_parser.add_argument("input", help="Backup file to read")

    return parser


async def run(args: argparse.Namespace, config: AppConfig) -> int:
    """Execute a parsed command against the configured store."""
    store = EntryStore(
        config.storage.db_path,
        wal_mode=config.storage.wal_mode,
        busy_timeout_ms=config.storage.busy_timeout_ms,
    )
    await store.initialize()

    if args.command == "add":
        repo = EntryRepository(store)
        entry = await repo.save_entry(value=args.value, timestamp=args.timestamp, note=args.note)
        print(f"Added entry {entry.id}")

    elif args.command == "list":
        for entry in await store.list_all():
            note = f"  {entry.note}" if entry.note is not None else ""
            print(f"{entry.id}\t{format_instant(entry.timestamp)}\t{entry.value}{note}")

    elif args.command == "export":
        archiver = BackupArchiver(
            store, app_version=config.backup.app_version, indent=config.backup.indent
        )
        result = await archiver.export_to_path(args.output)
        print(f"Exported {result.entry_count} entries to {args.output}")

    elif args.command == "import":
        archiver = BackupArchiver(store, app_version=config.backup.app_version)
        result = await archiver.import_from_path(args.input)
        print(
            f"Imported {result.entries_restored} entries "
            f"(backup version {result.backup_version})"
        )

    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = AppConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.db:
        config.storage = dataclasses.replace(config.storage, db_path=args.db)
    if args.log_level:
        config.observability = dataclasses.replace(config.observability, log_level=args.log_level)

    setup_logging(config)
    config.log_config()

    try:
        return asyncio.run(run(args, config))
    except EntryLogError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"{args.command} failed: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"{args.command} failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
