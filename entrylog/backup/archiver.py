"""
Backup archiver for EntryLog.

The BackupArchiver exports the entry store to a portable JSON document
and restores the store from one. This enables:
- Moving data between installations
- Recovering from data loss
- Keeping human-diffable copies of the dataset

Export flow:
    list_all() snapshot -> metadata {version, now} -> encode -> sink

Import flow (ImportPhase):
    READING -> DECODING -> GATING -> REPLACING -> COMMITTED | ROLLED_BACK

Invariants:
    - Export never mutates the store
    - Nothing touches the store before GATING accepts the backup
    - REPLACING is one replace_all() transaction: committed or rolled back
    - Errors propagate to the caller; there are no retries

How to change safely:
    - Keep the gate check strictly before replace_all()
    - Test restore with documents produced by every released version
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable

from ..errors import StorageError
from ..store.entry_store import EntryStore
from .codec import BackupMetadata, decode, encode
from .version_gate import SemanticVersion, verify_compatibility

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ImportPhase(Enum):
    """Import state machine phases."""

    IDLE = "idle"
    READING = "reading"
    DECODING = "decoding"
    GATING = "gating"
    REPLACING = "replacing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class ExportResult:
    """Result of an export.

    Attributes:
        entry_count: Number of entries written
        size_bytes: Size of the encoded document
        version: Application version recorded in the document
        timestamp: Export time recorded in the document (Unix ms)
        duration_ms: Total export duration
    """

    entry_count: int
    size_bytes: int
    version: str
    timestamp: int
    duration_ms: int


@dataclass
class ImportResult:
    """Result of a committed import.

    Attributes:
        entries_restored: Number of entries now in the store
        backup_version: Application version recorded in the backup
        backup_timestamp: Export time recorded in the backup (Unix ms)
        phase: Final phase (always COMMITTED for a returned result)
        duration_ms: Total import duration
    """

    entries_restored: int
    backup_version: str
    backup_timestamp: int
    phase: ImportPhase
    duration_ms: int


class BackupArchiver:
    """Exports and restores the entry store.

    Attributes:
        store: EntryStore being exported/restored
        app_version: Version of the running application
        phase: Phase of the current (or last) import

    Example:
        >>> archiver = BackupArchiver(store, app_version="1.0.0")
        >>> with open("backup.json", "wb") as sink:
        ...     await archiver.export_data(sink)
        >>> with open("backup.json", "rb") as source:
        ...     result = await archiver.import_data(source)
    """

    def __init__(
        self,
        store: EntryStore,
        app_version: str,
        clock: Callable[[], int] | None = None,
        indent: int | None = 2,
    ) -> None:
        """Initialize the archiver.

        Args:
            store: Initialized EntryStore
            app_version: major.minor.patch of the running application
            clock: Returns the current time in Unix ms (defaults to wall clock)
            indent: JSON indentation for exported documents

        Raises:
            MalformedVersionError: If app_version does not parse
        """
        SemanticVersion.parse(app_version)
        self.store = store
        self.app_version = app_version
        self.indent = indent
        self._clock = clock or _now_ms
        self.phase = ImportPhase.IDLE

    async def export_data(self, sink: BinaryIO) -> ExportResult:
        """Write a backup of the whole store to sink.

        Args:
            sink: Binary writable stream; not closed by this method

        Returns:
            ExportResult describing the document
        """
        start_time = time.time()

        entries = await self.store.list_all()
        metadata = BackupMetadata(version=self.app_version, timestamp=self._clock())
        data = encode(metadata, entries, indent=self.indent)

        sink.write(data)
        sink.flush()

        result = ExportResult(
            entry_count=len(entries),
            size_bytes=len(data),
            version=metadata.version,
            timestamp=metadata.timestamp,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        logger.info(
            f"Exported {result.entry_count} entries",
            extra={"size_bytes": result.size_bytes, "version": result.version},
        )
        return result

    async def import_data(self, source: BinaryIO) -> ImportResult:
        """Replace the store contents with a backup read from source.

        Args:
            source: Binary readable stream; read to the end, not closed

        Returns:
            ImportResult for the committed restore

        Raises:
            DecodeError: If the document is malformed (store untouched)
            MalformedVersionError: If the embedded version does not parse
                (store untouched)
            VersionError: If the backup major version differs (store untouched)
            StorageError: If replace_all() failed (store rolled back)
        """
        start_time = time.time()

        self._enter(ImportPhase.READING)
        data = source.read()

        self._enter(ImportPhase.DECODING)
        metadata, entries = decode(data)

        self._enter(ImportPhase.GATING)
        try:
            verify_compatibility(metadata.version, self.app_version)
        except Exception:
            logger.warning(
                "Backup rejected",
                extra={"backup_version": metadata.version, "current_version": self.app_version},
            )
            raise

        self._enter(ImportPhase.REPLACING)
        try:
            restored = await self.store.replace_all(entries)
        except StorageError:
            self._enter(ImportPhase.ROLLED_BACK)
            raise

        self._enter(ImportPhase.COMMITTED)
        result = ImportResult(
            entries_restored=restored,
            backup_version=metadata.version,
            backup_timestamp=metadata.timestamp,
            phase=self.phase,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        logger.info(
            f"Imported {restored} entries",
            extra={"backup_version": metadata.version, "duration_ms": result.duration_ms},
        )
        return result

    async def export_to_path(self, path: str | Path) -> ExportResult:
        """Export to a file, replacing it atomically.

        The document is written to a temporary file in the same directory
        and renamed over path only once complete, so path never holds a
        truncated backup.

        Args:
            path: Destination file

        Returns:
            ExportResult describing the document
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as sink:
                result = await self.export_data(sink)
                os.fsync(sink.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(f"Backup written to {path}")
        return result

    async def import_from_path(self, path: str | Path) -> ImportResult:
        """Import a backup file.

        Args:
            path: Backup file to read

        Returns:
            ImportResult for the committed restore
        """
        with open(path, "rb") as source:
            return await self.import_data(source)

    def _enter(self, phase: ImportPhase) -> None:
        logger.debug(f"Import phase: {self.phase.value} -> {phase.value}")
        self.phase = phase
