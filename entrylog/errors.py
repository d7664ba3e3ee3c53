"""
Error types for EntryLog.

This module defines all exception types raised by the store, the backup
codec, the version gate and the archiver:
- EntryLogError: Base exception
- StorageError: SQLite I/O or transaction failure
- MigrationError: A schema migration step failed to apply
- EntryNotFoundError: Update/delete addressed a missing entry
- InvalidEntryError: Entry failed repository validation
- EncodeError: Store contents cannot be written as a backup document
- DecodeError: Backup document is malformed
- MalformedVersionError: Version string is not major.minor.patch
- VersionError: Backup major version differs from the running application

Invariants:
    - All errors inherit from EntryLogError
    - Every error kind carries a distinct code
    - Underlying sqlite3/pydantic errors are chained, never discarded
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class EntryLogError(Exception):
    """Base exception for all EntryLog errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ENTRYLOG_ERROR"
        self.details = details or {}


class StorageError(EntryLogError):
    """Persistent store operation failed.

    Raised when:
    - The database file cannot be opened
    - A statement or transaction fails
    - The store is used before initialize()
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: str = "STORAGE_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"operation": operation},
        )
        self.operation = operation


class MigrationError(StorageError):
    """Schema migration failed.

    The store is unusable until the underlying problem is fixed. The
    database file is left at the version it had before opening.

    Attributes:
        from_version: Version found on disk
        to_version: Version the code expected to reach
    """

    def __init__(
        self,
        message: str,
        from_version: Optional[int] = None,
        to_version: Optional[int] = None,
    ) -> None:
        super().__init__(message, operation="migrate", code="MIGRATION_ERROR")
        self.details.update({"from_version": from_version, "to_version": to_version})
        self.from_version = from_version
        self.to_version = to_version


class EntryNotFoundError(EntryLogError):
    """Entry does not exist.

    Raised when:
    - update_entry() targets an unknown id
    - delete_entry() targets an unknown id
    """

    def __init__(self, entry_id: int) -> None:
        super().__init__(
            f"Entry not found: {entry_id}",
            code="NOT_FOUND",
            details={"entry_id": entry_id},
        )
        self.entry_id = entry_id


class InvalidEntryError(EntryLogError):
    """Entry failed validation before reaching the store."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_ENTRY",
            details={"field": field_name},
        )
        self.field_name = field_name


class EncodeError(EntryLogError):
    """Entries could not be encoded into a backup document.

    Raised when:
    - An entry has no id
    - A field is outside the range the document format allows

    Attributes:
        errors: One message per offending location
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(
            message,
            code="ENCODE_ERROR",
            details={"errors": errors or []},
        )
        self.errors = errors or []


class DecodeError(EntryLogError):
    """Backup document could not be decoded.

    Raised when:
    - Input is not UTF-8 JSON
    - A required field is missing
    - A field has the wrong type

    Attributes:
        errors: One message per offending location
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(
            message,
            code="DECODE_ERROR",
            details={"errors": errors or []},
        )
        self.errors = errors or []


class MalformedVersionError(EntryLogError):
    """Version string is not three dot-separated integers."""

    def __init__(self, version: str) -> None:
        super().__init__(
            f"Invalid version format. Expected major.minor.patch, got: {version!r}",
            code="MALFORMED_VERSION",
            details={"version": version},
        )
        self.version = version


class VersionError(EntryLogError):
    """Backup was produced by an incompatible major version.

    Attributes:
        backup_version: Version embedded in the backup
        current_version: Version of the running application
        direction: "older" or "newer", relative to the running application
    """

    def __init__(
        self,
        message: str,
        backup_version: str,
        current_version: str,
        direction: str,
    ) -> None:
        super().__init__(
            message,
            code="VERSION_MISMATCH",
            details={
                "backup_version": backup_version,
                "current_version": current_version,
                "direction": direction,
            },
        )
        self.backup_version = backup_version
        self.current_version = current_version
        self.direction = direction
