"""
Backup module for EntryLog.

This module handles exporting the entry store to a JSON document and
restoring it:
- Codec: document encode/decode with strict, forward-compatible reads
- Version gate: major-version compatibility between backup and application
- Archiver: export and atomic import flows

Invariants:
    - Backup documents are self-describing (version + export time)
    - A backup is restored completely or not at all
    - Incompatible or malformed backups never reach the store
"""

from .archiver import BackupArchiver, ExportResult, ImportPhase, ImportResult
from .codec import BackupDocument, BackupMetadata, EntryRecord, decode, encode, format_instant
from .version_gate import (
    GateDecision,
    SemanticVersion,
    VersionDirection,
    check_compatibility,
    verify_compatibility,
)

__all__ = [
    # Codec
    "BackupDocument",
    "BackupMetadata",
    "EntryRecord",
    "encode",
    "decode",
    "format_instant",
    # Version gate
    "SemanticVersion",
    "GateDecision",
    "VersionDirection",
    "check_compatibility",
    "verify_compatibility",
    # Archiver
    "BackupArchiver",
    "ExportResult",
    "ImportResult",
    "ImportPhase",
]
