"""
Backup document codec for EntryLog.

A backup is a UTF-8 JSON document holding the producing application's
version, the export time and every entry:

    {
      "metadata": {"version": "1.0.0", "timestamp": 1700000000000},
      "entries": [
        {"id": 1, "timestamp": "2023-01-01T10:00:00Z", "entryValue": 123, "note": null}
      ]
    }

Invariants:
    - A document decodes completely or raises DecodeError; nothing partial
    - Unknown fields at any level are ignored on read
    - Integers are strict: strings, floats and booleans are rejected
    - Entry timestamps are ISO-8601 strings with an offset, normalized to
      UTC at millisecond precision

How to change safely:
    - New fields must be optional with a default so older readers ignore them
    - Never rename wire fields (entryValue keeps its camelCase name)
    - Incompatible layout changes require a new major application version
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationError,
    field_serializer,
    field_validator,
)

from ..errors import DecodeError, EncodeError
from ..store.entry_store import Entry, normalize_timestamp

logger = logging.getLogger(__name__)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

_ISO_DATE_PREFIX = re.compile(r"\d{4}-\d{2}-\d{2}[Tt ]", re.ASCII)


def format_instant(value: datetime) -> str:
    """Format an aware datetime as an ISO-8601 UTC instant.

    Milliseconds are included only when non-zero:
    ``2023-01-01T10:00:00Z`` or ``2023-01-01T10:00:00.250Z``.
    """
    value = normalize_timestamp(value).astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    millis = value.microsecond // 1000
    if millis:
        text += f".{millis:03d}"
    return text + "Z"


class BackupMetadata(BaseModel):
    """Backup header.

    Attributes:
        version: major.minor.patch of the producing application
        timestamp: Export time in Unix milliseconds
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    version: StrictStr
    timestamp: StrictInt = Field(..., ge=INT64_MIN, le=INT64_MAX)


class EntryRecord(BaseModel):
    """Wire form of one entry."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: StrictInt = Field(..., ge=INT64_MIN, le=INT64_MAX)
    timestamp: AwareDatetime
    entry_value: StrictInt = Field(..., alias="entryValue", ge=INT32_MIN, le=INT32_MAX)
    note: StrictStr | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _require_iso_string(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str) or not _ISO_DATE_PREFIX.match(value):
            raise ValueError("timestamp must be an ISO-8601 string")
        return value

    @field_validator("timestamp")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        try:
            return normalize_timestamp(value)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp out of range: {e}") from e

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_instant(value)

    @classmethod
    def from_entry(cls, entry: Entry) -> EntryRecord:
        if entry.id is None:
            raise ValueError("Cannot encode an entry without an id")
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            entry_value=entry.value,
            note=entry.note,
        )

    def to_entry(self) -> Entry:
        return Entry(
            id=self.id,
            timestamp=self.timestamp,
            value=self.entry_value,
            note=self.note,
        )


class BackupDocument(BaseModel):
    """Complete backup document."""

    model_config = ConfigDict(extra="ignore")

    metadata: BackupMetadata
    entries: list[EntryRecord]


def encode(
    metadata: BackupMetadata,
    entries: Sequence[Entry],
    indent: int | None = 2,
) -> bytes:
    """Encode metadata and entries as a UTF-8 JSON document.

    Args:
        metadata: Backup header
        entries: Entries to include; each must have an id
        indent: JSON indentation (None for compact output)

    Returns:
        Encoded document

    Raises:
        EncodeError: If an entry has no id or a field is out of range
    """
    records: list[EntryRecord] = []
    errors: list[str] = []
    for index, entry in enumerate(entries):
        try:
            records.append(EntryRecord.from_entry(entry))
        except ValidationError as e:
            errors.extend(_format_error(err, prefix=("entries", index)) for err in e.errors())
        except ValueError as e:
            errors.append(f"entries.{index}: {e}")
    if errors:
        raise EncodeError(
            f"Cannot encode backup document ({len(errors)} error(s)): " + "; ".join(errors[:5]),
            errors=errors,
        )

    document = BackupDocument(metadata=metadata, entries=records)
    data = document.model_dump_json(by_alias=True, indent=indent).encode("utf-8")
    logger.debug(
        "Encoded backup document",
        extra={"entry_count": len(document.entries), "size_bytes": len(data)},
    )
    return data


def decode(data: bytes | bytearray | str) -> tuple[BackupMetadata, list[Entry]]:
    """Decode a backup document.

    Args:
        data: Raw document (bytes are decoded as UTF-8)

    Returns:
        Tuple of (metadata, entries)

    Raises:
        DecodeError: If the document is not valid JSON, a required field is
            missing, or a field has the wrong type
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            text = bytes(data).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Backup is not valid UTF-8: {e}") from e
    else:
        text = data

    try:
        document = BackupDocument.model_validate_json(text)
    except ValidationError as e:
        errors = [_format_error(err) for err in e.errors()]
        raise DecodeError(
            f"Invalid backup document ({len(errors)} error(s)): " + "; ".join(errors[:5]),
            errors=errors,
        ) from e

    return document.metadata, [record.to_entry() for record in document.entries]


def _format_error(err: Any, prefix: tuple = ()) -> str:
    loc = ".".join(str(part) for part in (*prefix, *err.get("loc", ())))
    return f"{loc or '<document>'}: {err.get('msg', 'invalid')}"
