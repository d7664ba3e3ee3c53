"""
Unit tests for the backup document codec.

Tests cover:
- Round-trip of metadata and entries
- Wire format (field names, timestamp formatting)
- Rejection of malformed documents
- Ignoring unknown fields
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from entrylog.backup.codec import BackupMetadata, decode, encode, format_instant
from entrylog.errors import DecodeError, EncodeError, EntryLogError
from entrylog.store import Entry


def make_document(**overrides):
    """Helper to build a valid raw document dict."""
    doc = {
        "metadata": {"version": "1.0.0", "timestamp": 123456789},
        "entries": [
            {
                "id": 1,
                "timestamp": "2023-01-01T10:00:00Z",
                "entryValue": 456,
                "note": None,
            }
        ],
    }
    doc.update(overrides)
    return doc


def dumps(doc) -> bytes:
    return json.dumps(doc).encode("utf-8")


class TestRoundTrip:
    """Tests for decode(encode(...))."""

    def test_round_trip_preserves_everything(self):
        """Ids, timestamps, values and notes survive, including null notes."""
        metadata = BackupMetadata(version="1.2.3", timestamp=1_700_000_000_123)
        entries = [
            Entry(
                id=7,
                timestamp=datetime(2023, 1, 1, 10, 0, tzinfo=timezone.utc),
                value=101,
            ),
            Entry(
                id=9,
                timestamp=datetime(2024, 2, 29, 23, 59, 59, 250_000, tzinfo=timezone.utc),
                value=202,
                note="leap day, ünïcode ✓",
            ),
        ]

        decoded_metadata, decoded_entries = decode(encode(metadata, entries))

        assert decoded_metadata == metadata
        assert decoded_entries == entries

    def test_round_trip_empty(self):
        """An empty entry list is valid."""
        metadata = BackupMetadata(version="1.0.0", timestamp=0)
        assert decode(encode(metadata, [])) == (metadata, [])

    def test_offset_timestamps_normalized_to_utc(self):
        """Non-UTC input instants come back as the same instant in UTC."""
        local = datetime(2023, 6, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        metadata = BackupMetadata(version="1.0.0", timestamp=1)

        _, entries = decode(encode(metadata, [Entry(id=1, timestamp=local, value=5)]))

        assert entries[0].timestamp == local
        assert entries[0].timestamp.utcoffset() == timedelta(0)


class TestEncode:
    """Tests for the encoded wire format."""

    def test_field_names(self):
        """Encoded document uses the documented field names."""
        metadata = BackupMetadata(version="1.0.0", timestamp=42)
        entry = Entry(id=1, timestamp=datetime(1970, 1, 1, tzinfo=timezone.utc), value=123)

        doc = json.loads(encode(metadata, [entry]).decode("utf-8"))

        assert doc == {
            "metadata": {"version": "1.0.0", "timestamp": 42},
            "entries": [
                {"id": 1, "timestamp": "1970-01-01T00:00:00Z", "entryValue": 123, "note": None}
            ],
        }

    def test_compact_output(self):
        """indent=None produces a single line."""
        metadata = BackupMetadata(version="1.0.0", timestamp=42)
        assert b"\n" not in encode(metadata, [], indent=None)

    def test_entry_without_id_rejected(self):
        """Only stored entries can be encoded."""
        metadata = BackupMetadata(version="1.0.0", timestamp=42)
        entry = Entry(timestamp=datetime.now(timezone.utc), value=1)
        with pytest.raises(EncodeError) as exc_info:
            encode(metadata, [entry])
        assert exc_info.value.errors == ["entries.0: Cannot encode an entry without an id"]

    @pytest.mark.parametrize("value", [2**31, 3_000_000_000, -(2**31) - 1])
    def test_value_outside_int32_rejected(self, value):
        """Values the document format cannot carry fail with EncodeError."""
        metadata = BackupMetadata(version="1.0.0", timestamp=42)
        entries = [
            Entry(id=1, timestamp=datetime(2023, 1, 1, tzinfo=timezone.utc), value=5),
            Entry(id=2, timestamp=datetime(2023, 1, 1, tzinfo=timezone.utc), value=value),
        ]

        with pytest.raises(EncodeError) as exc_info:
            encode(metadata, entries)

        err = exc_info.value
        assert isinstance(err, EntryLogError)
        assert err.code == "ENCODE_ERROR"
        assert len(err.errors) == 1
        assert err.errors[0].startswith("entries.1.")

    def test_format_instant(self):
        """Milliseconds appear only when non-zero."""
        assert format_instant(datetime(2023, 1, 1, 10, tzinfo=timezone.utc)) == "2023-01-01T10:00:00Z"
        assert (
            format_instant(datetime(2023, 1, 1, 10, 0, 0, 250_999, tzinfo=timezone.utc))
            == "2023-01-01T10:00:00.250Z"
        )


class TestDecode:
    """Tests for decoding and validation."""

    def test_decode_reference_document(self):
        """The reference document decodes to typed values."""
        metadata, entries = decode(dumps(make_document()))

        assert metadata.version == "1.0.0"
        assert metadata.timestamp == 123456789
        assert len(entries) == 1
        assert entries[0].id == 1
        assert entries[0].value == 456
        assert entries[0].note is None
        assert entries[0].timestamp == datetime(2023, 1, 1, 10, tzinfo=timezone.utc)

    def test_missing_note_means_null(self):
        """The note field may be omitted."""
        doc = make_document()
        del doc["entries"][0]["note"]
        _, entries = decode(dumps(doc))
        assert entries[0].note is None

    def test_unknown_fields_ignored(self):
        """Extra fields at every level are ignored."""
        doc = make_document(exportedBy="phone")
        doc["metadata"]["device"] = "pixel"
        doc["entries"][0]["color"] = "blue"

        metadata, entries = decode(dumps(doc))

        assert metadata.version == "1.0.0"
        assert entries[0].value == 456

    def test_accepts_str_input(self):
        """Decoded text is accepted as well as bytes."""
        metadata, _ = decode(json.dumps(make_document()))
        assert metadata.timestamp == 123456789

    @pytest.mark.parametrize(
        "data",
        [b"", b"not json", b"{", b"[]", b"null", b"\xff\xfe\x00"],
    )
    def test_malformed_input(self, data):
        """Non-JSON or non-object input is rejected."""
        with pytest.raises(DecodeError) as exc_info:
            decode(data)
        assert exc_info.value.code == "DECODE_ERROR"

    def test_missing_metadata(self):
        """metadata is required."""
        doc = make_document()
        del doc["metadata"]
        with pytest.raises(DecodeError) as exc_info:
            decode(dumps(doc))
        assert any(err.startswith("metadata") for err in exc_info.value.errors)

    def test_missing_entries(self):
        """entries is required."""
        doc = make_document()
        del doc["entries"]
        with pytest.raises(DecodeError):
            decode(dumps(doc))

    def test_missing_metadata_version(self):
        """metadata.version is required."""
        doc = make_document(metadata={"timestamp": 1})
        with pytest.raises(DecodeError) as exc_info:
            decode(dumps(doc))
        assert any("metadata.version" in err for err in exc_info.value.errors)

    @pytest.mark.parametrize("field_name", ["id", "timestamp", "entryValue"])
    def test_missing_entry_field(self, field_name):
        """Every entry field except note is required."""
        doc = make_document()
        del doc["entries"][0][field_name]
        with pytest.raises(DecodeError) as exc_info:
            decode(dumps(doc))
        assert any(f"entries.0.{field_name}" in err for err in exc_info.value.errors)

    @pytest.mark.parametrize(
        "field_name,value",
        [
            ("id", "1"),
            ("id", 1.5),
            ("entryValue", "456"),
            ("entryValue", True),
            ("entryValue", 4.0),
            ("entryValue", 2**40),
            ("note", 5),
            ("timestamp", 1672567200000),
            ("timestamp", "yesterday"),
            ("timestamp", "1672567200"),
            ("timestamp", "2023-01-01T10:00:00"),
        ],
    )
    def test_wrong_entry_field_type(self, field_name, value):
        """Fields of the wrong type fail the whole document."""
        doc = make_document()
        doc["entries"][0][field_name] = value
        with pytest.raises(DecodeError):
            decode(dumps(doc))

    @pytest.mark.parametrize(
        "metadata",
        [
            {"version": 1, "timestamp": 1},
            {"version": "1.0.0", "timestamp": "1"},
            {"version": "1.0.0", "timestamp": None},
        ],
    )
    def test_wrong_metadata_type(self, metadata):
        """Metadata fields are strictly typed."""
        with pytest.raises(DecodeError):
            decode(dumps(make_document(metadata=metadata)))

    def test_one_bad_entry_rejects_document(self):
        """No partial acceptance: one invalid entry fails everything."""
        doc = make_document()
        doc["entries"].append({"id": 2, "timestamp": "2023-01-02T00:00:00Z"})
        with pytest.raises(DecodeError) as exc_info:
            decode(dumps(doc))
        assert exc_info.value.errors == ["entries.1.entryValue: Field required"]

    def test_offset_timestamp_accepted(self):
        """Timestamps with explicit offsets are valid instants."""
        doc = make_document()
        doc["entries"][0]["timestamp"] = "2023-01-01T12:00:00+02:00"
        _, entries = decode(dumps(doc))
        assert entries[0].timestamp == datetime(2023, 1, 1, 10, tzinfo=timezone.utc)

    def test_fractional_timestamp_truncated_to_millis(self):
        """Sub-millisecond digits are dropped."""
        doc = make_document()
        doc["entries"][0]["timestamp"] = "2023-01-01T10:00:00.123456Z"
        _, entries = decode(dumps(doc))
        assert entries[0].timestamp.microsecond == 123_000
