# tests/unit/test_identity.py

"""
Unit tests for content identity helpers.

Covers canonical byte normalization, content and schema digests, dataset id
validation, and version formatting / parsing (ISO-8601 and consensus notation).
"""

import hashlib
import uuid
from datetime import datetime, timezone

import pytest

from hedera_data_publisher.core.identity import (
    canonicalize_bytes,
    compute_content_hash,
    compute_schema_hash,
    format_version,
    hashes_equal,
    is_consensus_timestamp,
    new_dataset_id,
    next_version_after,
    parse_version,
    validate_dataset_id,
    validate_entity_id,
)


class TestCanonicalization:
    def test_lf_input_is_untouched(self):
        data = b"id,name\n1,Alice\n2,Bob\n"
        assert canonicalize_bytes(data) == data

    def test_crlf_becomes_lf(self):
        assert canonicalize_bytes(b"a,b\r\n1,2\r\n") == b"a,b\n1,2\n"

    def test_lone_cr_is_content(self):
        assert canonicalize_bytes(b"a,b\r1,2\r") == b"a,b\r1,2\r"

    def test_any_single_byte_flip_changes_hash(self):
        data = b"id,name\n1,Alice\n2,Bob\n"
        original = compute_content_hash(data)
        for i in range(len(data)):
            for replacement in (b"\r", b"\n", b"X"):
                tampered = data[:i] + replacement + data[i + 1:]
                if tampered != data:
                    assert compute_content_hash(tampered) != original, (i, replacement)

    def test_leading_bom_dropped(self):
        assert canonicalize_bytes(b"\xef\xbb\xbfa,b\n1,2\n") == b"a,b\n1,2\n"

    def test_missing_trailing_newline_is_preserved(self):
        assert canonicalize_bytes(b"a,b\n1,2") == b"a,b\n1,2"

    def test_content_hash_of_canonical_bytes(self):
        data = b"id,name\n1,Alice\n2,Bob\n"
        assert compute_content_hash(data) == hashlib.sha256(data).hexdigest()
        assert compute_content_hash(data.replace(b"\n", b"\r\n")) == compute_content_hash(data)

    def test_arbitrary_bytes_never_raise(self):
        junk = bytes(range(256))
        assert len(compute_content_hash(junk)) == 64


class TestSchemaHash:
    def test_order_matters(self):
        assert compute_schema_hash(["id", "name"]) != compute_schema_hash(["name", "id"])

    def test_names_only_form(self):
        expected = hashlib.sha256(b'["id","name"]').hexdigest()
        assert compute_schema_hash(["id", "name"]) == expected

    def test_type_tags_change_hash(self):
        plain = compute_schema_hash(["id"])
        typed = compute_schema_hash(["id"], ["int64"])
        assert plain != typed
        assert typed == hashlib.sha256(b'[["id","int64"]]').hexdigest()

    def test_misaligned_types_rejected(self):
        with pytest.raises(ValueError):
            compute_schema_hash(["a", "b"], ["int64"])


class TestHashComparison:
    def test_case_insensitive(self):
        assert hashes_equal("ABCDEF", "abcdef")

    def test_none_never_equal(self):
        assert not hashes_equal(None, None)
        assert not hashes_equal("abc", None)


class TestDatasetIds:
    def test_new_ids_are_uuid4(self):
        value = new_dataset_id()
        assert uuid.UUID(value).version == 4
        assert new_dataset_id() != value

    def test_validation_normalizes_case(self):
        raw = str(uuid.uuid4()).upper()
        assert validate_dataset_id(raw) == raw.lower()

    @pytest.mark.parametrize("bad", ["not-a-uuid", "", str(uuid.uuid1())])
    def test_invalid_ids_rejected(self, bad):
        with pytest.raises(ValueError):
            validate_dataset_id(bad)


class TestVersions:
    def test_format_millisecond_precision(self):
        moment = datetime(2024, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_version(moment) == "2024-01-01T00:00:00.123Z"

    def test_naive_datetimes_are_utc(self):
        assert format_version(datetime(2024, 1, 1)) == "2024-01-01T00:00:00.000Z"

    def test_parse_iso_and_consensus_agree(self):
        iso = parse_version("2024-01-01T00:00:00.000Z")
        consensus = parse_version("1704067200.000000000")
        assert iso == consensus

    def test_parse_offset_form(self):
        assert parse_version("2024-01-01T01:00:00+01:00") == parse_version(
            "2024-01-01T00:00:00.000Z"
        )

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_version("yesterday")

    def test_consensus_detection(self):
        assert is_consensus_timestamp("1704067200.000000001")
        assert not is_consensus_timestamp("2024-01-01T00:00:00.000Z")

    def test_next_version_keeps_later_candidate(self):
        later = datetime(2024, 1, 1, 0, 0, 5, tzinfo=timezone.utc)
        assert next_version_after("2024-01-01T00:00:00.000Z", later) == "2024-01-01T00:00:05.000Z"

    def test_next_version_bumps_stale_candidate(self):
        same = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert next_version_after("2024-01-01T00:00:00.000Z", same) == "2024-01-01T00:00:00.001Z"


class TestEntityIds:
    def test_valid(self):
        assert validate_entity_id(" 0.0.1234 ") == "0.0.1234"

    @pytest.mark.parametrize("bad", ["1234", "0.0", "0.0.x", ""])
    def test_invalid(self, bad):
        with pytest.raises(ValueError):
            validate_entity_id(bad, "topic")
