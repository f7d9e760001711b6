"""
hedera_data_publisher/core/identity.py

Content identity of snapshots and datasets.

All digests are SHA-256, hex encoded, lower case:

    contentHash = SHA256( canonicalize(snapshot bytes) )
    schemaHash  = SHA256( compact JSON of the ordered column list )

Canonicalization is byte-level, so the verifier can apply it
to arbitrary (possibly tampered) bytes without a decoding step.
"""

import hashlib
import json
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

UTF8_BOM = b"\xef\xbb\xbf"

_CONSENSUS_TS = re.compile(r"^(\d+)(?:\.(\d{1,9}))?$")


# --- Digests ---


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def canonicalize_bytes(data: bytes) -> bytes:
    """
    Normalizes raw snapshot bytes before hashing.

    1.  A leading UTF-8 byte order mark is dropped.
    2.  CRLF line endings become LF. A lone CR is content, not a line break,
        so no single-byte edit of canonical bytes can hash the same.

    Column order, row order and field contents are left untouched.
    """
    if data.startswith(UTF8_BOM):
        data = data[len(UTF8_BOM):]
    return data.replace(b"\r\n", b"\n")


def compute_content_hash(data: bytes) -> str:
    """SHA-256 over the canonical form of ``data``."""
    return sha256_hex(canonicalize_bytes(data))


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def canonical_json_sha256(obj: Any) -> str:
    return sha256_hex(canonical_json(obj).encode("utf-8"))


def compute_schema_hash(
    columns: Sequence[str], types: Optional[Sequence[str]] = None
) -> str:
    """
    Hashes the ordered column identifiers.

    Without type information the canonical form is a JSON array of names,
    e.g. ``["id","name"]``. When the source declares types it is an array of
    ``[name, type]`` pairs. Order is never changed.
    """
    if types is None:
        return canonical_json_sha256(list(columns))
    if len(types) != len(columns):
        raise ValueError(
            f"Got {len(types)} type tags for {len(columns)} columns; they must align."
        )
    return canonical_json_sha256([[c, t] for c, t in zip(columns, types)])


def hashes_equal(expected: Optional[str], actual: Optional[str]) -> bool:
    if expected is None or actual is None:
        return False
    return expected.strip().lower() == actual.strip().lower()


# --- Dataset identity ---


def new_dataset_id() -> str:
    return str(uuid.uuid4())


def validate_dataset_id(value: str) -> str:
    """Returns the canonical lower-case form of a UUIDv4 string, else raises ValueError."""
    try:
        parsed = uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        raise ValueError(f"'{value}' is not a valid UUID")
    if parsed.version != 4:
        raise ValueError(f"'{value}' is not a version 4 UUID")
    return str(parsed)


# --- Versions ---


def format_version(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. ``2024-01-01T00:00:00.000Z``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_version(value: str) -> datetime:
    """
    Parses either an ISO-8601 version string or a ledger consensus timestamp
    (``<seconds>.<nanos>``) into an aware UTC datetime.

    Sub-microsecond precision of consensus timestamps is truncated.
    """
    text = value.strip()
    match = _CONSENSUS_TS.match(text)
    if match:
        seconds = int(match.group(1))
        nanos = int((match.group(2) or "0").ljust(9, "0"))
        return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(
            microseconds=nanos // 1000
        )
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"'{value}' is neither an ISO-8601 nor a consensus timestamp")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_consensus_timestamp(value: str) -> bool:
    return bool(_CONSENSUS_TS.match(value.strip()))


def next_version_after(previous: str, candidate: datetime) -> str:
    """
    Returns ``candidate`` formatted as a version unless it does not sort after
    ``previous``, in which case the version is bumped to 1 ms past ``previous``.
    """
    prior = parse_version(previous)
    if candidate.tzinfo is None:
        candidate = candidate.replace(tzinfo=timezone.utc)
    if format_version(candidate) > format_version(prior):
        return format_version(candidate)
    return format_version(prior + timedelta(milliseconds=1))


# --- Ledger entities ---

_ENTITY_ID = re.compile(r"^\d+\.\d+\.\d+$")


def validate_entity_id(value: str, kind: str = "entity") -> str:
    """Checks ``shard.realm.num`` notation used for topic and account ids."""
    text = (value or "").strip()
    if not _ENTITY_ID.match(text):
        raise ValueError(f"'{value}' is not a valid {kind} id (expected shard.realm.num)")
    return text
