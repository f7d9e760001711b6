from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from hedera_data_publisher.core.identity import format_version
from hedera_data_publisher.core.snapshot import Snapshot
from hedera_data_publisher.models.message import (
    HashInfo,
    ProvenanceMessage,
    SourceInfo,
)
from hedera_data_publisher.protocols import Clock


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at one instant; used for reproducible composition."""

    def __init__(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self.moment = moment

    def now(self) -> datetime:
        return self.moment


def compose(
    snapshot: Snapshot,
    *,
    dataset_id: str,
    storage_ref: str,
    operator_id: str,
    clock: Optional[Clock] = None,
    version: Optional[str] = None,
) -> ProvenanceMessage:
    """
    Builds the ``DATASET_PUBLISHED`` message for a stored snapshot.

    ``ts`` is the composer's wall-clock time in whole seconds. ``version``
    defaults to the same instant in ISO-8601 with millisecond precision; the
    caller may pass an explicit version (e.g. one bumped to stay monotonic).
    Given the same inputs and clock, the serialized bytes are identical.
    """
    moment = (clock or SystemClock()).now()
    return ProvenanceMessage(
        dataset_id=dataset_id,
        version=version or format_version(moment),
        source=SourceInfo(type=snapshot.source_type),
        content_hash=HashInfo(value=snapshot.content_hash),
        schema_hash=snapshot.schema_hash,
        storage_ref=storage_ref,
        rows=snapshot.rows,
        columns=snapshot.columns,
        publisher=operator_id,
        ts=int(moment.timestamp()),
    )
