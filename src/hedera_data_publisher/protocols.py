from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional, Protocol, runtime_checkable

from hedera_data_publisher.models.records import Anchor, RawTopicMessage


@runtime_checkable
class LedgerClient(Protocol):
    """Submission side of the ledger. Implementations must be atomic per call."""

    def submit_message(self, topic_id: str, message: bytes) -> Anchor: ...

    def create_topic(self, memo: Optional[str] = None) -> str: ...


@runtime_checkable
class MirrorClient(Protocol):
    """Read side of the ledger: topic messages in ascending sequence order."""

    def iter_topic_messages(
        self, topic_id: str, after_sequence: int = 0
    ) -> Iterator[RawTopicMessage]: ...


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime: ...
