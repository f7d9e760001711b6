"""
The `models` module defines the wire message, the result records returned by
the library API, and the tables backing the mock ledger journal.
"""

from __future__ import annotations

from hedera_data_publisher.models.message import (
    MESSAGE_SCHEMA_VERSION,
    HashInfo,
    ProvenanceMessage,
    SourceInfo,
)
from hedera_data_publisher.models.mock_ledger import MockTopic, MockTopicMessage
from hedera_data_publisher.models.records import (
    Anchor,
    DatasetLocator,
    PublishedRecord,
    PublishResult,
    RawTopicMessage,
    VerificationResult,
    VerificationStatus,
)

__all__ = [
    "MESSAGE_SCHEMA_VERSION",
    "Anchor",
    "DatasetLocator",
    "HashInfo",
    "MockTopic",
    "MockTopicMessage",
    "ProvenanceMessage",
    "PublishedRecord",
    "PublishResult",
    "RawTopicMessage",
    "SourceInfo",
    "VerificationResult",
    "VerificationStatus",
]
