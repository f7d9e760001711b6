"""
hedera-data-publisher: verifiable dataset provenance on Hedera.

Snapshots a CSV file or SQL result deterministically, stores the snapshot
off-chain, and anchors a compact metadata message on a Hedera Consensus Service
topic so anyone holding the dataset can later prove it is unmodified.
"""

# Models
from hedera_data_publisher.models.message import ProvenanceMessage
from hedera_data_publisher.models.records import (
    Anchor,
    DatasetLocator,
    PublishedRecord,
    PublishResult,
    VerificationResult,
    VerificationStatus,
)

# Core
from hedera_data_publisher.core.settings import PublisherSettings
from hedera_data_publisher.core.snapshot import Snapshot, build_from_csv, build_from_sql

# API
from hedera_data_publisher.api import (
    CsvSource,
    SqlSource,
    history,
    init_topic,
    publish,
    publish_csv,
    publish_sql,
    verify,
)

__version__ = "0.1.0"

__all__ = [
    # Models
    "Anchor",
    "DatasetLocator",
    "ProvenanceMessage",
    "PublishedRecord",
    "PublishResult",
    "VerificationResult",
    "VerificationStatus",
    # Core
    "PublisherSettings",
    "Snapshot",
    "build_from_csv",
    "build_from_sql",
    # Functional helpers
    "CsvSource",
    "SqlSource",
    "history",
    "init_topic",
    "publish",
    "publish_csv",
    "publish_sql",
    "verify",
]
