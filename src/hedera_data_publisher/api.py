"""
Library API for hedera-data-publisher.

These helpers wire the pipeline components from a ``PublisherSettings`` so that
callers only deal with sources, locators and results:

    result = publish_csv("data.csv", PublisherSettings(topic_id="0.0.1234", mock=True))
    outcome = verify(DatasetLocator(dataset_id=result.dataset_id,
                                    topic_id=result.topic_id,
                                    version=result.version))

Collaborators (ledger client, mirror client, clock) can be injected to bypass
the settings-driven defaults.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from hedera_data_publisher.core.fs import FileSystemManager
from hedera_data_publisher.core.ledger import HederaLedgerClient, MockLedger
from hedera_data_publisher.core.mirror import HistoryReader, MirrorNodeClient
from hedera_data_publisher.core.persistence import MockLedgerStore
from hedera_data_publisher.core.pipeline import DatasetPublisher
from hedera_data_publisher.core.settings import PublisherSettings
from hedera_data_publisher.core.storage import get_storage_backend
from hedera_data_publisher.core.verifier import Verifier
from hedera_data_publisher.errors import InvalidInputError
from hedera_data_publisher.models.records import (
    DatasetLocator,
    PublishedRecord,
    PublishResult,
    VerificationResult,
)
from hedera_data_publisher.protocols import Clock, LedgerClient, MirrorClient

logger = logging.getLogger(__name__)

MOCK_OPERATOR_ID = "0.0.0"


@dataclass(frozen=True)
class CsvSource:
    path: Union[str, Path]


@dataclass(frozen=True)
class SqlSource:
    """A SQLAlchemy URL (or engine/connection) and a row-returning query."""

    connection: Any
    query: str


# --- Collaborator factories ---


def _settings(settings: Optional[PublisherSettings]) -> PublisherSettings:
    return settings if settings is not None else PublisherSettings.load()


def mock_ledger(settings: PublisherSettings) -> MockLedger:
    """Mock ledger journaled under the settings' data directory."""
    store = MockLedgerStore(settings.mock_ledger_path)
    return MockLedger(store=store, operator_id=settings.operator_id)


def get_ledger_client(settings: PublisherSettings) -> LedgerClient:
    if settings.mock:
        return mock_ledger(settings)
    return HederaLedgerClient(
        network=settings.network,
        operator_id=settings.operator_id or "",
        operator_key=settings.operator_key or "",
    )


def get_mirror_client(
    settings: PublisherSettings, ledger: Optional[LedgerClient] = None
) -> MirrorClient:
    if isinstance(ledger, MockLedger):
        return ledger
    if settings.mock:
        return mock_ledger(settings)
    kwargs = dict(page_size=settings.mirror_page_size, timeout=settings.http_timeout)
    if settings.mirror_url:
        return MirrorNodeClient(settings.mirror_url, **kwargs)
    return MirrorNodeClient.for_network(settings.network, **kwargs)


def _publisher(
    settings: PublisherSettings,
    ledger: Optional[LedgerClient],
    mirror: Optional[MirrorClient],
    clock: Optional[Clock],
) -> DatasetPublisher:
    storage = get_storage_backend(settings.storage, FileSystemManager(settings.data_dir))
    ledger = ledger or get_ledger_client(settings)
    mirror = mirror or get_mirror_client(settings, ledger)
    operator_id = settings.operator_id or (
        MOCK_OPERATOR_ID if isinstance(ledger, MockLedger) else ""
    )
    return DatasetPublisher(
        storage=storage,
        ledger=ledger,
        operator_id=operator_id,
        clock=clock,
        reader=HistoryReader(mirror),
    )


# --- Operations ---


def publish(
    source: Union[CsvSource, SqlSource],
    settings: Optional[PublisherSettings] = None,
    *,
    dataset_id: Optional[str] = None,
    topic_id: Optional[str] = None,
    ledger: Optional[LedgerClient] = None,
    mirror: Optional[MirrorClient] = None,
    clock: Optional[Clock] = None,
) -> PublishResult:
    """
    Snapshots ``source``, stores it off-chain and anchors its provenance message.

    Parameters
    ----------
    source : CsvSource | SqlSource
        What to snapshot.
    settings : PublisherSettings, optional
        Defaults to ``PublisherSettings.load()``.
    dataset_id : str, optional
        Publish a new version of this dataset; a fresh UUIDv4 otherwise.
    topic_id : str, optional
        Overrides ``settings.topic_id``.
    ledger, mirror, clock : optional
        Injected collaborators.
    """
    settings = _settings(settings)
    topic = topic_id or settings.require_topic()
    publisher = _publisher(settings, ledger, mirror, clock)
    if isinstance(source, CsvSource):
        return publisher.publish_csv(source.path, topic, dataset_id)
    if isinstance(source, SqlSource):
        return publisher.publish_sql(source.connection, source.query, topic, dataset_id)
    raise InvalidInputError(f"Unsupported source type: {type(source).__name__}")


def publish_csv(
    path: Union[str, Path],
    settings: Optional[PublisherSettings] = None,
    **kwargs: Any,
) -> PublishResult:
    return publish(CsvSource(path), settings, **kwargs)


def publish_sql(
    connection: Any,
    query: str,
    settings: Optional[PublisherSettings] = None,
    **kwargs: Any,
) -> PublishResult:
    return publish(SqlSource(connection, query), settings, **kwargs)


def verify(
    locator: DatasetLocator,
    settings: Optional[PublisherSettings] = None,
    *,
    mirror: Optional[MirrorClient] = None,
) -> VerificationResult:
    """Recomputes the snapshot hash behind a published version and compares it."""
    settings = _settings(settings)
    reader = HistoryReader(mirror or get_mirror_client(settings))
    return Verifier(reader, FileSystemManager(settings.data_dir)).verify(locator)


def history(
    locator: DatasetLocator,
    settings: Optional[PublisherSettings] = None,
    *,
    mirror: Optional[MirrorClient] = None,
    after_sequence: int = 0,
) -> Iterator[PublishedRecord]:
    """Lazily yields every published version of a dataset in ledger order."""
    settings = _settings(settings)
    reader = HistoryReader(mirror or get_mirror_client(settings))
    return reader.iter_records(
        locator.topic_id, locator.dataset_id, after_sequence=after_sequence
    )


def init_topic(
    settings: Optional[PublisherSettings] = None,
    *,
    memo: Optional[str] = "hedera-data-publisher",
    ledger: Optional[LedgerClient] = None,
) -> str:
    """Creates a new topic. On a real network this costs fees."""
    settings = _settings(settings)
    client = ledger or get_ledger_client(settings)
    return client.create_topic(memo)
