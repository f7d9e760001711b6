import logging
from pathlib import Path
from typing import Any, Optional, Union

from hedera_data_publisher.core.composer import FixedClock, SystemClock, compose
from hedera_data_publisher.core.identity import (
    format_version,
    new_dataset_id,
    next_version_after,
    validate_dataset_id,
    validate_entity_id,
)
from hedera_data_publisher.core.mirror import HistoryReader
from hedera_data_publisher.core.snapshot import Snapshot, build_from_csv, build_from_sql
from hedera_data_publisher.core.storage import StorageBackend
from hedera_data_publisher.errors import InvalidInputError
from hedera_data_publisher.models.records import PublishResult
from hedera_data_publisher.protocols import Clock, LedgerClient

logger = logging.getLogger(__name__)


class DatasetPublisher:
    """
    Runs the publish pipeline:

        Snapshot Builder -> Storage.persist -> Composer -> Ledger

    Every collaborator is injected, so swapping the ledger client for a
    ``MockLedger`` changes nothing else. Any failure aborts the pipeline and
    propagates; nothing reaches the ledger unless every earlier stage succeeded.

    Parameters
    ----------
    storage : StorageBackend
        Where snapshot bytes go.
    ledger : LedgerClient
        Where the provenance message goes.
    operator_id : str
        Account id recorded as ``publisher``.
    clock : Clock, optional
        Time source for ``version`` and ``ts``.
    reader : HistoryReader, optional
        When given, new versions of an existing dataset are kept strictly
        increasing relative to the latest version already on the ledger.
    """

    def __init__(
        self,
        storage: StorageBackend,
        ledger: LedgerClient,
        operator_id: str,
        clock: Optional[Clock] = None,
        reader: Optional[HistoryReader] = None,
    ) -> None:
        self.storage = storage
        self.ledger = ledger
        self.operator_id = operator_id
        self.clock = clock or SystemClock()
        self.reader = reader

    def _resolve_version(self, topic_id: str, dataset_id: str, is_new: bool) -> tuple:
        moment = self.clock.now()
        version = format_version(moment)
        if is_new or self.reader is None:
            return moment, version

        latest = self.reader.latest(topic_id, dataset_id)
        if latest is not None:
            bumped = next_version_after(latest.version, moment)
            if bumped != version:
                logger.warning(
                    "[HDP] Clock has not advanced past latest version %s of %s; using %s",
                    latest.version,
                    dataset_id,
                    bumped,
                )
            version = bumped
        return moment, version

    def publish_snapshot(
        self,
        snapshot: Snapshot,
        topic_id: str,
        dataset_id: Optional[str] = None,
    ) -> PublishResult:
        try:
            topic_id = validate_entity_id(topic_id, "topic")
            is_new = dataset_id is None
            dataset_id = new_dataset_id() if is_new else validate_dataset_id(dataset_id)
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc

        moment, version = self._resolve_version(topic_id, dataset_id, is_new)
        storage_ref = self.storage.persist(snapshot, dataset_id, version)

        message = compose(
            snapshot,
            dataset_id=dataset_id,
            storage_ref=storage_ref,
            operator_id=self.operator_id,
            clock=FixedClock(moment),
            version=version,
        )
        anchor = self.ledger.submit_message(topic_id, message.to_bytes())

        logger.info(
            "[HDP] Published dataset %s version %s to topic %s (sequence %d)",
            dataset_id,
            version,
            topic_id,
            anchor.sequence_number,
        )
        return PublishResult(
            dataset_id=dataset_id,
            version=version,
            topic_id=topic_id,
            storage_ref=storage_ref,
            hash=snapshot.content_hash,
            anchor=anchor,
            message=message,
        )

    def publish_csv(
        self,
        path: Union[str, Path],
        topic_id: str,
        dataset_id: Optional[str] = None,
    ) -> PublishResult:
        return self.publish_snapshot(build_from_csv(path), topic_id, dataset_id)

    def publish_sql(
        self,
        connection: Any,
        query: str,
        topic_id: str,
        dataset_id: Optional[str] = None,
    ) -> PublishResult:
        return self.publish_snapshot(
            build_from_sql(connection, query), topic_id, dataset_id
        )
