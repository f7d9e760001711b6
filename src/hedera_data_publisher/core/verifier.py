"""
hedera_data_publisher/core/verifier.py

Checks that the off-chain snapshot referenced by a published provenance
message still hashes to the value anchored on the ledger.

Outcome handling:
-   Missing message or missing snapshot -> ``VerificationStatus.NOT_FOUND``.
-   Hash differs                        -> ``VerificationStatus.MISMATCH``.
-   Unreachable ledger, I/O failures, unimplemented storage are raised, since
    they say nothing about the integrity of the data.

The verifier is read-only: it never writes to storage or the ledger.
"""

import logging
from typing import Callable, Optional

from hedera_data_publisher.core.fs import FileSystemManager
from hedera_data_publisher.core.identity import compute_content_hash, hashes_equal
from hedera_data_publisher.core.mirror import HistoryReader
from hedera_data_publisher.core.storage import StorageBackend, backend_for_ref
from hedera_data_publisher.errors import NotFoundError
from hedera_data_publisher.models.records import (
    DatasetLocator,
    VerificationResult,
    VerificationStatus,
)

logger = logging.getLogger(__name__)


class Verifier:
    def __init__(
        self,
        reader: HistoryReader,
        fs: Optional[FileSystemManager] = None,
        backend_resolver: Optional[Callable[[str], StorageBackend]] = None,
    ) -> None:
        """
        Parameters
        ----------
        reader : HistoryReader
            Source of published messages.
        fs : FileSystemManager, optional
            Data directory used when resolving ``file://`` references.
        backend_resolver : Callable[[str], StorageBackend], optional
            Maps a storage reference to the backend that can read it. Defaults
            to selection by URI scheme.
        """
        self.reader = reader
        self.fs = fs
        self.backend_resolver = backend_resolver or (
            lambda ref: backend_for_ref(ref, self.fs)
        )

    def verify(self, locator: DatasetLocator) -> VerificationResult:
        record = self.reader.find(locator.topic_id, locator.dataset_id, locator.version)
        if record is None:
            wanted = locator.version or "any version"
            logger.info(
                "[HDP] No published message for dataset %s (%s) on topic %s",
                locator.dataset_id,
                wanted,
                locator.topic_id,
            )
            return VerificationResult(
                status=VerificationStatus.NOT_FOUND,
                dataset_id=locator.dataset_id,
                topic_id=locator.topic_id,
                version=locator.version,
                detail=(
                    f"No published message for dataset {locator.dataset_id} "
                    f"({wanted}) on topic {locator.topic_id}"
                ),
            )

        message = record.message
        expected = message.hash_value
        base = dict(
            dataset_id=locator.dataset_id,
            topic_id=locator.topic_id,
            version=message.version,
            expected_hash=expected,
            storage_ref=message.storage_ref,
            sequence_number=record.sequence_number,
        )

        backend = self.backend_resolver(message.storage_ref)
        try:
            data = backend.resolve(message.storage_ref)
        except NotFoundError as exc:
            logger.info("[HDP] Snapshot for %s is gone: %s", message.version, exc)
            return VerificationResult(
                status=VerificationStatus.NOT_FOUND, detail=str(exc), **base
            )

        actual = compute_content_hash(data)
        if hashes_equal(expected, actual):
            logger.info("[HDP] Verified %s@%s: MATCH", locator.dataset_id, message.version)
            return VerificationResult(
                status=VerificationStatus.MATCH, actual_hash=actual, **base
            )

        logger.warning(
            "[HDP] Verification of %s@%s failed: expected %s, computed %s",
            locator.dataset_id,
            message.version,
            expected,
            actual,
        )
        return VerificationResult(
            status=VerificationStatus.MISMATCH,
            actual_hash=actual,
            detail="Snapshot bytes do not match the hash anchored on the ledger",
            **base,
        )
