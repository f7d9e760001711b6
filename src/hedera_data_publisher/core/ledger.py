"""
hedera_data_publisher/core/ledger.py

Ledger Publisher: submits provenance messages to a Hedera Consensus Service
topic and returns the anchor the ledger assigned.

Two interchangeable clients implement the ``LedgerClient`` protocol:

-   ``HederaLedgerClient`` wraps the Hiero/Hedera Python SDK (optional extra).
-   ``MockLedger`` never touches the network. It synthesizes structurally valid
    anchors (monotonic sequence numbers and consensus timestamps) and keeps the
    accepted messages in a journal so it can also serve as a mirror client.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from hedera_data_publisher.core.identity import validate_entity_id
from hedera_data_publisher.core.persistence import MockLedgerStore
from hedera_data_publisher.errors import (
    AuthError,
    ConfigurationError,
    InvalidInputError,
    LedgerConnectionError,
    PublisherError,
    TopicNotFoundError,
)
from hedera_data_publisher.models.records import Anchor, RawTopicMessage
from hedera_data_publisher.protocols import Clock

# Optional SDK import
try:
    import hiero_sdk_python as hiero
except ImportError:
    hiero = None

logger = logging.getLogger(__name__)

NETWORKS = ("mainnet", "testnet", "previewnet")

_TOPIC_STATUSES = ("INVALID_TOPIC_ID", "TOPIC_EXPIRED")
_AUTH_STATUSES = (
    "INVALID_SIGNATURE",
    "INVALID_ACCOUNT_ID",
    "PAYER_ACCOUNT_NOT_FOUND",
    "INSUFFICIENT_PAYER_BALANCE",
    "INVALID_PAYER_SIGNATURE",
    "KEY_PREFIX_MISMATCH",
    "ACCOUNT_DELETED",
)
_NETWORK_MARKERS = ("UNAVAILABLE", "DEADLINE_EXCEEDED", "timed out", "connect")


def _check_topic_id(topic_id: str) -> str:
    try:
        return validate_entity_id(topic_id, "topic")
    except ValueError as exc:
        raise InvalidInputError(str(exc)) from exc


def translate_sdk_error(exc: Exception, topic_id: Optional[str] = None) -> PublisherError:
    """Maps an SDK / transport exception onto the error taxonomy."""
    status = getattr(exc, "status", None)
    text = f"{getattr(status, 'name', status) or ''} {exc}"
    if any(code in text for code in _TOPIC_STATUSES):
        return TopicNotFoundError(topic_id or "?", str(exc))
    if any(code in text for code in _AUTH_STATUSES):
        return AuthError(f"Ledger rejected the operator credentials: {exc}")
    if isinstance(exc, (ConnectionError, TimeoutError)) or any(
        marker in text for marker in _NETWORK_MARKERS
    ):
        return LedgerConnectionError(f"Ledger network unreachable: {exc}")
    return PublisherError(f"Ledger submission failed: {exc}")


class HederaLedgerClient:
    """
    Submits messages through the Hiero/Hedera SDK.

    Parameters
    ----------
    network : str
        One of ``mainnet``, ``testnet``, ``previewnet``.
    operator_id : str
        Account paying for and signing submissions.
    operator_key : str
        Private key of ``operator_id``. Held in memory only, never logged.
    client : Any, optional
        Pre-built SDK client, mainly for tests. When given, the SDK module is
        still needed to build transactions.
    """

    def __init__(
        self,
        network: str,
        operator_id: str,
        operator_key: str,
        client: Optional[Any] = None,
    ) -> None:
        if hiero is None:
            raise ConfigurationError(
                "The Hedera SDK is not installed. Install 'hedera-data-publisher[hedera]' "
                "or run with --mock."
            )
        if network not in NETWORKS:
            raise ConfigurationError(
                f"Unknown network '{network}'. Expected one of: {', '.join(NETWORKS)}"
            )
        if not operator_id or not operator_key:
            raise AuthError(
                "Operator id and HEDERA_OPERATOR_KEY are required for ledger submission"
            )
        try:
            validate_entity_id(operator_id, "account")
            self._account_id = hiero.AccountId.from_string(operator_id)
            self._private_key = hiero.PrivateKey.from_string(operator_key)
        except Exception as exc:
            # Key material never goes into the message
            raise AuthError(f"Invalid operator credentials for {operator_id}") from exc

        self.network = network
        self.operator_id = operator_id
        if client is None:
            client = hiero.Client(hiero.Network(network=network))
        client.set_operator(self._account_id, self._private_key)
        self.client = client

    def __repr__(self) -> str:
        return f"HederaLedgerClient(network={self.network!r}, operator_id={self.operator_id!r})"

    def submit_message(self, topic_id: str, message: bytes) -> Anchor:
        topic_id = _check_topic_id(topic_id)
        try:
            tx = hiero.TopicMessageSubmitTransaction(
                topic_id=hiero.TopicId.from_string(topic_id),
                message=message.decode("utf-8"),
            )
            receipt = tx.freeze_with(self.client).sign(self._private_key).execute(
                self.client
            )
        except Exception as exc:
            raise translate_sdk_error(exc, topic_id) from exc

        status = getattr(receipt, "status", None)
        success = getattr(hiero.ResponseCode, "SUCCESS", None)
        if status is not None and success is not None and status != success:
            raise translate_sdk_error(
                PublisherError(f"receipt status {getattr(status, 'name', status)}"),
                topic_id,
            )

        transaction_id = getattr(tx, "transaction_id", None)
        anchor = Anchor(
            topic_id=topic_id,
            sequence_number=int(getattr(receipt, "topic_sequence_number", 0) or 0),
            consensus_timestamp=self._fetch_consensus_timestamp(transaction_id),
            transaction_id=str(transaction_id or "") or None,
        )
        logger.info(
            "[HDP] Submitted message to topic %s (sequence %s)",
            topic_id,
            anchor.sequence_number,
        )
        return anchor

    def _fetch_consensus_timestamp(self, transaction_id: Any) -> Optional[str]:
        """
        Reads the consensus timestamp from the transaction record.

        The receipt only carries the sequence number. The submission is already
        final at this point, so a failed record query leaves the timestamp unset
        instead of failing the publish.
        """
        if transaction_id is None:
            return None
        try:
            record = (
                hiero.TransactionRecordQuery()
                .set_transaction_id(transaction_id)
                .execute(self.client)
            )
        except Exception as exc:
            logger.warning(
                "[HDP] Could not read the record of transaction %s: %s",
                transaction_id,
                exc,
            )
            return None
        return _timestamp_to_consensus(getattr(record, "consensus_timestamp", None))

    def create_topic(self, memo: Optional[str] = None) -> str:
        try:
            tx = hiero.TopicCreateTransaction(
                memo=memo or "",
                admin_key=self._private_key.public_key(),
            )
            receipt = tx.freeze_with(self.client).sign(self._private_key).execute(
                self.client
            )
        except Exception as exc:
            raise translate_sdk_error(exc) from exc
        topic_id = getattr(receipt, "topic_id", None)
        if topic_id is None:
            raise PublisherError("Topic creation returned no topic id")
        logger.info("[HDP] Created topic %s", topic_id)
        return str(topic_id)


def _to_nanos(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    whole = int(moment.timestamp())
    return whole * 1_000_000_000 + moment.microsecond * 1_000


def _format_consensus(nanos: int) -> str:
    return f"{nanos // 1_000_000_000}.{nanos % 1_000_000_000:09d}"


def _parse_consensus(value: str) -> int:
    seconds, _, fraction = value.partition(".")
    return int(seconds) * 1_000_000_000 + int(fraction.ljust(9, "0") or 0)


def _timestamp_to_consensus(value: Any) -> Optional[str]:
    """Renders an SDK timestamp (``seconds``/``nanos`` or datetime) as ``secs.nanos``."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _format_consensus(_to_nanos(value))
    if isinstance(value, str):
        return value
    seconds = getattr(value, "seconds", None)
    if seconds is None:
        return None
    return f"{int(seconds)}.{int(getattr(value, 'nanos', 0) or 0):09d}"


class MockLedger:
    """
    Offline stand-in for both the ledger and its mirror node.

    Parameters
    ----------
    store : MockLedgerStore, optional
        Journal for accepted messages. Defaults to an in-memory journal; pass a
        file-backed store to keep history across processes.
    clock : Clock, optional
        Source of synthesized consensus timestamps.
    strict_topics : bool, default False
        If True, only topics created through ``create_topic`` accept messages
        and unknown topics raise ``TopicNotFoundError``. Otherwise topics are
        registered on first use.
    operator_id : str, optional
        Used to build synthetic transaction ids.
    """

    def __init__(
        self,
        store: Optional[MockLedgerStore] = None,
        clock: Optional[Clock] = None,
        strict_topics: bool = False,
        operator_id: Optional[str] = None,
    ) -> None:
        self.store = store or MockLedgerStore()
        self.clock = clock
        self.strict_topics = strict_topics
        self.operator_id = operator_id or "0.0.0"

    def _now(self) -> datetime:
        if self.clock is not None:
            return self.clock.now()
        return datetime.now(timezone.utc)

    def _next_timestamp(self, previous: Optional[str]) -> str:
        nanos = _to_nanos(self._now())
        if previous is not None:
            nanos = max(nanos, _parse_consensus(previous) + 1)
        return _format_consensus(nanos)

    def _require_topic(self, topic_id: str) -> None:
        if self.strict_topics and not self.store.topic_exists(topic_id):
            raise TopicNotFoundError(topic_id)

    def submit_message(self, topic_id: str, message: bytes) -> Anchor:
        topic_id = _check_topic_id(topic_id)
        self._require_topic(topic_id)
        if not self.strict_topics:
            self.store.ensure_topic(topic_id)

        valid_start = _format_consensus(_to_nanos(self._now()))
        row = self.store.append_message(
            topic_id,
            message.decode("utf-8"),
            self._next_timestamp,
            transaction_id=f"{self.operator_id}@{valid_start}",
        )
        logger.info(
            "[HDP] Mock ledger accepted message on topic %s (sequence %d)",
            topic_id,
            row.sequence_number,
        )
        return Anchor(
            topic_id=topic_id,
            sequence_number=row.sequence_number,
            consensus_timestamp=row.consensus_timestamp,
            transaction_id=row.transaction_id,
            mock=True,
        )

    def create_topic(self, memo: Optional[str] = None) -> str:
        topic_id = self.store.create_topic(memo)
        logger.info("[HDP] Mock ledger created topic %s", topic_id)
        return topic_id

    def iter_topic_messages(
        self, topic_id: str, after_sequence: int = 0, page_size: int = 100
    ) -> Iterator[RawTopicMessage]:
        topic_id = _check_topic_id(topic_id)
        self._require_topic(topic_id)
        cursor = after_sequence
        while True:
            page = self.store.list_messages(topic_id, cursor, page_size)
            for row in page:
                yield RawTopicMessage(
                    topic_id=row.topic_id,
                    sequence_number=row.sequence_number,
                    consensus_timestamp=row.consensus_timestamp,
                    payload=row.payload.encode("utf-8"),
                )
                cursor = row.sequence_number
            if len(page) < page_size:
                return
