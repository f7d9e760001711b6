"""
hedera_data_publisher/core/mirror.py

History Reader: reads previously published provenance messages back from the
ledger in consensus order.

``MirrorNodeClient`` talks to the mirror node REST API and yields raw topic
messages page by page; the next page is only requested once the caller has
consumed the current one. ``HistoryReader`` decodes those messages, drops
anything that is not a ``DATASET_PUBLISHED`` record for the requested dataset,
and answers version lookups.

Resuming after a partial read: every ``PublishedRecord`` carries its
``sequence_number``; pass the last one seen as ``after_sequence``.
"""

import base64
import binascii
import logging
from typing import Any, Dict, Iterator, List, Optional

import requests
from pydantic import ValidationError
from requests.exceptions import ConnectionError, Timeout

from hedera_data_publisher.core.identity import (
    is_consensus_timestamp,
    parse_version,
    validate_entity_id,
)
from hedera_data_publisher.errors import (
    InvalidInputError,
    LedgerConnectionError,
    PublisherError,
    TopicNotFoundError,
)
from hedera_data_publisher.models.message import (
    EVENT_DATASET_PUBLISHED,
    MESSAGE_SCHEMA_VERSION,
    ProvenanceMessage,
)
from hedera_data_publisher.models.records import PublishedRecord, RawTopicMessage
from hedera_data_publisher.protocols import MirrorClient

logger = logging.getLogger(__name__)

MIRROR_URLS = {
    "mainnet": "https://mainnet-public.mirrornode.hedera.com",
    "testnet": "https://testnet.mirrornode.hedera.com",
    "previewnet": "https://previewnet.mirrornode.hedera.com",
}

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 100


class MirrorNodeClient:
    """
    Paginated reader for ``/api/v1/topics/{topicId}/messages``.

    Parameters
    ----------
    base_url : str
        Mirror node root, e.g. ``https://testnet.mirrornode.hedera.com``.
    session : requests.Session, optional
        Injected HTTP session (tests pass a mock).
    page_size : int
        Messages requested per page, capped at the mirror node maximum.
    timeout : float
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        self.timeout = timeout

    @classmethod
    def for_network(cls, network: str, **kwargs: Any) -> "MirrorNodeClient":
        if network not in MIRROR_URLS:
            raise InvalidInputError(f"No public mirror node known for network '{network}'")
        return cls(MIRROR_URLS[network], **kwargs)

    def _get_page(self, url: str, params: Optional[Dict[str, Any]], topic_id: str) -> Dict[str, Any]:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except (ConnectionError, Timeout) as exc:
            raise LedgerConnectionError(f"Mirror node unreachable at {self.base_url}: {exc}") from exc

        if response.status_code == 404:
            raise TopicNotFoundError(topic_id)
        if response.status_code == 400:
            raise InvalidInputError(f"Mirror node rejected the request: {response.text}")
        if response.status_code >= 500:
            raise LedgerConnectionError(
                f"Mirror node error {response.status_code} for topic {topic_id}"
            )
        try:
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as exc:
            raise PublisherError(f"Mirror node request failed: {exc}") from exc
        except ValueError as exc:
            raise LedgerConnectionError(f"Mirror node returned invalid JSON: {exc}") from exc

    def iter_topic_messages(
        self, topic_id: str, after_sequence: int = 0
    ) -> Iterator[RawTopicMessage]:
        try:
            topic_id = validate_entity_id(topic_id, "topic")
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc

        url: Optional[str] = f"{self.base_url}/api/v1/topics/{topic_id}/messages"
        params: Optional[Dict[str, Any]] = {
            "limit": self.page_size,
            "order": "asc",
        }
        if after_sequence > 0:
            params["sequencenumber"] = f"gt:{after_sequence}"

        pending_chunks: Dict[str, List[Dict[str, Any]]] = {}
        while url:
            page = self._get_page(url, params, topic_id)
            for item in page.get("messages") or []:
                raw = self._assemble(item, pending_chunks)
                if raw is not None:
                    yield RawTopicMessage(
                        topic_id=item.get("topic_id") or topic_id,
                        sequence_number=int(item["sequence_number"]),
                        consensus_timestamp=str(item["consensus_timestamp"]),
                        payload=raw,
                    )

            next_link = (page.get("links") or {}).get("next")
            # The next link already carries every query parameter
            url = f"{self.base_url}{next_link}" if next_link else None
            params = None

    @staticmethod
    def _assemble(item: Dict[str, Any], pending: Dict[str, List[Dict[str, Any]]]) -> Optional[bytes]:
        """Decodes one message, buffering chunks until a chunked message completes."""
        try:
            data = base64.b64decode(item.get("message") or "", validate=True)
        except (binascii.Error, ValueError):
            logger.debug("[HDP] Skipping undecodable message %s", item.get("sequence_number"))
            return None

        chunk = item.get("chunk_info") or {}
        total = int(chunk.get("total") or 1)
        if total <= 1:
            return data

        key = str((chunk.get("initial_transaction_id") or {}).get("transaction_valid_start") or "")
        parts = pending.setdefault(key, [])
        parts.append({"number": int(chunk.get("number") or 1), "data": data})
        if len(parts) < total:
            return None
        del pending[key]
        return b"".join(p["data"] for p in sorted(parts, key=lambda p: p["number"]))


def _nanos(consensus: str) -> int:
    seconds, _, fraction = consensus.strip().partition(".")
    return int(seconds) * 1_000_000_000 + int(fraction.ljust(9, "0") or 0)


class HistoryReader:
    """Decodes and filters topic messages into dataset history."""

    def __init__(self, mirror: MirrorClient) -> None:
        self.mirror = mirror

    def iter_records(
        self,
        topic_id: str,
        dataset_id: Optional[str] = None,
        after_sequence: int = 0,
    ) -> Iterator[PublishedRecord]:
        """
        Lazily yields provenance records in ascending ledger order.

        Each call starts a fresh read, so the sequence is restartable.
        """
        if dataset_id is not None:
            # Messages always carry the lowercase form
            dataset_id = dataset_id.strip().lower()
        for raw in self.mirror.iter_topic_messages(topic_id, after_sequence=after_sequence):
            message = self._decode(raw)
            if message is None:
                continue
            if dataset_id is not None and message.dataset_id != dataset_id:
                continue
            yield PublishedRecord(
                topic_id=raw.topic_id,
                sequence_number=raw.sequence_number,
                consensus_timestamp=raw.consensus_timestamp,
                message=message,
            )

    @staticmethod
    def _decode(raw: RawTopicMessage) -> Optional[ProvenanceMessage]:
        try:
            message = ProvenanceMessage.from_bytes(raw.payload)
        except (ValidationError, ValueError, UnicodeDecodeError):
            logger.debug(
                "[HDP] Ignoring non-provenance message #%d on %s",
                raw.sequence_number,
                raw.topic_id,
            )
            return None
        if message.event != EVENT_DATASET_PUBLISHED:
            return None
        if message.v > MESSAGE_SCHEMA_VERSION:
            logger.warning(
                "[HDP] Message #%d uses schema v%d; this reader understands up to v%d",
                raw.sequence_number,
                message.v,
                MESSAGE_SCHEMA_VERSION,
            )
            return None
        return message

    def history(self, topic_id: str, dataset_id: str) -> List[PublishedRecord]:
        return list(self.iter_records(topic_id, dataset_id))

    def latest(self, topic_id: str, dataset_id: str) -> Optional[PublishedRecord]:
        last = None
        for record in self.iter_records(topic_id, dataset_id):
            last = record
        return last

    def find(
        self, topic_id: str, dataset_id: str, version: Optional[str] = None
    ) -> Optional[PublishedRecord]:
        """
        Locates one published version.

        ``version`` may be given as:
        -   the message ``version`` string (authoritative, compared exactly and
            then as an instant, so ``...00.000Z`` equals ``...00+00:00``);
        -   the ledger consensus timestamp ``<seconds>.<nanos>``;
        -   the composer ``ts`` in whole unix seconds.

        Without a version the most recent record in ledger order is returned.
        Exact and consensus matches return the first record in ledger order;
        ``ts`` matches (second resolution) return the last.
        """
        if version is None or not version.strip():
            return self.latest(topic_id, dataset_id)

        wanted = version.strip()
        wanted_instant = None
        try:
            wanted_instant = parse_version(wanted)
        except ValueError:
            pass
        consensus = _nanos(wanted) if is_consensus_timestamp(wanted) else None
        ts_value = int(wanted) if wanted.isdigit() else None

        by_instant = None
        by_ts = None
        for record in self.iter_records(topic_id, dataset_id):
            if record.version == wanted:
                return record
            if consensus is not None and _nanos(record.consensus_timestamp) == consensus:
                return record
            if by_instant is None and wanted_instant is not None and consensus is None:
                try:
                    if parse_version(record.version) == wanted_instant:
                        by_instant = record
                except ValueError:
                    pass
            if ts_value is not None and record.message.ts == ts_value:
                by_ts = record
        return by_instant or by_ts
