from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hedera_data_publisher.errors import (
    HashMismatchError,
    MessageNotFoundError,
    SnapshotNotFoundError,
)
from hedera_data_publisher.models.message import ProvenanceMessage


class Anchor(BaseModel):
    """
    Ledger acknowledgement of a submitted message.

    ``consensus_timestamp`` uses the mirror node notation ``<seconds>.<nanos>``.
    It is ``None`` only when the transaction record could not be read back.
    """

    model_config = ConfigDict(frozen=True)

    topic_id: str
    sequence_number: int
    consensus_timestamp: Optional[str] = None
    transaction_id: Optional[str] = None
    mock: bool = False


class RawTopicMessage(BaseModel):
    """One undecoded message as returned by a mirror client."""

    model_config = ConfigDict(frozen=True)

    topic_id: str
    sequence_number: int
    consensus_timestamp: str
    payload: bytes


class PublishedRecord(BaseModel):
    """A decoded provenance message together with its ledger position."""

    model_config = ConfigDict(frozen=True)

    topic_id: str
    sequence_number: int
    consensus_timestamp: str
    message: ProvenanceMessage

    @property
    def dataset_id(self) -> str:
        return self.message.dataset_id

    @property
    def version(self) -> str:
        return self.message.version


class PublishResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    dataset_id: str
    version: str
    topic_id: str
    storage_ref: str
    hash: str
    anchor: Anchor
    message: ProvenanceMessage


class DatasetLocator(BaseModel):
    """Identifies a dataset (and optionally one version of it) on a topic."""

    model_config = ConfigDict(frozen=True)

    dataset_id: str
    topic_id: str
    version: Optional[str] = None


class VerificationStatus(str, Enum):
    MATCH = "MATCH"
    MISMATCH = "MISMATCH"
    NOT_FOUND = "NOT_FOUND"


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: VerificationStatus
    dataset_id: str
    topic_id: str
    version: Optional[str] = None
    expected_hash: Optional[str] = None
    actual_hash: Optional[str] = None
    storage_ref: Optional[str] = None
    sequence_number: Optional[int] = None
    detail: Optional[str] = Field(
        default=None, description="Human readable reason for non-MATCH outcomes."
    )

    @property
    def ok(self) -> bool:
        return self.status is VerificationStatus.MATCH

    def raise_for_status(self) -> "VerificationResult":
        """
        Converts a non-MATCH result into the matching exception.

        NOT_FOUND raises ``MessageNotFoundError`` when no message matched and
        ``SnapshotNotFoundError`` when the message was found but its snapshot
        could not be read.
        """
        if self.status is VerificationStatus.MISMATCH:
            raise HashMismatchError(self.expected_hash or "", self.actual_hash or "")
        if self.status is VerificationStatus.NOT_FOUND:
            if self.sequence_number is None:
                raise MessageNotFoundError(self.detail or "Dataset version not found")
            raise SnapshotNotFoundError(self.detail or "Snapshot not found")
        return self
