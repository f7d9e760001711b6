"""
hedera_data_publisher/errors.py

Error taxonomy shared by the publish / verify / history pipelines.

Every exception carries an ``exit_code`` so the CLI can map failures to
differentiated process exit codes without a lookup table:

-   **2**: malformed input or configuration.
-   **3**: verification mismatch.
-   **4**: missing version, message, topic or referenced storage.
-   **5**: ledger or database unreachable.
-   **6**: rejected operator credentials.
-   **7**: filesystem failure.
-   **8**: unimplemented storage backend.
"""

from __future__ import annotations

from typing import Optional


class PublisherError(Exception):
    """Base class for all hedera-data-publisher errors."""

    exit_code: int = 1


class ConfigurationError(PublisherError):
    exit_code = 2


class InvalidInputError(PublisherError):
    """Source is missing, unreadable or cannot be parsed as a table."""

    exit_code = 2


class EmptyDatasetError(InvalidInputError):
    """Source parsed correctly but contains zero data rows."""


class QueryError(PublisherError):
    """SQL query was rejected by the database."""

    exit_code = 2


class LedgerConnectionError(PublisherError, ConnectionError):
    """Ledger node or mirror node could not be reached."""

    exit_code = 5


class DatabaseConnectionError(PublisherError, ConnectionError):
    exit_code = 5


class AuthError(PublisherError):
    """Operator id / key were rejected or are missing."""

    exit_code = 6


class StorageIOError(PublisherError, OSError):
    exit_code = 7


class StorageNotImplementedError(PublisherError, NotImplementedError):
    exit_code = 8


class NotFoundError(PublisherError):
    exit_code = 4


class TopicNotFoundError(NotFoundError):
    def __init__(self, topic_id: str, detail: Optional[str] = None) -> None:
        self.topic_id = topic_id
        message = f"Topic '{topic_id}' does not exist"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MessageNotFoundError(NotFoundError):
    """No provenance message matches the requested dataset/version."""


class SnapshotNotFoundError(NotFoundError):
    """The storage reference in a message no longer resolves to any bytes."""


class HashMismatchError(PublisherError):
    """
    Raised only by ``VerificationResult.raise_for_status``; the verifier itself
    reports a mismatch as a result value.
    """

    exit_code = 3

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Hash mismatch: expected {expected}, computed {actual}")
