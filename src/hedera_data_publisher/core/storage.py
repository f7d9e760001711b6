"""
Storage Backends Module

Off-chain persistence for snapshot bytes. Every backend exposes the same two
capabilities:

-   ``persist(snapshot, dataset_id, version) -> storage_ref``
-   ``resolve(storage_ref) -> bytes``

The variant set is closed:

-   **local** (`LocalStorageBackend`): copies the canonical bytes into
    ``<data dir>/snapshots/<datasetId>/<version>.csv`` and returns a ``file://``
    reference.
-   **none** (`NoneStorageBackend`): performs no copy and returns the original
    source path. The caller owns that file; if it is moved or deleted later,
    verification reports NOT_FOUND rather than a mismatch.
-   **s3** (`S3StorageBackend`): extension point only, every call raises
    ``StorageNotImplementedError``.

Backends are selected once per operation, by configuration tag when publishing
and by reference scheme when verifying. Backends never call each other.
"""

import abc
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Type

from hedera_data_publisher.core.fs import (
    FileSystemManager,
    path_to_uri,
    uri_scheme,
    uri_to_path,
)
from hedera_data_publisher.core.snapshot import Snapshot
from hedera_data_publisher.errors import (
    ConfigurationError,
    InvalidInputError,
    SnapshotNotFoundError,
    StorageIOError,
    StorageNotImplementedError,
)

logger = logging.getLogger(__name__)


def _read_snapshot_file(path: Path, ref: str) -> bytes:
    if not path.is_file():
        raise SnapshotNotFoundError(f"Snapshot not found at {ref}")
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError as exc:
        raise SnapshotNotFoundError(f"Snapshot not found at {ref}") from exc
    except OSError as exc:
        raise StorageIOError(f"Cannot read snapshot {ref}: {exc}") from exc


class StorageBackend(abc.ABC):
    name: str = ""

    @abc.abstractmethod
    def persist(self, snapshot: Snapshot, dataset_id: str, version: str) -> str:
        """
        Stores the snapshot bytes and returns a reference that ``resolve`` accepts.

        Parameters
        ----------
        snapshot : Snapshot
            The snapshot to store. Its ``content`` is already canonical.
        dataset_id : str
            Dataset identity, used to build content-addressed locations.
        version : str
            Version of this snapshot within the dataset.

        Returns
        -------
        str
            A storage reference (URI or path) recorded in the provenance message.
        """
        pass

    @abc.abstractmethod
    def resolve(self, storage_ref: str) -> bytes:
        """
        Reads back the bytes behind ``storage_ref``.

        Raises
        ------
        SnapshotNotFoundError
            Nothing exists at the reference any more.
        StorageIOError
            The bytes exist but cannot be read.
        """
        pass


class LocalStorageBackend(StorageBackend):
    name = "local"

    def __init__(self, fs: Optional[FileSystemManager] = None) -> None:
        self.fs = fs or FileSystemManager()

    def persist(self, snapshot: Snapshot, dataset_id: str, version: str) -> str:
        try:
            target = self.fs.snapshot_path(dataset_id, version)
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc

        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file, then rename, so a crash never
            # leaves a truncated snapshot at the final path.
            fd, tmp_name = tempfile.mkstemp(
                dir=target.parent, prefix=".tmp-", suffix=target.suffix
            )
            with os.fdopen(fd, "wb") as f:
                f.write(snapshot.content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
            tmp_name = None
        except OSError as exc:
            raise StorageIOError(f"Cannot write snapshot to {target}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        ref = path_to_uri(target)
        logger.info("[HDP] Stored snapshot at %s", ref)
        return ref

    def resolve(self, storage_ref: str) -> bytes:
        try:
            path = uri_to_path(storage_ref)
        except ValueError as exc:
            raise SnapshotNotFoundError(str(exc)) from exc
        return _read_snapshot_file(path, storage_ref)


class NoneStorageBackend(StorageBackend):
    """
    Stores nothing; the storage reference is the source file itself.

    The reference is the source path as an absolute, resolved filesystem path
    (symlinks and relative segments resolved against the working directory at
    publish time), not the path string the caller passed. The file is never
    copied or modified, so verification fails with NOT_FOUND once it is moved
    or deleted.
    """

    name = "none"

    def persist(self, snapshot: Snapshot, dataset_id: str, version: str) -> str:
        if not snapshot.source_path:
            raise InvalidInputError(
                "Storage 'none' needs a file-backed source; use 'local' storage "
                "for SQL snapshots."
            )
        logger.debug(
            "[HDP] Storage 'none': referencing source file %s in place",
            snapshot.source_path,
        )
        return snapshot.source_path

    def resolve(self, storage_ref: str) -> bytes:
        return _read_snapshot_file(uri_to_path(storage_ref), storage_ref)


class S3StorageBackend(StorageBackend):
    name = "s3"

    def persist(self, snapshot: Snapshot, dataset_id: str, version: str) -> str:
        raise StorageNotImplementedError("S3 storage is not implemented yet")

    def resolve(self, storage_ref: str) -> bytes:
        raise StorageNotImplementedError("S3 storage is not implemented yet")


STORAGE_BACKENDS: Dict[str, Type[StorageBackend]] = {
    LocalStorageBackend.name: LocalStorageBackend,
    NoneStorageBackend.name: NoneStorageBackend,
    S3StorageBackend.name: S3StorageBackend,
}

_SCHEME_TO_TAG = {"file": "local", "": "none", "s3": "s3"}


def get_storage_backend(
    tag: str, fs: Optional[FileSystemManager] = None
) -> StorageBackend:
    """Instantiates the backend registered under a configuration tag."""
    normalized = (tag or "").strip().lower()
    if normalized not in STORAGE_BACKENDS:
        raise ConfigurationError(
            f"Unknown storage type '{tag}'. Expected one of: "
            f"{', '.join(sorted(STORAGE_BACKENDS))}"
        )
    if normalized == LocalStorageBackend.name:
        return LocalStorageBackend(fs)
    return STORAGE_BACKENDS[normalized]()


def backend_for_ref(
    storage_ref: str, fs: Optional[FileSystemManager] = None
) -> StorageBackend:
    """Picks the backend implied by a storage reference's scheme."""
    scheme = uri_scheme(storage_ref)
    tag = _SCHEME_TO_TAG.get(scheme)
    if tag is None:
        raise StorageNotImplementedError(
            f"No storage backend handles '{scheme}://' references"
        )
    return get_storage_backend(tag, fs)
