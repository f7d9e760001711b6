import os
from pathlib import Path
from typing import Union
from urllib.parse import urlparse
from urllib.request import url2pathname

DEFAULT_DATA_DIR = ".hedera-data-publisher"
SNAPSHOTS_DIRNAME = "snapshots"
SNAPSHOT_SUFFIX = ".csv"


class FileSystemManager:
    """
    Service responsible for the local data directory.

    It handles:
    1. The ``snapshots/<datasetId>/<version>.csv`` layout.
    2. Bidirectional conversion between absolute paths and ``file://`` URIs.
    """

    def __init__(self, data_dir: Union[str, Path] = DEFAULT_DATA_DIR):
        # Resolve eagerly so URIs do not depend on the cwd at resolve time
        self.data_dir = Path(data_dir).resolve()

    @property
    def snapshots_dir(self) -> Path:
        return self.data_dir / SNAPSHOTS_DIRNAME

    def snapshot_path(self, dataset_id: str, version: str) -> Path:
        """Content-addressed location of a snapshot for one dataset version."""
        for part, label in ((dataset_id, "dataset id"), (version, "version")):
            if not part or "/" in part or "\\" in part or part in {".", ".."}:
                raise ValueError(f"Invalid {label} for a storage path: {part!r}")
        return self.snapshots_dir / dataset_id / f"{version}{SNAPSHOT_SUFFIX}"


def is_file_uri(ref: str) -> bool:
    return ref.lower().startswith("file://")


def uri_scheme(ref: str) -> str:
    """Scheme of a storage reference; plain filesystem paths have scheme ''."""
    if "://" not in ref:
        return ""
    scheme = ref.split("://", 1)[0].lower()
    # A Windows drive letter such as C:\ is a path, not a scheme
    return "" if len(scheme) == 1 else scheme


def path_to_uri(path: Union[str, Path]) -> str:
    return Path(path).resolve().as_uri()


def uri_to_path(ref: str) -> Path:
    """
    Converts a ``file://`` URI (or a plain path) into a filesystem path.
    Inverse of ``path_to_uri``.
    """
    if not is_file_uri(ref):
        return Path(os.path.expanduser(ref))
    parsed = urlparse(ref)
    if parsed.netloc and parsed.netloc != "localhost":
        raise ValueError(f"Remote file URIs are not supported: {ref}")
    return Path(url2pathname(parsed.path))
