"""
hedera_data_publisher/core/snapshot.py

Snapshot Builder: turns a CSV file or a SQL result set into canonical bytes
plus content and schema digests.

Canonical form (both sources):
-   Column order exactly as the source delivers it.
-   Row order exactly as the source delivers it. For SQL this is the
    driver-returned order; callers that need reproducible hashes must put an
    ``ORDER BY`` in their query. The builder never reorders rows itself.
-   LF line endings, UTF-8, no byte order mark.

For CSV sources the canonical bytes are the file bytes after line-ending
normalization, so ``id,name\\n1,Alice\\n2,Bob\\n`` hashes to the SHA-256 of
exactly those bytes. SQL result sets are rendered as CSV (header row, empty
field for NULL, driver values rendered without coercion) and the declared
column types feed the schema hash.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import (
    ArgumentError,
    DBAPIError,
    InterfaceError,
    NoSuchModuleError,
    OperationalError,
    ResourceClosedError,
    SQLAlchemyError,
)

from hedera_data_publisher.core.identity import (
    canonicalize_bytes,
    compute_schema_hash,
    sha256_hex,
)
from hedera_data_publisher.errors import (
    DatabaseConnectionError,
    EmptyDatasetError,
    InvalidInputError,
    QueryError,
)

logger = logging.getLogger(__name__)

SOURCE_CSV = "CSV"
SOURCE_SQL = "SQL"


@dataclass(frozen=True)
class Snapshot:
    """One immutable point-in-time capture of a tabular source."""

    content: bytes
    content_hash: str
    schema_hash: str
    rows: int
    columns: int
    source_type: str
    column_names: Tuple[str, ...]
    column_types: Optional[Tuple[str, ...]] = None
    source_path: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"Snapshot(source_type={self.source_type!r}, rows={self.rows}, "
            f"columns={self.columns}, content_hash={self.content_hash[:12]}...)"
        )


def _snapshot(
    canonical: bytes,
    source_type: str,
    column_names: List[str],
    rows: int,
    column_types: Optional[List[str]] = None,
    source_path: Optional[str] = None,
) -> Snapshot:
    snapshot = Snapshot(
        content=canonical,
        content_hash=sha256_hex(canonical),
        schema_hash=compute_schema_hash(column_names, column_types),
        rows=rows,
        columns=len(column_names),
        source_type=source_type,
        column_names=tuple(column_names),
        column_types=tuple(column_types) if column_types is not None else None,
        source_path=source_path,
    )
    logger.info(
        "[HDP] Built %s snapshot: %d rows x %d columns, hash %s",
        source_type,
        snapshot.rows,
        snapshot.columns,
        snapshot.content_hash,
    )
    return snapshot


def build_from_csv(path: Union[str, Path]) -> Snapshot:
    """
    Snapshots a CSV file.

    Raises
    ------
    InvalidInputError
        The file is missing, unreadable, not UTF-8 or not parseable as CSV.
    EmptyDatasetError
        The file has no data rows (empty file or header only).
    """
    csv_path = Path(path)
    if not csv_path.is_file():
        raise InvalidInputError(f"CSV file not found: {csv_path}")

    try:
        raw = csv_path.read_bytes()
    except OSError as exc:
        raise InvalidInputError(f"Cannot read CSV file {csv_path}: {exc}") from exc

    canonical = canonicalize_bytes(raw)
    try:
        decoded = canonical.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidInputError(f"CSV file {csv_path} is not valid UTF-8: {exc}") from exc

    try:
        frame = pd.read_csv(
            io.StringIO(decoded),
            dtype=str,
            keep_default_na=False,
            index_col=False,
        )
    except pd.errors.EmptyDataError as exc:
        raise EmptyDatasetError(f"CSV file {csv_path} is empty") from exc
    except (pd.errors.ParserError, ValueError) as exc:
        raise InvalidInputError(f"Cannot parse CSV file {csv_path}: {exc}") from exc

    if len(frame.index) == 0:
        raise EmptyDatasetError(f"CSV file {csv_path} has a header but no data rows")

    return _snapshot(
        canonical,
        SOURCE_CSV,
        [str(c) for c in frame.columns],
        len(frame.index),
        source_path=str(csv_path.resolve()),
    )


def _open_engine(connection: Any) -> Tuple[Any, bool]:
    """Returns a connectable and whether this call owns (and must dispose) it."""
    if isinstance(connection, (Engine, Connection)):
        return connection, False
    if isinstance(connection, str):
        try:
            return create_engine(connection), True
        except (ArgumentError, NoSuchModuleError) as exc:
            raise InvalidInputError(f"Unsupported database URL: {exc}") from exc
        except ImportError as exc:
            raise InvalidInputError(
                f"Database driver for this URL is not installed: {exc}"
            ) from exc
    raise InvalidInputError(
        f"Expected a database URL, Engine or Connection, got {type(connection).__name__}"
    )


def _type_tags(description: Any, rows: List[tuple], width: int) -> List[str]:
    """
    One type tag per result column.

    The driver's declared type code wins when it reports one (PostgreSQL OIDs,
    DuckDB type names). Drivers without declared types (SQLite) fall back to
    the Python type of the first non-NULL value, so NULLs never change a tag.
    """
    tags = []
    for i in range(width):
        declared = description[i][1] if description and i < len(description) else None
        if declared is not None:
            tags.append(str(declared))
            continue
        sample = next((row[i] for row in rows if row[i] is not None), None)
        tags.append(type(sample).__name__ if sample is not None else "null")
    return tags


def _read_result(conn: Connection, query: str) -> Tuple[pd.DataFrame, List[str]]:
    try:
        result = conn.execute(text(query))
    except (DBAPIError, SQLAlchemyError) as exc:
        raise QueryError(f"Query failed: {exc}") from exc
    if not result.returns_rows:
        result.close()
        raise QueryError(f"Query does not return rows: {query}")

    columns = [str(c) for c in result.keys()]
    description = getattr(getattr(result, "cursor", None), "description", None)
    try:
        rows = [tuple(row) for row in result.fetchall()]
    except (ResourceClosedError, DBAPIError) as exc:
        raise QueryError(f"Cannot fetch query result: {exc}") from exc

    # object dtype keeps driver values as-is: no float coercion of NULL-bearing ints
    frame = pd.DataFrame(rows, columns=columns, dtype=object)
    return frame, _type_tags(description, rows, len(columns))


def build_from_sql(connection: Any, query: str) -> Snapshot:
    """
    Snapshots the result set of ``query``.

    Parameters
    ----------
    connection : str | Engine | Connection
        A SQLAlchemy database URL or an already open engine/connection. Engines
        created here are disposed before returning.
    query : str
        A row-returning statement. Include ``ORDER BY`` for reproducible hashes.

    Raises
    ------
    DatabaseConnectionError
        The database cannot be reached.
    QueryError
        The statement fails or returns no result set.
    EmptyDatasetError
        The result set has no rows.
    """
    if not query or not query.strip():
        raise InvalidInputError("SQL query must not be empty")

    connectable, owned = _open_engine(connection)
    try:
        if isinstance(connectable, Connection):
            frame, column_types = _read_result(connectable, query)
        else:
            try:
                conn = connectable.connect()
            except (OperationalError, InterfaceError) as exc:
                raise DatabaseConnectionError(
                    f"Cannot connect to database: {exc}"
                ) from exc
            with conn:
                frame, column_types = _read_result(conn, query)
    finally:
        if owned:
            connectable.dispose()

    if len(frame.index) == 0:
        raise EmptyDatasetError("SQL query returned no rows")

    rendered = frame.to_csv(index=False, lineterminator="\n")
    return _snapshot(
        canonicalize_bytes(rendered.encode("utf-8")),
        SOURCE_SQL,
        [str(c) for c in frame.columns],
        len(frame.index),
        column_types=column_types,
    )
