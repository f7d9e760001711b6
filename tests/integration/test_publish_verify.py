"""
End-to-end scenarios against the file-backed mock ledger: publish, read the
history back, and verify snapshots through the library API.
"""

import sqlite3
from pathlib import Path

import pytest

from hedera_data_publisher import api
from hedera_data_publisher.core.fs import uri_to_path
from hedera_data_publisher.core.settings import PublisherSettings
from hedera_data_publisher.models import DatasetLocator, VerificationStatus


@pytest.fixture
def run(settings: PublisherSettings, clock_factory):
    """Publishes through the API with a deterministic clock."""
    clock = clock_factory()

    def _publish(path, **kwargs):
        return api.publish_csv(path, settings, clock=clock, **kwargs)

    return _publish


def _locator(result, version=None):
    return DatasetLocator(dataset_id=result.dataset_id, topic_id=result.topic_id, version=version)


def test_roundtrip_match(run, settings, sample_csv: Path):
    result = run(sample_csv)

    outcome = api.verify(_locator(result, result.version), settings)

    assert outcome.status is VerificationStatus.MATCH
    assert outcome.expected_hash == result.hash


def test_tampered_snapshot_is_detected(run, settings, sample_csv: Path):
    result = run(sample_csv)
    stored = uri_to_path(result.storage_ref)
    stored.write_bytes(stored.read_bytes() + b"3,Mallory\n")

    outcome = api.verify(_locator(result), settings)

    assert outcome.status is VerificationStatus.MISMATCH
    assert outcome.actual_hash != outcome.expected_hash


def test_source_edits_do_not_affect_local_copy(run, settings, sample_csv: Path):
    result = run(sample_csv)
    sample_csv.write_bytes(b"id,name\n1,Changed\n")

    assert api.verify(_locator(result), settings).ok


def test_none_storage_source_deleted(settings, sample_csv: Path):
    result = api.publish_csv(sample_csv, settings.merge(storage="none"))
    sample_csv.unlink()

    outcome = api.verify(_locator(result), settings)

    assert outcome.status is VerificationStatus.NOT_FOUND


def test_none_storage_source_edited(settings, sample_csv: Path):
    result = api.publish_csv(sample_csv, settings.merge(storage="none"))
    sample_csv.write_bytes(b"id,name\n1,Alice\n")

    assert api.verify(_locator(result), settings).status is VerificationStatus.MISMATCH


def test_history_is_complete_and_ordered(run, settings, sample_csv: Path):
    first = run(sample_csv)
    published = [first]
    for i in range(4):
        sample_csv.write_bytes(sample_csv.read_bytes() + f"{i + 3},Row{i}\n".encode())
        published.append(run(sample_csv, dataset_id=first.dataset_id))
    run(sample_csv)  # another dataset on the same topic

    records = list(api.history(_locator(first), settings))

    assert [r.version for r in records] == [p.version for p in published]
    assert [r.sequence_number for r in records] == sorted(r.sequence_number for r in records)
    assert len({r.message.hash_value for r in records}) == 5


def test_history_resumes_from_cursor(run, settings, sample_csv: Path):
    first = run(sample_csv)
    run(sample_csv, dataset_id=first.dataset_id)
    run(sample_csv, dataset_id=first.dataset_id)

    records = list(api.history(_locator(first), settings))
    rest = list(api.history(_locator(first), settings, after_sequence=records[0].sequence_number))

    assert rest == records[1:]


def test_every_version_verifies(run, settings, sample_csv: Path):
    first = run(sample_csv)
    sample_csv.write_bytes(b"id,name\n1,Alice\n")
    second = run(sample_csv, dataset_id=first.dataset_id)

    for result in (first, second):
        assert api.verify(_locator(result, result.version), settings).ok


def test_lookup_by_consensus_timestamp(run, settings, sample_csv: Path):
    result = run(sample_csv)

    outcome = api.verify(_locator(result, result.anchor.consensus_timestamp), settings)

    assert outcome.ok
    assert outcome.version == result.version


def test_history_survives_new_process(run, settings, sample_csv: Path):
    result = run(sample_csv)

    # Fresh settings object and ledger handle, same data directory
    reloaded = PublisherSettings(topic_id=settings.topic_id, mock=True, data_dir=settings.data_dir)

    assert [r.version for r in api.history(_locator(result), reloaded)] == [result.version]


def test_sql_roundtrip(settings, tmp_path: Path, clock_factory):
    db_path = tmp_path / "warehouse.sqlite"
    with sqlite3.connect(db_path) as conn:
        conn.execute("CREATE TABLE trips (id INTEGER, distance REAL, mode TEXT)")
        conn.executemany(
            "INSERT INTO trips VALUES (?, ?, ?)",
            [(1, 2.5, "walk"), (2, 10.0, "bike"), (3, 31.2, "car")],
        )
    url = f"sqlite:///{db_path}"
    query = "SELECT id, distance, mode FROM trips ORDER BY id"

    result = api.publish_sql(url, query, settings, clock=clock_factory())

    assert result.message.rows == 3
    assert result.message.columns == 3
    assert api.verify(_locator(result), settings).ok

    again = api.publish_sql(url, query, settings, clock=clock_factory())
    assert again.hash == result.hash
    assert again.message.schema_hash == result.message.schema_hash
