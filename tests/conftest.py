from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from hedera_data_publisher.core.fs import FileSystemManager
from hedera_data_publisher.core.ledger import MockLedger
from hedera_data_publisher.core.mirror import HistoryReader
from hedera_data_publisher.core.persistence import MockLedgerStore
from hedera_data_publisher.core.settings import PublisherSettings

SAMPLE_CSV = b"id,name\n1,Alice\n2,Bob\n"
TOPIC_ID = "0.0.1234"
OPERATOR_ID = "0.0.42"

_ENV_VARS = [
    "HEDERA_NETWORK",
    "HEDERA_OPERATOR_ID",
    "HEDERA_OPERATOR_KEY",
    "HEDERA_TOPIC_ID",
    "HEDERA_MIRROR_URL",
    "HDP_STORAGE",
    "HDP_DATA_DIR",
    "HDP_MOCK",
    "HDP_MIRROR_PAGE_SIZE",
    "HDP_HTTP_TIMEOUT",
    "HDP_CONFIG",
]


class StepClock:
    """Deterministic clock that advances by ``step`` on every reading."""

    def __init__(
        self,
        start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ) -> None:
        self.current = start
        self.step = step

    def now(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


# --- Global Test Configuration ---


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
    """
    Clears publisher environment variables and runs every test from its own
    temporary working directory, so the default data directory never leaks
    between tests.
    """
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


# --- Core Fixtures ---


@pytest.fixture
def sample_csv(tmp_path: Path) -> Path:
    path = tmp_path / "sample.csv"
    path.write_bytes(SAMPLE_CSV)
    return path


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / ".hedera-data-publisher"


@pytest.fixture
def fs(data_dir: Path) -> FileSystemManager:
    return FileSystemManager(data_dir)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def ledger(data_dir: Path, clock: StepClock) -> MockLedger:
    """File-backed mock ledger, isolated per test."""
    store = MockLedgerStore(data_dir / "mock-ledger.duckdb")
    return MockLedger(store=store, clock=clock, operator_id=OPERATOR_ID)


@pytest.fixture
def reader(ledger: MockLedger) -> HistoryReader:
    return HistoryReader(ledger)


@pytest.fixture
def settings(data_dir: Path) -> PublisherSettings:
    return PublisherSettings(
        topic_id=TOPIC_ID,
        operator_id=OPERATOR_ID,
        mock=True,
        data_dir=str(data_dir),
    )


@pytest.fixture
def clock_factory():
    """Builds independent ``StepClock`` instances."""
    return StepClock
