import logging
import random
import time
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import DatabaseError, OperationalError
from sqlalchemy.pool import NullPool, StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from hedera_data_publisher.errors import StorageIOError
from hedera_data_publisher.models.mock_ledger import MockTopic, MockTopicMessage

MEMORY = ":memory:"


class MockLedgerStore:
    """
    Service responsible for the mock ledger journal.

    It handles:
    1. Engine creation (DuckDB file, or in-memory for library use).
    2. Schema initialization.
    3. Concurrency control (retries on file-lock contention).
    4. Append-only writes and ordered reads of topic messages.
    """

    def __init__(self, db_path: Union[str, Path] = MEMORY):
        self.db_path = str(db_path)
        if self.db_path == MEMORY:
            # A single shared connection keeps the in-memory database alive
            self.engine = create_engine("duckdb:///:memory:", poolclass=StaticPool)
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            # NullPool releases the DuckDB file lock as soon as a session closes
            self.engine = create_engine(f"duckdb:///{self.db_path}", poolclass=NullPool)
        self._init_schema()

    def _init_schema(self) -> None:
        def _create():
            SQLModel.metadata.create_all(
                self.engine,
                tables=[MockTopic.__table__, MockTopicMessage.__table__],
            )

        self.execute_with_retry(_create, operation_name="init_schema")

    def execute_with_retry(
        self,
        func: Callable[[], Any],
        operation_name: str = "db_op",
        retries: int = 20,
    ) -> Any:
        """Executes a function with exponential backoff for DB locks."""
        for i in range(retries):
            try:
                return func()
            except (OperationalError, DatabaseError) as e:
                msg = str(e)
                if "lock" in msg or "IO Error" in msg or "database is locked" in msg:
                    if i == retries - 1:
                        raise StorageIOError(
                            f"Mock ledger journal {self.db_path} stayed locked "
                            f"during {operation_name}"
                        ) from e
                    sleep_time = min((0.1 * (1.5**i)) + random.uniform(0.05, 0.2), 2.0)
                    logging.debug(
                        "[HDP] %s hit a journal lock, retrying in %.2fs",
                        operation_name,
                        sleep_time,
                    )
                    time.sleep(sleep_time)
                else:
                    raise
        raise StorageIOError(f"Gave up on {operation_name} after {retries} attempts")

    # --- Topics ---

    def create_topic(self, memo: Optional[str] = None, first_number: int = 1001) -> str:
        def _create():
            with Session(self.engine) as session:
                count = session.exec(select(func.count()).select_from(MockTopic)).one()
                topic_id = f"0.0.{first_number + int(count)}"
                session.add(MockTopic(topic_id=topic_id, memo=memo))
                session.commit()
                return topic_id

        return self.execute_with_retry(_create, operation_name="create_topic")

    def ensure_topic(self, topic_id: str) -> None:
        def _ensure():
            with Session(self.engine) as session:
                if session.get(MockTopic, topic_id) is None:
                    session.add(MockTopic(topic_id=topic_id, memo="auto-registered"))
                    session.commit()

        self.execute_with_retry(_ensure, operation_name="ensure_topic")

    def topic_exists(self, topic_id: str) -> bool:
        def _exists():
            with Session(self.engine) as session:
                return session.get(MockTopic, topic_id) is not None

        return self.execute_with_retry(_exists, operation_name="topic_exists")

    # --- Messages ---

    def append_message(
        self,
        topic_id: str,
        payload: str,
        make_timestamp: Callable[[Optional[str]], str],
        transaction_id: Optional[str] = None,
    ) -> MockTopicMessage:
        """
        Appends a message and assigns the next sequence number atomically.

        ``make_timestamp`` receives the previous consensus timestamp of the topic
        (or None) and must return a strictly later one.
        """

        def _append():
            with Session(self.engine) as session:
                last = session.exec(
                    select(MockTopicMessage)
                    .where(MockTopicMessage.topic_id == topic_id)
                    .order_by(MockTopicMessage.sequence_number.desc())
                    .limit(1)
                ).first()
                row = MockTopicMessage(
                    topic_id=topic_id,
                    sequence_number=(last.sequence_number + 1) if last else 1,
                    consensus_timestamp=make_timestamp(
                        last.consensus_timestamp if last else None
                    ),
                    payload=payload,
                    transaction_id=transaction_id,
                )
                session.add(row)
                session.commit()
                session.refresh(row)
                session.expunge(row)
                return row

        return self.execute_with_retry(_append, operation_name="append_message")

    def list_messages(
        self, topic_id: str, after_sequence: int = 0, limit: int = 100
    ) -> List[MockTopicMessage]:
        def _list():
            with Session(self.engine) as session:
                stmt = (
                    select(MockTopicMessage)
                    .where(MockTopicMessage.topic_id == topic_id)
                    .where(MockTopicMessage.sequence_number > after_sequence)
                    .order_by(MockTopicMessage.sequence_number)
                    .limit(limit)
                )
                rows = list(session.exec(stmt).all())
                for row in rows:
                    session.expunge(row)
                return rows

        return self.execute_with_retry(_list, operation_name="list_messages")
