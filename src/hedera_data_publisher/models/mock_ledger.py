from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel

UTC = timezone.utc


class MockTopic(SQLModel, table=True):
    """A topic synthesized by the mock ledger."""

    __tablename__ = "mock_topic"

    topic_id: str = Field(primary_key=True, description="Ledger notation, e.g. '0.0.1001'")
    memo: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MockTopicMessage(SQLModel, table=True):
    """
    One message accepted by the mock ledger.

    Rows are append-only: the journal never updates or deletes a message once
    written, mirroring the ledger's own semantics.
    """

    __tablename__ = "mock_topic_message"

    topic_id: str = Field(primary_key=True)
    sequence_number: int = Field(primary_key=True)
    consensus_timestamp: str = Field(
        index=True, description="'<seconds>.<nanos>' as the mirror node reports it."
    )
    payload: str = Field(sa_column=Column(Text, nullable=False))
    transaction_id: Optional[str] = Field(default=None)
