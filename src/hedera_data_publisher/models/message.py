"""
hedera_data_publisher/models/message.py

The on-ledger provenance record.

The wire form is compact JSON whose key order is fixed by the field declaration
order below (``v, event, datasetId, version, source, hash, schemaHash,
storageRef, rows, columns, publisher, ts``). Downstream consumers hash and sign
the exact bytes, so field order and number formatting must never depend on
dictionary construction order. Any change to the field layout must bump
``MESSAGE_SCHEMA_VERSION``.
"""

from __future__ import annotations

import json
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hedera_data_publisher.core.identity import validate_dataset_id

MESSAGE_SCHEMA_VERSION = 1
EVENT_DATASET_PUBLISHED = "DATASET_PUBLISHED"
HASH_ALGORITHM = "SHA-256"

SourceType = Literal["CSV", "SQL"]


class SourceInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: SourceType


class HashInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    algo: Literal["SHA-256"] = HASH_ALGORITHM
    value: str


class ProvenanceMessage(BaseModel):
    """
    Immutable ``DATASET_PUBLISHED`` metadata record.

    Attributes use snake_case in Python and camelCase on the wire; both are
    accepted when parsing.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    v: int = MESSAGE_SCHEMA_VERSION
    event: Literal["DATASET_PUBLISHED"] = EVENT_DATASET_PUBLISHED
    dataset_id: str = Field(alias="datasetId")
    version: str
    source: SourceInfo
    content_hash: HashInfo = Field(alias="hash")
    schema_hash: str = Field(alias="schemaHash")
    storage_ref: str = Field(alias="storageRef")
    rows: int
    columns: int
    publisher: str
    ts: int

    @field_validator("dataset_id")
    @classmethod
    def _check_dataset_id(cls, value: str) -> str:
        return validate_dataset_id(value)

    @property
    def hash_value(self) -> str:
        return self.content_hash.value

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

    def to_bytes(self) -> bytes:
        """Canonical UTF-8 JSON, no insignificant whitespace."""
        return json.dumps(
            self.to_wire(), separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: Union[bytes, str]) -> "ProvenanceMessage":
        return cls.model_validate_json(payload)
