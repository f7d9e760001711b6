from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hedera_data_publisher.core.fs import DEFAULT_DATA_DIR
from hedera_data_publisher.errors import ConfigurationError

CONFIG_FILENAME = "config.json"
MOCK_LEDGER_FILENAME = "mock-ledger.duckdb"
OPERATOR_KEY_ENV = "HEDERA_OPERATOR_KEY"


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name, "")
    return raw.strip() or None


def _env_bool(name: str, default: Optional[bool]) -> Optional[bool]:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_values() -> dict:
    return {
        "network": _env_str("HEDERA_NETWORK"),
        "operator_id": _env_str("HEDERA_OPERATOR_ID"),
        "operator_key": _env_str(OPERATOR_KEY_ENV),
        "topic_id": _env_str("HEDERA_TOPIC_ID"),
        "mirror_url": _env_str("HEDERA_MIRROR_URL"),
        "storage": _env_str("HDP_STORAGE"),
        "data_dir": _env_str("HDP_DATA_DIR"),
        "mock": _env_bool("HDP_MOCK", None),
        "mirror_page_size": _env_int("HDP_MIRROR_PAGE_SIZE", None),
        "http_timeout": _env_float("HDP_HTTP_TIMEOUT", None),
    }


class ConfigFile(BaseModel):
    """
    On-disk configuration written by ``init``.

    The operator key is intentionally not a field: it only ever comes from the
    environment.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    network: Optional[str] = None
    operator_id: Optional[str] = Field(default=None, alias="operatorId")
    topic_id: Optional[str] = Field(default=None, alias="topicId")
    mirror_url: Optional[str] = Field(default=None, alias="mirrorUrl")
    storage: Optional[str] = None
    mock: Optional[bool] = None


@dataclass(frozen=True)
class PublisherSettings:
    network: str = "testnet"
    operator_id: Optional[str] = None
    operator_key: Optional[str] = field(default=None, repr=False)
    topic_id: Optional[str] = None
    mirror_url: Optional[str] = None
    storage: str = "local"
    data_dir: str = DEFAULT_DATA_DIR
    mock: bool = False
    mirror_page_size: int = 100
    http_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "PublisherSettings":
        return cls().merge(**_env_values())

    @classmethod
    def load(
        cls, config_path: Optional[str] = None, **overrides: Any
    ) -> "PublisherSettings":
        """
        Resolves settings with precedence: overrides > environment > config file > defaults.

        ``None`` overrides are ignored so CLI options that were not given fall
        through to lower layers.
        """
        env_values = _env_values()
        data_dir = overrides.get("data_dir") or env_values.get("data_dir") or DEFAULT_DATA_DIR
        path = Path(
            config_path or _env_str("HDP_CONFIG") or Path(data_dir) / CONFIG_FILENAME
        )
        file_layer = read_config_file(path) if path.exists() else ConfigFile()

        settings = cls(data_dir=data_dir).merge(
            network=file_layer.network,
            operator_id=file_layer.operator_id,
            topic_id=file_layer.topic_id,
            mirror_url=file_layer.mirror_url,
            storage=file_layer.storage,
            mock=file_layer.mock,
        )
        return settings.merge(**env_values).merge(**overrides)

    def merge(self, **values: Any) -> "PublisherSettings":
        """Returns a copy with every non-None value applied."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})

    @property
    def config_path(self) -> Path:
        return Path(self.data_dir) / CONFIG_FILENAME

    @property
    def mock_ledger_path(self) -> Path:
        return Path(self.data_dir) / MOCK_LEDGER_FILENAME

    def require_topic(self) -> str:
        if not self.topic_id:
            raise ConfigurationError(
                "No topic configured. Pass --topic, set HEDERA_TOPIC_ID, or run "
                "'init --create-topic'."
            )
        return self.topic_id

    def to_config_file(self) -> ConfigFile:
        return ConfigFile(
            network=self.network,
            operator_id=self.operator_id,
            topic_id=self.topic_id,
            mirror_url=self.mirror_url,
            storage=self.storage,
            mock=self.mock,
        )


def read_config_file(path: Path) -> ConfigFile:
    try:
        return ConfigFile.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc


def write_config_file(settings: PublisherSettings, path: Optional[Path] = None) -> Path:
    target = Path(path or settings.config_path)
    payload = settings.to_config_file().model_dump(by_alias=True, exclude_none=True)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot write config file {target}: {exc}") from exc
    return target
