import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from hedera_data_publisher.cli import app
from hedera_data_publisher.core.fs import uri_to_path

runner = CliRunner()

TOPIC_ID = "0.0.1234"


# --- Helpers ---


def _publish(path: Path, *extra: str) -> dict:
    result = runner.invoke(
        app, ["publish", "csv", str(path), "--topic", TOPIC_ID, "--mock", "--json", *extra]
    )
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


# --- init ---


def test_no_args_shows_help():
    result = runner.invoke(app, [])
    assert "publish" in result.output
    assert "verify" in result.output


def test_init_writes_config(data_dir: Path):
    result = runner.invoke(
        app, ["init", "--network", "testnet", "--topic", TOPIC_ID, "--operator-id", "0.0.42", "--mock"]
    )

    assert result.exit_code == 0, result.output
    config = json.loads((data_dir / "config.json").read_text())
    assert config["topicId"] == TOPIC_ID
    assert config["operatorId"] == "0.0.42"
    assert config["mock"] is True
    assert "Configuration" in result.stdout


def test_init_create_topic_in_mock_mode(data_dir: Path):
    result = runner.invoke(app, ["init", "--mock", "--create-topic"])

    assert result.exit_code == 0, result.output
    assert "0.0.1001" in result.stdout
    assert json.loads((data_dir / "config.json").read_text())["topicId"] == "0.0.1001"


def test_init_never_writes_operator_key(data_dir: Path, monkeypatch):
    monkeypatch.setenv("HEDERA_OPERATOR_KEY", "very-secret-key")

    result = runner.invoke(app, ["init", "--mock", "--topic", TOPIC_ID])

    assert result.exit_code == 0, result.output
    assert "very-secret-key" not in (data_dir / "config.json").read_text()
    assert "very-secret-key" not in result.output


def test_config_from_init_is_used_by_publish(sample_csv: Path):
    runner.invoke(app, ["init", "--mock", "--topic", TOPIC_ID])

    result = runner.invoke(app, ["publish", "csv", str(sample_csv), "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["topicId"] == TOPIC_ID


# --- publish ---


def test_publish_csv_json(sample_csv: Path):
    payload = _publish(sample_csv)

    assert payload["mock"] is True
    assert payload["sequenceNumber"] == 1
    assert payload["topicId"] == TOPIC_ID
    assert payload["message"]["event"] == "DATASET_PUBLISHED"
    assert payload["message"]["hash"]["value"] == payload["hash"]
    assert uri_to_path(payload["storageRef"]).read_bytes() == sample_csv.read_bytes()


def test_publish_csv_panel(sample_csv: Path):
    result = runner.invoke(app, ["publish", "csv", str(sample_csv), "--topic", TOPIC_ID, "--mock"])

    assert result.exit_code == 0, result.output
    assert "Published (mock)" in result.stdout


def test_publish_new_version(sample_csv: Path):
    first = _publish(sample_csv)
    second = _publish(sample_csv, "--dataset-id", first["datasetId"])

    assert second["datasetId"] == first["datasetId"]
    assert second["version"] > first["version"]
    assert second["sequenceNumber"] == 2


def test_publish_storage_none(sample_csv: Path):
    payload = _publish(sample_csv, "--storage", "none")
    assert payload["storageRef"] == str(sample_csv.resolve())


def test_publish_sql(tmp_path: Path):
    import sqlite3

    db_path = tmp_path / "src.sqlite"
    with sqlite3.connect(db_path) as conn:
        conn.execute("CREATE TABLE t (id INTEGER, name TEXT)")
        conn.execute("INSERT INTO t VALUES (1, 'Alice')")

    result = runner.invoke(
        app,
        [
            "publish",
            "sql",
            "--conn",
            f"sqlite:///{db_path}",
            "--query",
            "SELECT id, name FROM t",
            "--topic",
            TOPIC_ID,
            "--mock",
            "--json",
        ],
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["message"]["source"]["type"] == "SQL"


@pytest.mark.parametrize(
    "args, code",
    [
        (["publish", "csv", "missing.csv", "--topic", TOPIC_ID, "--mock"], 2),
        (["publish", "csv", "{csv}", "--mock"], 2),
        (["publish", "csv", "{csv}", "--topic", TOPIC_ID, "--mock", "--storage", "ipfs"], 2),
        (["publish", "csv", "{csv}", "--topic", TOPIC_ID, "--mock", "--storage", "s3"], 8),
        (["publish", "csv", "{csv}", "--topic", "nope", "--mock"], 2),
    ],
)
def test_publish_failures_exit_codes(sample_csv: Path, args, code):
    args = [a.replace("{csv}", str(sample_csv)) for a in args]

    result = runner.invoke(app, args)

    assert result.exit_code == code, result.output


def test_publish_without_sdk_or_mock_fails_cleanly(sample_csv: Path, monkeypatch):
    monkeypatch.setattr("hedera_data_publisher.core.ledger.hiero", None)

    result = runner.invoke(app, ["publish", "csv", str(sample_csv), "--topic", TOPIC_ID])

    assert result.exit_code == 2
    assert "ConfigurationError" in result.output


# --- verify ---


def test_verify_match(sample_csv: Path):
    published = _publish(sample_csv)

    result = runner.invoke(
        app,
        [
            "verify",
            "--dataset-id",
            published["datasetId"],
            "--version",
            published["version"],
            "--topic",
            TOPIC_ID,
            "--mock",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "MATCH" in result.stdout


def test_verify_mismatch_exit_code(sample_csv: Path):
    published = _publish(sample_csv)
    uri_to_path(published["storageRef"]).write_bytes(b"id,name\n9,Eve\n")

    result = runner.invoke(
        app,
        ["verify", "--dataset-id", published["datasetId"], "--topic", TOPIC_ID, "--mock", "--json"],
    )

    assert result.exit_code == 3
    assert json.loads(result.stdout)["status"] == "MISMATCH"


def test_verify_not_found_exit_code():
    result = runner.invoke(
        app,
        [
            "verify",
            "--dataset-id",
            "3f1c1b8e-8d5a-4f8e-9a53-2d1f5f6a7b8c",
            "--topic",
            TOPIC_ID,
            "--mock",
        ],
    )

    assert result.exit_code == 4
    assert "NOT_FOUND" in result.stdout


# --- history ---


def test_history_lists_versions(sample_csv: Path):
    first = _publish(sample_csv)
    _publish(sample_csv, "--dataset-id", first["datasetId"])
    _publish(sample_csv)  # unrelated dataset

    result = runner.invoke(
        app,
        ["history", "--dataset-id", first["datasetId"], "--topic", TOPIC_ID, "--mock", "--json"],
    )

    assert result.exit_code == 0, result.output
    records = json.loads(result.stdout)
    assert [r["sequenceNumber"] for r in records] == [1, 2]
    assert all(r["message"]["datasetId"] == first["datasetId"] for r in records)


def test_history_limit(sample_csv: Path):
    first = _publish(sample_csv)
    _publish(sample_csv, "--dataset-id", first["datasetId"])

    result = runner.invoke(
        app,
        [
            "history",
            "--dataset-id",
            first["datasetId"],
            "--topic",
            TOPIC_ID,
            "--mock",
            "--json",
            "--limit",
            "1",
        ],
    )

    assert [r["sequenceNumber"] for r in json.loads(result.stdout)] == [1]


def test_history_empty():
    result = runner.invoke(
        app,
        [
            "history",
            "--dataset-id",
            "3f1c1b8e-8d5a-4f8e-9a53-2d1f5f6a7b8c",
            "--topic",
            TOPIC_ID,
            "--mock",
        ],
    )

    assert result.exit_code == 0
    assert "No versions" in result.stdout
