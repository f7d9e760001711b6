"""
hedera-data-publisher Command Line Interface (CLI)

Publishes dataset provenance to a Hedera Consensus Service topic and checks
published snapshots against the ledger:

-   ``init``: write a config file and optionally create a topic.
-   ``publish csv`` / ``publish sql``: snapshot, store, and anchor a dataset.
-   ``verify``: recompute a snapshot hash and compare it with the ledger.
-   ``history``: list the published versions of a dataset.

Errors map to distinct exit codes (see ``hedera_data_publisher.errors``);
a verification MISMATCH exits 3 and NOT_FOUND exits 4.
"""

import json
import logging
from contextlib import contextmanager
from itertools import islice
from typing import Any, Dict, Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from hedera_data_publisher import api
from hedera_data_publisher.core.settings import PublisherSettings, write_config_file
from hedera_data_publisher.errors import (
    HashMismatchError,
    NotFoundError,
    PublisherError,
)
from hedera_data_publisher.models.records import (
    DatasetLocator,
    PublishResult,
    VerificationResult,
    VerificationStatus,
)

app = typer.Typer(rich_markup_mode="markdown", no_args_is_help=True)
publish_app = typer.Typer(help="Publish a dataset snapshot.", no_args_is_help=True)
app.add_typer(publish_app, name="publish")

console = Console()
err_console = Console(stderr=True)

_STATE: Dict[str, Any] = {"config": None}


def output_json(data: Any) -> None:
    """Helper to output data as JSON."""
    print(json.dumps(data, default=str, indent=2))


@contextmanager
def handle_errors() -> Iterator[None]:
    """Renders library errors and exits with their exit code."""
    try:
        yield
    except PublisherError as exc:
        err_console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        raise typer.Exit(exc.exit_code)


def load_settings(**overrides: Any) -> PublisherSettings:
    return PublisherSettings.load(_STATE["config"], **overrides)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to a config file (default: .hedera-data-publisher/config.json)."
    ),
) -> None:
    """
    Publish verifiable dataset provenance to Hedera without putting raw data on-chain.
    """
    _STATE["config"] = config
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


# --- init ---


@app.command()
def init(
    network: Optional[str] = typer.Option(
        None, "--network", help="mainnet, testnet or previewnet."
    ),
    create_topic: bool = typer.Option(
        False, "--create-topic", help="Create a new topic (costs HBAR on a real network)."
    ),
    operator_id: Optional[str] = typer.Option(None, "--operator-id", help="Operator account id."),
    topic: Optional[str] = typer.Option(None, "--topic", help="Existing topic id to record."),
    storage: Optional[str] = typer.Option(None, "--storage", help="local, none or s3."),
    mirror_url: Optional[str] = typer.Option(None, "--mirror-url", help="Mirror node base URL."),
    mock: Optional[bool] = typer.Option(
        None, "--mock/--no-mock", help="Use the offline mock ledger."
    ),
) -> None:
    """Writes the config file and optionally creates a topic."""
    with handle_errors():
        settings = load_settings(
            network=network,
            operator_id=operator_id,
            topic_id=topic,
            storage=storage,
            mirror_url=mirror_url,
            mock=mock,
        )
        if create_topic:
            settings = settings.merge(topic_id=api.init_topic(settings))
            console.print(f"[green]Created topic[/green] {settings.topic_id}")
        path = write_config_file(settings)

    info = Table.grid(padding=(0, 2))
    info.add_column(style="bold cyan")
    info.add_column()
    info.add_row("Network", settings.network)
    info.add_row("Operator", settings.operator_id or "[dim]unset[/dim]")
    info.add_row("Topic", settings.topic_id or "[dim]unset[/dim]")
    info.add_row("Storage", settings.storage)
    info.add_row("Mock", "yes" if settings.mock else "no")
    info.add_row("Config", str(path))
    console.print(Panel(info, title="Configuration", border_style="cyan"))


# --- publish ---


def _render_publish_result(result: PublishResult, json_output: bool) -> None:
    if json_output:
        output_json(
            {
                "datasetId": result.dataset_id,
                "version": result.version,
                "topicId": result.topic_id,
                "storageRef": result.storage_ref,
                "hash": result.hash,
                "sequenceNumber": result.anchor.sequence_number,
                "consensusTimestamp": result.anchor.consensus_timestamp,
                "mock": result.anchor.mock,
                "message": result.message.to_wire(),
            }
        )
        return

    info = Table.grid(padding=(0, 2))
    info.add_column(style="bold cyan")
    info.add_column()
    info.add_row("Dataset", result.dataset_id)
    info.add_row("Version", result.version)
    info.add_row("Topic", result.topic_id)
    info.add_row("Sequence", str(result.anchor.sequence_number))
    if result.anchor.consensus_timestamp:
        info.add_row("Consensus", result.anchor.consensus_timestamp)
    info.add_row("Hash", result.hash)
    info.add_row("Rows x Cols", f"{result.message.rows} x {result.message.columns}")
    info.add_row("Storage", result.storage_ref)
    title = "Published (mock)" if result.anchor.mock else "Published"
    console.print(Panel(info, title=title, border_style="green"))


@publish_app.command("csv")
def publish_csv(
    path: str = typer.Argument(..., help="CSV file to publish."),
    topic: Optional[str] = typer.Option(None, "--topic", help="Topic id."),
    operator_id: Optional[str] = typer.Option(None, "--operator-id", help="Operator account id."),
    network: Optional[str] = typer.Option(None, "--network", help="mainnet, testnet or previewnet."),
    storage: Optional[str] = typer.Option(None, "--storage", help="local, none or s3."),
    dataset_id: Optional[str] = typer.Option(
        None, "--dataset-id", help="Publish a new version of an existing dataset."
    ),
    mock: Optional[bool] = typer.Option(
        None, "--mock/--no-mock", help="Skip the network and use the mock ledger."
    ),
    json_output: bool = typer.Option(False, "--json", help="Output the result as JSON."),
) -> None:
    """Publishes a CSV file snapshot."""
    with handle_errors():
        settings = load_settings(
            topic_id=topic,
            operator_id=operator_id,
            network=network,
            storage=storage,
            mock=mock,
        )
        result = api.publish_csv(path, settings, dataset_id=dataset_id)
    _render_publish_result(result, json_output)


@publish_app.command("sql")
def publish_sql(
    conn: str = typer.Option(..., "--conn", help="SQLAlchemy database URL."),
    query: str = typer.Option(..., "--query", help="Row-returning query; add ORDER BY for stable hashes."),
    topic: Optional[str] = typer.Option(None, "--topic", help="Topic id."),
    operator_id: Optional[str] = typer.Option(None, "--operator-id", help="Operator account id."),
    network: Optional[str] = typer.Option(None, "--network", help="mainnet, testnet or previewnet."),
    storage: Optional[str] = typer.Option(None, "--storage", help="local or s3."),
    dataset_id: Optional[str] = typer.Option(
        None, "--dataset-id", help="Publish a new version of an existing dataset."
    ),
    mock: Optional[bool] = typer.Option(
        None, "--mock/--no-mock", help="Skip the network and use the mock ledger."
    ),
    json_output: bool = typer.Option(False, "--json", help="Output the result as JSON."),
) -> None:
    """Publishes a snapshot of a SQL query result."""
    with handle_errors():
        settings = load_settings(
            topic_id=topic,
            operator_id=operator_id,
            network=network,
            storage=storage,
            mock=mock,
        )
        result = api.publish_sql(conn, query, settings, dataset_id=dataset_id)
    _render_publish_result(result, json_output)


# --- verify ---


def _render_verification(result: VerificationResult, json_output: bool) -> None:
    if json_output:
        output_json(result.model_dump(mode="json"))
        return

    style = {
        VerificationStatus.MATCH: "green",
        VerificationStatus.MISMATCH: "red",
        VerificationStatus.NOT_FOUND: "yellow",
    }[result.status]
    info = Table.grid(padding=(0, 2))
    info.add_column(style="bold cyan")
    info.add_column()
    info.add_row("Status", f"[{style}]{result.status.value}[/]")
    info.add_row("Dataset", result.dataset_id)
    info.add_row("Version", result.version or "[dim]latest[/dim]")
    if result.expected_hash:
        info.add_row("Expected", result.expected_hash)
    if result.actual_hash:
        info.add_row("Computed", result.actual_hash)
    if result.storage_ref:
        info.add_row("Storage", result.storage_ref)
    if result.detail:
        info.add_row("Detail", result.detail)
    console.print(Panel(info, title="Verification", border_style=style))


@app.command()
def verify(
    dataset_id: str = typer.Option(..., "--dataset-id", help="Dataset id (UUIDv4)."),
    version: Optional[str] = typer.Option(
        None,
        "--version",
        help="Version (ISO-8601), consensus timestamp or ts; defaults to the latest.",
    ),
    topic: Optional[str] = typer.Option(None, "--topic", help="Topic id."),
    network: Optional[str] = typer.Option(None, "--network", help="mainnet, testnet or previewnet."),
    mock: Optional[bool] = typer.Option(
        None, "--mock/--no-mock", help="Read from the mock ledger journal."
    ),
    json_output: bool = typer.Option(False, "--json", help="Output the result as JSON."),
) -> None:
    """Checks a published snapshot against the hash anchored on the ledger."""
    with handle_errors():
        settings = load_settings(topic_id=topic, network=network, mock=mock)
        locator = DatasetLocator(
            dataset_id=dataset_id, topic_id=settings.require_topic(), version=version
        )
        result = api.verify(locator, settings)

    _render_verification(result, json_output)
    if result.status is VerificationStatus.MISMATCH:
        raise typer.Exit(HashMismatchError.exit_code)
    if result.status is VerificationStatus.NOT_FOUND:
        raise typer.Exit(NotFoundError.exit_code)


# --- history ---


@app.command()
def history(
    dataset_id: str = typer.Option(..., "--dataset-id", help="Dataset id (UUIDv4)."),
    topic: Optional[str] = typer.Option(None, "--topic", help="Topic id."),
    network: Optional[str] = typer.Option(None, "--network", help="mainnet, testnet or previewnet."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Show at most this many versions."),
    mock: Optional[bool] = typer.Option(
        None, "--mock/--no-mock", help="Read from the mock ledger journal."
    ),
    json_output: bool = typer.Option(False, "--json", help="Output records as JSON."),
) -> None:
    """Lists the published versions of a dataset in ledger order."""
    with handle_errors():
        settings = load_settings(topic_id=topic, network=network, mock=mock)
        locator = DatasetLocator(dataset_id=dataset_id, topic_id=settings.require_topic())
        records = list(islice(api.history(locator, settings), limit))

    if json_output:
        output_json(
            [
                {
                    "sequenceNumber": r.sequence_number,
                    "consensusTimestamp": r.consensus_timestamp,
                    "message": r.message.to_wire(),
                }
                for r in records
            ]
        )
        return

    if not records:
        console.print(
            Panel(
                f"[yellow]No versions of {dataset_id} on topic {locator.topic_id}.[/yellow]",
                title="History",
            )
        )
        return

    table = Table(title=f"History of [cyan]{dataset_id}[/cyan]")
    table.add_column("Seq", style="magenta")
    table.add_column("Consensus", style="dim")
    table.add_column("Version", style="green")
    table.add_column("Hash", style="yellow")
    table.add_column("Rows")
    table.add_column("Cols")
    table.add_column("Storage", style="dim")
    for r in records:
        table.add_row(
            str(r.sequence_number),
            r.consensus_timestamp,
            r.version,
            r.message.hash_value[:12],
            str(r.message.rows),
            str(r.message.columns),
            r.message.storage_ref,
        )
    console.print(table)


if __name__ == "__main__":
    app()
