"""
CLI interface for Cost Ledger.

Triggers collections, and shows anomalies, collection health and cost
summaries from the ledger.
"""

import sys
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cost_ledger.collectors.factory import build_credential_provider, build_registry
from cost_ledger.config.loader import AppConfig, load_config_or_default
from cost_ledger.core.anomaly import AnomalyDetector, AnomalyEvent, AnomalySeverity
from cost_ledger.core.collection import CollectionResult, CollectionService
from cost_ledger.core.logging import setup_logging
from cost_ledger.core.reconciliation import ReconciliationStore
from cost_ledger.core.reports import aggregate_resources, summarize_by_service
from cost_ledger.core.status import CollectionStatusTracker
from cost_ledger.storage.documents import SQLiteDocumentStore
from cost_ledger.storage.models import CollectionState
from cost_ledger.storage.repository import DEFAULT_LIMIT, LedgerRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DEFAULT_CONFIG_PATH = "cost_ledger.yaml"


def build_store(config: AppConfig) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(config.database.path, timeout=config.database.timeout)
    store.initialize_schema()
    return store


def build_ledger(config: AppConfig) -> LedgerRepository:
    return LedgerRepository(build_store(config))


def build_collection_service(config: AppConfig) -> CollectionService:
    """Wire every component of a collection run from configuration."""
    store = build_store(config)
    ledger = LedgerRepository(store)
    return CollectionService(
        registry=build_registry(config),
        credentials=build_credential_provider(config),
        reconciler=ReconciliationStore(store),
        tracker=CollectionStatusTracker(store),
        detector=AnomalyDetector(ledger, lookback_days=config.anomaly.lookback_days),
        default_threshold_percent=config.anomaly.threshold_percent,
    )


def _config(ctx: typer.Context) -> AppConfig:
    return ctx.obj["config"]


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: str = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to YAML configuration (defaults apply when missing)"
    ),
):
    """Cost Ledger CLI."""
    try:
        config = load_config_or_default(config_path)
    except Exception as e:
        console.print(f"[red]Invalid configuration:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    setup_logging(config.logging.level, config.logging.json)
    ctx.obj = {"config": config}
    if ctx.invoked_subcommand is None:
        console.print("Cost Ledger - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the ledger database."""
    try:
        build_store(_config(ctx))
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def collect(
    ctx: typer.Context,
    service: str = typer.Argument(..., help="Service id to collect, e.g. chatgpt"),
):
    """Collect costs for one service and reconcile them into the ledger."""
    try:
        collection_service = build_collection_service(_config(ctx))
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    result = collection_service.trigger_collection(service)
    _display_collection_result(result)
    sys.exit(EXIT_CODE_PASS if result.success else EXIT_CODE_FAIL)


@app.command(name="collect-all")
def collect_all(ctx: typer.Context):
    """Collect costs for every configured service."""
    try:
        collection_service = build_collection_service(_config(ctx))
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    results = collection_service.trigger_all()
    if not results:
        console.print("[yellow]No services configured[/]")
    for result in results:
        _display_collection_result(result)
    sys.exit(EXIT_CODE_PASS if all(r.success for r in results) else EXIT_CODE_FAIL)


@app.command()
def anomalies(
    ctx: typer.Context,
    service: Optional[str] = typer.Option(
        None,
        "--service",
        "-s",
        help="Only check this service"
    ),
    threshold: Optional[float] = typer.Option(
        None,
        "--threshold",
        "-t",
        help="Percent increase over the 7-day average that counts as a spike"
    ),
):
    """Detect cost spikes against the trailing 7-day average."""
    try:
        found = build_collection_service(_config(ctx)).get_anomalies(
            service_id=service,
            threshold_percent=threshold,
        )
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if not found:
        console.print("[green]✓[/] No anomalies detected")
        sys.exit(EXIT_CODE_PASS)

    _display_anomalies(found)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def status(
    ctx: typer.Context,
    service: Optional[str] = typer.Option(
        None,
        "--service",
        "-s",
        help="Only show this service"
    ),
):
    """Show the last collection outcome of every service."""
    try:
        collection_service = build_collection_service(_config(ctx))
        if service:
            found = collection_service.get_collection_status(service.lower())
            statuses = {found.service_id: found} if found else {}
        else:
            statuses = collection_service.get_collection_statuses()
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if not statuses:
        if service:
            console.print(f"[yellow]No collection has run for {escape(service)}[/]")
            sys.exit(EXIT_CODE_FAIL)
        console.print("[dim]No collections have run yet.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Collection Status")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Last run")
    table.add_column("Costs", justify="right")
    table.add_column("Details")
    for service_id, entry in statuses.items():
        ok = entry.status == CollectionState.SUCCESS
        table.add_row(
            service_id,
            "[green]success[/]" if ok else "[red]error[/]",
            entry.last_run.strftime("%Y-%m-%d %H:%M:%S"),
            str(entry.costs_collected),
            escape((entry.warning or "") if ok else (entry.error or "")),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def summary(
    ctx: typer.Context,
    start: Optional[str] = typer.Option(None, "--start", help="First day (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", help="Last day (YYYY-MM-DD)"),
):
    """Show total cost per service."""
    try:
        records = build_ledger(_config(ctx)).get_records(start_date=start, end_date=end)
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    report = summarize_by_service(records)
    if not report.services:
        console.print("[dim]No cost records found.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Cost Summary")
    table.add_column("Service")
    table.add_column("Days", justify="right")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Total", justify="right")
    for service_id, item in report.services.items():
        table.add_row(
            service_id,
            str(item.count),
            item.first_date or "",
            item.last_date or "",
            f"{_format_currency(item.total_cost)} {item.currency}",
        )
    console.print(table)
    console.print(f"\n[bold]Total:[/bold] {_format_currency(report.total_cost)}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def costs(
    ctx: typer.Context,
    service: Optional[str] = typer.Option(None, "--service", "-s", help="Only show this service"),
    start: Optional[str] = typer.Option(None, "--start", help="First day (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", help="Last day (YYYY-MM-DD)"),
    limit: int = typer.Option(DEFAULT_LIMIT, "--limit", "-n", help="Maximum number of records"),
):
    """List ledger records, newest first."""
    try:
        records = build_ledger(_config(ctx)).get_recent_records(
            service_id=service.lower() if service else None,
            start_date=start,
            end_date=end,
            limit=limit,
        )
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if not records:
        console.print("[dim]No cost records found.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Cost Records")
    table.add_column("Key")
    table.add_column("Date")
    table.add_column("Service")
    table.add_column("Total", justify="right")
    table.add_column("Currency")
    for record in records:
        table.add_row(
            record.key,
            record.date,
            record.service_id,
            _format_currency(record.total_cost),
            escape(record.currency),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def show(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Ledger key, e.g. aws_2025-10-01"),
):
    """Show one ledger record and its resources."""
    try:
        record = build_ledger(_config(ctx)).get(key)
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if record is None:
        console.print(f"[yellow]No ledger record {escape(key)}[/]")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[bold]{record.key}[/bold]")
    console.print(f"Service: {record.service_id}")
    console.print(f"Date: {record.date}")
    console.print(f"Total: {_format_currency(record.total_cost)} {escape(record.currency)}")
    console.print(f"Updated: {record.updated_at.strftime('%Y-%m-%d %H:%M:%S')}")

    if record.resources:
        table = Table(title="Resources")
        table.add_column("Resource")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Cost", justify="right")
        for item in record.resources:
            table.add_row(escape(item.resource_id), escape(item.name), escape(item.type), _format_currency(item.cost))
        console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def resources(
    ctx: typer.Context,
    service: str = typer.Argument(..., help="Service id"),
    start: Optional[str] = typer.Option(None, "--start", help="First day (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", help="Last day (YYYY-MM-DD)"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Filter by tag, as key=value"),
):
    """Show resource-level costs of one service."""
    try:
        tag_filter = _parse_tags(tag or [])
        records = build_ledger(_config(ctx)).get_records(
            service_id=service.lower(),
            start_date=start,
            end_date=end,
        )
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    totals = aggregate_resources(records, tag_filter)
    if not totals:
        console.print("[dim]No resource costs found.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title=f"Resources of {service}")
    table.add_column("Resource")
    table.add_column("Type")
    table.add_column("Days", justify="right")
    table.add_column("Total", justify="right")
    for item in totals:
        table.add_row(item.resource_id, item.resource_type, str(len(item.data_points)), _format_currency(item.total_cost))
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def delete(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Ledger key, e.g. aws_2025-10-01"),
):
    """Delete one ledger record."""
    try:
        deleted = build_ledger(_config(ctx)).delete_record(key)
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if not deleted:
        console.print(f"[yellow]No ledger record {escape(key)}[/]")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Deleted {key}")
    sys.exit(EXIT_CODE_PASS)


def _parse_tags(tags: List[str]) -> Dict[str, str]:
    parsed = {}
    for item in tags:
        if "=" not in item:
            raise ValueError(f"Tag filter must be key=value, got {item!r}")
        key, value = item.split("=", 1)
        parsed[key] = value
    return parsed


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _display_collection_result(result: CollectionResult):
    """Display one collection outcome."""
    if not result.success:
        console.print(f"[red]✗[/] {result.service_id}: {escape(result.error.message)} ({result.error.code})")
        return

    console.print(
        f"[green]✓[/] {result.service_id}: {result.costs_collected} costs collected "
        f"({result.new_records} new, {result.updated_records} updated)"
    )
    if result.warning:
        console.print(f"  [yellow]Warning:[/] {escape(result.warning)}")


def _display_anomalies(found: List[AnomalyEvent]):
    """Display anomalies in a table."""
    table = Table(title="Cost Anomalies")
    table.add_column("Service")
    table.add_column("Day")
    table.add_column("Type")
    table.add_column("Resource")
    table.add_column("Severity")
    table.add_column("Current", justify="right")
    table.add_column("7-day avg", justify="right")
    table.add_column("Change", justify="right")
    for event in found:
        severity = "[red]high[/]" if event.severity == AnomalySeverity.HIGH else "[yellow]medium[/]"
        table.add_row(
            event.service_id,
            event.timestamp.date().isoformat(),
            event.type.value,
            event.resource_name or "",
            severity,
            _format_currency(event.current_cost),
            _format_currency(event.average_cost),
            f"+{event.percent_change:,.1f}%",
        )
    console.print(table)


if __name__ == "__main__":
    app()
