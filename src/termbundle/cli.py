"""Command-line interface for termbundle."""

import asyncio
import json
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import ServerConfig, TerminologyConfig, load_config
from .constants import DEFAULT_BUNDLE_FILENAME, VERSION
from .core.exporter import bundle_to_json, read_bundle, write_bundle
from .core.lookup import add_from_server, expand_value_set, search_value_sets
from .core.mutator import BundleMutator
from .core.resolver import DependencyResolver
from .core.submission import submit_bundle
from .fhir.client import FHIRClient
from .ingestion import Artifact, IngestionOrchestrator, NotificationLevel
from .models.bundle import Bundle
from .models.results import IngestionReport, OutcomeStatus, SubmissionStatus
from .observability import MetricsCollector, clear_all_context, configure_logging
from .utils.exceptions import TerminologyBundleError

app = typer.Typer(
    name="termbundle",
    help="termbundle - Assemble FHIR terminology bundles with their dependencies",
    add_completion=False,
)

console = Console()
logger = structlog.get_logger(__name__)

BUNDLE_OPTION_HELP = "Working bundle file"
SERVER_OPTION_HELP = "Configured server name or base URL"


def _setup(config_file: Path | None, log_level: str | None) -> TerminologyConfig:
    """Load configuration and configure logging, exiting with code 1 on bad config."""
    try:
        config = load_config(config_file)
    except (FileNotFoundError, TerminologyBundleError) as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    clear_all_context()
    configure_logging(
        level=log_level or config.logging.level,
        log_format=config.logging.format,
        log_file=config.logging.file,
    )
    return config


def _resolve_server(config: TerminologyConfig, value: str) -> ServerConfig:
    """
    Turn a ``--source`` / ``--target`` value into a ServerConfig.

    A value starting with http:// or https:// is used as a base URL; a
    configured server with that URL supplies its other settings. Anything
    else is looked up by name.
    """
    if value.startswith(("http://", "https://")):
        for server in config.servers:
            if server.base_url.rstrip("/") == value.rstrip("/"):
                return server
        return ServerConfig(name=value, base_url=value)
    return config.get_server(value)


def _load_bundle(path: Path) -> Bundle:
    try:
        return read_bundle(path)
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] Cannot read bundle {path}: {e}")
        raise typer.Exit(code=1) from e


def _notify(level: NotificationLevel, message: str) -> None:
    """Notifier printing to the console."""
    if level is NotificationLevel.SUCCESS:
        console.print(f"[green]OK:[/green] {message}")
    elif level is NotificationLevel.WARNING:
        console.print(f"[yellow]WARNING:[/yellow] {message}")
    else:
        console.print(f"[red]ERROR:[/red] {message}")


def _print_report(report: IngestionReport) -> None:
    table = Table(title="Ingestion Results")
    table.add_column("Artifact", style="cyan")
    table.add_column("Format")
    table.add_column("Status")
    table.add_column("Added", justify="right", style="green")
    table.add_column("Detail")

    for outcome in report.outcomes:
        status = (
            "[green]fulfilled[/green]"
            if outcome.status is OutcomeStatus.FULFILLED
            else "[red]rejected[/red]"
        )
        detail = outcome.error_detail or ""
        if outcome.failed_resources:
            detail = f"{len(outcome.failed_resources)}/{len(outcome.resources)} resources failed"
        table.add_row(
            outcome.source_label,
            outcome.format or "-",
            status,
            str(len(outcome.added_resource_ids)),
            detail,
        )

    console.print("\n", table)
    console.print(f"\n{report.get_summary()}")


def _print_metrics(collector: MetricsCollector) -> None:
    summary = collector.get_summary()
    table = Table(title="Metrics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in sorted(summary.get("counters", {}).items()):
        table.add_row(name, str(value))
    for name, stats in sorted(summary.get("timings", {}).items()):
        table.add_row(name, f"avg {stats.get('avg', 0):.1f} ms ({stats.get('count', 0)} calls)")
    console.print("\n", table)


@app.command()
def ingest(
    files: list[Path] = typer.Argument(..., help="JSON, CSV or ZIP files to ingest", exists=True),
    bundle_file: Path = typer.Option(
        Path(DEFAULT_BUNDLE_FILENAME), "--bundle", "-b", help=BUNDLE_OPTION_HELP
    ),
    source: str | None = typer.Option(
        None, "--source", "-s", help=f"{SERVER_OPTION_HELP} to resolve dependencies from"
    ),
    shallow: bool = typer.Option(
        False, "--shallow", help="Resolve only direct dependencies, not their dependencies"
    ),
    report_file: Path | None = typer.Option(None, "--report", help="Write a JSON report"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    metrics: bool = typer.Option(False, "--metrics", help="Print metrics summary"),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log verbosity: TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR"
    ),
) -> None:
    """
    Ingest files into the working bundle.

    Without --source, value sets are added as they are and their dependencies
    are not fetched.

    Examples:
        termbundle ingest diabetes.json
        termbundle ingest exportedConceptSet.zip includedConcepts.csv --source vsac
        termbundle ingest *.json --source https://tx.fhir.org/r4 --report report.json
    """
    config = _setup(config_file, log_level)
    if shallow:
        config.resolver.transitive = False

    try:
        server = _resolve_server(config, source) if source else None
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    collector = MetricsCollector()
    bundle = _load_bundle(bundle_file)

    console.print(
        Panel.fit(
            f"[bold blue]Ingest Terminology[/bold blue]\n\n"
            f"Files: [cyan]{len(files)}[/cyan]\n"
            f"Bundle: {bundle_file} ({len(bundle)} entries)\n"
            f"Source: [yellow]{server.base_url if server else 'none (no dependency resolution)'}"
            f"[/yellow]",
            border_style="blue",
        )
    )

    orchestrator = IngestionOrchestrator(
        mutator=BundleMutator(DependencyResolver(config.resolver)),
        notifier=_notify,
        config=config.ingest,
        collector=collector,
    )
    artifacts = [Artifact.from_path(path) for path in files]

    async def run_ingest() -> IngestionReport:
        if server is None:
            return await orchestrator.ingest(artifacts, bundle)
        async with FHIRClient(server, config.cache, collector) as client:
            return await orchestrator.ingest(artifacts, bundle, client)

    try:
        report = asyncio.run(run_ingest())
    except Exception as e:
        console.print(f"\n[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    write_bundle(report.bundle, bundle_file)
    collector.log_summary()
    _print_report(report)

    if report_file:
        report_file.parent.mkdir(parents=True, exist_ok=True)
        report_file.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
        console.print(f"[green]OK:[/green] Report written to {report_file}")

    if metrics:
        _print_metrics(collector)

    if not report.is_complete_success:
        raise typer.Exit(code=1)


@app.command()
def add(
    value_set_id: str = typer.Argument(..., help="Value set id on the source server"),
    source: str = typer.Option(..., "--source", "-s", help=SERVER_OPTION_HELP),
    bundle_file: Path = typer.Option(
        Path(DEFAULT_BUNDLE_FILENAME), "--bundle", "-b", help=BUNDLE_OPTION_HELP
    ),
    shallow: bool = typer.Option(False, "--shallow", help="Resolve only direct dependencies"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log verbosity"),
) -> None:
    """
    Add a value set from a server, with everything it references.

    Examples:
        termbundle add 2.16.840.1.113883.3.464.1003.103.12.1001 --source vsac
    """
    config = _setup(config_file, log_level)
    if shallow:
        config.resolver.transitive = False

    try:
        server = _resolve_server(config, source)
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    bundle = _load_bundle(bundle_file)
    mutator = BundleMutator(DependencyResolver(config.resolver))

    async def run_add():
        async with FHIRClient(server, config.cache) as client:
            return await add_from_server(mutator, client, bundle, value_set_id)

    try:
        result = asyncio.run(run_add())
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    if not result.changed:
        console.print(f"[yellow]Value set {value_set_id} is already in the bundle[/yellow]")
    else:
        write_bundle(result.bundle, bundle_file)
        console.print(f"[green]OK:[/green] Added {len(result.added)} resource(s):")
        for key in result.added:
            console.print(f"  - {key}")

    if result.dependency_error is not None:
        console.print(
            f"[yellow]WARNING:[/yellow] Dependencies not resolved: {result.dependency_error}"
        )
        raise typer.Exit(code=1)


@app.command()
def search(
    source: str = typer.Option(..., "--source", "-s", help=SERVER_OPTION_HELP),
    url: str | None = typer.Option(None, "--url", help="Canonical URL"),
    name: str | None = typer.Option(None, "--name", help="Value set name"),
    identifier: str | None = typer.Option(None, "--identifier", help="Identifier (system|value)"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log verbosity"),
) -> None:
    """
    Search value sets on a server.

    Examples:
        termbundle search --source vsac --name Diabetes
    """
    config = _setup(config_file, log_level)
    try:
        server = _resolve_server(config, source)
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    async def run_search():
        async with FHIRClient(server, config.cache) as client:
            return await search_value_sets(client, url=url, name=name, identifier=identifier)

    try:
        value_sets = asyncio.run(run_search())
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Value Sets ({len(value_sets)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("URL")
    table.add_column("Version")
    table.add_column("Status")
    for value_set in value_sets:
        table.add_row(
            value_set.id or "",
            value_set.label,
            value_set.url or "",
            value_set.version or "",
            value_set.status or "",
        )
    console.print(table)


@app.command()
def expand(
    value_set_id: str = typer.Argument(..., help="Value set id on the source server"),
    source: str = typer.Option(..., "--source", "-s", help=SERVER_OPTION_HELP),
    output_file: Path | None = typer.Option(None, "--output", "-o", help="Write expansion here"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log verbosity"),
) -> None:
    """Show the expansion of a value set."""
    config = _setup(config_file, log_level)
    try:
        server = _resolve_server(config, source)
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    async def run_expand():
        async with FHIRClient(server, config.cache) as client:
            return await expand_value_set(client, value_set_id)

    try:
        expansion = asyncio.run(run_expand())
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    text = json.dumps(expansion, indent=2, ensure_ascii=False)
    if output_file:
        output_file.write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]OK:[/green] Expansion written to {output_file}")
    else:
        console.print_json(text)


@app.command("list")
def list_entries(
    bundle_file: Path = typer.Option(
        Path(DEFAULT_BUNDLE_FILENAME), "--bundle", "-b", help=BUNDLE_OPTION_HELP
    ),
) -> None:
    """List the entries of the working bundle."""
    bundle = _load_bundle(bundle_file)

    table = Table(title=f"{bundle_file} ({len(bundle)} entries)")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    table.add_column("ID / URL")
    table.add_column("Version")
    for index, resource in enumerate(bundle.resources):
        table.add_row(
            str(index),
            resource.resource_type,
            resource.label,
            resource.id or resource.url or "",
            resource.version or "",
        )
    console.print(table)


@app.command()
def remove(
    index: int = typer.Argument(..., help="Entry index, as shown by 'list'"),
    bundle_file: Path = typer.Option(
        Path(DEFAULT_BUNDLE_FILENAME), "--bundle", "-b", help=BUNDLE_OPTION_HELP
    ),
) -> None:
    """Remove one entry from the working bundle."""
    bundle = _load_bundle(bundle_file)

    try:
        removed = bundle.resources[index] if 0 <= index < len(bundle) else None
        new_bundle = BundleMutator().remove(bundle, index)
    except IndexError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    write_bundle(new_bundle, bundle_file)
    label = f"{removed.resource_type} {removed.label}" if removed else str(index)
    console.print(f"[green]OK:[/green] Removed {label}")


@app.command()
def submit(
    target: str = typer.Option(..., "--target", "-t", help=SERVER_OPTION_HELP),
    bundle_file: Path = typer.Option(
        Path(DEFAULT_BUNDLE_FILENAME), "--bundle", "-b", help=BUNDLE_OPTION_HELP
    ),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log verbosity"),
) -> None:
    """
    Submit the working bundle to a server as a batch.

    Examples:
        termbundle submit --target https://hapi.example.org/fhir
    """
    config = _setup(config_file, log_level)
    try:
        server = _resolve_server(config, target)
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    bundle = _load_bundle(bundle_file)
    if len(bundle) == 0:
        console.print("[yellow]Bundle is empty, nothing to submit[/yellow]")
        return

    async def run_submit():
        async with FHIRClient(server, config.cache) as client:
            return await submit_bundle(client, bundle)

    try:
        result = asyncio.run(run_submit())
    except TerminologyBundleError as e:
        console.print(f"[bold red]ERROR:[/bold red] Submission failed: {e}")
        raise typer.Exit(code=1) from e

    if result.status is SubmissionStatus.ACCEPTED:
        console.print(f"[green]OK:[/green] Bundle accepted by {server.base_url}")
    elif result.status is SubmissionStatus.ACCEPTED_WITH_ISSUES:
        console.print(
            f"[yellow]WARNING:[/yellow] Bundle accepted with {len(result.issues)} issue(s):"
        )
    else:
        console.print(f"[bold red]ERROR:[/bold red] Bundle rejected (HTTP {result.status_code}):")

    for issue in result.issues:
        console.print(f"  - {issue}")

    if not result.accepted:
        raise typer.Exit(code=1)


@app.command()
def export(
    output_file: Path = typer.Argument(..., help="Destination file"),
    bundle_file: Path = typer.Option(
        Path(DEFAULT_BUNDLE_FILENAME), "--bundle", "-b", help=BUNDLE_OPTION_HELP
    ),
) -> None:
    """
    Export the working bundle as a FHIR Bundle document.

    Use '-' as the destination to print the document instead.
    """
    bundle = _load_bundle(bundle_file)
    if str(output_file) == "-":
        console.print_json(bundle_to_json(bundle))
        return
    write_bundle(bundle, output_file)
    console.print(f"[green]OK:[/green] Exported {len(bundle)} entries to {output_file}")


@app.command()
def version() -> None:
    """Show version information and features."""
    console.print(
        Panel.fit(
            "[bold]termbundle[/bold]\n\n"
            f"Version: [cyan]{VERSION}[/cyan]\n"
            "Python: 3.11+\n\n"
            "[bold]Core Features:[/bold]\n"
            "- FHIR ValueSet / CodeSystem bundle assembly\n"
            "- Transitive dependency resolution\n"
            "- JSON, Atlas concept-set CSV and ZIP ingestion\n"
            "- Search, expand and batch submit against FHIR servers",
            border_style="blue",
        )
    )


if __name__ == "__main__":
    app()
