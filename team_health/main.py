"""
Team Health Intelligence CLI

Command-line interface for running aggregation cycles over exported
observation files.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

# Initialize console for rich output
console = Console()

RISK_STYLES = {"high": "red", "medium": "yellow", "low": "green"}


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging with rich handler."""
    handlers = [RichHandler(console=console, show_path=False)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )


def _load_config(config_path: Optional[str]):
    from team_health.utils.config import load_config

    return load_config(Path(config_path) if config_path else None)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option(
    "--config", "-c",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to config.yaml",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, config_path: Optional[str]) -> None:
    """Team Health Intelligence - Find isolated members before they drift away."""
    ctx.ensure_object(dict)

    config = _load_config(config_path)
    ctx.obj["config"] = config

    if verbose:
        ctx.obj["log_level"] = "DEBUG"
    elif quiet:
        ctx.obj["log_level"] = "WARNING"
    else:
        ctx.obj["log_level"] = config.logging.level

    setup_logging(ctx.obj["log_level"], config.logging.file)


@cli.command()
@click.option(
    "--input", "-i",
    "input_path",
    required=True,
    type=click.Path(exists=True, file_okay=True, dir_okay=True),
    help="Observation file or directory of JSON/CSV files (one per source)",
)
@click.option(
    "--output", "-o",
    "output_dir",
    default=None,
    type=click.Path(file_okay=False, dir_okay=True),
    help="Output directory for reports",
)
@click.option(
    "--org",
    "organization_id",
    default="default",
    help="Organization id the snapshot is stored under",
)
@click.option(
    "--format", "-f",
    "formats",
    multiple=True,
    type=click.Choice(["csv", "markdown", "json"]),
    default=None,
    help="Output formats to generate",
)
@click.option(
    "--locale",
    type=click.Choice(["en", "ja"]),
    default=None,
    help="Language for insight messages",
)
@click.option(
    "--no-store",
    is_flag=True,
    help="Do not persist the snapshot",
)
@click.pass_context
def aggregate(
    ctx: click.Context,
    input_path: str,
    output_dir: Optional[str],
    organization_id: str,
    formats: tuple[str, ...],
    locale: Optional[str],
    no_store: bool,
) -> None:
    """Run one aggregation cycle and generate team health reports."""
    from team_health.pipeline.aggregate import CycleRunner
    from team_health.pipeline.fetch import AggregationContext
    from team_health.pipeline.ingest import discover_file_adapters
    from team_health.pipeline.outputs import generate_outputs
    from team_health.utils.cache import SnapshotStore

    config = ctx.obj["config"]

    console.print("\n[bold blue]Team Health Intelligence[/bold blue]")
    console.print("=" * 50)

    adapters = discover_file_adapters(input_path)
    if not adapters:
        console.print(f"[red]No .json or .csv observation files found in {input_path}[/red]")
        sys.exit(1)

    store = SnapshotStore(
        cache_path=config.cache.path,
        ttl_days=config.cache.ttl_days,
        max_size_mb=config.cache.max_size_mb,
        enabled=config.cache.enabled and not no_store,
    )
    runner = CycleRunner(config=config, store=store)
    context = AggregationContext(
        organization_id=organization_id,
        adapters=adapters,
        timeout_seconds=config.fetch.timeout_seconds,
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task(f"Aggregating {len(adapters)} sources...", total=None)
        try:
            result = asyncio.run(runner.run(context, locale=locale))
        finally:
            store.close()
        progress.update(task, completed=True)

        task = progress.add_task("Generating reports...", total=None)
        output_files = generate_outputs(
            result,
            output_dir=output_dir or config.output.directory,
            formats=list(formats) or config.output.formats,
            timestamp_filenames=config.output.timestamp_filenames,
            max_items_per_section=config.output.markdown.get("max_items_per_section", 20),
            include_methodology=config.output.markdown.get("include_methodology", True),
            redact_fields=config.logging.redact_fields,
        )
        progress.update(task, completed=True)

    health = result.team_health
    summary = result.risk_analysis.summary

    console.print(f"\n[bold]Health score:[/bold] {health.health_score}/100")
    console.print(
        f"[bold]Members:[/bold] {health.total_members} ({health.active_members} active), "
        f"{summary.isolated} isolated ({summary.isolation_rate}%)"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Risk")
    table.add_column("Members", justify="right")
    for tier in ("high", "medium", "low"):
        style = RISK_STYLES[tier]
        table.add_row(f"[{style}]{tier}[/{style}]", str(health.isolation_risks.get(tier, 0)))
    console.print(table)

    if result.risk_analysis.critical_insights:
        console.print("\n[bold]Critical Insights:[/bold]")
        for insight in result.risk_analysis.critical_insights:
            marker = "[yellow]![/yellow]" if insight.action_required else "[green]✓[/green]"
            console.print(f"  {marker} {insight.message}")

    if result.risk_analysis.recommendations:
        console.print("\n[bold]Recommendations:[/bold]")
        for rec in result.risk_analysis.recommendations:
            console.print(f"  • [{rec.priority.value}] {rec.message}")

    for error in result.errors:
        color = "yellow" if error.severity.value == "warning" else "red"
        console.print(f"  [{color}]{error.severity.value}[/{color}] {error.source}: {error.message}")

    console.print("\n[bold]Reports Generated:[/bold]")
    for report_type, files in output_files.items():
        for fmt, path in files.items():
            console.print(f"  • {report_type}.{fmt}: [cyan]{path}[/cyan]")

    console.print()


@cli.command()
@click.option(
    "--input", "-i",
    "input_path",
    required=True,
    type=click.Path(exists=True, file_okay=True, dir_okay=True),
    help="Observation file or directory of JSON/CSV files",
)
@click.pass_context
def stats(ctx: click.Context, input_path: str) -> None:
    """Show quick statistics about observation files."""
    from team_health.pipeline.fetch import AdapterFetchError
    from team_health.pipeline.ingest import discover_file_adapters

    console.print("\n[bold blue]Observation Statistics[/bold blue]")
    console.print("=" * 50)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("File")
    table.add_column("Observations", justify="right")
    table.add_column("With email", justify="right")

    person_keys: set[str] = set()
    total = 0

    for adapter in discover_file_adapters(input_path):
        try:
            observations = adapter.load()
        except AdapterFetchError as e:
            table.add_row(adapter.source_id, adapter.path.name, "[red]error[/red]", e.message)
            continue

        total += len(observations)
        person_keys.update(o.person_key for o in observations)
        table.add_row(
            adapter.source_id,
            adapter.path.name,
            str(len(observations)),
            str(sum(1 for o in observations if o.email)),
        )

    console.print(table)
    console.print(f"\n[bold]Observations:[/bold] {total}")
    console.print(f"[bold]Distinct people:[/bold] {len(person_keys)}")
    console.print()


@cli.command()
@click.option(
    "--org",
    "organization_id",
    default=None,
    help="Organization id (lists stored organizations when omitted)",
)
@click.pass_context
def snapshot(ctx: click.Context, organization_id: Optional[str]) -> None:
    """Show the latest stored snapshot."""
    from team_health.utils.cache import SnapshotStore

    config = ctx.obj["config"]
    store = SnapshotStore(
        cache_path=config.cache.path,
        ttl_days=config.cache.ttl_days,
        max_size_mb=config.cache.max_size_mb,
        enabled=config.cache.enabled,
    )

    try:
        if organization_id is None:
            organizations = store.organizations()
            if not organizations:
                console.print("[dim]No stored snapshots[/dim]")
            for org in organizations:
                console.print(f"  • {org}")
            return

        entry = store.load(organization_id)
        if entry is None:
            console.print(f"[yellow]No snapshot stored for {organization_id}[/yellow]")
            sys.exit(1)

        table = Table(show_header=False)
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")
        table.add_row("Stored at", entry.stored_at.strftime("%Y-%m-%d %H:%M"))
        table.add_row("Health score", str(entry.snapshot.health_score))
        table.add_row("Members", str(entry.snapshot.total_members))
        table.add_row("Active", str(entry.snapshot.active_members))
        table.add_row("Isolated", str(entry.summary.isolated))
        table.add_row("Source errors", str(entry.error_count))
        console.print(table)
    finally:
        store.close()


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    from team_health import __version__

    console.print(f"Team Health Intelligence v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
