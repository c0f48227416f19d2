"""Command Line Interface for the Ontop-Health record reconciler.

This module provides a CLI using Typer for searching, merging and exporting
patient records gathered from the four data sources. Each command builds a
fresh session: it loads the initial dataset, applies any per-source imports,
then runs the requested operation.

Examples:
    ontop search --name doe --start-date 2024-03-01 --end-date 2024-03-07
    ontop search -i AMD=amd_new.json --platform AMD --csv results.csv
    ontop merge -s eCW:1 -s AMD:2 --output oonTop.json
    ontop export --gender female
"""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ontop import __version__
from ontop.domain.enums import ALL_PLATFORMS, SourceName
from ontop.domain.patient_record import PatientRecord
from ontop.domain.services import PartitionedResult, SearchCriteria
from ontop.infrastructure.logging_config import setup_logging
from ontop.infrastructure.settings import settings
from ontop.session import ReconciliationSession

logger = logging.getLogger(__name__)

# Initialize Typer app and Rich console
app = typer.Typer(
    name="ontop",
    help="Ontop-Health: reconcile patient records across eCW, AMD, Quest and Behavidance",
    add_completion=False
)
console = Console()

PLATFORM_CHOICES = [ALL_PLATFORMS] + [source.value for source in SourceName]


def _fail(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")
    raise typer.Exit(code=1)


def _split_pair(value: str, separator: str, option: str) -> tuple[str, str]:
    left, sep, right = value.partition(separator)
    if not sep or not left.strip() or not right.strip():
        _fail(f"{option} expects SOURCE{separator}VALUE, got '{value}'")
    return left.strip(), right.strip()


def build_session(dataset: Optional[Path], imports: Optional[List[str]], no_dataset: bool = False) -> ReconciliationSession:
    """Create a session, load the dataset and apply ``SOURCE=PATH`` imports.

    A missing or broken dataset is reported as a warning; the session carries
    on with empty sources. A failed import aborts the command.
    """
    try:
        session = ReconciliationSession.from_config(settings.engine_config)
    except ValueError as e:
        _fail(f"Invalid configuration: {e}")

    dataset_path = dataset or settings.engine_config.dataset_path
    if dataset_path and not no_dataset:
        loaded = session.load_dataset(dataset_path)
        if loaded.is_success():
            total = sum(loaded.value.values())
            console.print(f"[dim]Loaded {total} record(s) from {dataset_path}[/dim]")
        else:
            console.print(f"[yellow]⚠[/yellow] Could not load dataset: {loaded.error}")

    for entry in imports or []:
        source, path = _split_pair(entry, "=", "--import")
        imported = session.import_file(source, path)
        if imported.is_failure():
            _fail(f"Failed to import {path} for {source}: {imported.error}")
        console.print(f"[green]✓[/green] {source}: {imported.value} new record(s) from {path}")

    counts = session.store.counts()
    console.print("[dim]Sources: " + ", ".join(f"{name}={count}" for name, count in counts.items()) + "[/dim]")
    return session


def _criteria(name, dob, gender, zip_code, platform, start_date, end_date) -> SearchCriteria:
    return SearchCriteria(
        name=name or "",
        dob=dob or "",
        gender=gender or "",
        zip=zip_code or "",
        platform=platform or ALL_PLATFORMS,
        start_date=start_date or "",
        end_date=end_date or "",
    )


def print_results(result: PartitionedResult) -> None:
    """Print one table per source bucket."""
    for source in SourceName:
        records = result.buckets[source]
        table = Table(title=f"{source.value} ({len(records)})", show_header=True, header_style="bold")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("DOB")
        table.add_column("Gender")
        table.add_column("Zip Code")
        table.add_column("Providers")
        table.add_column("Treatment Date")
        for record in records:
            table.add_row(
                record.identifier,
                record.name,
                record.date_of_birth,
                record.gender,
                record.zip_code,
                record.providers,
                record.treatment_date,
            )
        console.print(table)


def print_composite(record: PatientRecord) -> None:
    table = Table(title="Ontop-Health", show_header=False, box=None, padding=(0, 2))
    table.add_row("Patient ID:", record.identifier)
    table.add_row("Patient Name:", record.name)
    table.add_row("Providers:", record.providers)
    table.add_row("Provider URLs:", record.provider_url)
    table.add_row("Patient New ID:", f"[bold]{record.composite_identifier}[/bold]")
    console.print(table)


# Shared option declarations
DatasetOption = typer.Option(None, "--dataset", "-d", help="Initial dataset (JSON object keyed by source)")
NoDatasetOption = typer.Option(False, "--no-dataset", help="Start with empty sources")
ImportOption = typer.Option(None, "--import", "-i", help="Per-source import as SOURCE=PATH (repeatable)")
NameOption = typer.Option(None, "--name", help="Name contains (case-insensitive)")
DobOption = typer.Option(None, "--dob", help="Date of birth (YYYY-MM-DD)")
GenderOption = typer.Option(None, "--gender", help="Gender (case-insensitive exact)")
ZipOption = typer.Option(None, "--zip", help="Zip code contains")
PlatformOption = typer.Option(ALL_PLATFORMS, "--platform", "-p", help=f"One of {', '.join(PLATFORM_CHOICES)}")
StartOption = typer.Option(None, "--start-date", help="Treatment date from (YYYY-MM-DD)")
EndOption = typer.Option(None, "--end-date", help="Treatment date to (YYYY-MM-DD)")


@app.command()
def search(
    dataset: Optional[Path] = DatasetOption,
    no_dataset: bool = NoDatasetOption,
    imports: Optional[List[str]] = ImportOption,
    name: Optional[str] = NameOption,
    dob: Optional[str] = DobOption,
    gender: Optional[str] = GenderOption,
    zip_code: Optional[str] = ZipOption,
    platform: str = PlatformOption,
    start_date: Optional[str] = StartOption,
    end_date: Optional[str] = EndOption,
    csv_output: Optional[Path] = typer.Option(None, "--csv", help="Also write matches as CSV"),
    json_output: Optional[Path] = typer.Option(None, "--json", help="Also write matches as four-bucket JSON"),
) -> None:
    """Search records across all sources and show them grouped by source."""
    session = build_session(dataset, imports, no_dataset)
    result = session.search(_criteria(name, dob, gender, zip_code, platform, start_date, end_date))
    print_results(result)
    console.print(f"\n[bold]{result.total}[/bold] match(es)")

    if csv_output:
        written = session.export_csv(csv_output)
        if written.is_failure():
            _fail(written.error)
        console.print(f"[green]✓[/green] CSV written: {written.value}")
    if json_output:
        written = session.export_results_json(json_output)
        if written.is_failure():
            _fail(written.error)
        console.print(f"[green]✓[/green] JSON written: {written.value}")


@app.command()
def merge(
    selections: List[str] = typer.Option(..., "--select", "-s", help="Record to merge as SOURCE:ID (repeatable, order kept)"),
    dataset: Optional[Path] = DatasetOption,
    no_dataset: bool = NoDatasetOption,
    imports: Optional[List[str]] = ImportOption,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the composite as JSON"),
    csv_output: Optional[Path] = typer.Option(None, "--csv", help="Save the composite as CSV"),
) -> None:
    """Merge selected records into one composite record."""
    session = build_session(dataset, imports, no_dataset)

    for entry in selections:
        source, identifier = _split_pair(entry, ":", "--select")
        if session.is_selected(source, identifier):
            console.print(f"[yellow]⚠[/yellow] {entry} listed twice; deselected")
        selected = session.select(source, identifier)
        if selected.is_failure():
            _fail(selected.error)

    merged = session.merge()
    if merged.is_failure():
        _fail(merged.error)
    if merged.value is None:
        console.print(merged.message)
        return

    print_composite(merged.value)

    if output:
        saved = session.save_composite(output)
        if saved.is_failure():
            _fail(saved.error)
        console.print(f"[green]✓[/green] Composite saved: {saved.value}")
    if csv_output:
        written = session.export_csv(csv_output)
        if written.is_failure():
            _fail(written.error)
        console.print(f"[green]✓[/green] CSV written: {written.value}")


@app.command()
def export(
    dataset: Optional[Path] = DatasetOption,
    no_dataset: bool = NoDatasetOption,
    imports: Optional[List[str]] = ImportOption,
    name: Optional[str] = NameOption,
    dob: Optional[str] = DobOption,
    gender: Optional[str] = GenderOption,
    zip_code: Optional[str] = ZipOption,
    platform: str = PlatformOption,
    start_date: Optional[str] = StartOption,
    end_date: Optional[str] = EndOption,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="CSV file (defaults to the configured export path)"),
) -> None:
    """Export the filtered records as CSV."""
    session = build_session(dataset, imports, no_dataset)
    session.search(_criteria(name, dob, gender, zip_code, platform, start_date, end_date))

    written = session.export_csv(output)
    if written.is_failure():
        _fail(written.error)
    console.print(f"[green]✓[/green] CSV written: {written.value}")


@app.command()
def info() -> None:
    """Display configuration."""
    config = settings.engine_config
    console.print("[bold blue]Configuration[/bold blue]\n")

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", settings.app_name)
    info_table.add_row("Dataset:", config.dataset_path or "(none)")
    info_table.add_row("Export directory:", config.export_dir)
    info_table.add_row("Composite file:", config.composite_filename)
    info_table.add_row("CSV file:", config.csv_filename)
    info_table.add_row("Platform matching:", config.platform_match.value)
    info_table.add_row("Max import size:", f"{config.max_batch_bytes / (1024 * 1024):.0f} MB")
    info_table.add_row("Log level:", settings.log_level)

    console.print(info_table)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"Ontop-Health v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Show version information"),
) -> None:
    """Ontop-Health: reconcile patient records across sources."""
    setup_logging(use_json=settings.log_json, log_level="DEBUG" if verbose else settings.log_level)


if __name__ == "__main__":
    app()
