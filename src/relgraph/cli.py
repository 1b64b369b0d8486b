"""Command line interface for relgraph."""

import logging
import sys
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path
from typing import Literal

from cyclopts import App
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
)
from rich.table import Table

from relgraph.analysis import analyze as analyze_table
from relgraph.analysis import build_graph, create_engine_for_database
from relgraph.config import Settings, load_settings
from relgraph.errors import SchemaError
from relgraph.graph import detect_cycles
from relgraph.inspection import SchemaInspector
from relgraph.reporting import (
    RelationshipReport,
    describe,
    related,
    report_to_json,
    report_to_markdown,
)
from relgraph.types import RelationshipDescriptor, RelationshipGraph
from relgraph.validation import validate_graph

app = App(help="Infer ORM relationships from a database schema")

type Format = Literal["table", "json", "markdown"]

console = Console()
err_console = Console(stderr=True)

SQLITE_EXTENSIONS = {".sqlite", ".db", ".sqlite3"}


def print_error(message: str) -> None:
    """Print error message to stderr."""
    err_console.print(f"[bold red]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print success message to stderr."""
    err_console.print(f"[bold green]✓[/] {message}")


def print_info(message: str) -> None:
    """Print info message to stderr."""
    err_console.print(f"[bold blue]i[/] {message}")


def print_warning(message: str) -> None:
    """Print warning message to stderr."""
    err_console.print(f"[bold yellow]![/] {message}")


def configure_logging(*, verbose: bool) -> None:
    """Send log records to stderr through rich when verbose output is requested."""
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def validate_database(database: str) -> None:
    """Validate a database argument that is a file path rather than a URL."""
    if "://" in database:
        return
    location = Path(database)
    if not location.exists():
        print_error(f"Database file does not exist: {location}")
        sys.exit(1)
    if location.suffix.lower() not in SQLITE_EXTENSIONS:
        print_error(
            f"Database file has invalid extension: {', '.join(SQLITE_EXTENSIONS)}",
        )
        sys.exit(1)


def read_settings(
    config: Path | None,
    *,
    probe: bool = True,
    workers: int | None = None,
) -> Settings:
    """Load settings and apply command line overrides."""
    if config is not None and not config.exists():
        print_error(f"Configuration file does not exist: {config}")
        sys.exit(1)
    try:
        settings = load_settings(config)
    except (OSError, ValueError) as e:
        print_error(f"Invalid configuration: {e}")
        sys.exit(1)
    settings = replace(settings, probe=settings.probe and probe)
    if workers is not None:
        if workers < 1:
            print_error(f"Workers must be at least 1, got {workers}")
            sys.exit(1)
        settings = replace(settings, max_workers=workers)
    return settings


def open_inspector(database: str, settings: Settings) -> SchemaInspector:
    """Connect to a database and wrap it in a schema inspector."""
    try:
        engine = create_engine_for_database(database, timeout=settings.query_timeout)
    except ValueError as e:
        print_error(f"Failed to connect to database: {e}")
        sys.exit(1)
    return SchemaInspector(engine)


def load_graph(
    inspector: SchemaInspector,
    settings: Settings,
    exclude: Iterable[str] = (),
) -> RelationshipGraph:
    """Build the relationship graph with a progress display."""
    tables = inspector.list_tables() - settings.excluded_tables - set(exclude)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=err_console,
    ) as progress:
        task = progress.add_task("Analyzing tables...", total=len(tables))
        return build_graph(
            inspector,
            settings,
            exclude,
            on_table_done=lambda _: progress.advance(task),
        )


def format_relationship_table(
    table_name: str,
    descriptors: Iterable[RelationshipDescriptor],
) -> None:
    """Format the relationships of one table as a rich table."""
    table = Table(title=table_name, title_style="bold cyan", title_justify="left")
    table.add_column("Method", style="bold")
    table.add_column("Kind", style="magenta")
    table.add_column("Related", style="cyan")
    table.add_column("Inverse")
    table.add_column("Details")
    for descriptor in descriptors:
        table.add_row(
            descriptor.method_name + (" *" if descriptor.is_custom else ""),
            str(descriptor.kind),
            related(descriptor),
            str(descriptor.inverse or ""),
            describe(descriptor),
        )
    console.print(table)


def emit_report(report: RelationshipReport, fmt: Format, output: Path | None) -> None:
    """Write a report to stdout or a file in the requested format."""
    if fmt == "table":
        if not report.total:
            console.print("No relationships found.")
        for table_name, descriptors in report.relationships.items():
            if descriptors:
                format_relationship_table(table_name, descriptors)
        return

    if fmt == "json":
        output_text = report_to_json(report)
    else:
        output_text = report_to_markdown(report)
    if output:
        try:
            output.write_text(output_text)
        except OSError as e:
            print_error(f"Failed to write output file: {e}")
            sys.exit(1)
        print_success(f"Report written to {output}")
    else:
        sys.stdout.write(output_text)


@app.command
def analyze(
    database: str,
    table: str,
    fmt: Format = "table",
    *,
    config: Path | None = None,
    output: Path | None = None,
    probe: bool = True,
    verbose: bool = False,
) -> None:
    """Infer the relationships of a single table."""
    configure_logging(verbose=verbose)
    validate_database(database)
    settings = read_settings(config, probe=probe)
    inspector = open_inspector(database, settings)
    print_info(f"Database: {database}")
    print_info(f"Table: {table}")

    try:
        descriptors = analyze_table(inspector, table, settings)
    except SchemaError as e:
        print_error(f"Analysis failed ({e.kind}): {e}")
        sys.exit(1)

    emit_report(RelationshipReport.for_table(database, table, descriptors), fmt, output)
    print_success(f"Found {len(descriptors)} relationships on {table}")


@app.command
def graph(
    database: str,
    fmt: Format = "table",
    *,
    config: Path | None = None,
    output: Path | None = None,
    exclude: list[str] | None = None,
    workers: int | None = None,
    probe: bool = True,
    verbose: bool = False,
) -> None:
    """Infer the relationships of every table and link their inverses."""
    configure_logging(verbose=verbose)
    validate_database(database)
    settings = read_settings(config, probe=probe, workers=workers)
    inspector = open_inspector(database, settings)
    print_info(f"Database: {database}")

    try:
        relationship_graph = load_graph(inspector, settings, exclude or ())
    except SchemaError as e:
        print_error(f"Analysis failed ({e.kind}): {e}")
        sys.exit(1)

    found = detect_cycles(relationship_graph)
    for cycle in found:
        print_warning(f"Circular reference: {' -> '.join((*cycle, cycle[0]))}")
    report = RelationshipReport.from_graph(database, relationship_graph, found)
    emit_report(report, fmt, output)
    print_success(
        f"Analyzed {len(relationship_graph)} tables, "
        f"found {report.total} relationships",
    )


@app.command
def cycles(
    database: str,
    *,
    config: Path | None = None,
    verbose: bool = False,
) -> None:
    """List circular chains of direct references."""
    configure_logging(verbose=verbose)
    validate_database(database)
    settings = read_settings(config)
    inspector = open_inspector(database, settings)

    try:
        relationship_graph = load_graph(inspector, settings)
    except SchemaError as e:
        print_error(f"Analysis failed ({e.kind}): {e}")
        sys.exit(1)

    found = detect_cycles(relationship_graph)
    for cycle in found:
        sys.stdout.write(" -> ".join((*cycle, cycle[0])) + "\n")
    print_success(f"Found {len(found)} circular references")


@app.command
def validate(
    database: str,
    *,
    config: Path | None = None,
    verbose: bool = False,
) -> None:
    """Check inferred and declared relationships against the schema."""
    configure_logging(verbose=verbose)
    validate_database(database)
    settings = read_settings(config)
    inspector = open_inspector(database, settings)

    try:
        relationship_graph = load_graph(inspector, settings)
        problems = validate_graph(relationship_graph, inspector)
    except SchemaError as e:
        print_error(f"Validation failed ({e.kind}): {e}")
        sys.exit(1)

    for problem in problems:
        sys.stdout.write(problem + "\n")
    if problems:
        print_error(f"Found {len(problems)} relationship problems")
        sys.exit(1)
    print_success("All relationships are consistent with the schema")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
