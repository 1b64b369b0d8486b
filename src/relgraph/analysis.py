"""Relationship analysis of single tables and whole schemas."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import replace
from logging import getLogger
from pathlib import Path
from time import monotonic
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url

from relgraph.config import load_settings
from relgraph.context import AnalysisContext
from relgraph.direct import analyze_direct_references
from relgraph.graph import link_inverses, synthesize_inverses
from relgraph.inverse import analyze_inverse_collections
from relgraph.many_to_many import analyze_many_to_many
from relgraph.overrides import (
    apply_cascade_policies,
    disambiguate_method_names,
    merge_overrides,
)
from relgraph.polymorphic import analyze_polymorphic_collections, resolve_targets
from relgraph.types import PolymorphicReference, RelationshipGraph

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from sqlalchemy import Connection, Engine

    from relgraph.config import Settings
    from relgraph.inspection import SchemaInspector
    from relgraph.types import RelationshipDescriptor

logger = getLogger(__name__)

SQLITE_SUFFIXES = {".sqlite", ".db", ".sqlite3"}
# Virtual machine instructions between two deadline checks
SQLITE_PROGRESS_STEPS = 10_000


def _database_url(database: str | Path) -> str:
    if isinstance(database, str) and "://" in database:
        return database
    path = Path(database)
    suffix = path.suffix.lower()
    if suffix in SQLITE_SUFFIXES:
        return f"sqlite:///{path}"
    msg = f"Unsupported database extension: {suffix}"
    raise ValueError(msg)


def _bound_sqlite_statements(engine: Engine, timeout: float) -> None:
    """Interrupt SQLite statements that run for longer than ``timeout`` seconds.

    The sqlite3 ``timeout`` argument only bounds waiting on locks.
    """

    @event.listens_for(engine, "before_cursor_execute")
    def start_deadline(conn: Connection, *_: object) -> None:
        deadline = monotonic() + timeout
        driver_connection = conn.connection.driver_connection
        if driver_connection is not None:
            driver_connection.set_progress_handler(
                lambda: int(monotonic() > deadline),
                SQLITE_PROGRESS_STEPS,
            )


def create_engine_for_database(
    database: str | Path,
    timeout: float = 30.0,
) -> Engine:
    """Create a SQLAlchemy engine for a database URL or SQLite file.

    Args:
        database: SQLAlchemy URL, or path to a .sqlite, .db or .sqlite3 file
        timeout: Seconds a single catalog or probe query may take

    Returns:
        Configured SQLAlchemy engine with connection pooling

    Raises:
        ValueError: If a file path has an unsupported extension

    """
    url = make_url(_database_url(database))
    backend = url.get_backend_name()

    # Connection pool configuration, shared by the analysis workers
    engine_options: dict[str, Any] = {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
    }
    connect_args: dict[str, Any] = {}
    if backend == "sqlite":
        connect_args["timeout"] = timeout
        connect_args["check_same_thread"] = False
        if url.database in {None, "", ":memory:"}:
            engine_options = {}
    elif backend == "postgresql":
        connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
    elif backend == "mysql":
        connect_args["read_timeout"] = int(timeout)
    else:
        logger.debug("No query timeout support for %s engines", backend)

    engine = create_engine(url, connect_args=connect_args, **engine_options)
    if backend == "sqlite":
        _bound_sqlite_statements(engine, timeout)
    return engine


def detect_table(
    context: AnalysisContext,
    table_name: str,
) -> tuple[RelationshipDescriptor, ...]:
    """Run every analyzer against one table and reconcile with its overrides."""
    logger.debug("Analyzing %s", table_name)
    context.inspector.table(table_name)

    detected: list[RelationshipDescriptor] = [
        resolve_targets(context, descriptor)
        if isinstance(descriptor, PolymorphicReference)
        else descriptor
        for descriptor in analyze_direct_references(context, table_name)
    ]
    detected += analyze_inverse_collections(context, table_name)
    detected += analyze_many_to_many(context, table_name)
    detected += analyze_polymorphic_collections(context, table_name)

    merged = merge_overrides(detected, context.settings.overrides_for(table_name))
    relationships = disambiguate_method_names(merged, context.naming)
    logger.debug("Found %s relationships on %s", len(relationships), table_name)
    return relationships


def analyze_table(
    context: AnalysisContext,
    table_name: str,
) -> tuple[RelationshipDescriptor, ...]:
    """Detect the relationships of one table and apply its cascade policies."""
    return apply_cascade_policies(
        detect_table(context, table_name),
        context.settings.cascade_for(table_name),
    )


def analyze(
    inspector: SchemaInspector,
    table_name: str,
    settings: Settings | None = None,
) -> tuple[RelationshipDescriptor, ...]:
    """Analyze the relationships of a single table.

    An excluded table is still analyzed when asked for by name, together with
    its references to itself.
    """
    context = AnalysisContext.create(inspector, settings or load_settings())
    if not context.includes(table_name) and table_name in inspector.list_tables():
        logger.info("%s is excluded from graphs; analyzing it on its own", table_name)
        context = replace(context, tables=context.tables | {table_name})
    return analyze_table(context, table_name)


def build_graph(
    inspector: SchemaInspector,
    settings: Settings | None = None,
    excluded_tables: Iterable[str] = (),
    on_table_done: Callable[[str], None] | None = None,
) -> RelationshipGraph:
    """Analyze every table of the schema and link relationships to their inverses.

    The table list and every table snapshot are read once, up front; tables
    are then analyzed concurrently on a bounded pool of workers.

    Args:
        inspector: Catalog of the database to analyze
        settings: Analysis settings, packaged defaults when omitted
        excluded_tables: Tables skipped in addition to the configured ones
        on_table_done: Called with each table name once it has been analyzed

    Returns:
        Graph of the relationships of every analyzed table

    Raises:
        SchemaError: If introspecting any table fails

    """
    settings = settings or load_settings()
    context = AnalysisContext.create(inspector, settings, excluded_tables)
    tables = sorted(context.tables)
    inspector.preload(tables)

    relationships: dict[str, list[RelationshipDescriptor]] = {}
    with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
        futures: dict[Future[tuple[RelationshipDescriptor, ...]], str] = {
            executor.submit(detect_table, context, table_name): table_name
            for table_name in tables
        }
        try:
            for future in as_completed(futures):
                table_name = futures[future]
                relationships[table_name] = list(future.result())
                if on_table_done is not None:
                    on_table_done(table_name)
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    ordered = {table_name: relationships[table_name] for table_name in tables}
    generated = 0
    if settings.generate_inverse:
        generated = synthesize_inverses(context, ordered)
    cascaded = {
        table_name: apply_cascade_policies(
            descriptors,
            settings.cascade_for(table_name),
        )
        for table_name, descriptors in ordered.items()
    }
    linked = link_inverses(cascaded)
    logger.info(
        "Built graph of %s tables: %s relationships, %s generated inverses",
        len(linked),
        sum(len(descriptors) for descriptors in linked.values()),
        generated,
    )
    return RelationshipGraph(
        relationships=linked,
        excluded_tables=inspector.list_tables() - context.tables,
    )
