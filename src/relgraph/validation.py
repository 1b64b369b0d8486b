"""Structural checks of relationship descriptors against the live schema."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from relgraph.types import (
    DirectReference,
    InverseCollection,
    ManyToMany,
    PolymorphicCollection,
    PolymorphicReference,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from relgraph.inspection import SchemaInspector
    from relgraph.types import RelationshipDescriptor, RelationshipGraph

logger = getLogger(__name__)


class _Checker:
    """Collects problems for one descriptor."""

    def __init__(
        self,
        inspector: SchemaInspector,
        descriptor: RelationshipDescriptor,
    ) -> None:
        self.inspector = inspector
        self.descriptor = descriptor
        self.tables = inspector.list_tables()
        self.problems: list[str] = []

    def report(self, problem: str) -> None:
        self.problems.append(f"{self.descriptor.key}: {problem}")

    def table(self, table_name: str) -> bool:
        if table_name in self.tables:
            return True
        self.report(f"table '{table_name}' does not exist")
        return False

    def column(self, table_name: str, column_name: str) -> None:
        if not self.inspector.has_column(table_name, column_name):
            self.report(f"column '{column_name}' does not exist on '{table_name}'")

    def junction_key(self, junction: str, column_name: str, target: str) -> None:
        if not any(
            foreign_key.local_column == column_name
            and foreign_key.referred_table == target
            for foreign_key in self.inspector.foreign_keys(junction)
        ):
            self.report(
                f"junction '{junction}' has no foreign key {column_name} -> {target}",
            )


def validate_descriptor(
    inspector: SchemaInspector,
    descriptor: RelationshipDescriptor,
) -> list[str]:
    """Return readable problems with one descriptor; empty when it is sound."""
    check = _Checker(inspector, descriptor)
    if not check.table(descriptor.local_table):
        return check.problems

    match descriptor:
        case DirectReference():
            check.column(descriptor.local_table, descriptor.local_column)
            if check.table(descriptor.target_table):
                check.column(descriptor.target_table, descriptor.target_column)
        case InverseCollection():
            check.column(descriptor.local_table, descriptor.related_key)
            if check.table(descriptor.target_table):
                check.column(descriptor.target_table, descriptor.foreign_key)
        case ManyToMany():
            check.column(descriptor.local_table, descriptor.local_key)
            if check.table(descriptor.target_table):
                check.column(descriptor.target_table, descriptor.target_key)
            if check.table(descriptor.junction_table):
                junction = descriptor.junction_table
                check.column(junction, descriptor.junction_local_key)
                check.column(junction, descriptor.junction_target_key)
                check.junction_key(
                    junction,
                    descriptor.junction_local_key,
                    descriptor.local_table,
                )
                check.junction_key(
                    junction,
                    descriptor.junction_target_key,
                    descriptor.target_table,
                )
        case PolymorphicReference():
            check.column(descriptor.local_table, descriptor.type_column)
            check.column(descriptor.local_table, descriptor.id_column)
            for target in sorted(descriptor.target_tables):
                check.table(target)
        case PolymorphicCollection():
            if check.table(descriptor.target_table):
                check.column(descriptor.target_table, descriptor.type_column)
                check.column(descriptor.target_table, descriptor.id_column)
    return check.problems


def validate_relationships(
    inspector: SchemaInspector,
    descriptors: Iterable[RelationshipDescriptor],
) -> list[str]:
    """Validate several descriptors, returning every problem found."""
    problems: list[str] = []
    for descriptor in descriptors:
        problems.extend(validate_descriptor(inspector, descriptor))
    return problems


def validate_graph(graph: RelationshipGraph, inspector: SchemaInspector) -> list[str]:
    """Validate every descriptor of a graph against the schema it was built from.

    Also reports inverse links that point at no descriptor of the graph.
    """
    problems = validate_relationships(inspector, graph.descriptors())
    for descriptor in graph.descriptors():
        if descriptor.inverse is not None and graph.lookup(descriptor.inverse) is None:
            problems.append(
                f"{descriptor.key}: inverse '{descriptor.inverse}' is not in the graph",
            )
    if problems:
        logger.warning("Found %s relationship problems", len(problems))
    return problems
