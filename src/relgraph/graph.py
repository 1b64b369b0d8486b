"""Whole-schema relationship graph: inverse links and cycle detection."""

from __future__ import annotations

from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING

import networkx as nx

from relgraph.inverse import is_unique
from relgraph.overrides import disambiguate_method_names
from relgraph.types import (
    CascadeAction,
    Cardinality,
    DirectReference,
    InverseCollection,
    ManyToMany,
    MorphTarget,
    PolymorphicCollection,
    PolymorphicReference,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from relgraph.context import AnalysisContext
    from relgraph.types import Cycle, RelationshipDescriptor, RelationshipGraph

logger = getLogger(__name__)

type TableRelationships = dict[str, list[RelationshipDescriptor]]


def is_counterpart(
    descriptor: RelationshipDescriptor,
    candidate: RelationshipDescriptor,
) -> bool:
    """Check whether ``candidate`` is the other side of ``descriptor``."""
    match descriptor, candidate:
        case DirectReference(), InverseCollection():
            return (
                candidate.local_table == descriptor.target_table
                and candidate.target_table == descriptor.local_table
                and candidate.foreign_key == descriptor.local_column
            )
        case InverseCollection(), DirectReference():
            return is_counterpart(candidate, descriptor)
        case ManyToMany(), ManyToMany():
            return (
                candidate.local_table == descriptor.target_table
                and candidate.target_table == descriptor.local_table
                and candidate.junction_table == descriptor.junction_table
                and candidate.junction_local_key == descriptor.junction_target_key
                and candidate.junction_target_key == descriptor.junction_local_key
            )
        case PolymorphicReference(), PolymorphicCollection():
            return (
                candidate.target_table == descriptor.local_table
                and candidate.morph_name == descriptor.morph_name
                and candidate.local_table in descriptor.target_tables
            )
        case PolymorphicCollection(), PolymorphicReference():
            return (
                candidate.local_table == descriptor.target_table
                and candidate.morph_name == descriptor.morph_name
            )
        case _:
            return False


def _candidate_tables(descriptor: RelationshipDescriptor) -> list[str]:
    match descriptor:
        case PolymorphicReference():
            return sorted(descriptor.target_tables)
        case _:
            return [descriptor.related_table] if descriptor.related_table else []


def find_counterpart(
    relationships: Mapping[str, Iterable[RelationshipDescriptor]],
    descriptor: RelationshipDescriptor,
) -> RelationshipDescriptor | None:
    """Find the other side of a descriptor, first table in name order winning."""
    for table_name in _candidate_tables(descriptor):
        for candidate in relationships.get(table_name, ()):
            if is_counterpart(descriptor, candidate):
                return candidate
    return None


def _synthesize(
    context: AnalysisContext,
    descriptor: RelationshipDescriptor,
    table_name: str,
) -> RelationshipDescriptor | None:
    """Build the missing counterpart of ``descriptor`` on ``table_name``."""
    naming = context.naming
    inspector = context.inspector
    match descriptor:
        case DirectReference():
            one = is_unique(
                inspector.table(descriptor.local_table),
                (descriptor.local_column,),
            )
            return InverseCollection(
                local_table=table_name,
                method_name=naming.inverse_collection(descriptor.local_table, one=one),
                target_table=descriptor.local_table,
                foreign_key=descriptor.local_column,
                related_key=descriptor.target_column,
                cascade_delete=descriptor.on_delete is CascadeAction.CASCADE,
                cascade_update=descriptor.on_update is CascadeAction.CASCADE,
                cardinality=Cardinality.ONE if one else Cardinality.MANY,
                target_soft_deletes=context.soft_deletes(descriptor.local_table),
            )
        case InverseCollection():
            columns = inspector.columns(table_name)
            column = columns.get(descriptor.foreign_key)
            return DirectReference(
                local_table=table_name,
                method_name=naming.direct_reference(descriptor.local_table),
                local_column=descriptor.foreign_key,
                target_table=descriptor.local_table,
                target_column=descriptor.related_key,
                required=column is not None
                and not (column.nullable or column.has_default),
                on_delete=CascadeAction.CASCADE
                if descriptor.cascade_delete
                else CascadeAction.NONE,
                on_update=CascadeAction.CASCADE
                if descriptor.cascade_update
                else CascadeAction.NONE,
                target_soft_deletes=context.soft_deletes(descriptor.local_table),
            )
        case ManyToMany():
            return replace(
                descriptor,
                local_table=table_name,
                method_name=naming.many_to_many(descriptor.local_table),
                target_table=descriptor.local_table,
                junction_local_key=descriptor.junction_target_key,
                junction_target_key=descriptor.junction_local_key,
                local_key=descriptor.target_key,
                target_key=descriptor.local_key,
                is_custom=False,
                inverse=None,
            )
        case PolymorphicReference():
            target = next(
                target
                for target in descriptor.resolved_targets
                if target.table == table_name
            )
            one = inspector.has_unique_constraint(
                descriptor.local_table,
                (descriptor.type_column, descriptor.id_column),
            )
            return PolymorphicCollection(
                local_table=table_name,
                method_name=naming.polymorphic_collection(
                    descriptor.local_table,
                    one=one,
                ),
                target_table=descriptor.local_table,
                morph_name=descriptor.morph_name,
                type_column=descriptor.type_column,
                id_column=descriptor.id_column,
                discriminator_value=target.discriminator_value,
                cardinality=Cardinality.ONE if one else Cardinality.MANY,
            )
        case PolymorphicCollection():
            return PolymorphicReference(
                local_table=table_name,
                method_name=naming.polymorphic_reference(descriptor.morph_name),
                morph_name=descriptor.morph_name,
                type_column=descriptor.type_column,
                id_column=descriptor.id_column,
                resolved_targets=frozenset(
                    {
                        MorphTarget(
                            descriptor.local_table,
                            descriptor.discriminator_value,
                        ),
                    },
                ),
            )
    return None


def synthesize_inverses(
    context: AnalysisContext,
    relationships: TableRelationships,
) -> int:
    """Add missing counterparts to the tables of the graph, in place.

    Returns the number of descriptors added.
    """
    added = 0
    for table_name in sorted(relationships):
        for descriptor in list(relationships[table_name]):
            for other in _candidate_tables(descriptor):
                if other not in relationships:
                    continue
                if any(
                    is_counterpart(descriptor, candidate)
                    for candidate in relationships[other]
                ):
                    continue
                counterpart = _synthesize(context, descriptor, other)
                if counterpart is None:
                    continue
                logger.debug(
                    "Generated inverse %s of %s",
                    counterpart.key,
                    descriptor.key,
                )
                relationships[other].append(counterpart)
                added += 1
    for table_name, descriptors in relationships.items():
        relationships[table_name] = list(
            disambiguate_method_names(descriptors, context.naming),
        )
    return added


def link_inverses(
    relationships: Mapping[str, Iterable[RelationshipDescriptor]],
) -> dict[str, tuple[RelationshipDescriptor, ...]]:
    """Point every descriptor at its counterpart, when the graph holds one."""
    snapshot = {table: tuple(items) for table, items in relationships.items()}
    linked: dict[str, tuple[RelationshipDescriptor, ...]] = {}
    for table_name, descriptors in snapshot.items():
        resolved: list[RelationshipDescriptor] = []
        for descriptor in descriptors:
            counterpart = find_counterpart(snapshot, descriptor)
            resolved.append(
                replace(
                    descriptor,
                    inverse=counterpart.key if counterpart is not None else None,
                ),
            )
        linked[table_name] = tuple(resolved)
    return linked


def reference_edges(graph: RelationshipGraph) -> nx.DiGraph[str]:
    """Build the directed graph of direct references between tables of the graph."""
    edges: nx.DiGraph[str] = nx.DiGraph()
    edges.add_nodes_from(graph)
    for descriptor in graph.descriptors():
        if isinstance(descriptor, DirectReference) and descriptor.target_table in graph:
            edges.add_edge(
                descriptor.local_table,
                descriptor.target_table,
                column=descriptor.local_column,
            )
    return edges


def _rotate(cycle: list[str]) -> Cycle:
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])


def detect_cycles(graph: RelationshipGraph) -> list[Cycle]:
    """Find every elementary cycle of direct references.

    Each cycle is reported once, starting at its smallest table name. A table
    referencing itself is a cycle of length one.
    """
    return sorted(_rotate(cycle) for cycle in nx.simple_cycles(reference_edges(graph)))
