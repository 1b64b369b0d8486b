"""Polymorphic ``{name}_type``/``{name}_id`` relationships.

Analysis runs in two phases. The schema phase finds column pairs and resolves
targets from the values a CHECK constraint or enum type allows. The probe
phase, when enabled, reads the discriminator values actually stored and
matches them against the model identifiers of every other table.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from logging import getLogger
from typing import TYPE_CHECKING

from relgraph.errors import AmbiguousRelationship
from relgraph.naming import model_identifiers
from relgraph.types import (
    Cardinality,
    MorphTarget,
    PolymorphicCollection,
    PolymorphicReference,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from relgraph.context import AnalysisContext
    from relgraph.naming import NamingConventions
    from relgraph.types import Scalar, TableSchema

logger = getLogger(__name__)

TYPE_SUFFIX = "_type"
ID_SUFFIX = "_id"


@dataclass(frozen=True)
class MorphPair:
    """A discriminator column and the id column it qualifies."""

    name: str
    type_column: str
    id_column: str


def find_morph_pairs(schema: TableSchema) -> list[MorphPair]:
    """Find ``{name}_type``/``{name}_id`` pairs whose id column has no foreign key."""
    fk_columns = {
        local_column
        for foreign_key in schema.foreign_keys
        for local_column in foreign_key.local_columns
    }
    pairs: list[MorphPair] = []
    for type_column in schema.columns:
        if not type_column.endswith(TYPE_SUFFIX) or type_column == TYPE_SUFFIX:
            continue
        name = type_column.removesuffix(TYPE_SUFFIX)
        id_column = name + ID_SUFFIX
        if schema.has_column(id_column) and id_column not in fk_columns:
            pairs.append(MorphPair(name, type_column, id_column))
    return pairs


def polymorphic_stubs(
    schema: TableSchema,
    naming: NamingConventions,
) -> list[PolymorphicReference]:
    """Emit target-less references for every morph pair of a table."""
    stubs: list[PolymorphicReference] = []
    for pair in find_morph_pairs(schema):
        type_column = schema.columns[pair.type_column]
        id_column = schema.columns[pair.id_column]
        stubs.append(
            PolymorphicReference(
                local_table=schema.name,
                method_name=naming.polymorphic_reference(pair.name),
                morph_name=pair.name,
                type_column=pair.type_column,
                id_column=pair.id_column,
                required=not (type_column.nullable or id_column.nullable),
            ),
        )
    return stubs


def match_targets(
    values: Iterable[Scalar],
    candidate_tables: Iterable[str],
    namespace: str,
) -> tuple[frozenset[MorphTarget], tuple[str, ...]]:
    """Match discriminator values to tables.

    Returns the matched targets and the values no table claimed.
    """
    remaining = {str(value) for value in values if value is not None}
    targets: set[MorphTarget] = set()
    for table_name in candidate_tables:
        for identifier in model_identifiers(table_name, namespace):
            if identifier in remaining:
                targets.add(MorphTarget(table_name, identifier))
                remaining.discard(identifier)
    return frozenset(targets), tuple(sorted(remaining))


def _probe_targets(
    context: AnalysisContext,
    reference: PolymorphicReference,
    candidate_tables: list[str],
) -> tuple[frozenset[MorphTarget], tuple[str, ...]]:
    inspector = context.inspector
    limit = context.settings.distinct_limit
    namespace = context.settings.model_namespace
    values = inspector.distinct_values(
        reference.local_table,
        reference.type_column,
        limit,
    )
    if len(values) < limit:
        return match_targets(values, candidate_tables, namespace)

    logger.debug(
        "%s.%s has at least %s distinct values; probing per table",
        reference.local_table,
        reference.type_column,
        limit,
    )
    targets: set[MorphTarget] = set()
    for table_name in candidate_tables:
        for identifier in model_identifiers(table_name, namespace):
            if inspector.has_value(
                reference.local_table,
                reference.type_column,
                identifier,
            ):
                targets.add(MorphTarget(table_name, identifier))
    return frozenset(targets), ()


def resolve_targets(
    context: AnalysisContext,
    reference: PolymorphicReference,
) -> PolymorphicReference:
    """Resolve the concrete tables a polymorphic reference may point to.

    Unresolved or partially resolved references carry an
    ``AmbiguousRelationship`` instead of being dropped.
    """
    candidate_tables = context.others(reference.local_table)
    namespace = context.settings.model_namespace

    allowed = context.inspector.enum_values(
        reference.local_table,
        reference.type_column,
    )
    if allowed:
        targets, unmatched = match_targets(allowed, candidate_tables, namespace)
    elif context.settings.probe:
        targets, unmatched = _probe_targets(context, reference, candidate_tables)
    else:
        targets, unmatched = frozenset(), ()

    ambiguity = None
    if not targets:
        reason = (
            f"No table matches the values of {reference.type_column}"
            if allowed or context.settings.probe
            else f"Values of {reference.type_column} were not probed"
        )
        ambiguity = AmbiguousRelationship(reason, unmatched)
        logger.warning(
            "Unresolved polymorphic reference %s: %s",
            reference.key,
            reason,
        )
    elif unmatched:
        ambiguity = AmbiguousRelationship(
            f"Some values of {reference.type_column} match no table",
            unmatched,
        )
    return replace(reference, resolved_targets=targets, ambiguity=ambiguity)


def _discriminator_for(
    context: AnalysisContext,
    table_name: str,
    other: TableSchema,
    pair: MorphPair,
) -> str | None:
    identifiers = model_identifiers(table_name, context.settings.model_namespace)
    allowed = other.columns[pair.type_column].enum_values
    if allowed:
        return next((value for value in identifiers if value in allowed), None)
    if not context.settings.probe:
        return None
    return next(
        (
            value
            for value in identifiers
            if context.inspector.has_value(other.name, pair.type_column, value)
        ),
        None,
    )


def analyze_polymorphic_collections(
    context: AnalysisContext,
    table_name: str,
) -> list[PolymorphicCollection]:
    """Find tables whose morph pairs identify rows of ``table_name``."""
    collections: list[PolymorphicCollection] = []
    for other_name in context.others(table_name):
        other = context.inspector.table(other_name)
        for pair in find_morph_pairs(other):
            discriminator = _discriminator_for(context, table_name, other, pair)
            if discriminator is None:
                continue
            one = context.inspector.has_unique_constraint(
                other_name,
                (pair.type_column, pair.id_column),
            )
            collections.append(
                PolymorphicCollection(
                    local_table=table_name,
                    method_name=context.naming.polymorphic_collection(
                        other_name,
                        one=one,
                    ),
                    target_table=other_name,
                    morph_name=pair.name,
                    type_column=pair.type_column,
                    id_column=pair.id_column,
                    discriminator_value=discriminator,
                    cardinality=Cardinality.ONE if one else Cardinality.MANY,
                ),
            )
    return collections
