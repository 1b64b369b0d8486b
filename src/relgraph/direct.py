"""Direct references: the focal table holds a key to one parent row."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from relgraph.polymorphic import polymorphic_stubs
from relgraph.types import DirectReference, PolymorphicReference

if TYPE_CHECKING:
    from collections.abc import Iterable

    from relgraph.context import AnalysisContext

logger = getLogger(__name__)


def merge_by_local_column(
    detected: Iterable[DirectReference],
    declared: Iterable[DirectReference],
) -> list[DirectReference]:
    """Replace detected references with declared ones on the same local column."""
    by_column = {reference.local_column: reference for reference in declared}
    return [by_column.get(reference.local_column, reference) for reference in detected]


def analyze_direct_references(
    context: AnalysisContext,
    table_name: str,
) -> list[DirectReference | PolymorphicReference]:
    """Emit one reference per foreign key plus a stub per polymorphic pair.

    Two keys to the same parent table stay two references.
    """
    schema = context.inspector.table(table_name)
    references: list[DirectReference] = []
    for foreign_key in schema.foreign_keys:
        target = foreign_key.referred_table
        if not context.includes(target):
            logger.debug(
                "Skipping %s.%s: %s is excluded",
                table_name,
                foreign_key.local_column,
                target,
            )
            continue
        column = schema.columns[foreign_key.local_column]
        references.append(
            DirectReference(
                local_table=table_name,
                method_name=context.naming.direct_reference(target),
                local_column=foreign_key.local_column,
                target_table=target,
                target_column=foreign_key.referred_column,
                required=not (column.nullable or column.has_default),
                on_delete=foreign_key.on_delete,
                on_update=foreign_key.on_update,
                target_soft_deletes=context.soft_deletes(target),
            ),
        )

    declared = [
        override
        for override in context.settings.overrides_for(table_name)
        if isinstance(override, DirectReference)
    ]
    merged: list[DirectReference | PolymorphicReference] = list(
        merge_by_local_column(references, declared),
    )
    merged.extend(polymorphic_stubs(schema, context.naming))
    return merged
