"""Inverse collections: child rows referencing the focal table."""

from __future__ import annotations

from typing import TYPE_CHECKING

from relgraph.types import CascadeAction, Cardinality, InverseCollection

if TYPE_CHECKING:
    from relgraph.context import AnalysisContext
    from relgraph.types import TableSchema


def is_unique(schema: TableSchema, columns: tuple[str, ...]) -> bool:
    """Check whether exactly these columns carry a unique index or the primary key."""
    wanted = frozenset(columns)
    return any(
        index.unique and frozenset(index.columns) == wanted for index in schema.indexes
    )


def analyze_inverse_collections(
    context: AnalysisContext,
    table_name: str,
) -> list[InverseCollection]:
    """Find foreign keys of any table, itself included, referencing the primary key."""
    primary_key = context.inspector.primary_key(table_name)
    if primary_key is None:
        return []

    collections: list[InverseCollection] = []
    for child_name in sorted(context.tables):
        child = context.inspector.table(child_name)
        for foreign_key in child.foreign_keys:
            if (
                foreign_key.referred_table != table_name
                or foreign_key.referred_columns != primary_key
            ):
                continue
            one = is_unique(child, foreign_key.local_columns)
            collections.append(
                InverseCollection(
                    local_table=table_name,
                    method_name=context.naming.inverse_collection(child_name, one=one),
                    target_table=child_name,
                    foreign_key=foreign_key.local_column,
                    related_key=foreign_key.referred_column,
                    cascade_delete=foreign_key.on_delete is CascadeAction.CASCADE,
                    cascade_update=foreign_key.on_update is CascadeAction.CASCADE,
                    cardinality=Cardinality.ONE if one else Cardinality.MANY,
                    target_soft_deletes=context.soft_deletes(child_name),
                ),
            )
    return collections
