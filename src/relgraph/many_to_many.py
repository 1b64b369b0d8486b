"""Many-to-many relationships through junction tables."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from relgraph.naming import junction_patterns
from relgraph.types import ManyToMany

if TYPE_CHECKING:
    from collections.abc import Iterable

    from relgraph.config import Settings
    from relgraph.context import AnalysisContext
    from relgraph.types import ForeignKey, TableSchema

logger = getLogger(__name__)


@dataclass(frozen=True)
class PivotAttributes:
    """What a junction table stores besides its two keys."""

    extra_attributes: tuple[str, ...]
    has_timestamps: bool
    has_soft_delete: bool


def pivot_attributes(
    junction: TableSchema,
    key_columns: Iterable[str],
    settings: Settings,
) -> PivotAttributes:
    """Split junction columns into keys, bookkeeping columns and extra attributes."""
    created_at, updated_at = settings.timestamp_columns
    has_timestamps = junction.has_column(created_at) and junction.has_column(updated_at)
    has_soft_delete = junction.has_column(settings.soft_delete_column)

    skipped = set(key_columns) | {settings.soft_delete_column}
    if has_timestamps:
        skipped |= {created_at, updated_at}
    return PivotAttributes(
        extra_attributes=tuple(
            name for name in junction.columns if name not in skipped
        ),
        has_timestamps=has_timestamps,
        has_soft_delete=has_soft_delete,
    )


def _relationship(
    context: AnalysisContext,
    junction: TableSchema,
    local_key: ForeignKey,
    target_key: ForeignKey,
    method_name: str,
) -> ManyToMany:
    table_name = local_key.referred_table
    target = target_key.referred_table
    pivot = pivot_attributes(
        junction,
        (local_key.local_column, target_key.local_column),
        context.settings,
    )
    return ManyToMany(
        local_table=table_name,
        method_name=method_name,
        target_table=target,
        junction_table=junction.name,
        junction_local_key=local_key.local_column,
        junction_target_key=target_key.local_column,
        local_key=local_key.referred_column,
        target_key=target_key.referred_column,
        extra_attributes=pivot.extra_attributes,
        has_timestamps=pivot.has_timestamps,
        has_soft_delete=pivot.has_soft_delete,
        by_naming_convention=junction.name in junction_patterns(table_name, target),
    )


def analyze_many_to_many(
    context: AnalysisContext,
    table_name: str,
) -> list[ManyToMany]:
    """Find junction tables joining ``table_name`` to other tables.

    A table with at least two foreign keys, exactly one of which points to the
    focal table, joins it to the target of every other key. A table with
    exactly two keys, both pointing to the focal table, joins it to itself in
    both directions. Junction naming conventions are recorded, not enforced.
    """
    naming = context.naming
    relationships: list[ManyToMany] = []
    for candidate in context.others(table_name):
        junction = context.inspector.table(candidate)
        foreign_keys = junction.foreign_keys
        if len(foreign_keys) < 2:  # noqa: PLR2004
            continue
        to_focal = [fk for fk in foreign_keys if fk.referred_table == table_name]

        if len(to_focal) == 1:
            local_key = to_focal[0]
            for target_key in foreign_keys:
                if target_key is local_key:
                    continue
                target = target_key.referred_table
                if not context.includes(target):
                    logger.debug("Skipping %s via %s: excluded", target, candidate)
                    continue
                relationships.append(
                    _relationship(
                        context,
                        junction,
                        local_key,
                        target_key,
                        naming.many_to_many(target),
                    ),
                )
        elif len(to_focal) == len(foreign_keys) == 2:  # noqa: PLR2004
            first, second = to_focal
            for local_key, target_key in ((first, second), (second, first)):
                stem = target_key.local_column.removesuffix("_id")
                relationships.append(
                    _relationship(
                        context,
                        junction,
                        local_key,
                        target_key,
                        naming.many_to_many(stem),
                    ),
                )
    return relationships
