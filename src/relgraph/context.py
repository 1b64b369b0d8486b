"""State shared by the analyzers during one run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from relgraph.config import Settings
    from relgraph.inspection import SchemaInspector
    from relgraph.naming import NamingConventions


@dataclass(frozen=True)
class AnalysisContext:
    """Inspector, settings and the table universe of a run.

    ``tables`` is computed once, before any table is analyzed, and holds every
    table that may take part in a relationship.
    """

    inspector: SchemaInspector
    settings: Settings
    tables: frozenset[str]

    @classmethod
    def create(
        cls,
        inspector: SchemaInspector,
        settings: Settings,
        excluded_tables: Iterable[str] = (),
    ) -> AnalysisContext:
        """Build a context, excluding configured and explicitly passed tables."""
        excluded = settings.excluded_tables | frozenset(excluded_tables)
        return cls(inspector, settings, inspector.list_tables() - excluded)

    @property
    def naming(self) -> NamingConventions:
        """Method-name conventions of the run."""
        return self.settings.naming

    def includes(self, table_name: str) -> bool:
        """Check whether a table takes part in the analysis."""
        return table_name in self.tables

    def others(self, table_name: str) -> list[str]:
        """Return every other analyzed table, in name order."""
        return sorted(self.tables - {table_name})

    def soft_deletes(self, table_name: str) -> bool:
        """Check whether a table carries the soft-delete marker column."""
        return self.inspector.has_column(table_name, self.settings.soft_delete_column)
