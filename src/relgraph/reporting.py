"""JSON and Markdown reports of analysis results."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from relgraph.types import (
    CascadeAction,
    DirectReference,
    InverseCollection,
    ManyToMany,
    PolymorphicCollection,
    PolymorphicReference,
    RelationshipKey,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from relgraph.types import Cycle, RelationshipDescriptor, RelationshipGraph

TEMPLATE_DIR = Path(__file__).parent / "templates"

_JINJA_ENV = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(),
    trim_blocks=True,
    lstrip_blocks=True,
)


def json_default(obj: object) -> object:
    """Convert non-serializable objects for JSON encoding."""
    if isinstance(obj, set | frozenset):
        return sorted(obj, key=str) if obj else []
    if isinstance(obj, RelationshipKey):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    msg = f"Object of type {type(obj)} is not JSON serializable"
    raise TypeError(msg)


def descriptor_to_dict(descriptor: RelationshipDescriptor) -> dict[str, Any]:
    """Flatten a descriptor into JSON-ready values, tagged with its kind."""
    data: dict[str, Any] = {"kind": descriptor.kind.value}
    for descriptor_field in fields(descriptor):
        value = getattr(descriptor, descriptor_field.name)
        match value:
            case RelationshipKey():
                value = str(value)
            case frozenset():
                value = sorted(
                    (asdict(item) for item in value),
                    key=lambda item: tuple(item.values()),
                )
            case tuple():
                value = list(value)
            case _ if is_dataclass(value) and not isinstance(value, type):
                value = asdict(value)
            case _:
                pass
        data[descriptor_field.name] = value
    return data


@dataclass(frozen=True)
class RelationshipReport:
    """Relationships found in one database, with everything worth reporting."""

    database: str
    relationships: Mapping[str, tuple[RelationshipDescriptor, ...]]
    generated_at: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat(timespec="seconds"),
    )
    excluded_tables: frozenset[str] = frozenset()
    cycles: tuple[Cycle, ...] = ()
    problems: tuple[str, ...] = ()

    @classmethod
    def from_graph(
        cls,
        database: str,
        graph: RelationshipGraph,
        cycles: Iterable[Cycle] = (),
        problems: Iterable[str] = (),
    ) -> RelationshipReport:
        """Report a whole-schema graph."""
        return cls(
            database=database,
            relationships=dict(graph.relationships),
            excluded_tables=graph.excluded_tables,
            cycles=tuple(cycles),
            problems=tuple(problems),
        )

    @classmethod
    def for_table(
        cls,
        database: str,
        table_name: str,
        descriptors: Iterable[RelationshipDescriptor],
    ) -> RelationshipReport:
        """Report the relationships of a single table."""
        return cls(database=database, relationships={table_name: tuple(descriptors)})

    @property
    def total(self) -> int:
        """Number of relationships across all tables."""
        return sum(len(descriptors) for descriptors in self.relationships.values())


def related(descriptor: RelationshipDescriptor) -> str:
    """Name the table or tables on the other side of a descriptor."""
    if isinstance(descriptor, PolymorphicReference):
        return ", ".join(sorted(descriptor.target_tables)) or "?"
    return descriptor.related_table or ""


def describe(descriptor: RelationshipDescriptor) -> str:
    """Summarize the structural details of a descriptor in one line."""
    details: list[str]
    match descriptor:
        case DirectReference():
            details = [
                f"{descriptor.local_column} -> "
                f"{descriptor.target_table}.{descriptor.target_column}",
            ]
            if descriptor.required:
                details.append("required")
            if descriptor.on_delete is not CascadeAction.NONE:
                details.append(f"on delete {descriptor.on_delete}")
            if descriptor.target_soft_deletes:
                details.append("soft deletes")
        case InverseCollection():
            details = [
                f"{descriptor.target_table}.{descriptor.foreign_key} -> "
                f"{descriptor.related_key}",
                str(descriptor.cardinality),
            ]
            if descriptor.cascade_delete:
                details.append("cascade delete")
            if descriptor.cascade_update:
                details.append("cascade update")
        case ManyToMany():
            details = [
                f"via {descriptor.junction_table}"
                f"({descriptor.junction_local_key}, {descriptor.junction_target_key})",
            ]
            if descriptor.extra_attributes:
                details.append("pivot " + ", ".join(descriptor.extra_attributes))
            if descriptor.has_timestamps:
                details.append("timestamps")
            if descriptor.has_soft_delete:
                details.append("soft deletes")
            if not descriptor.by_naming_convention:
                details.append("unconventional name")
        case PolymorphicReference():
            details = [f"{descriptor.type_column}/{descriptor.id_column}"]
            details += [
                f"{target.table} as `{target.discriminator_value}`"
                for target in sorted(
                    descriptor.resolved_targets,
                    key=lambda target: target.table,
                )
            ]
            if descriptor.ambiguity is not None:
                details.append(descriptor.ambiguity.reason)
        case PolymorphicCollection():
            details = [
                f"{descriptor.target_table}.{descriptor.type_column} = "
                f"`{descriptor.discriminator_value}`",
                str(descriptor.cardinality),
            ]
    return "; ".join(details)


_JINJA_ENV.filters["describe"] = describe
_JINJA_ENV.filters["related"] = related


def report_to_dict(report: RelationshipReport) -> dict[str, Any]:
    """Convert a report to plain JSON-ready values."""
    return {
        "database": report.database,
        "generated_at": report.generated_at,
        "relationships": {
            table: [descriptor_to_dict(descriptor) for descriptor in descriptors]
            for table, descriptors in report.relationships.items()
        },
        "excluded_tables": sorted(report.excluded_tables),
        "cycles": [list(cycle) for cycle in report.cycles],
        "problems": list(report.problems),
    }


def report_to_json(report: RelationshipReport) -> str:
    """Convert a report to a JSON string.

    Args:
        report: RelationshipReport dataclass

    Returns:
        JSON string representation

    """
    return json.dumps(report_to_dict(report), indent=2, default=json_default)


def report_to_markdown(report: RelationshipReport) -> str:
    """Convert a report to a Markdown string.

    Args:
        report: RelationshipReport dataclass

    Returns:
        Markdown string representation

    """
    template = _JINJA_ENV.get_template("relationships.md")
    return template.render(
        database=report.database,
        generated_at=report.generated_at,
        relationships=report.relationships,
        total=report.total,
        excluded_tables=report.excluded_tables,
        cycles=report.cycles,
        problems=report.problems,
    )
