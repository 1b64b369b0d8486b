"""Infer ORM relationships between database tables from schema metadata."""

from relgraph.analysis import analyze, build_graph, create_engine_for_database
from relgraph.config import Settings, load_settings
from relgraph.errors import AmbiguousRelationship, SchemaError, SchemaErrorKind
from relgraph.graph import detect_cycles
from relgraph.inspection import SchemaInspector
from relgraph.naming import NamingConventions, pivot_name
from relgraph.reporting import RelationshipReport, report_to_json, report_to_markdown
from relgraph.types import (
    Cardinality,
    CascadeAction,
    Cycle,
    DirectReference,
    InverseCollection,
    ManyToMany,
    MorphTarget,
    PolymorphicCollection,
    PolymorphicReference,
    RelationshipDescriptor,
    RelationshipGraph,
    RelationshipKey,
    RelationshipKind,
)
from relgraph.validation import validate_graph

__all__ = [
    "AmbiguousRelationship",
    "Cardinality",
    "CascadeAction",
    "Cycle",
    "DirectReference",
    "InverseCollection",
    "ManyToMany",
    "MorphTarget",
    "NamingConventions",
    "PolymorphicCollection",
    "PolymorphicReference",
    "RelationshipDescriptor",
    "RelationshipGraph",
    "RelationshipKey",
    "RelationshipKind",
    "RelationshipReport",
    "SchemaError",
    "SchemaErrorKind",
    "SchemaInspector",
    "Settings",
    "analyze",
    "build_graph",
    "create_engine_for_database",
    "detect_cycles",
    "load_settings",
    "pivot_name",
    "report_to_json",
    "report_to_markdown",
    "validate_graph",
]
