"""Value types for schema snapshots and relationship descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import TYPE_CHECKING, ClassVar, Literal

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from relgraph.errors import AmbiguousRelationship

type SemanticType = Literal[
    "integer",
    "text",
    "real",
    "numeric",
    "blob",
    "boolean",
    "date",
    "datetime",
    "enum",
]

type Scalar = str | int | float | bool | None


class CascadeAction(StrEnum):
    """Referential action applied to dependent rows."""

    CASCADE = auto()
    RESTRICT = auto()
    SET_NULL = auto()
    NONE = auto()

    @classmethod
    def from_sql(cls, action: str | None) -> CascadeAction:
        """Map an ON DELETE/ON UPDATE clause to an action."""
        if action is None:
            return cls.NONE
        normalized = " ".join(action.upper().split())
        return _SQL_ACTIONS.get(normalized, cls.NONE)


_SQL_ACTIONS = {
    "CASCADE": CascadeAction.CASCADE,
    "RESTRICT": CascadeAction.RESTRICT,
    "SET NULL": CascadeAction.SET_NULL,
    "NO ACTION": CascadeAction.NONE,
    "SET DEFAULT": CascadeAction.NONE,
}


class Cardinality(StrEnum):
    """How many rows sit on the far side of a collection relationship."""

    ONE = auto()
    MANY = auto()


class RelationshipKind(StrEnum):
    """Discriminator of the relationship descriptor variants."""

    DIRECT_REFERENCE = auto()
    INVERSE_COLLECTION = auto()
    MANY_TO_MANY = auto()
    POLYMORPHIC_REFERENCE = auto()
    POLYMORPHIC_COLLECTION = auto()


@dataclass(frozen=True)
class Column:
    """Column snapshot taken from the catalog."""

    name: str
    declared_type: str
    semantic_type: SemanticType
    nullable: bool
    default: str | None = None
    autoincrement: bool = False
    max_length: int | None = None
    comment: str | None = None
    enum_values: tuple[str, ...] = ()

    @property
    def has_default(self) -> bool:
        """Whether the column declares a server default."""
        return self.default is not None


@dataclass(frozen=True)
class Index:
    """Index or unique constraint over one or more columns."""

    name: str | None
    columns: tuple[str, ...]
    unique: bool = False
    primary: bool = False


@dataclass(frozen=True)
class ForeignKey:
    """Foreign key constraint with its referential actions."""

    name: str | None
    local_columns: tuple[str, ...]
    referred_table: str
    referred_columns: tuple[str, ...]
    on_delete: CascadeAction = CascadeAction.NONE
    on_update: CascadeAction = CascadeAction.NONE

    @property
    def local_column(self) -> str:
        """First local column, the one relationship descriptors are keyed on."""
        return self.local_columns[0]

    @property
    def referred_column(self) -> str:
        """First referred column."""
        return self.referred_columns[0]


@dataclass(frozen=True)
class TableSchema:
    """Everything the analyzers need to know about one table."""

    name: str
    columns: Mapping[str, Column]
    indexes: frozenset[Index]
    foreign_keys: tuple[ForeignKey, ...]
    primary_key: tuple[str, ...] | None

    def has_column(self, column: str) -> bool:
        """Check whether the table has the given column."""
        return column in self.columns


@dataclass(frozen=True)
class RelationshipKey:
    """Lookup key of a descriptor inside a graph."""

    table: str
    method_name: str

    def __str__(self) -> str:
        """Render as ``table.method``."""
        return f"{self.table}.{self.method_name}"


@dataclass(frozen=True)
class MorphTarget:
    """A concrete table a polymorphic reference may point to."""

    table: str
    discriminator_value: str


@dataclass(frozen=True, kw_only=True)
class Relationship:
    """Fields shared by every descriptor variant."""

    kind: ClassVar[RelationshipKind]

    local_table: str
    method_name: str
    is_custom: bool = False
    inverse: RelationshipKey | None = None

    @property
    def key(self) -> RelationshipKey:
        """Key of this descriptor within its owning table."""
        return RelationshipKey(self.local_table, self.method_name)

    @property
    def related_table(self) -> str | None:
        """Table on the other side, when there is exactly one."""
        return getattr(self, "target_table", None)


@dataclass(frozen=True, kw_only=True)
class DirectReference(Relationship):
    """The local table holds a foreign key to one parent row."""

    kind: ClassVar[RelationshipKind] = RelationshipKind.DIRECT_REFERENCE

    local_column: str
    target_table: str
    target_column: str
    required: bool = False
    on_delete: CascadeAction = CascadeAction.NONE
    on_update: CascadeAction = CascadeAction.NONE
    target_soft_deletes: bool = False


@dataclass(frozen=True, kw_only=True)
class InverseCollection(Relationship):
    """Rows of ``target_table`` reference the local table through ``foreign_key``."""

    kind: ClassVar[RelationshipKind] = RelationshipKind.INVERSE_COLLECTION

    target_table: str
    foreign_key: str
    related_key: str
    cascade_delete: bool = False
    cascade_update: bool = False
    cardinality: Cardinality = Cardinality.MANY
    target_soft_deletes: bool = False


@dataclass(frozen=True, kw_only=True)
class ManyToMany(Relationship):
    """Local and target tables joined through a junction table."""

    kind: ClassVar[RelationshipKind] = RelationshipKind.MANY_TO_MANY

    target_table: str
    junction_table: str
    junction_local_key: str
    junction_target_key: str
    local_key: str = "id"
    target_key: str = "id"
    extra_attributes: tuple[str, ...] = ()
    has_timestamps: bool = False
    has_soft_delete: bool = False
    by_naming_convention: bool = False


@dataclass(frozen=True, kw_only=True)
class PolymorphicReference(Relationship):
    """A ``(type, id)`` column pair pointing at a row in one of several tables."""

    kind: ClassVar[RelationshipKind] = RelationshipKind.POLYMORPHIC_REFERENCE

    morph_name: str
    type_column: str
    id_column: str
    resolved_targets: frozenset[MorphTarget] = field(default_factory=frozenset)
    required: bool = False
    ambiguity: AmbiguousRelationship | None = None

    @property
    def target_tables(self) -> frozenset[str]:
        """Names of the resolved target tables."""
        return frozenset(target.table for target in self.resolved_targets)


@dataclass(frozen=True, kw_only=True)
class PolymorphicCollection(Relationship):
    """Rows of ``target_table`` point at the local table through a morph pair."""

    kind: ClassVar[RelationshipKind] = RelationshipKind.POLYMORPHIC_COLLECTION

    target_table: str
    morph_name: str
    type_column: str
    id_column: str
    discriminator_value: str
    cardinality: Cardinality = Cardinality.MANY


type RelationshipDescriptor = (
    DirectReference
    | InverseCollection
    | ManyToMany
    | PolymorphicReference
    | PolymorphicCollection
)


@dataclass(frozen=True)
class RelationshipGraph:
    """Relationship descriptors of a whole schema, keyed by owning table."""

    relationships: Mapping[str, tuple[RelationshipDescriptor, ...]]
    excluded_tables: frozenset[str] = frozenset()

    def __getitem__(self, table: str) -> tuple[RelationshipDescriptor, ...]:
        """Return the descriptors owned by a table."""
        return self.relationships[table]

    def __iter__(self) -> Iterator[str]:
        """Iterate over table names."""
        return iter(self.relationships)

    def __contains__(self, table: object) -> bool:
        """Check whether a table is part of the graph."""
        return table in self.relationships

    def __len__(self) -> int:
        """Return the number of tables in the graph."""
        return len(self.relationships)

    @property
    def tables(self) -> tuple[str, ...]:
        """Table names in graph order."""
        return tuple(self.relationships)

    def descriptors(self) -> Iterator[RelationshipDescriptor]:
        """Iterate over every descriptor of every table."""
        for descriptors in self.relationships.values():
            yield from descriptors

    def lookup(self, key: RelationshipKey) -> RelationshipDescriptor | None:
        """Find a descriptor by owning table and method name."""
        for descriptor in self.relationships.get(key.table, ()):
            if descriptor.method_name == key.method_name:
                return descriptor
        return None


type Cycle = tuple[str, ...]
