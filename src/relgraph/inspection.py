"""Read-only schema catalog over any SQLAlchemy engine."""

from __future__ import annotations

from contextlib import contextmanager
from functools import cached_property
from logging import getLogger
from threading import RLock
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    Integer,
    LargeBinary,
    Numeric,
    String,
    column,
    exists,
    inspect,
    select,
    table,
)
from sqlalchemy.exc import DBAPIError, NoSuchTableError, SQLAlchemyError

from relgraph.enum_detection import detect_enum_for_column
from relgraph.errors import SchemaError, SchemaErrorKind
from relgraph.types import (
    CascadeAction,
    Column,
    ForeignKey,
    Index,
    Scalar,
    SemanticType,
    TableSchema,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from sqlalchemy import Engine, Inspector
    from sqlalchemy.engine.interfaces import ReflectedColumn
    from sqlalchemy.types import TypeEngine

logger = getLogger(__name__)


def semantic_type(sql_type: TypeEngine[Any]) -> SemanticType:
    """Map a reflected SQLAlchemy type onto a coarse semantic type."""
    match sql_type:
        case Enum():
            return "enum"
        case Boolean():
            return "boolean"
        case Integer():
            return "integer"
        case String():
            return "text"
        case Float():
            return "real"
        case Numeric():
            return "numeric"
        case LargeBinary():
            return "blob"
        case DateTime():
            return "datetime"
        case Date():
            return "date"
        case _:
            return "text"


def _declared_type(sql_type: TypeEngine[Any]) -> str:
    try:
        return str(sql_type)
    except SQLAlchemyError:
        return sql_type.__class__.__name__


@contextmanager
def catalog_errors(action: str) -> Iterator[None]:
    """Translate driver and dialect failures into SchemaError."""
    try:
        yield
    except NoSuchTableError as err:
        msg = f"{action}: table '{err}' does not exist"
        raise SchemaError.not_found(msg) from err
    except NotImplementedError as err:
        msg = f"{action}: not supported by this database engine"
        raise SchemaError.unsupported(msg) from err
    except (DBAPIError, TimeoutError) as err:
        msg = f"{action}: {err}"
        raise SchemaError.connection_failed(msg) from err
    except SQLAlchemyError as err:
        msg = f"{action}: {err}"
        raise SchemaError.connection_failed(msg) from err


class SchemaInspector:
    """Uniform, cached view of tables, columns, indexes and foreign keys.

    One instance is one snapshot: reflected metadata is cached for the
    lifetime of the inspector. Value probes always hit the database.
    """

    def __init__(self, engine: Engine, schema: str | None = None) -> None:
        """Initialize with an engine and an optional database schema name."""
        self.engine = engine
        self.schema = schema
        self._lock = RLock()
        self._table_cache: dict[str, TableSchema] = {}

    @cached_property
    def _inspector(self) -> Inspector:
        with catalog_errors("Connecting to database"):
            return inspect(self.engine)

    @cached_property
    def _tables(self) -> frozenset[str]:
        with self._lock, catalog_errors("Listing tables"):
            return frozenset(self._inspector.get_table_names(schema=self.schema))

    def list_tables(self) -> frozenset[str]:
        """Return all user table names, excluding views and system tables."""
        return self._tables

    def table(self, table_name: str) -> TableSchema:
        """Return the snapshot of a table, reflecting it on first access."""
        with self._lock:
            if table_name not in self._table_cache:
                self._table_cache[table_name] = self._reflect_table(table_name)
            return self._table_cache[table_name]

    def preload(self, table_names: Iterable[str]) -> None:
        """Reflect several tables up front so later reads never block on the catalog."""
        for table_name in table_names:
            self.table(table_name)

    def columns(self, table_name: str) -> Mapping[str, Column]:
        """Return the columns of a table keyed by name, in declaration order."""
        return self.table(table_name).columns

    def indexes(self, table_name: str) -> frozenset[Index]:
        """Return indexes, unique constraints and the primary key of a table."""
        return self.table(table_name).indexes

    def foreign_keys(self, table_name: str) -> tuple[ForeignKey, ...]:
        """Return foreign key constraints declared on a table."""
        return self.table(table_name).foreign_keys

    def primary_key(self, table_name: str) -> tuple[str, ...] | None:
        """Return the primary key columns, or None when the table has none."""
        return self.table(table_name).primary_key

    def unique_columns(self, table_name: str) -> frozenset[str]:
        """Return columns that are unique on their own, excluding the primary key."""
        return frozenset(
            index.columns[0]
            for index in self.indexes(table_name)
            if index.unique and not index.primary and len(index.columns) == 1
        )

    def has_column(self, table_name: str, column_name: str) -> bool:
        """Check whether a table has a column."""
        return column_name in self.columns(table_name)

    def has_unique_constraint(self, table_name: str, columns: Iterable[str]) -> bool:
        """Check whether the given columns are jointly unique-constrained."""
        wanted = frozenset(columns)
        return any(
            index.unique and frozenset(index.columns) <= wanted
            for index in self.indexes(table_name)
        )

    def enum_values(self, table_name: str, column_name: str) -> tuple[str, ...]:
        """Return the values a column is constrained to, or an empty tuple."""
        self._require_column(table_name, column_name)
        return self.columns(table_name)[column_name].enum_values

    def distinct_values(
        self,
        table_name: str,
        column_name: str,
        limit: int = 100,
    ) -> frozenset[Scalar]:
        """Return up to ``limit`` distinct non-null values stored in a column."""
        self._require_column(table_name, column_name)
        target = column(column_name)
        source = table(table_name, target, schema=self.schema)
        query = (
            select(target)
            .select_from(source)
            .where(target.is_not(None))
            .distinct()
            .limit(limit)
        )
        with catalog_errors(f"Reading values of {table_name}.{column_name}"):
            with self.engine.connect() as connection:
                return frozenset(connection.execute(query).scalars())

    def has_value(self, table_name: str, column_name: str, value: Scalar) -> bool:
        """Check whether any row stores ``value`` in the column."""
        self._require_column(table_name, column_name)
        target = column(column_name)
        source = table(table_name, target, schema=self.schema)
        query = select(exists().where(target == value).select_from(source))
        with catalog_errors(f"Probing {table_name}.{column_name}"):
            with self.engine.connect() as connection:
                return bool(connection.execute(query).scalar())

    def _require_table(self, table_name: str) -> None:
        if table_name not in self._tables:
            msg = f"Table '{table_name}' does not exist"
            raise SchemaError.not_found(msg)

    def _require_column(self, table_name: str, column_name: str) -> None:
        if not self.has_column(table_name, column_name):
            msg = f"Column '{column_name}' does not exist on table '{table_name}'"
            raise SchemaError.not_found(msg)

    def _reflect_table(self, table_name: str) -> TableSchema:
        self._require_table(table_name)
        logger.debug("Reflecting table %s", table_name)
        inspector = self._inspector
        with catalog_errors(f"Reflecting table {table_name}"):
            reflected_columns = inspector.get_columns(table_name, schema=self.schema)
            pk_constraint = inspector.get_pk_constraint(table_name, schema=self.schema)
            reflected_fks = inspector.get_foreign_keys(table_name, schema=self.schema)
            reflected_indexes = inspector.get_indexes(table_name, schema=self.schema)
            unique_constraints = inspector.get_unique_constraints(
                table_name,
                schema=self.schema,
            )
        check_constraints = self._check_constraints(table_name)

        primary_key = tuple(pk_constraint.get("constrained_columns") or ()) or None

        columns = {
            reflected["name"]: self._column(reflected, primary_key, check_constraints)
            for reflected in reflected_columns
        }

        indexes: dict[tuple[tuple[str, ...], bool], Index] = {}
        if primary_key:
            indexes[primary_key, True] = Index(
                name=pk_constraint.get("name"),
                columns=primary_key,
                unique=True,
                primary=True,
            )
        for index in reflected_indexes:
            names = tuple(name for name in index["column_names"] if name is not None)
            if names:
                indexes.setdefault(
                    (names, bool(index["unique"])),
                    Index(name=index["name"], columns=names, unique=index["unique"]),
                )
        for constraint in unique_constraints:
            names = tuple(constraint["column_names"])
            indexes.setdefault(
                (names, True),
                Index(name=constraint.get("name"), columns=names, unique=True),
            )

        foreign_keys = tuple(
            ForeignKey(
                name=fk.get("name"),
                local_columns=tuple(fk["constrained_columns"]),
                referred_table=fk["referred_table"],
                referred_columns=tuple(fk["referred_columns"]),
                on_delete=CascadeAction.from_sql(fk.get("options", {}).get("ondelete")),
                on_update=CascadeAction.from_sql(fk.get("options", {}).get("onupdate")),
            )
            for fk in reflected_fks
            if fk["constrained_columns"] and fk["referred_columns"]
        )

        return TableSchema(
            name=table_name,
            columns=columns,
            indexes=frozenset(indexes.values()),
            foreign_keys=foreign_keys,
            primary_key=primary_key,
        )

    def _check_constraints(self, table_name: str) -> list[str]:
        """Return CHECK constraint texts; dialects without support yield none."""
        try:
            with catalog_errors(f"Reading check constraints of {table_name}"):
                constraints = self._inspector.get_check_constraints(
                    table_name,
                    schema=self.schema,
                )
        except SchemaError as err:
            if err.kind is not SchemaErrorKind.UNSUPPORTED:
                raise
            logger.debug("Check constraints unavailable for %s", table_name)
            return []
        return [constraint["sqltext"] for constraint in constraints]

    @staticmethod
    def _column(
        reflected: ReflectedColumn,
        primary_key: tuple[str, ...] | None,
        check_constraints: list[str],
    ) -> Column:
        sql_type = reflected["type"]
        name = reflected["name"]
        kind = semantic_type(sql_type)

        enum_values: tuple[str, ...] = ()
        if isinstance(sql_type, Enum):
            enum_values = tuple(sql_type.enums)
        else:
            for constraint in check_constraints:
                if values := detect_enum_for_column(constraint, name):
                    enum_values = tuple(values)
                    break

        default = reflected.get("default")
        autoincrement = reflected.get("autoincrement") is True or (
            primary_key == (name,) and kind == "integer"
        )
        return Column(
            name=name,
            declared_type=_declared_type(sql_type),
            semantic_type=kind,
            nullable=bool(reflected.get("nullable", True)),
            default=None if default is None else str(default),
            autoincrement=autoincrement,
            max_length=getattr(sql_type, "length", None),
            comment=reflected.get("comment"),
            enum_values=enum_values,
        )
