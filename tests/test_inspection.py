"""Tests for the schema inspector."""

from pathlib import Path

import pytest
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
    Text,
    create_engine,
)

from conftest import InspectorFactory
from relgraph.errors import SchemaError, SchemaErrorKind
from relgraph.inspection import SchemaInspector, semantic_type
from relgraph.types import CascadeAction, Index

DISCRIMINATED_SCHEMA = """
CREATE TABLE images (
    id INTEGER PRIMARY KEY,
    url TEXT NOT NULL,
    imageable_type TEXT NOT NULL
        CHECK (imageable_type IN ('User', 'Post')),
    imageable_id INTEGER NOT NULL,
    UNIQUE (imageable_type, imageable_id)
);

CREATE TABLE logs (
    message TEXT,
    level TEXT
);

INSERT INTO images (url, imageable_type, imageable_id) VALUES
    ('a.png', 'User', 1),
    ('b.png', 'Post', 1),
    ('c.png', 'Post', 2);
"""


def test_list_tables(blog: SchemaInspector) -> None:
    """Test that every user table is listed."""
    assert blog.list_tables() == {
        "users",
        "profiles",
        "posts",
        "videos",
        "comments",
        "roles",
        "role_user",
        "migrations",
    }


def test_columns_in_declaration_order(blog: SchemaInspector) -> None:
    """Test column snapshots and their order."""
    columns = blog.columns("posts")
    assert list(columns) == ["id", "user_id", "title", "status"]
    assert columns["id"].semantic_type == "integer"
    assert columns["id"].autoincrement
    assert not columns["user_id"].nullable
    assert columns["status"].has_default
    assert not columns["title"].has_default


def test_primary_keys(blog: SchemaInspector, make_inspector: InspectorFactory) -> None:
    """Test single, composite and missing primary keys."""
    assert blog.primary_key("users") == ("id",)
    assert blog.primary_key("role_user") == ("role_id", "user_id")
    assert make_inspector(DISCRIMINATED_SCHEMA).primary_key("logs") is None


def test_foreign_keys_with_actions(blog: SchemaInspector) -> None:
    """Test foreign keys and their referential actions."""
    (foreign_key,) = blog.foreign_keys("posts")
    assert foreign_key.local_columns == ("user_id",)
    assert foreign_key.referred_table == "users"
    assert foreign_key.referred_columns == ("id",)
    assert foreign_key.on_delete is CascadeAction.CASCADE
    assert foreign_key.on_update is CascadeAction.CASCADE

    targets = {fk.referred_table for fk in blog.foreign_keys("role_user")}
    assert targets == {"roles", "users"}


def test_unique_columns_and_indexes(blog: SchemaInspector) -> None:
    """Test that unique constraints and the primary key appear as indexes."""
    assert blog.unique_columns("profiles") == {"user_id"}
    assert blog.unique_columns("posts") == frozenset()
    indexes = blog.indexes("role_user")
    assert any(
        index.primary and index.columns == ("role_id", "user_id") for index in indexes
    )


def test_has_unique_constraint(make_inspector: InspectorFactory) -> None:
    """Test joint uniqueness of column pairs."""
    inspector = make_inspector(DISCRIMINATED_SCHEMA)
    assert inspector.has_unique_constraint("images", ["imageable_type", "imageable_id"])
    assert not inspector.has_unique_constraint("images", ["url"])


def test_enum_values_from_check_constraint(make_inspector: InspectorFactory) -> None:
    """Test values enumerated by a CHECK constraint."""
    inspector = make_inspector(DISCRIMINATED_SCHEMA)
    assert inspector.enum_values("images", "imageable_type") == ("User", "Post")
    assert inspector.enum_values("images", "url") == ()


def test_distinct_values(make_inspector: InspectorFactory) -> None:
    """Test bounded distinct value reads."""
    inspector = make_inspector(DISCRIMINATED_SCHEMA)
    assert inspector.distinct_values("images", "imageable_type") == {"User", "Post"}
    assert len(inspector.distinct_values("images", "url", limit=2)) == 2


def test_distinct_values_ignore_null(make_inspector: InspectorFactory) -> None:
    """Test that NULL is never reported as a value."""
    inspector = make_inspector(
        "CREATE TABLE notes (id INTEGER PRIMARY KEY, kind TEXT);"
        "INSERT INTO notes (kind) VALUES (NULL), ('memo');",
    )
    assert inspector.distinct_values("notes", "kind") == {"memo"}


def test_has_value(make_inspector: InspectorFactory) -> None:
    """Test existence probes."""
    inspector = make_inspector(DISCRIMINATED_SCHEMA)
    assert inspector.has_value("images", "imageable_type", "Post")
    assert not inspector.has_value("images", "imageable_type", "Video")


def test_has_column(blog: SchemaInspector) -> None:
    """Test column existence checks."""
    assert blog.has_column("comments", "commentable_type")
    assert not blog.has_column("comments", "user_id")


def test_unknown_table_is_not_found(blog: SchemaInspector) -> None:
    """Test that unknown tables raise instead of returning nothing."""
    with pytest.raises(SchemaError) as excinfo:
        blog.columns("missing")
    assert excinfo.value.kind is SchemaErrorKind.NOT_FOUND


def test_unknown_column_is_not_found(blog: SchemaInspector) -> None:
    """Test that probes of unknown columns raise."""
    with pytest.raises(SchemaError) as excinfo:
        blog.distinct_values("users", "missing")
    assert excinfo.value.kind is SchemaErrorKind.NOT_FOUND


def test_connection_failure(tmp_path: Path) -> None:
    """Test that an unreachable database raises CONNECTION_FAILED."""
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'db.sqlite'}")
    inspector = SchemaInspector(engine)
    with pytest.raises(SchemaError) as excinfo:
        inspector.list_tables()
    assert excinfo.value.kind is SchemaErrorKind.CONNECTION_FAILED


def test_snapshot_is_cached(blog: SchemaInspector) -> None:
    """Test that reflection happens once per table."""
    assert blog.table("users") is blog.table("users")


def test_semantic_types() -> None:
    """Test the mapping of SQL types onto semantic types."""
    assert semantic_type(Integer()) == "integer"
    assert semantic_type(String(20)) == "text"
    assert semantic_type(Text()) == "text"
    assert semantic_type(Float()) == "real"
    assert semantic_type(Numeric(10, 2)) == "numeric"
    assert semantic_type(Boolean()) == "boolean"
    assert semantic_type(Date()) == "date"
    assert semantic_type(DateTime()) == "datetime"
    assert semantic_type(LargeBinary()) == "blob"
    assert semantic_type(Enum("a", "b")) == "enum"


def test_cascade_action_from_sql() -> None:
    """Test referential action parsing."""
    assert CascadeAction.from_sql("CASCADE") is CascadeAction.CASCADE
    assert CascadeAction.from_sql("set  null") is CascadeAction.SET_NULL
    assert CascadeAction.from_sql("RESTRICT") is CascadeAction.RESTRICT
    assert CascadeAction.from_sql("NO ACTION") is CascadeAction.NONE
    assert CascadeAction.from_sql(None) is CascadeAction.NONE


def test_index_value_semantics() -> None:
    """Test that equal indexes collapse in sets."""
    first = Index("ix", ("a", "b"), unique=True)
    second = Index("ix", ("a", "b"), unique=True)
    assert {first, second} == {first}
