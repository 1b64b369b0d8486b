"""Tests for inverse-collection detection."""

from conftest import InspectorFactory
from relgraph.analysis import build_graph
from relgraph.config import Settings
from relgraph.context import AnalysisContext
from relgraph.inspection import SchemaInspector
from relgraph.inverse import analyze_inverse_collections
from relgraph.types import Cardinality, InverseCollection

CATEGORIES_SCHEMA = """
CREATE TABLE categories (
    id INTEGER PRIMARY KEY,
    parent_id INTEGER,
    name TEXT NOT NULL,
    FOREIGN KEY (parent_id) REFERENCES categories (id)
);

CREATE TABLE logs (message TEXT);
"""


def test_collections_of_users(blog_context: AnalysisContext) -> None:
    """Test every table referencing users is found."""
    collections = {
        collection.target_table: collection
        for collection in analyze_inverse_collections(blog_context, "users")
    }
    assert set(collections) == {"posts", "profiles", "role_user"}

    posts = collections["posts"]
    assert posts.method_name == "posts"
    assert posts.foreign_key == "user_id"
    assert posts.related_key == "id"
    assert posts.cardinality is Cardinality.MANY
    assert posts.cascade_delete
    assert posts.cascade_update


def test_unique_key_means_one(blog_context: AnalysisContext) -> None:
    """Test that a unique referencing column makes the collection singular."""
    (profile,) = [
        collection
        for collection in analyze_inverse_collections(blog_context, "users")
        if collection.target_table == "profiles"
    ]
    assert profile.cardinality is Cardinality.ONE
    assert profile.method_name == "profile"
    assert profile.cascade_delete
    assert not profile.cascade_update


def test_self_join(make_inspector: InspectorFactory, settings: Settings) -> None:
    """Test that a table referencing itself has a collection of itself."""
    context = AnalysisContext.create(make_inspector(CATEGORIES_SCHEMA), settings)
    (children,) = analyze_inverse_collections(context, "categories")
    assert children.local_table == "categories"
    assert children.target_table == "categories"
    assert children.foreign_key == "parent_id"
    assert children.method_name == "categories"


def test_table_without_primary_key(
    make_inspector: InspectorFactory,
    settings: Settings,
) -> None:
    """Test that nothing can reference a table without a primary key."""
    context = AnalysisContext.create(make_inspector(CATEGORIES_SCHEMA), settings)
    assert analyze_inverse_collections(context, "logs") == []


def test_foreign_key_lives_on_target_table(
    blog: SchemaInspector,
    settings: Settings,
) -> None:
    """Test that every collection's key column exists on its target table."""
    graph = build_graph(blog, settings)
    collections = [
        descriptor
        for descriptor in graph.descriptors()
        if isinstance(descriptor, InverseCollection)
    ]
    assert collections
    for collection in collections:
        assert blog.has_column(collection.target_table, collection.foreign_key)
