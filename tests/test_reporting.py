"""Tests for JSON and Markdown reports."""

import json
from enum import Enum

import pytest

from relgraph.analysis import build_graph
from relgraph.config import Settings
from relgraph.errors import AmbiguousRelationship
from relgraph.inspection import SchemaInspector
from relgraph.reporting import (
    RelationshipReport,
    describe,
    descriptor_to_dict,
    json_default,
    related,
    report_to_dict,
    report_to_json,
    report_to_markdown,
)
from relgraph.types import (
    CascadeAction,
    ManyToMany,
    PolymorphicReference,
    RelationshipKey,
)


@pytest.fixture(name="report")
def create_report(blog: SchemaInspector, settings: Settings) -> RelationshipReport:
    """Create a report of the blog graph."""
    return RelationshipReport.from_graph(
        "blog.sqlite",
        build_graph(blog, settings),
        cycles=[("posts", "users")],
        problems=["posts.user: column 'author_id' does not exist on 'posts'"],
    )


def test_report_totals(report: RelationshipReport) -> None:
    """Test counts carried by a report."""
    assert report.total == 13
    assert report.excluded_tables == {"migrations"}
    single = RelationshipReport.for_table(
        "blog.sqlite",
        "posts",
        report.relationships["posts"],
    )
    assert single.total == 2
    assert list(single.relationships) == ["posts"]


def test_json_report(report: RelationshipReport) -> None:
    """Test the structure of the JSON report."""
    data = json.loads(report_to_json(report))
    assert data["database"] == "blog.sqlite"
    assert data["excluded_tables"] == ["migrations"]
    assert data["cycles"] == [["posts", "users"]]
    assert len(data["problems"]) == 1

    (commentable,) = data["relationships"]["comments"]
    assert commentable["kind"] == "polymorphic_reference"
    assert commentable["inverse"] == "posts.comments"
    assert commentable["ambiguity"] is None
    assert commentable["resolved_targets"] == [
        {"table": "posts", "discriminator_value": "App\\Models\\Post"},
        {"table": "videos", "discriminator_value": "App\\Models\\Video"},
    ]

    user = data["relationships"]["posts"][0]
    assert user["kind"] == "direct_reference"
    assert user["on_delete"] == "cascade"
    assert user["required"] is True


def test_descriptor_to_dict() -> None:
    """Test flattening of tuples and ambiguity notes."""
    descriptor = ManyToMany(
        local_table="users",
        method_name="roles",
        target_table="roles",
        junction_table="role_user",
        junction_local_key="user_id",
        junction_target_key="role_id",
        extra_attributes=("granted_by",),
    )
    data = descriptor_to_dict(descriptor)
    assert data["kind"] == "many_to_many"
    assert data["extra_attributes"] == ["granted_by"]
    assert data["inverse"] is None

    reference = PolymorphicReference(
        local_table="comments",
        method_name="commentable",
        morph_name="commentable",
        type_column="commentable_type",
        id_column="commentable_id",
        ambiguity=AmbiguousRelationship("No table matches", ("Ghost",)),
    )
    assert descriptor_to_dict(reference)["ambiguity"] == {
        "reason": "No table matches",
        "candidates": ("Ghost",),
    }


def test_report_dict_is_json_ready(report: RelationshipReport) -> None:
    """Test that the report dict needs no custom encoder."""
    json.dumps(report_to_dict(report))


def test_markdown_report(report: RelationshipReport) -> None:
    """Test the sections of the Markdown report."""
    markdown = report_to_markdown(report)
    assert markdown.startswith("# Relationships of blog.sqlite")
    assert "## users" in markdown
    assert "| `posts` | inverse_collection | posts | posts.user |" in markdown
    assert "## Circular references" in markdown
    assert "- posts -> users -> posts" in markdown
    assert "## Problems" in markdown
    assert "## Excluded tables\n\nmigrations" in markdown


def test_markdown_without_findings(blog: SchemaInspector, settings: Settings) -> None:
    """Test that empty sections are left out."""
    graph = build_graph(blog, settings, excluded_tables=["comments"])
    markdown = report_to_markdown(RelationshipReport.from_graph("blog.sqlite", graph))
    assert "## Circular references" not in markdown
    assert "## Problems" not in markdown
    assert "## videos\n\nNo relationships." in markdown


def test_describe(report: RelationshipReport) -> None:
    """Test one-line summaries of descriptors."""
    user, comments = report.relationships["posts"]
    assert describe(user) == (
        "user_id -> users.id; required; on delete cascade; soft deletes"
    )
    assert describe(comments) == "comments.commentable_type = `App\\Models\\Post`; many"
    (roles,) = [d for d in report.relationships["users"] if d.method_name == "roles"]
    assert describe(roles) == (
        "via role_user(user_id, role_id); pivot granted_by; timestamps"
    )
    (commentable,) = report.relationships["comments"]
    assert related(commentable) == "posts, videos"
    assert related(user) == "users"


def test_json_default() -> None:
    """Test conversion of values the JSON encoder does not know."""

    class Color(Enum):
        RED = "red"

    assert json_default(frozenset({"b", "a"})) == ["a", "b"]
    assert json_default(set()) == []
    assert json_default(RelationshipKey("users", "posts")) == "users.posts"
    assert json_default(CascadeAction.SET_NULL) == "set_null"
    assert json_default(Color.RED) == "red"
    assert json_default(AmbiguousRelationship("why")) == {
        "reason": "why",
        "candidates": (),
    }
    with pytest.raises(TypeError, match="not JSON serializable"):
        json_default(object())
