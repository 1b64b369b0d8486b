"""Tests for settings loading and validation."""

from pathlib import Path

import pytest

from relgraph.config import (
    DEFAULTS_FILE,
    default_config,
    load_settings,
    merge_tables,
    read_config_file,
    settings_from_mapping,
)
from relgraph.types import CascadeAction, InverseCollection

USER_CONFIG = """
[relgraph]
excluded_tables = ["audits"]
probe = false
max_workers = 2
model_namespace = "Domain"

[relgraph.naming]
case = "snake"

[[relgraph.overrides.users]]
kind = "inverse_collection"
target_table = "comments"
foreign_key = "posted_by"

[relgraph.cascade.users]
posts = "restrict"
"""


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_packaged_defaults() -> None:
    """Test the defaults shipped with the package."""
    assert DEFAULTS_FILE.exists()
    settings = load_settings()
    assert "migrations" in settings.excluded_tables
    assert settings.generate_inverse
    assert settings.probe
    assert settings.distinct_limit == 100
    assert settings.max_workers == 4
    assert settings.model_namespace == "App\\Models"
    assert settings.timestamp_columns == ("created_at", "updated_at")
    assert settings.naming.case == "camel"
    assert settings.overrides == {}
    assert settings.cascade == {}


def test_user_file_is_layered_on_defaults(tmp_path: Path) -> None:
    """Test that a user file replaces only the keys it sets."""
    settings = load_settings(_write(tmp_path / "relgraph.toml", USER_CONFIG))
    assert settings.excluded_tables == {"audits"}
    assert not settings.probe
    assert settings.max_workers == 2
    assert settings.model_namespace == "Domain"
    assert settings.distinct_limit == 100
    assert settings.naming.case == "snake"
    assert settings.naming.has_many_method == "{models}"

    (override,) = settings.overrides_for("users")
    assert isinstance(override, InverseCollection)
    assert override.method_name == "comments"
    assert override.foreign_key == "posted_by"
    assert settings.cascade_for("users") == {"posts": CascadeAction.RESTRICT}
    assert settings.cascade_for("posts") == {}


def test_pyproject_tool_table(tmp_path: Path) -> None:
    """Test that pyproject.toml settings are read from [tool.relgraph]."""
    path = _write(
        tmp_path / "pyproject.toml",
        '[project]\nname = "app"\n\n[tool.relgraph]\ndistinct_limit = 10\n',
    )
    assert read_config_file(path) == {"distinct_limit": 10}
    assert load_settings(path).distinct_limit == 10


def test_file_without_settings(tmp_path: Path) -> None:
    """Test that a file without a relgraph table changes nothing."""
    path = _write(tmp_path / "other.toml", '[tool.black]\nline-length = 88\n')
    assert read_config_file(path) == {}
    assert load_settings(path) == load_settings()


def test_merge_tables() -> None:
    """Test that nested tables merge key by key and other values are replaced."""
    base = {"a": 1, "nested": {"x": 1, "y": 2}, "items": [1, 2]}
    overlay = {"nested": {"y": 3}, "items": [3]}
    assert merge_tables(base, overlay) == {
        "a": 1,
        "nested": {"x": 1, "y": 3},
        "items": [3],
    }
    assert base["nested"] == {"x": 1, "y": 2}


@pytest.mark.parametrize(
    ("changes", "message"),
    [
        ({"colour": "red"}, "Unknown settings: colour"),
        ({"probe": "yes"}, "'probe' must be of type bool"),
        ({"max_workers": 0}, "at least 1"),
        ({"max_workers": True}, "'max_workers' must be of type int"),
        ({"distinct_limit": 0}, "at least 1"),
        ({"query_timeout": -1}, "positive number"),
        ({"timestamp_columns": ["created_at"]}, "exactly two columns"),
        ({"excluded_tables": ["ok", 3]}, "'excluded_tables' must be of type str"),
        ({"naming": {"style": "camel"}}, "Unknown naming settings: style"),
        ({"naming": {"case": "kebab"}}, "Unknown method name case"),
        ({"cascade": {"users": {"posts": "explode"}}}, "Unknown cascade action"),
        ({"overrides": {"users": [{"kind": "nope"}]}}, "unknown kind"),
    ],
)
def test_invalid_settings(changes: dict[str, object], message: str) -> None:
    """Test that invalid settings are rejected with a readable message."""
    raw = merge_tables(default_config(), changes)
    with pytest.raises(ValueError, match=message):
        settings_from_mapping(raw)


def test_invalid_relgraph_table(tmp_path: Path) -> None:
    """Test that a relgraph key that is not a table is rejected."""
    path = _write(tmp_path / "bad.toml", 'relgraph = "yes"\n')
    with pytest.raises(ValueError, match="Invalid relgraph settings"):
        read_config_file(path)
