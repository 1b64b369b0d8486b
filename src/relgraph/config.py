"""Analysis settings loaded from packaged defaults and an optional TOML file."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from tomllib import load
from typing import TYPE_CHECKING, Any

from relgraph.naming import NamingConventions
from relgraph.overrides import parse_cascade_action, parse_overrides

if TYPE_CHECKING:
    from collections.abc import Mapping

    from relgraph.types import CascadeAction, RelationshipDescriptor

logger = getLogger(__name__)

DEFAULTS_FILE = Path(__file__).parent / "defaults.toml"

type RawConfig = dict[str, Any]


@dataclass(frozen=True, kw_only=True)
class Settings:
    """Everything that steers an analysis run."""

    excluded_tables: frozenset[str] = frozenset()
    generate_inverse: bool = True
    probe: bool = True
    distinct_limit: int = 100
    query_timeout: float = 30.0
    max_workers: int = 4
    model_namespace: str = "App\\Models"
    soft_delete_column: str = "deleted_at"
    timestamp_columns: tuple[str, str] = ("created_at", "updated_at")
    naming: NamingConventions = field(default_factory=NamingConventions)
    overrides: Mapping[str, tuple[RelationshipDescriptor, ...]] = field(
        default_factory=dict,
    )
    cascade: Mapping[str, Mapping[str, CascadeAction]] = field(default_factory=dict)

    def overrides_for(self, table_name: str) -> tuple[RelationshipDescriptor, ...]:
        """Return the relationships declared for a table."""
        return self.overrides.get(table_name, ())

    def cascade_for(self, table_name: str) -> Mapping[str, CascadeAction]:
        """Return the cascade policies declared for a table, keyed by method name."""
        return self.cascade.get(table_name, {})


def merge_tables(base: RawConfig, overlay: Mapping[str, Any]) -> RawConfig:
    """Layer one TOML document over another, merging nested tables key by key."""
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_tables(merged[key], value)
        else:
            merged[key] = value
    return merged


def read_config_file(path: Path) -> RawConfig:
    """Read the ``relgraph`` table of a TOML file.

    ``pyproject.toml`` files are read from ``[tool.relgraph]``, any other file
    from ``[relgraph]``.
    """
    with path.open("rb") as f:
        document = load(f)
    if path.name == "pyproject.toml":
        document = document.get("tool", {})
    raw = document.get("relgraph")
    if raw is None:
        logger.warning("No relgraph settings found in %s", path)
        return {}
    if not isinstance(raw, dict):
        msg = f"Invalid relgraph settings in {path}"
        raise ValueError(msg)  # noqa: TRY004
    return raw


def _expect[T](name: str, value: Any, kind: type[T]) -> T:  # noqa: ANN401
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        msg = f"Setting '{name}' must be of type {kind.__name__}, got {value!r}"
        raise ValueError(msg)  # noqa: TRY004
    return value


def _timeout(value: Any) -> float:  # noqa: ANN401
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        msg = f"Setting 'query_timeout' must be a positive number, got {value!r}"
        raise ValueError(msg)
    return float(value)


def _string_list(name: str, value: Any) -> tuple[str, ...]:  # noqa: ANN401
    items = _expect(name, value, list)
    for item in items:
        _expect(name, item, str)
    return tuple(items)


def _naming(raw: Mapping[str, Any]) -> NamingConventions:
    known = set(NamingConventions.__dataclass_fields__)
    if unknown := sorted(set(raw) - known):
        msg = f"Unknown naming settings: {', '.join(unknown)}"
        raise ValueError(msg)
    return NamingConventions(**raw)


def _cascade(raw: Mapping[str, Any]) -> dict[str, dict[str, CascadeAction]]:
    return {
        table: {
            method: parse_cascade_action(action)
            for method, action in _expect(f"cascade.{table}", policies, dict).items()
        }
        for table, policies in raw.items()
    }


def settings_from_mapping(raw: Mapping[str, Any]) -> Settings:
    """Build Settings from a fully merged ``relgraph`` table."""
    known = set(Settings.__dataclass_fields__)
    if unknown := sorted(set(raw) - known):
        msg = f"Unknown settings: {', '.join(unknown)}"
        raise ValueError(msg)

    timestamps = _string_list("timestamp_columns", raw["timestamp_columns"])
    if len(timestamps) != 2:  # noqa: PLR2004
        msg = "Setting 'timestamp_columns' must name exactly two columns"
        raise ValueError(msg)
    max_workers = _expect("max_workers", raw["max_workers"], int)
    if max_workers < 1:
        msg = "Setting 'max_workers' must be at least 1"
        raise ValueError(msg)
    distinct_limit = _expect("distinct_limit", raw["distinct_limit"], int)
    if distinct_limit < 1:
        msg = "Setting 'distinct_limit' must be at least 1"
        raise ValueError(msg)

    naming = _naming(_expect("naming", raw.get("naming", {}), dict))
    return Settings(
        excluded_tables=frozenset(
            _string_list("excluded_tables", raw["excluded_tables"]),
        ),
        generate_inverse=_expect("generate_inverse", raw["generate_inverse"], bool),
        probe=_expect("probe", raw["probe"], bool),
        distinct_limit=distinct_limit,
        query_timeout=_timeout(raw["query_timeout"]),
        max_workers=max_workers,
        model_namespace=_expect("model_namespace", raw["model_namespace"], str),
        soft_delete_column=_expect(
            "soft_delete_column",
            raw["soft_delete_column"],
            str,
        ),
        timestamp_columns=(timestamps[0], timestamps[1]),
        naming=naming,
        overrides=parse_overrides(
            _expect("overrides", raw.get("overrides", {}), dict),
            naming,
        ),
        cascade=_cascade(_expect("cascade", raw.get("cascade", {}), dict)),
    )


def default_config() -> RawConfig:
    """Load the packaged defaults."""
    return read_config_file(DEFAULTS_FILE)


def load_settings(path: Path | None = None) -> Settings:
    """Load the packaged defaults, layering the file at ``path`` on top."""
    raw = default_config()
    if path is not None:
        logger.debug("Loading settings from %s", path)
        raw = merge_tables(raw, read_config_file(path))
    return settings_from_mapping(raw)
