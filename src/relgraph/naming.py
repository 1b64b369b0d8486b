"""Singular/plural and case conversions for table, model and method names."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

import inflect

type NameCase = Literal["camel", "snake"]

PLACEHOLDERS = ("{models}", "{model}", "{name}", "{table}")

_inflect = inflect.engine()
_WORD_BOUNDARY = re.compile(r"[\s_\-]+")
_CAMEL_HUMP = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def _split_last(word: str) -> tuple[str, str]:
    head, separator, last = word.rpartition("_")
    return head + separator, last


def singular(word: str) -> str:
    """Singularize the last segment of a snake_case name.

    ``blog_posts`` becomes ``blog_post``.
    """
    prefix, last = _split_last(word)
    if not last:
        return word
    result = _inflect.singular_noun(last)
    return prefix + (result if isinstance(result, str) and result else last)


def plural(word: str) -> str:
    """Pluralize the last segment of a snake_case name, idempotently."""
    prefix, last = _split_last(singular(word))
    if not last:
        return word
    return prefix + _inflect.plural_noun(last)


def words(value: str) -> list[str]:
    """Split snake_case, kebab-case, spaced or CamelCase text into lowercase words."""
    parts = _WORD_BOUNDARY.split(_CAMEL_HUMP.sub(" ", value))
    return [part.lower() for part in parts if part]


def studly(value: str) -> str:
    """Convert to StudlyCase: ``blog_post`` -> ``BlogPost``."""
    return "".join(word[:1].upper() + word[1:] for word in words(value))


def camel(value: str) -> str:
    """Convert to camelCase: ``blog_post`` -> ``blogPost``."""
    converted = studly(value)
    return converted[:1].lower() + converted[1:]


def snake(value: str) -> str:
    """Convert to snake_case: ``BlogPost`` -> ``blog_post``."""
    return "_".join(words(value))


def model_name(table_name: str) -> str:
    """Guess the model class name of a table: ``blog_posts`` -> ``BlogPost``."""
    return studly(singular(table_name))


def model_identifiers(table_name: str, namespace: str | None = None) -> tuple[str, ...]:
    """Return the discriminator values that may identify a table's model.

    In order of preference: the namespaced class path, the bare model name and
    the table name itself.
    """
    model = model_name(table_name)
    candidates = [f"{namespace}\\{model}"] if namespace else []
    candidates += [model, table_name]
    return tuple(dict.fromkeys(candidates))


def pivot_name(first_table: str, second_table: str) -> str:
    """Guess the junction table name joining two tables.

    Singular forms joined alphabetically, so the result does not depend on
    argument order.
    """
    return "_".join(sorted((singular(first_table), singular(second_table))))


def junction_patterns(first_table: str, second_table: str) -> tuple[str, ...]:
    """Names a junction table between two tables is conventionally given."""
    first_singular = singular(first_table)
    second_singular = singular(second_table)
    patterns = (
        f"{first_table}_{second_table}",
        f"{second_table}_{first_table}",
        f"{first_singular}_{second_table}",
        f"{second_table}_{first_singular}",
        f"{first_table}_{second_singular}",
        f"{second_singular}_{first_table}",
        f"{first_singular}_{second_singular}",
        f"{second_singular}_{first_singular}",
    )
    return tuple(dict.fromkeys(patterns))


def render_pattern(pattern: str, subject: str) -> str:
    """Substitute naming placeholders in a method-name pattern."""
    return (
        pattern.replace("{models}", plural(subject))
        .replace("{model}", singular(subject))
        .replace("{name}", subject)
        .replace("{table}", subject)
    )


@dataclass(frozen=True)
class NamingConventions:
    """Method-name patterns per relationship kind, plus the output case."""

    case: NameCase = "camel"
    belongs_to_method: str = "{model}"
    has_many_method: str = "{models}"
    has_one_method: str = "{model}"
    many_to_many_method: str = "{models}"
    morph_to_method: str = "{name}"
    morph_many_method: str = "{models}"
    morph_one_method: str = "{model}"

    def __post_init__(self) -> None:
        """Reject patterns that would render to a constant name."""
        if self.case not in ("camel", "snake"):
            msg = f"Unknown method name case: {self.case}"
            raise ValueError(msg)
        for pattern in (
            self.belongs_to_method,
            self.has_many_method,
            self.has_one_method,
            self.many_to_many_method,
            self.morph_to_method,
            self.morph_many_method,
            self.morph_one_method,
        ):
            if not any(placeholder in pattern for placeholder in PLACEHOLDERS):
                msg = f"Method name pattern has no placeholder: {pattern!r}"
                raise ValueError(msg)

    def apply_case(self, value: str) -> str:
        """Convert a raw name to the configured case."""
        return camel(value) if self.case == "camel" else snake(value)

    def render(self, pattern: str, subject: str) -> str:
        """Render a pattern for a subject and convert it to the configured case."""
        return self.apply_case(render_pattern(pattern, subject))

    def direct_reference(self, target_table: str) -> str:
        """Method name of a reference to a parent table."""
        return self.render(self.belongs_to_method, target_table)

    def inverse_collection(self, child_table: str, *, one: bool) -> str:
        """Method name of the collection of rows referencing this table."""
        pattern = self.has_one_method if one else self.has_many_method
        return self.render(pattern, child_table)

    def many_to_many(self, target_table: str) -> str:
        """Method name of a many-to-many relationship."""
        return self.render(self.many_to_many_method, target_table)

    def polymorphic_reference(self, morph_name: str) -> str:
        """Method name of a polymorphic reference."""
        return self.render(self.morph_to_method, morph_name)

    def polymorphic_collection(self, child_table: str, *, one: bool) -> str:
        """Method name of the collection of polymorphic children."""
        pattern = self.morph_one_method if one else self.morph_many_method
        return self.render(pattern, child_table)

    def disambiguate(self, method_name: str, qualifier: str) -> str:
        """Extend a colliding method name with a distinguishing qualifier."""
        if self.case == "camel":
            return method_name + "By" + studly(qualifier)
        return f"{method_name}_by_{snake(qualifier)}"
