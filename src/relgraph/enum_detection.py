"""Allowed-value lists declared by CHECK constraints."""

import re

# Column name, bare or quoted with "", '', `` or []
_COLUMN = r"[\"'`\[]?(\w+)[\"'`\]]?"
_IN_LIST = re.compile(_COLUMN + r"\s*IN\s*\(([^)]+)\)", re.IGNORECASE)
_STRING_LITERAL = re.compile(r"'((?:[^']|'')*)'")


def string_literals(text: str) -> list[str]:
    """Return the SQL string literals of a value list, unescaped."""
    return [value.replace("''", "'") for value in _STRING_LITERAL.findall(text)]


def detect_enum_for_column(constraint_text: str, column_name: str) -> list[str]:
    """Detect if a constraint enumerates the allowed values of a column.

    Handles constraints like:
    - commentable_type IN ('Post', 'Video')
    - "commentable_type" IN ('App\\Models\\Post', 'App\\Models\\Video')
    - status IN ('a', 'b') AND kind IN ('x', 'y')

    Only quoted values are returned; numeric lists are not enumerations of
    discriminators.
    """
    for column, values in _IN_LIST.findall(constraint_text):
        if column == column_name:
            return string_literals(values)
    return []
