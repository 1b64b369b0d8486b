"""Error types raised or attached during relationship analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum, auto


class SchemaErrorKind(StrEnum):
    """Why an introspection call failed."""

    NOT_FOUND = auto()
    UNSUPPORTED = auto()
    CONNECTION_FAILED = auto()


class SchemaError(Exception):
    """Introspection failure, distinct from an empty result."""

    def __init__(self, kind: SchemaErrorKind, message: str) -> None:
        """Initialize with the failure kind and a readable message."""
        super().__init__(message)
        self.kind = kind

    @classmethod
    def not_found(cls, message: str) -> SchemaError:
        """Build a NOT_FOUND error."""
        return cls(SchemaErrorKind.NOT_FOUND, message)

    @classmethod
    def unsupported(cls, message: str) -> SchemaError:
        """Build an UNSUPPORTED error."""
        return cls(SchemaErrorKind.UNSUPPORTED, message)

    @classmethod
    def connection_failed(cls, message: str) -> SchemaError:
        """Build a CONNECTION_FAILED error."""
        return cls(SchemaErrorKind.CONNECTION_FAILED, message)


@dataclass(frozen=True)
class AmbiguousRelationship:
    """Non-fatal note explaining why a relationship could not be fully resolved.

    Attached to a descriptor instead of being raised.
    """

    reason: str
    candidates: tuple[str, ...] = field(default_factory=tuple)
