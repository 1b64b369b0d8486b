"""Configuration-declared relationships and their reconciliation with detected ones."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING, Any

from relgraph.naming import model_name, pivot_name, plural, singular, snake
from relgraph.types import (
    CascadeAction,
    Cardinality,
    DirectReference,
    InverseCollection,
    ManyToMany,
    MorphTarget,
    PolymorphicCollection,
    PolymorphicReference,
    RelationshipDescriptor,
    RelationshipKind,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from relgraph.naming import NamingConventions

logger = getLogger(__name__)

type OverrideParser = Callable[
    [str, dict[str, Any], NamingConventions],
    RelationshipDescriptor,
]


class _Fields:
    """Consumes override fields, remembering which keys were used."""

    def __init__(self, table: str, raw: Mapping[str, Any]) -> None:
        self.table = table
        self.raw = dict(raw)
        self.used = {"kind"}

    def required(self, *names: str) -> Any:  # noqa: ANN401
        for name in names:
            if name in self.raw:
                self.used.add(name)
                return self.raw[name]
        msg = f"Override on '{self.table}' is missing '{names[0]}'"
        raise ValueError(msg)

    def optional(self, name: str, default: Any) -> Any:  # noqa: ANN401
        self.used.add(name)
        return self.raw.get(name, default)

    def flag(self, name: str, *, default: bool = False) -> bool:
        value = self.optional(name, default)
        if not isinstance(value, bool):
            msg = f"Override on '{self.table}': '{name}' must be true or false"
            raise ValueError(msg)  # noqa: TRY004
        return value

    def action(self, name: str) -> CascadeAction:
        return parse_cascade_action(self.optional(name, "none"))

    def cardinality(self) -> Cardinality:
        value = self.optional("cardinality", "many")
        try:
            return Cardinality(value)
        except ValueError as err:
            msg = f"Override on '{self.table}': unknown cardinality '{value}'"
            raise ValueError(msg) from err

    def check_unused(self) -> None:
        if unknown := sorted(set(self.raw) - self.used):
            msg = f"Override on '{self.table}' has unknown keys: {', '.join(unknown)}"
            raise ValueError(msg)


def parse_cascade_action(value: str) -> CascadeAction:
    """Parse a configured action such as ``cascade`` or ``set null``."""
    normalized = "_".join(str(value).lower().replace("-", " ").split())
    try:
        return CascadeAction(normalized)
    except ValueError as err:
        msg = f"Unknown cascade action: {value}"
        raise ValueError(msg) from err


def _target_table(fields: _Fields) -> str:
    if "model" in fields.raw and "target_table" not in fields.raw:
        fields.used.add("model")
        return plural(snake(fields.raw["model"]))
    return fields.required("target_table", "related_table")


def _direct_reference(
    table: str,
    raw: dict[str, Any],
    naming: NamingConventions,
) -> DirectReference:
    fields = _Fields(table, raw)
    target_table = _target_table(fields)
    descriptor = DirectReference(
        local_table=table,
        method_name=fields.optional("method_name", None)
        or naming.direct_reference(target_table),
        local_column=fields.optional("local_column", None)
        or fields.optional("foreign_key", f"{singular(target_table)}_id"),
        target_table=target_table,
        target_column=fields.optional("target_column", "id"),
        required=fields.flag("required"),
        on_delete=fields.action("on_delete"),
        on_update=fields.action("on_update"),
        target_soft_deletes=fields.flag("target_soft_deletes"),
        is_custom=True,
    )
    fields.check_unused()
    return descriptor


def _inverse_collection(
    table: str,
    raw: dict[str, Any],
    naming: NamingConventions,
) -> InverseCollection:
    fields = _Fields(table, raw)
    target_table = _target_table(fields)
    cardinality = fields.cardinality()
    descriptor = InverseCollection(
        local_table=table,
        method_name=fields.optional("method_name", None)
        or naming.inverse_collection(target_table, one=cardinality is Cardinality.ONE),
        target_table=target_table,
        foreign_key=fields.optional("foreign_key", f"{singular(table)}_id"),
        related_key=fields.optional("related_key", "id"),
        cascade_delete=fields.flag("cascade_delete"),
        cascade_update=fields.flag("cascade_update"),
        cardinality=cardinality,
        target_soft_deletes=fields.flag("target_soft_deletes"),
        is_custom=True,
    )
    fields.check_unused()
    return descriptor


def _many_to_many(
    table: str,
    raw: dict[str, Any],
    naming: NamingConventions,
) -> ManyToMany:
    fields = _Fields(table, raw)
    target_table = _target_table(fields)
    descriptor = ManyToMany(
        local_table=table,
        method_name=fields.optional("method_name", None)
        or naming.many_to_many(target_table),
        target_table=target_table,
        junction_table=fields.optional("junction_table", None)
        or fields.optional("pivot_table", pivot_name(table, target_table)),
        junction_local_key=fields.optional(
            "junction_local_key",
            f"{singular(table)}_id",
        ),
        junction_target_key=fields.optional(
            "junction_target_key",
            f"{singular(target_table)}_id",
        ),
        local_key=fields.optional("local_key", "id"),
        target_key=fields.optional("target_key", "id"),
        extra_attributes=tuple(fields.optional("extra_attributes", ())),
        has_timestamps=fields.flag("has_timestamps"),
        has_soft_delete=fields.flag("has_soft_delete"),
        by_naming_convention=fields.flag("by_naming_convention"),
        is_custom=True,
    )
    fields.check_unused()
    return descriptor


def _morph_targets(table: str, raw_targets: Iterable[Any]) -> frozenset[MorphTarget]:
    targets: set[MorphTarget] = set()
    for target in raw_targets:
        if isinstance(target, str):
            targets.add(MorphTarget(target, model_name(target)))
        elif isinstance(target, dict) and "table" in target:
            targets.add(
                MorphTarget(
                    target["table"],
                    target.get("discriminator_value", model_name(target["table"])),
                ),
            )
        else:
            msg = f"Override on '{table}': invalid polymorphic target {target!r}"
            raise ValueError(msg)
    return frozenset(targets)


def _polymorphic_reference(
    table: str,
    raw: dict[str, Any],
    naming: NamingConventions,
) -> PolymorphicReference:
    fields = _Fields(table, raw)
    morph_name = fields.required("morph_name")
    descriptor = PolymorphicReference(
        local_table=table,
        method_name=fields.optional("method_name", None)
        or naming.polymorphic_reference(morph_name),
        morph_name=morph_name,
        type_column=fields.optional("type_column", f"{morph_name}_type"),
        id_column=fields.optional("id_column", f"{morph_name}_id"),
        resolved_targets=_morph_targets(table, fields.optional("targets", ())),
        required=fields.flag("required"),
        is_custom=True,
    )
    fields.check_unused()
    return descriptor


def _polymorphic_collection(
    table: str,
    raw: dict[str, Any],
    naming: NamingConventions,
) -> PolymorphicCollection:
    fields = _Fields(table, raw)
    target_table = _target_table(fields)
    morph_name = fields.required("morph_name")
    cardinality = fields.cardinality()
    descriptor = PolymorphicCollection(
        local_table=table,
        method_name=fields.optional("method_name", None)
        or naming.polymorphic_collection(
            target_table,
            one=cardinality is Cardinality.ONE,
        ),
        target_table=target_table,
        morph_name=morph_name,
        type_column=fields.optional("type_column", f"{morph_name}_type"),
        id_column=fields.optional("id_column", f"{morph_name}_id"),
        discriminator_value=fields.optional("discriminator_value", model_name(table)),
        cardinality=cardinality,
        is_custom=True,
    )
    fields.check_unused()
    return descriptor


PARSERS: dict[RelationshipKind, OverrideParser] = {
    RelationshipKind.DIRECT_REFERENCE: _direct_reference,
    RelationshipKind.INVERSE_COLLECTION: _inverse_collection,
    RelationshipKind.MANY_TO_MANY: _many_to_many,
    RelationshipKind.POLYMORPHIC_REFERENCE: _polymorphic_reference,
    RelationshipKind.POLYMORPHIC_COLLECTION: _polymorphic_collection,
}


def parse_override(
    table: str,
    raw: Mapping[str, Any],
    naming: NamingConventions,
) -> RelationshipDescriptor:
    """Build a descriptor from one configured override table."""
    kind = raw.get("kind")
    try:
        parser = PARSERS[RelationshipKind(kind)]
    except ValueError as err:
        msg = f"Override on '{table}' has unknown kind: {kind!r}"
        raise ValueError(msg) from err
    return parser(table, dict(raw), naming)


def parse_overrides(
    raw: Mapping[str, Iterable[Mapping[str, Any]]],
    naming: NamingConventions,
) -> dict[str, tuple[RelationshipDescriptor, ...]]:
    """Build descriptors for every configured override, keyed by owning table."""
    return {
        table: tuple(parse_override(table, entry, naming) for entry in entries)
        for table, entries in raw.items()
    }


def merge_overrides(
    detected: Iterable[RelationshipDescriptor],
    overrides: Iterable[RelationshipDescriptor],
) -> tuple[RelationshipDescriptor, ...]:
    """Reconcile detected descriptors with declared ones.

    Descriptors are matched on (local_table, method_name). A matching override
    replaces the detected descriptor whole, in the detected position; the
    remaining overrides are appended in declaration order. Overrides already
    present, such as direct references placed by local column, stay where they are.
    """
    detected = tuple(detected)
    pending = {
        override.key: override for override in overrides if override not in detected
    }
    merged = [pending.pop(descriptor.key, descriptor) for descriptor in detected]
    merged.extend(pending.values())
    return tuple(merged)


def apply_cascade_policies(
    descriptors: Iterable[RelationshipDescriptor],
    policies: Mapping[str, CascadeAction],
) -> tuple[RelationshipDescriptor, ...]:
    """Apply configured delete policies, keyed by method name."""
    result: list[RelationshipDescriptor] = []
    for descriptor in descriptors:
        action = policies.get(descriptor.method_name)
        match descriptor:
            case DirectReference() if action is not None:
                descriptor = replace(descriptor, on_delete=action)  # noqa: PLW2901
            case InverseCollection() if action is not None:
                descriptor = replace(  # noqa: PLW2901
                    descriptor,
                    cascade_delete=action is CascadeAction.CASCADE,
                )
            case _ if action is not None:
                logger.debug(
                    "Cascade policy ignored for %s (%s)",
                    descriptor.key,
                    descriptor.kind,
                )
            case _:
                pass
        result.append(descriptor)
    return tuple(result)


def _qualifier(descriptor: RelationshipDescriptor) -> str:
    match descriptor:
        case DirectReference():
            return descriptor.local_column.removesuffix("_id")
        case InverseCollection():
            return descriptor.foreign_key.removesuffix("_id")
        case ManyToMany() if descriptor.local_table == descriptor.target_table:
            return descriptor.junction_target_key.removesuffix("_id")
        case ManyToMany():
            return descriptor.junction_table
        case PolymorphicReference():
            return descriptor.type_column
        case PolymorphicCollection():
            return descriptor.morph_name


def disambiguate_method_names(
    descriptors: Iterable[RelationshipDescriptor],
    naming: NamingConventions,
) -> tuple[RelationshipDescriptor, ...]:
    """Give every descriptor of a table a distinct method name.

    Declared descriptors keep their names. Otherwise the first descriptor keeps
    a contested name and later ones are qualified by the column or table that
    tells them apart, then numbered if still taken.
    """
    descriptors = tuple(descriptors)
    counts = Counter(descriptor.method_name for descriptor in descriptors)
    reserved = {
        descriptor.method_name for descriptor in descriptors if descriptor.is_custom
    }
    taken: set[str] = set()
    result: list[RelationshipDescriptor] = []
    for descriptor in descriptors:
        name = descriptor.method_name
        if name in taken or (name in reserved and not descriptor.is_custom):
            qualified = naming.disambiguate(name, _qualifier(descriptor))
            candidate = qualified
            suffix = 2
            while candidate in taken or candidate in counts:
                candidate = f"{qualified}{suffix}"
                suffix += 1
            logger.warning(
                "Method name %s.%s is already taken; renamed %s relationship to %s",
                descriptor.local_table,
                name,
                descriptor.kind,
                candidate,
            )
            descriptor = replace(descriptor, method_name=candidate)  # noqa: PLW2901
        taken.add(descriptor.method_name)
        result.append(descriptor)
    return tuple(result)
