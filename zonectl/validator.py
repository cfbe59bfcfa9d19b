"""Validation and normalisation of candidate zone configurations."""

from __future__ import annotations

import copy
from typing import Any, Iterable, List, Optional

from zonectl.codec import coerce_value, split_index
from zonectl.exceptions import MalformedIndexError, TypeMismatchError, ValidationError
from zonectl.models import AttributeRecord, Mutation, SchemaEntry, StructuredConfig
from zonectl.schema import DERIVATIONS, Schema
from zonectl.utils import log


def check_value(key: str, entry: SchemaEntry, value: Any) -> Any:
    """Coerce ``value`` to what ``entry`` declares, or raise naming ``key``."""
    if entry.list_valued:
        if isinstance(value, list):
            items = value
        elif isinstance(value, str) and not value.strip():
            items = []
        elif isinstance(value, dict):
            raise TypeMismatchError(key, f"list of {entry.type}", value)
        else:
            items = [value]
        checked = [coerce_value(key, entry.type, item) for item in items]
        for item in checked:
            _check_constraints(key, entry, item)
        return checked

    if isinstance(value, (list, dict)):
        raise TypeMismatchError(key, entry.type, value)
    checked = coerce_value(key, entry.type, value)
    _check_constraints(key, entry, checked)
    return checked


def _check_constraints(key: str, entry: SchemaEntry, value: Any) -> None:
    if entry.choices and value not in entry.choices:
        raise ValidationError(key, f"'{value}' is not one of: {', '.join(entry.choices)}")
    if entry.minimum is not None and value < entry.minimum:
        raise ValidationError(key, f"must be >= {entry.minimum} (got {value})")


def _check_slot_collision(schema: Schema, key: str) -> None:
    # "disk7" decodes into the "disk" list
    base, index = split_index(key)
    entry = schema.lookup(base) if index is not None else None
    if entry is not None and entry.list_valued and entry.resource == "attr":
        raise MalformedIndexError(base, index, f"key '{key}' collides with list slot")


def validate(
    schema: Schema,
    candidate: StructuredConfig,
    previous: Optional[StructuredConfig] = None,
) -> StructuredConfig:
    """Return the normalised form of ``candidate`` for the profile ``schema``.

    Known keys are type-checked and missing ones get their defaults; derived
    keys are recomputed from their sources. Unknown keys pass through as they
    are. The first offending key raises; nothing is aggregated.
    """
    previous = previous or {}
    result: StructuredConfig = {}

    for key, value in candidate.items():
        entry = schema.lookup(key)
        if entry is None:
            _check_slot_collision(schema, key)
            result[key] = value
            continue
        if entry.derivation:
            continue
        if value is None:
            continue
        result[key] = check_value(key, entry, value)

    for key, entry in schema.entries.items():
        if key in result or entry.derivation or entry.default is None:
            continue
        result[key] = copy.deepcopy(entry.default)

    for key, entry in schema.entries.items():
        if not entry.immutable or previous.get(key) is None:
            continue
        if result.get(key) != previous[key]:
            raise ValidationError(key, f"cannot be changed once set (currently '{previous[key]}')")

    for key, entry in schema.derived():
        sources: List[Any] = []
        for source in entry.derive_from:
            value = result.get(source)
            if isinstance(value, list):
                sources.extend(value)
            elif value is not None:
                sources.append(value)
        derived = DERIVATIONS[entry.derivation](sources)
        if key in candidate and candidate[key] != derived:
            log("DEBUG", f"'{key}' is derived from {', '.join(entry.derive_from)}; ignoring edited value")
        result[key] = derived

    return result


def diff_records(old: Iterable[AttributeRecord], new: Iterable[AttributeRecord]) -> List[Mutation]:
    """Smallest list of add/remove/replace steps turning ``old`` into ``new``, by name."""
    old_by_name = {record.name: record for record in old}
    new_by_name = {record.name: record for record in new}
    mutations: List[Mutation] = []
    for name in sorted(set(old_by_name) | set(new_by_name)):
        before = old_by_name.get(name)
        after = new_by_name.get(name)
        if before is None:
            mutations.append(Mutation("add", None, after))
        elif after is None:
            mutations.append(Mutation("remove", before, None))
        elif before != after:
            mutations.append(Mutation("replace", before, after))
    return mutations
