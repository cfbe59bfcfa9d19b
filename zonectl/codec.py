"""Conversion between flat attribute records and structured configuration.

zonecfg stores VM settings as ``attr`` resources: a name, a type and a string
value. List-valued settings are spread over several records whose names carry
a numeric slot suffix (``disk0``, ``disk5``, ``disk``). ``AttributeCodec``
folds those records into one structured mapping and back.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

try:
    import json5  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("json5 is required but not installed") from exc

from zonectl.constants import FALSY, INDEXED_KEY_RE, TRUTHY, ZONE_NAME_PLACEHOLDER
from zonectl.exceptions import ManagerError, MalformedIndexError, ParseError, TypeMismatchError
from zonectl.models import AttributeRecord, SchemaEntry, StructuredConfig
from zonectl.schema import Schema

_NEWLINE_RE = re.compile(r"\r\n|\n|\r")
# json5 reports errors as "<string>:LINE Unexpected ... at column COL".
_JSON5_ERROR_RE = re.compile(r"^<string>:(?P<line>\d+) (?P<message>.*)$")


def split_index(name: str) -> Tuple[str, Optional[int]]:
    """Split ``disk12`` into ``("disk", 12)``; names without a numeric tail get None."""
    match = INDEXED_KEY_RE.match(name)
    if match is None:
        return name, None
    return match.group("base"), int(match.group("index"))


def coerce_value(key: str, value_type: str, raw: Any) -> Any:
    """Convert ``raw`` to ``value_type``, accepting the textual forms the store uses."""
    if value_type == "string":
        if isinstance(raw, bool):
            return "true" if raw else "false"
        if isinstance(raw, (str, int, float)):
            return str(raw)
        raise TypeMismatchError(key, "string", raw)

    if value_type == "integer":
        if isinstance(raw, bool):
            raise TypeMismatchError(key, "integer", raw)
        if isinstance(raw, int):
            return raw
        if isinstance(raw, str):
            try:
                return int(raw.strip(), 10)
            except ValueError:
                pass
        raise TypeMismatchError(key, "integer", raw)

    if value_type == "boolean":
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in TRUTHY:
                return True
            if lowered in FALSY:
                return False
        raise TypeMismatchError(key, "boolean", raw)

    raise TypeMismatchError(key, value_type, raw)


def format_value(key: str, value_type: str, value: Any) -> str:
    """Render a typed value the way it is persisted."""
    value = coerce_value(key, value_type, value)
    if value_type == "boolean":
        return "true" if value else "false"
    return str(value)


class AttributeCodec:
    """Decode attribute records into a structured config and encode them back."""

    def __init__(self, schema: Schema) -> None:
        self.schema = schema

    def _list_entry(self, key: str) -> Optional[SchemaEntry]:
        entry = self.schema.lookup(key)
        if entry is not None and entry.resource == "attr" and entry.list_valued:
            return entry
        return None

    def decode(self, records: Iterable[AttributeRecord]) -> StructuredConfig:
        config: StructuredConfig = {}
        slots: Dict[str, Dict[Optional[int], str]] = {}

        for record in sorted(records, key=lambda r: r.name):
            if record.name in config:
                raise MalformedIndexError(record.name, None, "duplicate record")

            if self._list_entry(record.name) is not None:
                base, index = record.name, None
            else:
                base, index = split_index(record.name)
                if index is None or self._list_entry(base) is None:
                    base = None

            if base is not None:
                group = slots.setdefault(base, {})
                if index in group:
                    reason = "duplicate index" if index is not None else "duplicate record"
                    raise MalformedIndexError(base, index, reason)
                group[index] = record.value
                continue

            entry = self.schema.lookup(record.name)
            if entry is not None and entry.resource == "attr":
                config[record.name] = coerce_value(record.name, entry.type, record.value)
            else:
                # unknown attributes keep their textual form
                config[record.name] = record.value

        for base, group in slots.items():
            entry = self.schema.entries[base]
            ordered = [group[index] for index in sorted(i for i in group if i is not None)]
            if None in group:
                ordered.append(group[None])
            config[base] = [coerce_value(base, entry.type, value) for value in ordered]

        for key in self.schema.keys_for("attr"):
            if key not in config and self.schema.entries[key].list_valued:
                config[key] = []

        return config

    def encode(
        self,
        config: StructuredConfig,
        previous: Optional[Iterable[AttributeRecord]] = None,
    ) -> List[AttributeRecord]:
        """Encode the attribute part of ``config``, sorted by record name.

        ``previous`` supplies the records last read from the store so that an
        unknown attribute whose text did not change keeps its declared type.
        """
        known_records = {record.name: record for record in previous or ()}
        records: Dict[str, AttributeRecord] = {}

        def emit(record: AttributeRecord) -> None:
            if record.name in records:
                base, index = split_index(record.name)
                raise MalformedIndexError(base, index)
            records[record.name] = record

        for key, value in config.items():
            entry = self.schema.lookup(key)
            if entry is None:
                record = self._encode_unknown(key, value, known_records.get(key))
                if record is not None:
                    emit(record)
                continue
            if entry.resource != "attr" or value is None:
                continue
            if entry.list_valued:
                if not isinstance(value, list):
                    raise TypeMismatchError(key, f"list of {entry.type}", value)
                for index, item in enumerate(value):
                    emit(AttributeRecord(f"{key}{index}", entry.type, format_value(key, entry.type, item)))
            else:
                emit(AttributeRecord(key, entry.type, format_value(key, entry.type, value)))

        return [records[name] for name in sorted(records)]

    @staticmethod
    def _encode_unknown(key: str, value: Any, known: Optional[AttributeRecord]) -> Optional[AttributeRecord]:
        if value is None:
            return None
        if isinstance(value, bool):
            return AttributeRecord(key, "boolean", "true" if value else "false")
        if isinstance(value, int):
            return AttributeRecord(key, "integer", str(value))
        if isinstance(value, float):
            return AttributeRecord(key, "string", str(value))
        if isinstance(value, str):
            if known is not None and known.value == value:
                return known
            return AttributeRecord(key, "string", value)
        raise TypeMismatchError(key, "string, integer or boolean", value)


def serialize(config: StructuredConfig) -> str:
    """Canonical text shown on the edit surface: sorted keys, pretty-printed."""
    return json.dumps(config, indent=4, sort_keys=True) + "\n"


def offset_to_line(text: str, offset: int) -> int:
    """1-based line number of a character offset."""
    return len(_NEWLINE_RE.findall(text[:offset])) + 1


def parse(text: str) -> StructuredConfig:
    """Parse the relaxed textual form: JSON plus comments, trailing commas and the rest of JSON5."""
    try:
        data = json5.loads(text)
    except ValueError as exc:
        match = _JSON5_ERROR_RE.match(str(exc))
        if match is None:
            raise ParseError(str(exc)) from exc
        raise ParseError(match.group("message"), int(match.group("line"))) from exc

    if not isinstance(data, dict):
        raise ParseError("configuration must be a mapping of keys to values", 1)
    return data


def load_template(path: Path, name: str = "") -> StructuredConfig:
    """Read a configuration template, substituting the zone name placeholder."""
    try:
        text = path.read_text()
    except OSError as exc:
        raise ManagerError(f"Cannot read template {path}: {exc}")
    if name:
        text = text.replace(ZONE_NAME_PLACEHOLDER, name)
    return parse(text)
