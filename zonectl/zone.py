"""Zone facade tying the schema, codec, validator and store together."""

from __future__ import annotations

from typing import List, Optional

from zonectl.codec import AttributeCodec, coerce_value, format_value
from zonectl.constants import ZONE_NAME_RE, ZVOL_DEVICE_PREFIX
from zonectl.exceptions import ManagerError
from zonectl.models import ChangeSet, StructuredConfig, ZoneState
from zonectl.schema import Schema
from zonectl.store import ConfigFile, ZoneStore
from zonectl.utils import log
from zonectl.validator import diff_records, validate


class Zone:
    def __init__(
        self,
        name: str,
        schema: Schema,
        store: ZoneStore,
        config_file: Optional[ConfigFile] = None,
        template: Optional[StructuredConfig] = None,
    ) -> None:
        if not ZONE_NAME_RE.match(name):
            raise ManagerError(f"Invalid zone name '{name}'")
        self.name = name
        self.schema = schema
        self.store = store
        self.codec = AttributeCodec(schema)
        self.config_file = config_file or ConfigFile(name)
        self.template = template or {}

    def __repr__(self) -> str:
        return f"Zone({self.name!r}, profile={self.schema.name!r})"

    @property
    def exists(self) -> bool:
        return self.store.exists(self.name)

    def _structured(self, state: ZoneState) -> StructuredConfig:
        config = self.codec.decode(state.attributes)
        for key in self.schema.keys_for("property"):
            raw = state.properties.get(key)
            if raw is not None:
                config[key] = coerce_value(key, self.schema.entries[key].type, raw)
        owned = _owned_devices(state.devices)
        for key in self.schema.keys_for("device"):
            config[key] = list(owned)
        return config

    @property
    def config(self) -> StructuredConfig:
        """The current configuration; a zone that does not exist yet gets its defaults."""
        if not self.exists:
            return validate(self.schema, self.template)
        return self._structured(self.store.read(self.name))

    def set_config(self, candidate: StructuredConfig) -> StructuredConfig:
        """Validate ``candidate`` and commit whatever differs from the stored zone."""
        creating = not self.exists
        state = ZoneState() if creating else self.store.read(self.name)
        previous = {} if creating else self._structured(state)

        log("DEBUG", f"validating config for zone '{self.name}'")
        config = validate(self.schema, candidate, previous)
        records = self.codec.encode(config, state.attributes)

        changes = ChangeSet(brand=self.schema.name if creating else None)
        for key in self.schema.keys_for("property"):
            entry = self.schema.entries[key]
            value = config.get(key)
            wanted = None if value is None else format_value(key, entry.type, value)
            if wanted != state.properties.get(key):
                changes.properties[key] = wanted

        owned = _owned_devices(state.devices)
        wanted_devices: List[str] = []
        for key in self.schema.keys_for("device"):
            wanted_devices += [d for d in config.get(key, []) if d not in wanted_devices]
        changes.devices_removed = [d for d in owned if d not in wanted_devices]
        changes.devices_added = [d for d in wanted_devices if d not in owned]
        changes.mutations = diff_records(state.attributes, records)

        self.store.commit(self.name, changes)
        return config


def _owned_devices(devices: List[str]) -> List[str]:
    return [device for device in devices if device.startswith(ZVOL_DEVICE_PREFIX)]

