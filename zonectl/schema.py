"""Per-profile schemas of recognised zone configuration keys.

A profile (the zone brand) maps configuration keys to a ``SchemaEntry``
describing the key's type, default, whether it is list-valued and where it is
stored. Keys a profile does not describe are unknown: they are carried through
every edit untouched.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from zonectl.constants import PROFILES_ENV, ZVOL_DEVICE_PREFIX
from zonectl.exceptions import ManagerError
from zonectl.models import SchemaEntry
from zonectl.utils import get_env, log

VALUE_TYPES = ("string", "boolean", "integer")
RESOURCES = ("attr", "property", "device")


def zvol_devices(values: Iterable[Any]) -> List[str]:
    """Raw zvol device paths for dataset-backed disks; file-backed disks need none."""
    devices: List[str] = []
    for value in values:
        if not isinstance(value, str) or not value or value.startswith("/"):
            continue
        device = ZVOL_DEVICE_PREFIX + value
        if device not in devices:
            devices.append(device)
    return devices


DERIVATIONS: Dict[str, Callable[[Iterable[Any]], List[str]]] = {
    "zvol": zvol_devices,
}


class Schema:
    """Immutable key -> SchemaEntry table for one profile."""

    def __init__(self, name: str, entries: Mapping[str, SchemaEntry]) -> None:
        self.name = name
        self._entries = MappingProxyType(dict(entries))

    def __repr__(self) -> str:
        return f"Schema({self.name!r}, {sorted(self._entries)!r})"

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    @property
    def entries(self) -> Mapping[str, SchemaEntry]:
        return self._entries

    def lookup(self, key: str) -> Optional[SchemaEntry]:
        """Return the entry for ``key`` or None when the key is unknown to this profile."""
        return self._entries.get(key)

    def keys_for(self, resource: str) -> List[str]:
        return sorted(key for key, entry in self._entries.items() if entry.resource == resource)

    def derived(self) -> List[Tuple[str, SchemaEntry]]:
        return [(key, entry) for key, entry in sorted(self._entries.items()) if entry.derivation]


_COMMON = {
    "zonepath": SchemaEntry(resource="property", immutable=True, description="zone root dataset mountpoint"),
    "autoboot": SchemaEntry(type="boolean", default=False, resource="property"),
    "ip-type": SchemaEntry(default="exclusive", resource="property", choices=("exclusive", "shared")),
    "cpu-shares": SchemaEntry(type="integer", default=1, resource="property", minimum=1),
}

_VM_COMMON = {
    "bootdisk": SchemaEntry(description="dataset or file holding the boot disk"),
    "disk": SchemaEntry(default=[], list_valued=True, description="additional disks, in slot order"),
    "ram": SchemaEntry(default="1G"),
    "vcpus": SchemaEntry(type="integer", default=1, minimum=1),
    "vnc": SchemaEntry(default="off"),
    "extra": SchemaEntry(description="free-form extra hypervisor arguments"),
    "device": SchemaEntry(
        default=[],
        list_valued=True,
        resource="device",
        derive_from=("bootdisk", "disk"),
        derivation="zvol",
    ),
}

BUILTIN_PROFILES: Dict[str, Schema] = {
    "bhyve": Schema(
        "bhyve",
        {
            **_COMMON,
            **_VM_COMMON,
            "acpi": SchemaEntry(type="boolean", default=True),
            "bootrom": SchemaEntry(default="BHYVE_RELEASE_CSM"),
            "hostbridge": SchemaEntry(default="i440fx", choices=("i440fx", "q35", "amd", "netapp", "none")),
            "type": SchemaEntry(default="generic", choices=("generic", "windows", "openbsd")),
        },
    ),
    "kvm": Schema(
        "kvm",
        {
            **_COMMON,
            **_VM_COMMON,
            "cdrom": SchemaEntry(default=[], list_valued=True),
            "cpu": SchemaEntry(default="host"),
        },
    ),
    "ipkg": Schema("ipkg", _COMMON),
}


def _parse_entry(profile: str, key: str, raw: Any) -> SchemaEntry:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ManagerError(f"Profile '{profile}': key '{key}' must be a mapping")
    known = {f.name for f in fields(SchemaEntry)} | {"list"}
    unexpected = sorted(set(raw) - known)
    if unexpected:
        raise ManagerError(f"Profile '{profile}': key '{key}' has unknown fields: {', '.join(unexpected)}")

    values = dict(raw)
    if "list" in values:
        values["list_valued"] = bool(values.pop("list"))
    for name in ("derive_from", "choices"):
        if name in values:
            values[name] = tuple(values[name] or ())
    entry = SchemaEntry(**values)

    if entry.type not in VALUE_TYPES:
        raise ManagerError(f"Profile '{profile}': key '{key}' has unsupported type '{entry.type}'")
    if entry.resource not in RESOURCES:
        raise ManagerError(f"Profile '{profile}': key '{key}' has unsupported resource '{entry.resource}'")
    if entry.derivation is not None and entry.derivation not in DERIVATIONS:
        raise ManagerError(f"Profile '{profile}': key '{key}' uses unknown derivation '{entry.derivation}'")
    return entry


def load_profiles(path: Path, base: Optional[Mapping[str, Schema]] = None) -> Dict[str, Schema]:
    """Load profile schemas from a YAML file on top of ``base`` (the built-ins by default).

    Layout::

        profiles:
          bhyve-lab:
            inherit: bhyve
            keys:
              priority: {type: integer, default: 0, minimum: 0}
    """
    profiles: Dict[str, Schema] = dict(BUILTIN_PROFILES if base is None else base)
    if not path.exists():
        raise ManagerError(f"Profile config missing: {path}")
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ManagerError(f"Profile config {path} contains invalid YAML: {exc}")
    declared = data.get("profiles", {}) if isinstance(data, dict) else None
    if not isinstance(declared, dict):
        raise ManagerError(f"Profile config {path}: 'profiles' must be a mapping")

    for name, body in declared.items():
        body = body or {}
        parent = body.get("inherit")
        entries: Dict[str, SchemaEntry] = {}
        if parent is not None:
            if parent not in profiles:
                raise ManagerError(f"Profile '{name}' inherits unknown profile '{parent}'")
            entries.update(profiles[parent].entries)
        for key, raw in (body.get("keys") or {}).items():
            entries[key] = _parse_entry(name, key, raw)
        profiles[name] = Schema(name, entries)
        log("DEBUG", f"Loaded profile '{name}' ({len(entries)} keys) from {path}")
    return profiles


class SchemaRegistry:
    """Profile name -> Schema lookup, fixed once constructed."""

    def __init__(self, profiles: Optional[Mapping[str, Schema]] = None) -> None:
        self._profiles = MappingProxyType(dict(BUILTIN_PROFILES if profiles is None else profiles))

    @classmethod
    def from_env(cls) -> "SchemaRegistry":
        path = get_env(PROFILES_ENV)
        if path:
            return cls(load_profiles(Path(path)))
        return cls()

    def names(self) -> List[str]:
        return sorted(self._profiles)

    def get(self, profile: str) -> Schema:
        if profile not in self._profiles:
            available = ", ".join(self.names())
            raise ManagerError(f"Unknown profile '{profile}'. Available profiles: {available}")
        return self._profiles[profile]

    def lookup(self, profile: str, key: str) -> Optional[SchemaEntry]:
        return self.get(profile).lookup(key)
