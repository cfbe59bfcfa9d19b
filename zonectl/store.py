"""Zone configuration persistence through zonecfg/zoneadm and the on-disk zone file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional

from zonectl.constants import CODEC_TO_STORE_TYPES, STORE_TYPES, ZONES_DIR
from zonectl.exceptions import ManagerError, RestoreFailure
from zonectl.models import AttributeRecord, BackupSnapshot, ChangeSet, Mutation, ZoneState
from zonectl.runner import CommandRunner
from zonectl.utils import log


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def parse_zonecfg_info(lines: List[str]) -> ZoneState:
    """Split ``zonecfg info`` output into global properties, attributes and devices."""
    state = ZoneState()
    resource: Optional[str] = None
    current: Dict[str, str] = {}

    def finish() -> None:
        if resource == "attr" and "name" in current:
            value_type = STORE_TYPES.get(current.get("type", "string"), "string")
            state.attributes.append(AttributeRecord(current["name"], value_type, current.get("value", "")))
        elif resource == "device" and current.get("match"):
            state.devices.append(current["match"])

    for line in lines:
        if not line.strip():
            continue
        if line[0] in " \t":
            key, sep, value = line.strip().partition(":")
            if sep and resource is not None:
                current[key.strip()] = _unquote(value)
            continue

        finish()
        resource, current = None, {}
        text = line.strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        key, sep, value = text.partition(":")
        if not sep:
            continue
        value = _unquote(value)
        if value:
            state.properties[key.strip()] = value
        else:
            resource = key.strip()
    finish()
    return state


def quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_script(changes: ChangeSet) -> List[str]:
    """zonecfg subcommands for a change set, in the order they must run."""
    script: List[str] = []
    if changes.brand:
        script += ["create -b", f"set brand={changes.brand}"]
    for key in sorted(changes.properties):
        value = changes.properties[key]
        script.append(f"clear {key}" if value is None else f"set {key}={quote(value)}")
    for match in changes.devices_removed:
        script.append(f"remove device match={match}")
    for match in changes.devices_added:
        script.append(f"add device; set match={match}; end")
    for mutation in changes.mutations:
        if mutation.old is not None:
            script.append(f"remove attr name={mutation.old.name}")
        if mutation.new is not None:
            record = mutation.new
            script.append(
                f"add attr; set name={record.name}; "
                f"set type={CODEC_TO_STORE_TYPES[record.type]}; set value={quote(record.value)}; end"
            )
    return script


class ZoneStore:
    """Read and write zone configurations via the command runner."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def exists(self, name: str) -> bool:
        return bool(self.runner.run("zoneadm", ["-z", name, "list", "-p"], check=False))

    def read(self, name: str) -> ZoneState:
        return parse_zonecfg_info(self.runner.run("zonecfg", ["-z", name, "info"]))

    def list_attributes(self, name: str) -> List[AttributeRecord]:
        return self.read(name).attributes

    def remove_attribute(self, name: str, key: str) -> None:
        self.runner.run("zonecfg", ["-z", name, f"remove attr name={key}"])

    def add_attribute(self, name: str, record: AttributeRecord) -> None:
        self.commit(name, ChangeSet(mutations=[Mutation("add", None, record)]))

    def commit(self, name: str, changes: ChangeSet) -> None:
        if changes.empty:
            log("DEBUG", f"zone '{name}': nothing to commit")
            return
        script = build_script(changes)
        log("DEBUG", f"zone '{name}': committing {len(script)} change(s)")
        self.runner.run("zonecfg", ["-z", name, "; ".join(script)])


class ConfigFile:
    """The persisted zone definition file, used to back up and restore a zone around an edit."""

    def __init__(self, name: str, directory: Optional[Path] = None) -> None:
        self.path = (directory or ZONES_DIR) / f"{name}.xml"

    def exists(self) -> bool:
        return os.access(self.path, os.R_OK)

    def mtime(self) -> float:
        return self.path.stat().st_mtime

    def snapshot(self) -> Optional[BackupSnapshot]:
        if not self.exists():
            return None
        log("DEBUG", f"backing up current zone config from {self.path}")
        try:
            return BackupSnapshot(content=self.path.read_bytes(), mtime=self.mtime())
        except OSError as exc:
            raise ManagerError(f"Cannot back up {self.path}: {exc}")

    def changed_since(self, snapshot: BackupSnapshot) -> bool:
        try:
            return self.mtime() != snapshot.mtime
        except OSError:
            return True

    def restore(self, snapshot: BackupSnapshot) -> None:
        try:
            self.path.write_bytes(snapshot.content)
        except OSError as exc:
            raise RestoreFailure(f"Failed to restore {self.path}: {exc}") from exc
