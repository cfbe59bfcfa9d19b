"""Shared test fixtures: a recording command runner and an in-memory zone store."""

from __future__ import annotations

import os
from typing import Dict, List, Optional, Sequence

import pytest

from zonectl.models import AttributeRecord, ChangeSet, EditResult, ZoneState
from zonectl.runner import CommandRunner
from zonectl.schema import BUILTIN_PROFILES
from zonectl.store import ConfigFile, ZoneStore
from zonectl.zone import Zone


class FakeRunner(CommandRunner):
    """Records every command and answers from canned output keyed by (name, *args)."""

    def __init__(self, outputs: Optional[Dict[tuple, List[str]]] = None) -> None:
        super().__init__()
        self.outputs = outputs or {}
        self.calls: List[tuple] = []

    def run(self, name: str, args: Sequence[str] = (), check: bool = True) -> List[str]:
        self.command(name, args)
        self.calls.append((name, *args))
        return list(self.outputs.get((name, *args), []))


class MemoryStore(ZoneStore):
    """ZoneStore applying change sets to in-memory zone state instead of zonecfg."""

    def __init__(self, zones: Optional[Dict[str, ZoneState]] = None, config_file: Optional[ConfigFile] = None):
        super().__init__(FakeRunner())
        self.zones = zones or {}
        self.commits: List[ChangeSet] = []
        self.config_file = config_file

    def exists(self, name: str) -> bool:
        return name in self.zones

    def read(self, name: str) -> ZoneState:
        state = self.zones[name]
        return ZoneState(dict(state.properties), list(state.attributes), list(state.devices))

    def commit(self, name: str, changes: ChangeSet) -> None:
        if changes.empty:
            return
        self.commits.append(changes)
        state = self.zones.setdefault(name, ZoneState())
        if changes.brand:
            state.properties["brand"] = changes.brand
        for key, value in changes.properties.items():
            if value is None:
                state.properties.pop(key, None)
            else:
                state.properties[key] = value
        state.devices = [d for d in state.devices if d not in changes.devices_removed] + changes.devices_added
        attributes = {record.name: record for record in state.attributes}
        for mutation in changes.mutations:
            if mutation.old is not None:
                attributes.pop(mutation.old.name, None)
            if mutation.new is not None:
                attributes[mutation.new.name] = mutation.new
        state.attributes = list(attributes.values())
        if self.config_file is not None:
            bump(self.config_file.path, f"<zone name='{name}' commits='{len(self.commits)}'/>\n")


class ScriptedEditor:
    """Editor double returning prepared results; ``hook`` runs before each one."""

    def __init__(self, results: List[EditResult], hook=None) -> None:
        self.results = list(results)
        self.hook = hook
        self.seen: List[str] = []

    def edit(self, text: str) -> EditResult:
        self.seen.append(text)
        if self.hook is not None:
            self.hook()
        return self.results.pop(0)


class Answers:
    """Prompt double answering from a list and recording the questions."""

    def __init__(self, *answers: str) -> None:
        self.answers = list(answers)
        self.questions: List[str] = []

    def __call__(self, question: str) -> str:
        self.questions.append(question)
        return self.answers.pop(0)


def bump(path, content: str) -> None:
    """Rewrite a file and push its mtime forward so the change is always visible."""
    stat = path.stat() if path.exists() else None
    path.write_text(content)
    if stat is not None:
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))


@pytest.fixture
def bhyve():
    return BUILTIN_PROFILES["bhyve"]


@pytest.fixture
def zone_dir(tmp_path):
    directory = tmp_path / "etc" / "zones"
    directory.mkdir(parents=True)
    return directory


@pytest.fixture
def existing_state() -> ZoneState:
    return ZoneState(
        properties={"brand": "bhyve", "zonepath": "/zones/vm1", "autoboot": "false", "ip-type": "exclusive"},
        attributes=[
            AttributeRecord("bootdisk", "string", "rpool/vm1/root"),
            AttributeRecord("disk0", "string", "rpool/vm1/data"),
            AttributeRecord("ram", "string", "2G"),
            AttributeRecord("vcpus", "integer", "2"),
            AttributeRecord("owner", "string", "ops-team"),
        ],
        devices=["/dev/zvol/rdsk/rpool/vm1/root", "/dev/zvol/rdsk/rpool/vm1/data", "/dev/vmm/passthru"],
    )


@pytest.fixture
def existing_zone(bhyve, zone_dir, existing_state):
    """A stored bhyve zone whose zone file exists on disk."""
    config_file = ConfigFile("vm1", zone_dir)
    config_file.path.write_text("<zone name='vm1' original='yes'/>\n")
    store = MemoryStore({"vm1": existing_state}, config_file=config_file)
    return Zone("vm1", bhyve, store, config_file=config_file)


@pytest.fixture
def new_zone(bhyve, zone_dir):
    """A bhyve zone that does not exist yet."""
    config_file = ConfigFile("vm2", zone_dir)
    store = MemoryStore(config_file=config_file)
    return Zone("vm2", bhyve, store, config_file=config_file)
