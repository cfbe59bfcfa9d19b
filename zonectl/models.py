"""Data models for zonectl."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from zonectl.exceptions import ManagerError

# A structured configuration: configuration key -> scalar, list, or free-form string.
StructuredConfig = Dict[str, Any]


class AttributeRecord(NamedTuple):
    """A flat persisted attribute; identity is the name."""

    name: str
    type: str  # "string", "boolean", "integer"
    value: str


@dataclass(frozen=True)
class SchemaEntry:
    type: str = "string"
    default: Any = None
    list_valued: bool = False
    resource: str = "attr"  # "attr", "property", "device"
    derive_from: Tuple[str, ...] = ()
    derivation: Optional[str] = None
    choices: Tuple[str, ...] = ()
    minimum: Optional[int] = None
    immutable: bool = False
    description: str = ""


class Mutation(NamedTuple):
    action: str  # "add", "remove", "replace"
    old: Optional[AttributeRecord]
    new: Optional[AttributeRecord]

    @property
    def name(self) -> str:
        if self.new is not None:
            return self.new.name
        if self.old is not None:
            return self.old.name
        raise ManagerError(f"{self.action} mutation without a record")


@dataclass(frozen=True)
class BackupSnapshot:
    content: bytes
    mtime: float


@dataclass
class EditResult:
    status: str  # "unchanged", "changed", "failed"
    text: str = ""
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status == "changed"


@dataclass
class ZoneState:
    """What zonecfg reports for a zone, split by resource kind."""

    properties: Dict[str, str] = field(default_factory=dict)
    attributes: List[AttributeRecord] = field(default_factory=list)
    devices: List[str] = field(default_factory=list)


class ImageFile(NamedTuple):
    url: str
    path: Path


@dataclass
class FetchResult:
    image: ImageFile
    ok: bool
    error: Optional[str] = None


@dataclass
class ChangeSet:
    """Everything one commit changes, applied in a single zonecfg invocation."""

    brand: Optional[str] = None  # set when the zone is being created
    properties: Dict[str, Optional[str]] = field(default_factory=dict)  # None clears
    devices_added: List[str] = field(default_factory=list)
    devices_removed: List[str] = field(default_factory=list)
    mutations: List[Mutation] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (
            self.brand or self.properties or self.devices_added or self.devices_removed or self.mutations
        )
