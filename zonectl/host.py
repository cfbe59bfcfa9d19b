"""Host queries parsed from system command output."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from zonectl.exceptions import ManagerError
from zonectl.runner import CommandRunner
from zonectl.utils import log, pretty_size

RESOLV_CONF = Path("/etc/resolv.conf")
LINK_CLASSES = ("phys", "etherstub", "aggr", "overlay")

_SWAP_RE = re.compile(r"(\d+)k\s+used,\s+(\d+)k\s+available$")
_LINK_RE = re.compile(r"^([^:]+):(?:" + "|".join(LINK_CLASSES) + r")")


def parse_swap(line: Optional[str]) -> int:
    """Total swap in bytes from the summary line of ``swap -s``."""
    match = _SWAP_RE.search(line or "")
    if match is None:
        return 0
    used, available = (int(group) for group in match.groups())
    return (used + available) * 1024


def parse_scheduler(lines: Sequence[str]) -> Dict[str, int]:
    """Zone defaults implied by the default scheduling class (``dispadmin -d``)."""
    if any(line.startswith("FSS") for line in lines):
        return {"cpu-shares": 1}
    return {}


def parse_links(lines: Sequence[str]) -> List[str]:
    """Links a VNIC can be created over, from ``dladm show-link -p -o link,class``."""
    links = []
    for line in lines:
        match = _LINK_RE.match(line)
        if match:
            links.append(match.group(1))
    return links


def parse_resolv_conf(text: str, domainname: Optional[str] = None) -> Dict[str, Union[str, List[str]]]:
    """Resolvers and DNS domain; an NIS domain name takes precedence over resolv.conf."""
    domain: Dict[str, Union[str, List[str]]] = {}
    for line in text.splitlines():
        fields = line.split()
        if len(fields) < 2:
            continue
        key, value = fields[0], fields[1]
        if key == "nameserver":
            domain.setdefault("resolvers", []).append(value)  # type: ignore[union-attr]
        elif key == "domain":
            domain["dns-domain"] = value
        elif key == "search":
            domain.setdefault("dns-domain", value)
    if domainname:
        domain["dns-domain"] = domainname
    return domain


class HostInfo:
    """Facts about the host, each obtained through the command runner."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def pagesize(self) -> int:
        lines = self.runner.run("pagesize", check=False)
        try:
            return int(lines[0])
        except (IndexError, ValueError):
            return 4096

    def ram(self) -> int:
        """Physical memory in bytes."""
        pages = self.runner.run("getconf", ["_PHYS_PAGES"], check=False)
        try:
            return int(pages[0]) * self.pagesize()
        except (IndexError, ValueError):
            return 0

    def physical_memory(self) -> str:
        return pretty_size(self.ram())

    def swap(self) -> int:
        lines = self.runner.run("swap", ["-s"], check=False)
        return parse_swap(lines[0] if lines else None)

    def scheduler(self) -> Dict[str, int]:
        return parse_scheduler(self.runner.run("dispadmin", ["-d"], check=False))

    def links(self) -> List[str]:
        return parse_links(self.runner.run("dladm", ["show-link", "-p", "-o", "link,class"]))

    def domain(self, resolv_conf: Path = RESOLV_CONF) -> Dict[str, Union[str, List[str]]]:
        lines = self.runner.run("domainname", check=False)
        match = re.match(r"^\s*(\S+)", lines[0]) if lines else None
        text = ""
        if resolv_conf.exists():
            try:
                text = resolv_conf.read_text()
            except OSError as exc:
                raise ManagerError(f"cannot read {resolv_conf}: {exc}")
        return parse_resolv_conf(text, match.group(1) if match else None)

    def zfs_props(self, dataset: str, props: Sequence[str]) -> Dict[str, str]:
        if not props:
            return {}
        values = self.runner.run("zfs", ["get", "-H", "-o", "value", ",".join(props), dataset])
        log("DEBUG", f"zfs properties for {dataset}: {', '.join(props)}")
        return dict(zip(props, values))
