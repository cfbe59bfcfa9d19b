"""CLI entry points for zonectl."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from zonectl.codec import load_template, serialize
from zonectl.editor import ExternalEditor
from zonectl.exceptions import ManagerError
from zonectl.host import HostInfo
from zonectl.images import fetch_images
from zonectl.models import ImageFile
from zonectl.runner import CommandRunner
from zonectl.schema import SchemaRegistry
from zonectl.session import EditSession
from zonectl.store import ZoneStore
from zonectl.utils import log, pretty_size
from zonectl.zone import Zone

HOST_DATASET_PROPS = ("used", "available", "compression")


def parse_overrides(items: List[str]) -> Dict[str, str]:
    """Turn ``key=value`` arguments into a mapping; the last one for a key wins."""
    overrides: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ManagerError(f"Invalid property '{item}': expected key=value")
        overrides[key.strip()] = value
    return overrides


def open_zone(
    name: str,
    runner: CommandRunner,
    registry: SchemaRegistry,
    profile: Optional[str] = None,
    template: Optional[Path] = None,
) -> Zone:
    """Resolve the zone's profile: its stored brand if it exists, otherwise ``profile``."""
    store = ZoneStore(runner)
    if store.exists(name):
        brand = store.read(name).properties.get("brand")
        if profile and brand and profile != brand:
            raise ManagerError(f"Zone '{name}' already exists with brand '{brand}'")
        profile = brand or profile
    if not profile:
        raise ManagerError(f"Zone '{name}' does not exist; specify a profile with -b")
    seed = load_template(template, name) if template else None
    return Zone(name, registry.get(profile), store, template=seed)


def list_profiles(registry: SchemaRegistry, verbose: bool = False) -> None:
    for name in registry.names():
        schema = registry.get(name)
        print(f"  {name}")
        if not verbose:
            continue
        width = max((len(key) for key in schema), default=0)
        for key in schema:
            entry = schema.entries[key]
            kind = f"list of {entry.type}" if entry.list_valued else entry.type
            default = "" if entry.default is None else f" (default: {entry.default!r})"
            print(f"    {key:<{width}}  {entry.resource:<8}  {kind}{default}")


def show_host(runner: CommandRunner, dataset: Optional[str] = None) -> None:
    host = HostInfo(runner)
    print(f"  memory:    {host.physical_memory()}")
    print(f"  swap:      {pretty_size(host.swap())}")
    print(f"  links:     {', '.join(host.links()) or '-'}")
    scheduler = host.scheduler()
    print(f"  scheduler: {'FSS' if scheduler else 'default'}")
    domain = host.domain()
    print(f"  domain:    {domain.get('dns-domain') or '-'}")
    print(f"  resolvers: {', '.join(domain.get('resolvers', [])) or '-'}")
    if dataset:
        for prop, value in host.zfs_props(dataset, HOST_DATASET_PROPS).items():
            print(f"  {prop + ':':<10} {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Zone configuration manager")
    sub = parser.add_subparsers(dest="command", required=True)

    profiles = sub.add_parser("profiles", help="List configuration profiles")
    profiles.add_argument("-v", "--verbose", action="store_true", help="Show the keys of every profile")

    show = sub.add_parser("show", help="Print a zone configuration")
    show.add_argument("zone")

    create = sub.add_parser("create", help="Create a zone")
    create.add_argument("-b", "--brand", required=True, help="Profile (brand) of the new zone")
    create.add_argument("-t", "--template", type=Path, help="Configuration template to start from")
    create.add_argument("zone")

    edit = sub.add_parser("edit", help="Edit a zone configuration")
    edit.add_argument("zone")

    set_ = sub.add_parser("set", help="Change zone configuration keys")
    set_.add_argument("zone")
    set_.add_argument("properties", nargs="+", metavar="KEY=VALUE")

    console = sub.add_parser("console", help="Attach to the zone console")
    console.add_argument("zone")

    host = sub.add_parser("host", help="Show host resources")
    host.add_argument("-d", "--dataset", help="Also show space usage of this ZFS dataset")

    fetch = sub.add_parser("fetch", help="Download images")
    fetch.add_argument("-d", "--directory", type=Path, default=Path("."), help="Destination directory")
    fetch.add_argument("-j", "--jobs", type=int, default=4, help="Parallel downloads")
    fetch.add_argument("urls", nargs="+", metavar="URL")
    return parser


def main(argv: Optional[List[str]] = None, runner: Optional[CommandRunner] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        runner = runner or CommandRunner()
        registry = SchemaRegistry.from_env()

        if args.command == "profiles":
            list_profiles(registry, verbose=args.verbose)
            return 0

        if args.command == "host":
            show_host(runner, dataset=args.dataset)
            return 0

        if args.command == "fetch":
            images = [ImageFile(url, args.directory / Path(urlparse(url).path).name) for url in args.urls]
            results = fetch_images(images, max_workers=args.jobs)
            return 0 if all(result.ok for result in results) else 1

        if args.command == "console":
            runner.exec("zlogin", ["-C", args.zone])

        if args.command == "show":
            zone = open_zone(args.zone, runner, registry)
            if not zone.exists:
                raise ManagerError(f"Zone '{args.zone}' does not exist")
            print(serialize(zone.config), end="")
            return 0

        if args.command == "create":
            zone = open_zone(args.zone, runner, registry, profile=args.brand, template=args.template)
            if zone.exists:
                raise ManagerError(f"Zone '{args.zone}' already exists")
            session = EditSession(zone, editor=ExternalEditor(runner))
        elif args.command == "edit":
            zone = open_zone(args.zone, runner, registry)
            session = EditSession(zone, editor=ExternalEditor(runner))
        else:
            zone = open_zone(args.zone, runner, registry)
            session = EditSession(zone, overrides=parse_overrides(args.properties))

        if not session.run():
            return 1
        log("SUCCESS", f"Zone '{zone.name}' configuration {session.state.value}")
        return 0
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
