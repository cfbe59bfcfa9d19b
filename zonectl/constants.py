"""Global constants and path configuration for zonectl."""

from __future__ import annotations

import os
import re
from pathlib import Path

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}

# Logical command names mapped to the binary (plus fixed arguments) that implements them.
COMMANDS = {
    "zoneadm": "/usr/sbin/zoneadm",
    "zonecfg": "/usr/sbin/zonecfg",
    "zlogin": "/usr/sbin/zlogin",
    "zonename": "/usr/bin/zonename",
    "dladm": "/usr/sbin/dladm",
    "editor": os.environ.get("VISUAL") or os.environ.get("EDITOR") or "/usr/bin/vi",
    "zfs": "/usr/sbin/zfs",
    "pager": os.environ.get("PAGER") or "/usr/bin/less -eimnqX",
    "domainname": "/usr/bin/domainname",
    "dispadmin": "/usr/sbin/dispadmin",
    "getconf": "/usr/bin/getconf",
    "pagesize": "/usr/bin/pagesize",
    "swap": "/usr/sbin/swap",
}

# Extra arguments for a command come from ZONECTL_<NAME>_ARGS.
ENV_ARGS_TEMPLATE = "ZONECTL_{name}_ARGS"

ALTROOT = os.environ.get("ZONECTL_ALTROOT", "")
ZONES_DIR = Path(f"{ALTROOT}/etc/zones")

PROFILES_ENV = "ZONECTL_PROFILES"
FORCE_TTY_ENV = "ZONECTL_FORCE_TTY"

# Only devices below this prefix are derived from disk attributes.
ZVOL_DEVICE_PREFIX = "/dev/zvol/rdsk/"

ZONE_NAME_PLACEHOLDER = "__ZONENAME__"

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

# "disk12" -> ("disk", "12"); names without a numeric tail do not match.
INDEXED_KEY_RE = re.compile(r"^(?P<base>.*?[^0-9])(?P<index>[0-9]+)$")

ZONE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")

# Attribute record types as spelled by zonecfg, mapped to codec types.
STORE_TYPES = {
    "string": "string",
    "boolean": "boolean",
    "int": "integer",
    "uint": "integer",
}
CODEC_TO_STORE_TYPES = {
    "string": "string",
    "boolean": "boolean",
    "integer": "int",
}

SIZE_UNITS = ("B", "K", "M", "G", "T", "P", "E")

IMAGE_USER_AGENT = "zonectl/1.0"
IMAGE_CHUNK_SIZE = 1024 * 256
IMAGE_REQUEST_TIMEOUT = 60
IMAGE_PROGRESS_STEP = 25  # percent
