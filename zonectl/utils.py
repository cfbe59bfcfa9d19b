"""Utility functions for zonectl."""

from __future__ import annotations

import math
import os
import re
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from zonectl.constants import _LOG_VERBOSE, FORCE_TTY_ENV, SIZE_UNITS, TRUTHY

_NEGATIVE_RE = re.compile(r"^no?$", re.IGNORECASE)


def log(level: str, message: str) -> None:
    """Lightweight structured logging compatible with existing colour expectation."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


def has_controlling_tty() -> bool:
    """Return True if stdin is attached to a TTY."""
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


def is_interactive() -> bool:
    return has_controlling_tty() or get_env_bool(FORCE_TTY_ENV, False)


def is_negative(answer: Optional[str]) -> bool:
    """Only 'n' or 'no' decline; an empty answer accepts the [Y/n] default."""
    return bool(_NEGATIVE_RE.match((answer or "").strip()))


def ask(question: str, reader: Callable[[str], str] = input) -> str:
    try:
        return reader(question)
    except EOFError:
        return ""


def read_stdin() -> List[str]:
    """Return stdin split into lines, or nothing when stdin is a terminal."""
    if has_controlling_tty():
        return []
    return re.split(r"\r\n|\n|\r", sys.stdin.read())


def pretty_size(size: float, fmt: str = "{:.0f}{}", units: Sequence[str] = SIZE_UNITS) -> str:
    """Format a byte count with a binary unit suffix, e.g. 2147483648 -> '2G'."""
    exponent = 0 if size <= 0 else int(math.log(size) / math.log(1024.0))
    exponent = min(exponent, len(units) - 1)
    return fmt.format(size / 1024**exponent, units[exponent])


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
