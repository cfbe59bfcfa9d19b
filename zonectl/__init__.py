"""zonectl package."""

__all__ = [
    "cli",
    "codec",
    "constants",
    "editor",
    "exceptions",
    "host",
    "images",
    "models",
    "runner",
    "schema",
    "session",
    "store",
    "utils",
    "validator",
    "zone",
]
