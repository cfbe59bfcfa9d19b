"""Custom exceptions for zonectl."""

from __future__ import annotations

from typing import Optional


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ConfigError(ManagerError):
    """A candidate configuration was rejected; the operator may correct it and retry."""


class ParseError(ConfigError):
    """The textual configuration could not be parsed."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        self.message = message
        self.line = line
        if line is not None:
            message = f"{message} at line {line}"
        super().__init__(message)


class ValidationError(ConfigError):
    """A configuration value was rejected for a given key."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"'{key}': {reason}")


class TypeMismatchError(ValidationError):
    def __init__(self, key: str, expected: str, value: object = None) -> None:
        self.expected = expected
        self.value = value
        super().__init__(key, f"expected {expected} (got {value!r})")


class MalformedIndexError(ValidationError):
    def __init__(self, key: str, index: Optional[int], reason: str = "duplicate index") -> None:
        self.index = index
        super().__init__(key, reason if index is None else f"{reason} {index}")


class CommandNotFoundError(ManagerError):
    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"command '{command}' not defined")


class ExecutionError(ManagerError):
    def __init__(self, command: str, returncode: int) -> None:
        self.command = command
        self.returncode = returncode
        super().__init__(f"executing '{command}' failed (exit status {returncode})")


class RestoreFailure(ManagerError):
    """Writing the backup snapshot back to disk failed."""
