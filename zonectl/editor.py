"""External editor invocation for interactive configuration edits."""

from __future__ import annotations

import tempfile
from pathlib import Path

from zonectl.codec import offset_to_line
from zonectl.exceptions import CommandNotFoundError, ParseError
from zonectl.models import EditResult
from zonectl.runner import CommandRunner
from zonectl.utils import log


def decode_text(data: bytes) -> str:
    """Decode saved editor output, reporting the line of the first invalid byte."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        prefix = data[: exc.start].decode("utf-8")
        raise ParseError(f"invalid UTF-8 byte 0x{data[exc.start]:02x}", offset_to_line(prefix, len(prefix)))


class ExternalEditor:
    """Let the operator edit text in ``$VISUAL``/``$EDITOR``.

    The outcome is one of ``unchanged`` (file untouched, or the editor exited
    nonzero), ``changed`` (with the new text) or ``failed`` (the editor could
    not be launched at all). Saved bytes that are not UTF-8 raise ParseError.
    """

    def __init__(self, runner: CommandRunner, suffix: str = ".json") -> None:
        self.runner = runner
        self.suffix = suffix

    def edit(self, text: str) -> EditResult:
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", suffix=self.suffix, delete=False) as tmp:
            tmp.write(text)
            path = Path(tmp.name)
        try:
            before = path.stat().st_mtime
            try:
                status = self.runner.call("editor", [str(path)])
            except (OSError, CommandNotFoundError) as exc:
                return EditResult("failed", text, error=str(exc))
            if status != 0:
                log("DEBUG", f"editor exited with status {status}; discarding edits")
                return EditResult("unchanged", text)
            if path.stat().st_mtime == before:
                return EditResult("unchanged", text)
            return EditResult("changed", decode_text(path.read_bytes()))
        finally:
            path.unlink(missing_ok=True)
