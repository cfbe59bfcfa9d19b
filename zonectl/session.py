"""Interactive and batch edit sessions for a zone configuration.

A session snapshots the persisted zone file, obtains a candidate
configuration from exactly one source (the operator's editor, ``key=value``
overrides, or replacement text), validates and commits it. Whenever it ends
without a commit the zone file is checked against the snapshot and restored
if something rewrote it in the meantime.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from zonectl.codec import parse, serialize
from zonectl.editor import ExternalEditor
from zonectl.exceptions import ConfigError, ManagerError
from zonectl.models import BackupSnapshot, StructuredConfig
from zonectl.utils import ask, is_interactive, is_negative, log, read_stdin
from zonectl.zone import Zone


class SessionState(str, Enum):
    INIT = "init"
    SNAPSHOTTED = "snapshotted"
    AWAITING_INPUT = "awaiting-input"
    VALIDATING = "validating"
    COMMITTED = "committed"
    UNCHANGED = "unchanged"
    ROLLED_BACK = "rolled-back"
    ABANDONED = "abandoned"


TERMINAL_STATES = {
    SessionState.COMMITTED,
    SessionState.UNCHANGED,
    SessionState.ROLLED_BACK,
    SessionState.ABANDONED,
}

CREATE_DEFAULTS_NOTICE = "You did not make any changes to the default configuration,"
CREATE_DEFAULTS_PROMPT = "do you want to create the zone with all defaults [Y/n]? "
RETRY_PROMPT = "Do you want to retry [Y/n]? "


class EditSession:
    def __init__(
        self,
        zone: Zone,
        editor: Optional[ExternalEditor] = None,
        overrides: Optional[Dict[str, str]] = None,
        text: Optional[str] = None,
        interactive: Optional[bool] = None,
        prompt: Callable[[str], str] = input,
    ) -> None:
        if overrides and text is not None:
            raise ManagerError("Use either key=value overrides or a replacement configuration, not both")
        self.zone = zone
        self.editor = editor
        self.overrides = dict(overrides or {})
        self.text = text
        self.interactive = is_interactive() if interactive is None else interactive
        self.prompt = prompt
        self.state = SessionState.INIT
        self.snapshot: Optional[BackupSnapshot] = None
        self.config: Optional[StructuredConfig] = None

        if self.overrides:
            self.source = "overrides"
        elif text is None and self.interactive:
            if editor is None:
                raise ManagerError("An interactive edit session needs an editor")
            self.source = "editor"
        else:
            self.source = "text"

    def run(self) -> bool:
        """Run the session; True when the zone ends up with an accepted configuration."""
        try:
            return self._run()
        except BaseException:
            if self.state not in TERMINAL_STATES:
                self._roll_back()
            raise
        finally:
            self.snapshot = None

    def _run(self) -> bool:
        self.snapshot = self.zone.config_file.snapshot()
        self.state = SessionState.SNAPSHOTTED

        exists = self.zone.exists
        current = self.zone.config
        text = serialize(current) if self.source == "editor" else ""

        while True:
            self.state = SessionState.AWAITING_INPUT
            try:
                modified, text = self._next_input(text)
            except ConfigError as exc:
                if not self._recover(exc):
                    return False
                continue

            if not modified:
                if exists:
                    if self._roll_back():
                        return False
                    self.state = SessionState.UNCHANGED
                    return True
                print(CREATE_DEFAULTS_NOTICE, flush=True)
                if is_negative(ask(CREATE_DEFAULTS_PROMPT, self.prompt)):
                    self.state = SessionState.ABANDONED
                    return False

            self.state = SessionState.VALIDATING
            try:
                candidate = {**current, **self.overrides} if self.source == "overrides" else parse(text)
                self.config = self.zone.set_config(candidate)
            except ConfigError as exc:
                if not self._recover(exc):
                    return False
                continue

            self.state = SessionState.COMMITTED
            return True

    def _next_input(self, text: str) -> Tuple[bool, str]:
        if self.source == "overrides":
            return True, ""
        if self.source == "editor":
            result = self.editor.edit(text)  # type: ignore[union-attr]
            if result.status == "failed":
                raise ManagerError(f"Cannot launch editor: {result.error}")
            return result.changed, result.text
        if self.text is None:
            self.text = "\n".join(read_stdin())
        return True, self.text

    def _recover(self, exc: ConfigError) -> bool:
        """Report a rejected candidate; True when the operator wants another attempt."""
        log("ERROR", str(exc))
        if self.interactive and self.source == "editor" and not is_negative(ask(RETRY_PROMPT, self.prompt)):
            return True
        self._roll_back()
        return False

    def _roll_back(self) -> bool:
        """Restore the snapshot if the zone file moved since it was taken."""
        self.state = SessionState.ROLLED_BACK
        if self.snapshot is None or not self.zone.config_file.changed_since(self.snapshot):
            return False
        log("WARN", "restoring the zone config.")
        self.zone.config_file.restore(self.snapshot)
        return True
