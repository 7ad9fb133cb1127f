"""Managed state persistence for dotforge."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .errors import ConfigError
from .filesystem import atomic_write_text
from .models import FileType, ManagedEntry, State

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateStore:
    """Reads and writes the JSON snapshot of managed files."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> State:
        if not self.path.exists():
            logger.debug("no state at %s, starting empty", self.path)
            return State()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"State file '{self.path}' is not valid JSON: {exc}") from exc

        if not isinstance(data, dict) or not isinstance(data.get("files", {}), dict):
            raise ConfigError(f"State file '{self.path}' has an unexpected layout")

        files: dict[str, ManagedEntry] = {}
        for target, item in data.get("files", {}).items():
            try:
                files[target] = ManagedEntry(
                    source_info=item["source_info"],
                    file_type=FileType(item.get("type", FileType.REGULAR.value)),
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigError(f"Invalid state entry for '{target}': {exc}") from exc

        return State(files=files)

    def save(self, state: State) -> None:
        payload = {
            "version": STATE_VERSION,
            "files": {target: self._entry_to_dict(entry) for target, entry in sorted(state.files.items())},
        }
        atomic_write_text(self.path, json.dumps(payload, indent=2) + "\n")
        logger.debug("saved %d managed entries to %s", len(state.files), self.path)

    @staticmethod
    def _entry_to_dict(entry: ManagedEntry) -> dict[str, object]:
        return {"source_info": entry.source_info, "type": entry.file_type.value}
