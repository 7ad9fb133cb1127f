"""Terminal plugin rejecting duplicate targets."""

from __future__ import annotations

from pathlib import Path

from ..errors import ConflictError
from ..models import DesiredFile


class StrictConflictResolver:
    """Fails the run when two desired files share an absolute target path."""

    name = "strict-conflict-resolver"

    def __init__(self, priority: int = 0) -> None:
        self.priority = priority

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]:
        seen: dict[Path, list[str]] = {}
        for desired in files:
            seen.setdefault(desired.target, []).append(desired.source_info)

        collisions = {target: sources for target, sources in seen.items() if len(sources) > 1}
        if collisions:
            raise ConflictError(collisions)
        return files
