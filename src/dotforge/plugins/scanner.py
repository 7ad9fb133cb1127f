"""Directory scanner plugin."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from ..models import DesiredFile, FileType, StaticFile

logger = logging.getLogger(__name__)


class Scanner:
    """Emits one desired file per regular file or symlink under ``base_dir``."""

    name = "scanner"

    def __init__(
        self,
        base_dir: Path,
        target_base: Path,
        *,
        ignore: Iterable[str] = (".git",),
        priority: int = 0,
    ) -> None:
        self.base_dir = base_dir
        self.target_base = target_base
        self.ignore = frozenset(ignore)
        self.priority = priority

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]:
        if not self.base_dir.is_dir():
            logger.debug("scanner base %s does not exist, skipping", self.base_dir)
            return files

        discovered: list[DesiredFile] = []
        for dirpath, dirnames, filenames in os.walk(self.base_dir, onerror=_raise):
            current = Path(dirpath)
            dirnames[:] = sorted(name for name in dirnames if name not in self.ignore)

            # symlinked directories are deployed as links, not descended into
            linked_dirs = [name for name in dirnames if (current / name).is_symlink()]
            dirnames[:] = [name for name in dirnames if name not in linked_dirs]

            for name in sorted([*filenames, *linked_dirs]):
                if name in self.ignore:
                    continue
                discovered.append(self._desired(current / name))

        return [*files, *discovered]

    def _desired(self, path: Path) -> StaticFile:
        rel = path.relative_to(self.base_dir)
        stat_result = path.lstat()
        file_type = FileType.SYMLINK if path.is_symlink() else FileType.REGULAR
        return StaticFile(
            rel_path=rel,
            target_base=self.target_base,
            mode=stat_result.st_mode & 0o7777,
            file_type=file_type,
            source_info=f"scan:{rel.as_posix()}",
            abs_path=path,
        )


def _raise(exc: OSError) -> None:
    raise exc
