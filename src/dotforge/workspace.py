"""Workspace layout: where the mod-file, sum-file, and modules live."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_CONFIG_FILENAME, Config
from .errors import ConfigError
from .modfile import DEFAULT_MOD_FILENAME, ModFile, write_mod_file
from .services import CommandRunner
from .sumfile import DEFAULT_SUM_FILENAME, SumFile, write_sum_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Workspace:
    root: Path
    modules_dir: Path

    @classmethod
    def at(cls, root: Path) -> "Workspace":
        return cls(root=root, modules_dir=root / "modules")

    @classmethod
    def from_config(cls, config: Config) -> "Workspace":
        return cls(root=config.root, modules_dir=config.settings.modules_dir)

    @property
    def mod_path(self) -> Path:
        return self.root / DEFAULT_MOD_FILENAME

    @property
    def sum_path(self) -> Path:
        return self.root / DEFAULT_SUM_FILENAME

    @property
    def config_path(self) -> Path:
        return self.root / DEFAULT_CONFIG_FILENAME

    def ensure_files(self) -> None:
        """Create empty mod and sum files when they are missing."""

        if not self.mod_path.exists():
            write_mod_file(self.mod_path, ModFile())
        if not self.sum_path.exists():
            write_sum_file(self.sum_path, SumFile())


def detect_workspace(cwd: Path | None = None, runner: CommandRunner | None = None) -> Workspace:
    """Find the workspace root from the git top-level, else the nearest config file."""

    start = (cwd or Path.cwd()).resolve()
    runner = runner or CommandRunner()

    try:
        toplevel = runner.run("git", "rev-parse", "--show-toplevel", cwd=start).output().strip()
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.debug("git root lookup failed in %s: %s", start, exc)
        toplevel = ""
    if toplevel and (Path(toplevel) / DEFAULT_CONFIG_FILENAME).exists():
        return Workspace.at(Path(toplevel))

    for candidate in (start, *start.parents):
        if (candidate / DEFAULT_CONFIG_FILENAME).is_file() or (candidate / DEFAULT_MOD_FILENAME).is_file():
            return Workspace.at(candidate)

    raise ConfigError(f"could not find '{DEFAULT_CONFIG_FILENAME}' in '{start}' or any parent directory")
