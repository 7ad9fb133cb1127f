"""Shared models and enums for dotforge."""

from __future__ import annotations

import io
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO


class FileType(str, Enum):
    """Kinds of files a desired file can describe."""

    REGULAR = "regular"
    SYMLINK = "symlink"


@dataclass(frozen=True, slots=True)
class DesiredFile:
    """A file the reconciliation pass wants to exist.

    Instances are produced by pipeline plugins and never mutated afterwards.
    """

    rel_path: Path
    target_base: Path
    mode: int
    file_type: FileType
    source_info: str

    @property
    def target(self) -> Path:
        """Absolute path the file is deployed to."""

        return Path(os.path.normpath(self.target_base / self.rel_path))

    def open(self) -> BinaryIO:
        raise NotImplementedError

    def link_target(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class StaticFile(DesiredFile):
    """Desired file whose content lives in an existing file on disk."""

    abs_path: Path

    def open(self) -> BinaryIO:
        return self.abs_path.open("rb")

    def link_target(self) -> str:
        if self.file_type is not FileType.SYMLINK:
            raise ValueError(f"{self.source_info} is not a symlink")
        return os.readlink(self.abs_path)


@dataclass(frozen=True, slots=True)
class MemoryFile(DesiredFile):
    """Desired file rendered in memory (templates, fragments)."""

    content: bytes = field(repr=False)

    def open(self) -> BinaryIO:
        return io.BytesIO(self.content)

    def link_target(self) -> str:
        raise ValueError(f"{self.source_info} is not a symlink")


@dataclass(frozen=True, slots=True)
class ManagedEntry:
    """Recorded metadata about a file dotforge previously wrote."""

    source_info: str
    file_type: FileType = FileType.REGULAR


@dataclass(slots=True)
class State:
    """Managed state keyed by absolute target path."""

    files: dict[str, ManagedEntry] = field(default_factory=dict)

    def get(self, target: Path | str) -> ManagedEntry | None:
        return self.files.get(str(target))

    def copy(self) -> "State":
        return State(files=dict(self.files))


class ActionType(str, Enum):
    """Filesystem change planned for a target."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"


@dataclass(frozen=True, slots=True)
class Action:
    """One planned change; computed fresh on every run."""

    type: ActionType
    target: Path
    desired: DesiredFile | None = None
    current: ManagedEntry | None = None


@dataclass(frozen=True, slots=True)
class ResolvedFile:
    """File reported by a module provider before it becomes a desired file."""

    rel_path: Path
    target_base: Path
    mode: int
    info: str
    abs_path: Path
    symlink: bool = False


@dataclass(frozen=True, slots=True)
class ModuleSource:
    """Result of resolving a module reference to a provider and ref."""

    provider: str
    ref: str
    version: str = ""
    alias: str = ""

    def spec(self) -> str:
        text = f"{self.provider}:{self.ref}"
        if self.version:
            text += f"@{self.version}"
        return text


class StatusState(str, Enum):
    """High-level states reported by ``dotforge status``."""

    IN_SYNC = "in_sync"
    PENDING = "pending"
    MISSING = "missing"
    DRIFTED = "drifted"
    ORPHANED = "orphaned"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """Status information for one target path."""

    target: Path
    state: StatusState
    source_info: str = ""
    details: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Collection of status results for a manager run."""

    entries: tuple[StatusEntry, ...]

    @property
    def in_sync(self) -> bool:
        return all(entry.state is StatusState.IN_SYNC for entry in self.entries)
