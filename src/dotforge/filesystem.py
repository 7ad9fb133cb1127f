"""Filesystem helpers for dotforge."""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from .models import FileType

CHUNK_SIZE = 1024 * 1024


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def detect_entry_type(path: Path) -> FileType:
    """Determine the ``FileType`` for an existing ``path``."""

    if path.is_symlink():
        return FileType.SYMLINK
    return FileType.REGULAR


def hash_stream(handle: BinaryIO, algorithm: str = "sha256") -> str:
    """Return the hex digest of everything readable from ``handle``."""

    hasher = hashlib.new(algorithm)
    for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
        hasher.update(chunk)
    return hasher.hexdigest()


def hash_file(path: Path, algorithm: str = "sha256") -> str:
    with path.open("rb") as handle:
        return hash_stream(handle, algorithm)


def atomic_write_bytes(path: Path, data: bytes, *, mode: int | None = None) -> None:
    """Write ``data`` to ``path`` through a temporary sibling and ``os.replace``."""

    ensure_parent(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.dotforge-tmp-", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def atomic_write_text(path: Path, text: str, *, mode: int | None = None) -> None:
    atomic_write_bytes(path, text.encode("utf-8"), mode=mode)


def write_stream(path: Path, source: BinaryIO, *, mode: int) -> None:
    """Copy ``source`` into ``path`` atomically with permission bits ``mode``."""

    ensure_parent(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.dotforge-tmp-", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            for chunk in iter(lambda: source.read(CHUNK_SIZE), b""):
                handle.write(chunk)
        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def ensure_symlink(path: Path, target: str) -> None:
    """Point ``path`` at ``target``, replacing a file or symlink already there."""

    remove_path(path)
    ensure_parent(path)
    path.symlink_to(target)


def remove_path(path: Path) -> None:
    """Delete a file or symlink at ``path``.

    Directories are never removed: dotforge only manages individual files.
    """

    if not path.exists() and not path.is_symlink():
        return
    if path.is_dir() and not path.is_symlink():
        raise IsADirectoryError(f"refusing to remove directory '{path}'")
    path.unlink()


def permission_bits(mode: int) -> int:
    return mode & 0o777
