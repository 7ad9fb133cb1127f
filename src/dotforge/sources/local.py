"""Local directory source provider."""

from __future__ import annotations

from pathlib import Path

from .base import SourceConfig, SourceProvider


def local_base(src: SourceConfig, modules_base_dir: Path) -> Path:
    """Directory a local alias points at; relative paths hang off the workspace root."""

    base = src.path.strip()
    if not base:
        return modules_base_dir
    candidate = Path(base).expanduser()
    if candidate.is_absolute():
        return candidate
    return modules_base_dir.parent / candidate


class LocalSourceProvider(SourceProvider):
    id = "local"

    def resolve_path(
        self,
        alias: str,
        src: SourceConfig,
        rel: str,
        modules_base_dir: Path,
        *,
        expected_hash: str = "",
    ) -> Path:
        return local_base(src, modules_base_dir) / rel

    def lock_hash(self, alias: str, src: SourceConfig, modules_base_dir: Path) -> tuple[str, str]:
        return "", ""
