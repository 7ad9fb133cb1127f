"""Sum-file (lockfile) persistence."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import tomli_w

from .errors import ConfigError
from .filesystem import atomic_write_text

DEFAULT_SUM_FILENAME = "dotforge.sum.toml"


@dataclass(frozen=True, slots=True)
class LockedSource:
    """Pinned alias: the declared provider fields plus the fetched content hash."""

    provider: str
    path: str = ""
    repo: str = ""
    url: str = ""
    ref: str = ""
    hash: str = ""
    resolved: str = ""


@dataclass(frozen=True, slots=True)
class LockedModule:
    """Pinned module source (``provider:ref``) and version."""

    source: str
    version: str = ""


@dataclass(slots=True)
class SumFile:
    sources: dict[str, LockedSource] = field(default_factory=dict)
    modules: dict[str, LockedModule] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "SumFile":
        """Load ``path``; a missing file is an empty lock."""

        if not path.exists():
            return cls()
        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"failed to parse {path}: {exc}") from exc

        sources: dict[str, LockedSource] = {}
        for name, body in _tables(data.get("sources"), "sources").items():
            lock = LockedSource(
                provider=_text(body, "provider"),
                path=_text(body, "path"),
                repo=_text(body, "repo"),
                url=_text(body, "url"),
                ref=_text(body, "ref"),
                hash=_text(body, "hash"),
                resolved=_text(body, "resolved"),
            )
            if not lock.provider:
                raise ConfigError(f"invalid lock entry for source '{name}': provider is required")
            sources[name] = lock

        modules: dict[str, LockedModule] = {}
        for name, body in _tables(data.get("modules"), "modules").items():
            lock_module = LockedModule(source=_text(body, "source"), version=_text(body, "version"))
            if not lock_module.source:
                raise ConfigError(f"invalid lock entry for module '{name}': source is required")
            modules[name] = lock_module

        return cls(sources=sources, modules=modules)


def write_sum_file(path: Path, sum_file: SumFile | None) -> None:
    """Write ``sum_file`` with entries sorted by name, through temp file and rename."""

    sum_file = sum_file or SumFile()
    payload: dict[str, Any] = {}

    sources: dict[str, dict[str, str]] = {}
    for name in sorted(sum_file.sources):
        entry = sum_file.sources[name]
        if not entry.provider.strip():
            raise ConfigError(f"invalid lock entry for source '{name}': provider is required")
        if not entry.hash.strip():
            raise ConfigError(f"invalid lock entry for source '{name}': hash is required")
        body = {"provider": entry.provider.strip()}
        for key in ("path", "repo", "url", "ref", "hash", "resolved"):
            value = getattr(entry, key).strip()
            if value:
                body[key] = value
        sources[name] = body

    modules: dict[str, dict[str, str]] = {}
    for name in sorted(sum_file.modules):
        module = sum_file.modules[name]
        if not module.source.strip():
            raise ConfigError(f"invalid lock entry for module '{name}': source is required")
        body = {"source": module.source.strip()}
        if module.version.strip():
            body["version"] = module.version.strip()
        modules[name] = body

    if sources:
        payload["sources"] = sources
    if modules:
        payload["modules"] = modules

    atomic_write_text(path, tomli_w.dumps(payload))


def _tables(raw: Any, section: str) -> Mapping[str, Mapping[str, Any]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict) or not all(isinstance(body, dict) for body in raw.values()):
        raise ConfigError(f"[{section}] entries in the sum-file must be tables")
    return raw


def _text(body: Mapping[str, Any], key: str) -> str:
    return str(body.get(key, "")).strip()
