"""Lockfile generation: pin module sources and alias content hashes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .errors import ConfigError, FetchError
from .modfile import ModFile, NON_VERSIONED_PROVIDERS, normalize_source
from .sources.base import SourceProviderRegistry
from .sumfile import LockedModule, LockedSource, SumFile, write_sum_file
from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LockResult:
    sources: int
    modules: int


def is_lockable_provider(provider: str) -> bool:
    return provider.strip() not in NON_VERSIONED_PROVIDERS


def build_lock_entries(config: Config, mod: ModFile, modules_base_dir: Path) -> dict[str, LockedModule]:
    """Resolve every enabled module without consulting the existing lock."""

    entries: dict[str, LockedModule] = {}
    for name in config.enabled_modules():
        body = config.modules[name]
        explicit = body.get("from", "")
        if not isinstance(explicit, str):
            raise ConfigError(f"module '{name}': 'from' must be a string")
        try:
            resolved = mod.resolve_module_source(name, explicit, modules_base_dir, None)
        except ConfigError as exc:
            raise ConfigError(f"module '{name}': {exc}") from exc
        if not is_lockable_provider(resolved.provider):
            continue
        entries[name] = LockedModule(source=f"{resolved.provider}:{resolved.ref}", version=resolved.version)
    return entries


def build_source_lock_entries(mod: ModFile) -> dict[str, LockedSource]:
    entries: dict[str, LockedSource] = {}
    for alias, raw in mod.sources.items():
        src = normalize_source(alias, raw)
        if not is_lockable_provider(src.provider):
            continue
        entries[alias] = LockedSource(provider=src.provider, path=src.path, repo=src.repo, url=src.url, ref=src.ref)
    return entries


def populate_source_lock_hashes(
    mod: ModFile,
    modules_base_dir: Path,
    entries: dict[str, LockedSource],
    registry: SourceProviderRegistry,
) -> None:
    """Fill ``hash`` and ``resolved`` of each entry from its provider.

    Providers reuse the cached fetch, so a source resolved earlier in the same run
    is not downloaded again.
    """

    logger.info("computing source lock hashes for %d sources", len(entries))
    for alias in sorted(entries):
        entry = entries[alias]
        provider = registry.get(entry.provider)
        if provider is None:
            raise ConfigError(f"source '{alias}' provider '{entry.provider}' not supported for lock hash")

        src = provider.normalize(normalize_source(alias, mod.sources[alias]))
        try:
            digest, resolved = provider.lock_hash(alias, src, modules_base_dir)
        except FetchError as exc:
            raise FetchError(f"source '{alias}': failed to compute hash: {exc}") from exc
        except ConfigError as exc:
            raise ConfigError(f"source '{alias}': {exc}") from exc
        if not digest.strip():
            raise ConfigError(f"source '{alias}': provider '{entry.provider}' returned empty hash")

        entries[alias] = LockedSource(
            provider=entry.provider,
            path=entry.path,
            repo=entry.repo,
            url=entry.url,
            ref=entry.ref,
            hash=digest.strip(),
            resolved=resolved.strip(),
        )
        logger.info("locked source %s (%s)", alias, digest)


def generate_lock(workspace: Workspace, config: Config, registry: SourceProviderRegistry) -> LockResult:
    """Regenerate the sum-file from the mod-file and the enabled modules."""

    workspace.ensure_files()
    mod = ModFile.load(workspace.mod_path)
    modules = build_lock_entries(config, mod, workspace.modules_dir)
    sources = build_source_lock_entries(mod)
    populate_source_lock_hashes(mod, workspace.modules_dir, sources, registry)
    write_sum_file(workspace.sum_path, SumFile(sources=sources, modules=modules))
    logger.info("wrote %s (%d sources, %d modules)", workspace.sum_path, len(sources), len(modules))
    return LockResult(sources=len(sources), modules=len(modules))
