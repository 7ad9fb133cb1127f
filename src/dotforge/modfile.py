"""Mod-file parsing and module source resolution."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import ValidationError

from .errors import ConfigError, LockMismatchError
from .filesystem import atomic_write_text
from .models import ModuleSource
from .sources.base import SourceConfig, SourceProviderRegistry
from .sources.github import normalize_repo
from .sources.local import local_base
from .sumfile import SumFile

logger = logging.getLogger(__name__)

DEFAULT_MOD_FILENAME = "dotforge.mod.toml"

BUILTIN_PROVIDERS = frozenset({"local", "core", "github", "registry", "http", "https"})
NON_VERSIONED_PROVIDERS = frozenset({"local", "core"})
URL_PROVIDERS = frozenset({"http", "https"})

CORE_MODULE_DEFAULTS = {
    "colors": "base16-colors",
    "shims": "shims",
}


def split_ref_and_version(text: str) -> tuple[str, str]:
    """Split ``ref@version`` on the last ``@``; a leading or trailing ``@`` is not a pin."""

    value = text.strip()
    index = value.rfind("@")
    if index <= 0 or index == len(value) - 1:
        return value, ""
    return value[:index].strip(), value[index + 1 :].strip()


def parse_source_spec(alias: str, spec: str) -> SourceConfig:
    """Parse a ``provider:target[@ref]`` mod-file string into a ``SourceConfig``."""

    provider, sep, target = spec.strip().partition(":")
    provider, target = provider.strip(), target.strip()
    if not sep or not provider or not target:
        raise ConfigError(f"invalid source '{alias}' = '{spec}' (expected provider:target[@ref])")

    if provider in URL_PROVIDERS:
        return SourceConfig(provider=provider, url=spec.strip())

    target, ref = split_ref_and_version(target)
    if provider == "github":
        return SourceConfig(provider=provider, repo=normalize_repo(target), ref=ref)
    return SourceConfig(provider=provider, path=target, ref=ref)


def format_source_spec(alias: str, src: SourceConfig) -> str:
    provider = src.provider_for(alias)
    if provider in URL_PROVIDERS and src.url:
        return src.url.strip()
    if provider == "github":
        target = src.repo.strip() or src.path.strip()
    elif provider == "local":
        target = src.path.strip()
    else:
        target = src.path.strip() or src.repo.strip() or src.url.strip()

    spec = f"{provider}:{target}"
    if src.ref.strip():
        spec += f"@{src.ref.strip()}"
    return spec


def normalize_source(alias: str, src: SourceConfig) -> SourceConfig:
    """Canonical provider fields of an alias, as compared against the lock."""

    provider = src.provider_for(alias)
    repo = normalize_repo(src.repo) if provider == "github" else src.repo.strip()
    return SourceConfig(
        provider=provider,
        path=src.path.strip(),
        repo=repo,
        url=src.url.strip(),
        ref=src.ref.strip(),
    )


@dataclass(slots=True)
class ModFile:
    """Source aliases and module source defaults of a workspace."""

    sources: dict[str, SourceConfig] = field(default_factory=dict)
    modules: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "ModFile":
        if not path.exists():
            return cls()
        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"failed to parse {path}: {exc}") from exc

        sources: dict[str, SourceConfig] = {}
        for alias, raw in (data.get("sources") or {}).items():
            sources[alias] = _parse_source_entry(alias, raw)

        modules: dict[str, str] = {}
        for name, raw in (data.get("modules") or {}).items():
            if not isinstance(raw, str) or ":" not in raw:
                raise ConfigError(f"invalid module source for '{name}' in {path} (expected provider-or-alias:path)")
            modules[name] = raw.strip()

        return cls(sources=sources, modules=modules)

    def resolve_module_source(
        self,
        module_name: str,
        explicit_from: str,
        modules_base_dir: Path,
        sum_file: SumFile | None,
    ) -> ModuleSource:
        """Resolve the source of ``module_name``.

        The spec comes from ``explicit_from``, then the mod-file ``[modules]`` table,
        then the built-in core default, then ``local:<module_name>``.
        """

        spec = explicit_from.strip() or self.modules.get(module_name, "")
        if not spec and module_name in CORE_MODULE_DEFAULTS:
            spec = f"core:{CORE_MODULE_DEFAULTS[module_name]}"
        if not spec:
            spec = f"local:{module_name}"

        left, sep, right = spec.partition(":")
        left, right = left.strip(), right.strip()
        if not sep or not left or not right:
            raise ConfigError(
                f"invalid module source '{spec}' (expected <source-or-provider>:<path>[@version])"
            )

        if left in BUILTIN_PROVIDERS:
            ref, version = split_ref_and_version(right)
            resolved = _apply_version_lock(module_name, left, ref, version, sum_file)
            _validate_non_versioned(resolved)
            return resolved

        src = self.sources.get(left)
        if src is None:
            raise ConfigError(f"unknown source alias '{left}' for module '{module_name}'")
        src = normalize_source(left, src)
        _validate_source_lock(left, src, sum_file)

        ref, version = split_ref_and_version(right)
        version = version or src.ref

        if src.provider == "local":
            path = (local_base(src, modules_base_dir) / ref).as_posix()
            resolved = _apply_version_lock(module_name, "local", path, version, sum_file, alias=left)
            _validate_non_versioned(resolved)
            return resolved
        if src.provider == "github":
            if not src.repo:
                raise ConfigError(f"source alias '{left}' (github) requires repo")
            sub = ref.strip().strip("/")
            full_ref = f"{src.repo}/{sub}" if sub else src.repo
            return _apply_version_lock(module_name, "github", full_ref, version, sum_file, alias=left)
        return _apply_version_lock(module_name, src.provider, ref, version, sum_file, alias=left)

    def source_for(self, alias: str, sum_file: SumFile | None) -> tuple[SourceConfig, str]:
        """Return the alias configuration to fetch and the hash it must match.

        A locked alias is fetched from its pinned URL and verified against the
        recorded hash.
        """

        src = normalize_source(alias, self.sources[alias])
        lock = sum_file.sources.get(alias) if sum_file else None
        if lock is None or not lock.hash:
            return src, ""
        if lock.resolved:
            src = src.model_copy(update={"url": lock.resolved})
        return src, lock.hash

    def try_resolve_source_ref(
        self,
        spec: str,
        modules_base_dir: Path,
        registry: SourceProviderRegistry,
        sum_file: SumFile | None = None,
    ) -> Path | None:
        """Resolve ``alias:path`` (or ``provider:path``) to a concrete path.

        Returns ``None`` when ``spec`` should be treated as a regular path.
        """

        alias, sep, rest = spec.strip().partition(":")
        alias = alias.strip()
        rel = rest.strip().strip("/")
        if not sep or not alias or not rel:
            return None

        declared = alias in self.sources
        if declared:
            src, expected_hash = self.source_for(alias, sum_file)
        else:
            src, expected_hash = SourceConfig(provider=alias), ""

        provider = registry.get(src.provider)
        if provider is None:
            if not declared:
                return None
            raise ConfigError(f"source alias '{alias}' provider '{src.provider}' is not supported for input refs")

        normalized = provider.normalize(src)
        return provider.resolve_path(alias, normalized, rel, modules_base_dir, expected_hash=expected_hash)


def write_mod_file(path: Path, mod: ModFile | None) -> None:
    """Write ``mod`` with sorted entries, through temp file and rename."""

    mod = mod or ModFile()
    payload: dict[str, Any] = {}
    if mod.sources:
        payload["sources"] = {alias: format_source_spec(alias, mod.sources[alias]) for alias in sorted(mod.sources)}
    if mod.modules:
        payload["modules"] = {name: mod.modules[name] for name in sorted(mod.modules)}
    atomic_write_text(path, tomli_w.dumps(payload))


def _parse_source_entry(alias: str, raw: Any) -> SourceConfig:
    if isinstance(raw, str):
        return parse_source_spec(alias, raw)
    if isinstance(raw, dict):
        try:
            return SourceConfig.model_validate({key: str(value) for key, value in raw.items()})
        except ValidationError as exc:
            raise ConfigError(f"invalid source '{alias}': {exc}") from exc
    raise ConfigError(f"invalid source '{alias}': expected a spec string or a table")


def _apply_version_lock(
    module_name: str,
    provider: str,
    ref: str,
    version: str,
    sum_file: SumFile | None,
    *,
    alias: str = "",
) -> ModuleSource:
    resolved = ModuleSource(provider=provider.strip(), ref=ref.strip(), version=version.strip(), alias=alias)
    if sum_file is None:
        return resolved
    lock = sum_file.modules.get(module_name)
    if lock is None:
        return resolved

    expected = f"{resolved.provider}:{resolved.ref}"
    if lock.source != expected:
        raise LockMismatchError(
            f"module '{module_name}' lock mismatch: source='{lock.source}' but resolved='{expected}'; "
            "run `dotforge mod lock`"
        )
    if not resolved.version and lock.version:
        return ModuleSource(provider=resolved.provider, ref=resolved.ref, version=lock.version, alias=alias)
    if resolved.version and lock.version and resolved.version != lock.version:
        raise LockMismatchError(
            f"module '{module_name}' lock mismatch: version='{lock.version}' but resolved='{resolved.version}'; "
            "run `dotforge mod lock`"
        )
    return resolved


def _validate_non_versioned(source: ModuleSource) -> None:
    if source.version and source.provider in NON_VERSIONED_PROVIDERS:
        raise ConfigError(f"provider '{source.provider}' does not support version pins")


def _validate_source_lock(alias: str, src: SourceConfig, sum_file: SumFile | None) -> None:
    if sum_file is None:
        return
    lock = sum_file.sources.get(alias)
    if lock is None:
        return
    if (lock.provider, lock.path, lock.repo, lock.url, lock.ref) != (src.provider, src.path, src.repo, src.url, src.ref):
        raise LockMismatchError(f"source '{alias}' lock mismatch: run `dotforge mod lock`")
