"""Built-in generated modules."""

from __future__ import annotations

import hashlib
import json
import logging
import re
import shlex
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from ..errors import ConfigError
from ..models import ResolvedFile
from ..services import ShimGenerator
from ..sources.cache import SourceCache
from .base import ModuleProvider, ResolveRequest

logger = logging.getLogger(__name__)

BASE16_KEYS = tuple(f"base0{digit:X}" for digit in range(16))
COLORS_OUTPUT_DIR = "~/.config/dotforge/colors"
SHIMS_OUTPUT_DIR = "~/.local/bin"

_HEX_COLOR = re.compile(r"^[0-9a-fA-F]{6}$")
_SHIM_NAME = re.compile(r"^[A-Za-z0-9._+-]+$")


def fingerprint(payload: Mapping[str, Any]) -> str:
    """Stable digest of the inputs a generator output depends on."""

    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def normalize_palette(raw: Mapping[str, Any], *, origin: str) -> dict[str, str]:
    """Return ``base00``..``base0F`` as lowercase hex without ``#``."""

    palette: dict[str, str] = {}
    lowered = {str(key).lower(): value for key, value in raw.items()}
    for key in BASE16_KEYS:
        value = lowered.get(key.lower())
        if value is None:
            raise ConfigError(f"{origin} is missing colour '{key}'")
        text = str(value).strip().removeprefix("#")
        if not _HEX_COLOR.match(text):
            raise ConfigError(f"{origin} colour '{key}' is not a hex colour: {value!r}")
        palette[key] = text.lower()
    return palette


def load_scheme(path: Path) -> dict[str, str]:
    """Read a base16 scheme YAML file (flat or ``palette:`` layout)."""

    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to read colour scheme {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"colour scheme {path} must be a mapping")
    if isinstance(data.get("palette"), dict):
        data = data["palette"]
    return normalize_palette(data, origin=f"colour scheme {path}")


def render_colors_json(palette: Mapping[str, str]) -> str:
    return json.dumps({key: f"#{value}" for key, value in palette.items()}, indent=2) + "\n"


def render_colors_sh(palette: Mapping[str, str]) -> str:
    return "".join(f"export {key.upper()}='#{value}'\n" for key, value in palette.items())


def render_colors_css(palette: Mapping[str, str]) -> str:
    lines = [f"  --{key}: #{value};" for key, value in palette.items()]
    return ":root {\n" + "\n".join(lines) + "\n}\n"


def _expand(raw: Any, default: str) -> Path:
    return Path(str(raw or default)).expanduser()


def _list_bundle(module_name: str, bundle_dir: Path, target_base: Path, digest: str) -> list[ResolvedFile]:
    out: list[ResolvedFile] = []
    for path in sorted(bundle_dir.rglob("*")):
        if path.is_dir() or path.name.startswith("."):
            continue
        rel = path.relative_to(bundle_dir)
        out.append(
            ResolvedFile(
                rel_path=rel,
                target_base=target_base,
                mode=path.stat().st_mode & 0o7777,
                info=f"module:{module_name} bundle:{digest} ({rel.as_posix()})",
                abs_path=path,
            )
        )
    return out


class CoreModuleProvider(ModuleProvider):
    """Generators whose outputs are published once into the source cache.

    Every file they emit carries ``bundle:<fingerprint>`` provenance, so the
    planner skips hashing them while the fingerprint is unchanged.
    """

    id = "core"
    name = "Core Module Provider"

    def __init__(self, cache: SourceCache, shims: ShimGenerator) -> None:
        self.cache = cache
        self.shims = shims
        self._generators: dict[str, Callable[[ResolveRequest], list[ResolvedFile]]] = {
            "base16-colors": self._resolve_base16_colors,
            "shims": self._resolve_shims,
        }

    def resolve(self, request: ResolveRequest) -> list[ResolvedFile]:
        generator = self._generators.get(request.ref)
        if generator is None:
            raise ConfigError(f"unknown core module '{request.ref}'")
        return generator(request)

    def _resolve_base16_colors(self, request: ResolveRequest) -> list[ResolvedFile]:
        scheme = request.module_config.get("scheme")
        if scheme:
            palette = load_scheme(Path(str(scheme)).expanduser())
        else:
            raw = request.config.palette()
            if not raw:
                raise ConfigError(
                    f"module '{request.module_name}' from core:base16-colors requires modules.base16 or a scheme file"
                )
            palette = normalize_palette(raw, origin="modules.base16")

        digest = fingerprint({"engine": "core-base16-colors-v1", "palette": palette})

        def generate(tmp: Path) -> None:
            (tmp / "colors.json").write_text(render_colors_json(palette))
            (tmp / "colors.sh").write_text(render_colors_sh(palette))
            (tmp / "colors.css").write_text(render_colors_css(palette))

        bundle_dir = self.cache.ensure("core-base16-colors", digest, generate)
        target_base = _expand(request.module_config.get("output_dir"), COLORS_OUTPUT_DIR)
        return _list_bundle(request.module_name, bundle_dir, target_base, digest)

    def _resolve_shims(self, request: ResolveRequest) -> list[ResolvedFile]:
        raw = request.module_config.get("commands") or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"module '{request.module_name}': 'commands' must be a table")

        commands: dict[str, list[str]] = {}
        for name, argv in sorted(raw.items()):
            if not _SHIM_NAME.match(name):
                raise ConfigError(f"module '{request.module_name}': invalid shim name '{name}'")
            if isinstance(argv, str):
                argv = shlex.split(argv)
            if not isinstance(argv, list) or not argv or not all(isinstance(part, str) for part in argv):
                raise ConfigError(f"module '{request.module_name}': shim '{name}' needs a command")
            commands[name] = argv

        digest = fingerprint({"engine": "core-shims-v1", "shell": self.shims.shell, "commands": commands})

        def generate(tmp: Path) -> None:
            for name, argv in commands.items():
                self.shims.generate(tmp / name, argv)

        bundle_dir = self.cache.ensure("core-shims", digest, generate)
        target_base = _expand(request.module_config.get("output_dir"), SHIMS_OUTPUT_DIR)
        logger.debug("shims module %s: %d commands", request.module_name, len(commands))
        return _list_bundle(request.module_name, bundle_dir, target_base, digest)
