"""Local directory module provider."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from ..errors import ConfigError
from ..models import ResolvedFile
from .base import ModuleProvider, ResolveRequest

logger = logging.getLogger(__name__)

PRESET_BASES = {
    "home": "~",
    "etc": "/etc",
    "usr": "/usr",
    "root": "/",
    "var": "/var",
    "bin": "/usr/local/bin",
}
METADATA_FILES = frozenset({"schema.json", "module.toml", "defaults.toml", "README.md"})
RESERVED_CONFIG_KEYS = ("enable", "from")


def resolve_module_dir(label: str, module_dir: Path, module_config: Mapping[str, Any]) -> list[ResolvedFile]:
    """List the files of a module laid out as ``<preset>/<path>``.

    Each top-level directory names a preset target base (``home``, ``etc``, ...);
    only metadata files may sit next to them.
    """

    if not module_dir.is_dir():
        raise ConfigError(f"module '{label}' not found at {module_dir}")

    validate_module_config(label, module_dir, module_config)

    out: list[ResolvedFile] = []
    for preset in sorted(module_dir.iterdir()):
        if not preset.is_dir():
            if preset.name in METADATA_FILES or preset.name.startswith(".dotforge-"):
                continue
            raise ConfigError(f"strict structure violation: file '{preset.name}' found in module '{label}' root")

        base = PRESET_BASES.get(preset.name)
        if base is None:
            raise ConfigError(f"unknown preset '{preset.name}' in module '{label}'")
        target_base = Path(base).expanduser()

        for dirpath, dirnames, filenames in os.walk(preset):
            current = Path(dirpath)
            linked = [name for name in dirnames if (current / name).is_symlink()]
            dirnames[:] = sorted(name for name in dirnames if name not in linked)
            for name in sorted([*filenames, *linked]):
                path = current / name
                rel = path.relative_to(preset)
                out.append(
                    ResolvedFile(
                        rel_path=rel,
                        target_base=target_base,
                        mode=path.lstat().st_mode & 0o7777,
                        info=f"module:{label} ({preset.name}/{rel.as_posix()})",
                        abs_path=path,
                        symlink=path.is_symlink(),
                    )
                )
    return out


def validate_module_config(label: str, module_dir: Path, module_config: Mapping[str, Any]) -> None:
    """Check ``module_config`` against the module's optional ``schema.json``."""

    schema_path = module_dir / "schema.json"
    if not schema_path.exists():
        return

    try:
        schema = json.loads(schema_path.read_text())
        Draft202012Validator.check_schema(schema)
    except (ValueError, SchemaError) as exc:
        raise ConfigError(f"failed to load schema for module '{label}': {exc}") from exc

    document = {key: value for key, value in module_config.items() if key not in RESERVED_CONFIG_KEYS}
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(document), key=lambda e: list(e.path))
    if errors:
        details = "\n".join(f"- {'/'.join(str(p) for p in error.path) or '<root>'}: {error.message}" for error in errors)
        raise ConfigError(f"config validation failed for module '{label}':\n{details}")


class LocalModuleProvider(ModuleProvider):
    id = "local"
    name = "Local Module"

    def resolve(self, request: ResolveRequest) -> list[ResolvedFile]:
        module_dir = Path(request.ref)
        if not module_dir.is_absolute():
            module_dir = request.modules_base_dir / request.ref
        logger.debug("resolving local module %s from %s", request.module_name, module_dir)
        return resolve_module_dir(request.ref, module_dir, request.module_config)
