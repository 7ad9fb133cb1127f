"""TOML configuration loading for dotforge."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigError

DEFAULT_CONFIG_FILENAME = "dotforge.toml"

__all__ = ["DEFAULT_CONFIG_FILENAME", "Config", "ConfigError", "Settings", "load_config"]


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    home_dir: Path
    target_root: Path
    modules_dir: Path
    state_path: Path
    cache_dir: Path
    workers: int = 0
    template_suffix: str = ".tmpl"
    dotd_suffix: str = ".d.tmpl"
    ignore: tuple[str, ...] = (".git",)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        workers = raw.get("workers", 0)
        if not isinstance(workers, int) or workers < 0:
            raise ConfigError("settings.workers must be a non-negative integer")

        template_suffix = str(raw.get("template_suffix", ".tmpl"))
        dotd_suffix = str(raw.get("dotd_suffix", f".d{template_suffix}"))
        if not template_suffix or not dotd_suffix:
            raise ConfigError("settings.template_suffix and settings.dotd_suffix must not be empty")
        # fragment directories are templates themselves
        if not dotd_suffix.endswith(template_suffix) or dotd_suffix == template_suffix:
            raise ConfigError(
                f"settings.dotd_suffix '{dotd_suffix}' must end with the template suffix '{template_suffix}'"
            )

        return cls(
            home_dir=_expand_path(raw.get("home_dir", "./home"), base_dir=base_dir),
            target_root=_expand_path(raw.get("target_root", "~"), base_dir=base_dir),
            modules_dir=_expand_path(raw.get("modules_dir", "./modules"), base_dir=base_dir),
            state_path=_expand_path(raw.get("state_path", "~/.local/state/dotforge/state.json"), base_dir=base_dir),
            cache_dir=_expand_path(raw.get("cache_dir", "~/.cache/dotforge"), base_dir=base_dir),
            workers=workers,
            template_suffix=template_suffix,
            dotd_suffix=dotd_suffix,
            ignore=tuple(str(item) for item in raw.get("ignore", [".git"])),
        )


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path
    settings: Settings
    vars: Dict[str, Any] = Field(default_factory=dict)
    modules: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @property
    def root(self) -> Path:
        """Directory holding the configuration file (the workspace root)."""

        return self.config_path.parent

    def module(self, name: str) -> Dict[str, Any]:
        try:
            return self.modules[name]
        except KeyError as exc:
            raise ConfigError(f"Unknown module '{name}'") from exc

    def enabled_modules(self) -> list[str]:
        """Names of enabled modules in sorted order."""

        return sorted(name for name, body in self.modules.items() if body.get("enable") is True)

    def palette(self) -> Dict[str, Any]:
        """Colour values exposed to templates, taken from ``[modules.base16]``."""

        body = self.modules.get("base16", {})
        return {key: value for key, value in body.items() if key not in ("enable", "from")}


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or the directory holding it. Defaults to
            ``dotforge.toml`` in the current working directory.
    """

    config_path = _resolve_config_path(path)
    base_dir = config_path.parent

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc

    vars_section = data.get("vars") or {}
    if not isinstance(vars_section, dict):
        raise ConfigError("[vars] must be a table")

    modules_section = data.get("modules") or {}
    modules: Dict[str, Dict[str, Any]] = {}
    for name, body in modules_section.items():
        if body is None:
            continue
        if not isinstance(body, dict):
            raise ConfigError(f"Invalid config for module '{name}': expected a table, got {type(body).__name__}")
        enable = body.get("enable", False)
        if not isinstance(enable, bool):
            raise ConfigError(f"Module '{name}' setting 'enable' must be a boolean")
        modules[name] = dict(body)

    settings = Settings.from_raw(data.get("settings", {}), base_dir=base_dir)

    return Config(config_path=config_path, settings=settings, vars=vars_section, modules=modules)


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME
    else:
        path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
