from __future__ import annotations

import json
from pathlib import Path
from textwrap import dedent

import pytest

from dotforge.config import Config, load_config
from dotforge.errors import ConfigError
from dotforge.models import FileType
from dotforge.modules import CoreModuleProvider, LocalModuleProvider, ResolveRequest, default_module_registry
from dotforge.plugins import ModuleScanner
from dotforge.services import Services, ShimGenerator
from dotforge.sources import SourceCache, default_source_registry
from dotforge.workspace import Workspace

PALETTE = {f"base0{digit:X}": f"#{digit:02x}{digit:02x}{digit:02x}" for digit in range(16)}


def _config(root: Path, body: str = "") -> Config:
    root.mkdir(parents=True, exist_ok=True)
    config_path = root / "dotforge.toml"
    config_path.write_text(dedent(body))
    return load_config(config_path)


def _request(config: Config, name: str, ref: str, **module_config) -> ResolveRequest:
    return ResolveRequest(
        module_name=name,
        ref=ref,
        config=config,
        modules_base_dir=config.settings.modules_dir,
        module_config={"enable": True, **module_config},
    )


def _core(tmp_path: Path) -> CoreModuleProvider:
    return CoreModuleProvider(SourceCache(tmp_path / "cache"), ShimGenerator(shell="/bin/sh"))


def test_local_module_maps_presets(tmp_path: Path, fake_home: Path) -> None:
    config = _config(tmp_path / "ws")
    module = config.settings.modules_dir / "git"
    (module / "home" / ".config" / "git").mkdir(parents=True)
    (module / "home" / ".config" / "git" / "config").write_text("[user]\n")
    (module / "etc").mkdir()
    (module / "etc" / "gitconfig").write_text("[core]\n")
    (module / "README.md").write_text("git module\n")

    files = LocalModuleProvider().resolve(_request(config, "git", "git"))

    assert [(item.target_base, item.rel_path.as_posix(), item.info) for item in files] == [
        (Path("/etc"), "gitconfig", "module:git (etc/gitconfig)"),
        (fake_home, ".config/git/config", "module:git (home/.config/git/config)"),
    ]


def test_local_module_strict_structure(tmp_path: Path, fake_home: Path) -> None:
    config = _config(tmp_path / "ws")
    module = config.settings.modules_dir / "bad"
    module.mkdir(parents=True)
    (module / "stray.txt").write_text("x\n")

    with pytest.raises(ConfigError, match="strict structure violation"):
        LocalModuleProvider().resolve(_request(config, "bad", "bad"))

    (module / "stray.txt").unlink()
    (module / "opt").mkdir()
    with pytest.raises(ConfigError, match="unknown preset 'opt'"):
        LocalModuleProvider().resolve(_request(config, "bad", "bad"))


def test_local_module_missing_directory(tmp_path: Path, fake_home: Path) -> None:
    config = _config(tmp_path / "ws")

    with pytest.raises(ConfigError, match="not found"):
        LocalModuleProvider().resolve(_request(config, "ghost", "ghost"))


def test_local_module_schema_validation(tmp_path: Path, fake_home: Path) -> None:
    config = _config(tmp_path / "ws")
    module = config.settings.modules_dir / "git"
    (module / "home").mkdir(parents=True)
    (module / "schema.json").write_text(
        json.dumps(
            {
                "type": "object",
                "properties": {"email": {"type": "string"}},
                "required": ["email"],
                "additionalProperties": False,
            }
        )
    )

    with pytest.raises(ConfigError, match="email"):
        LocalModuleProvider().resolve(_request(config, "git", "git"))

    assert LocalModuleProvider().resolve(_request(config, "git", "git", email="me@example.com")) == []


def test_base16_colors_from_palette(tmp_path: Path, fake_home: Path) -> None:
    body = "[modules.base16]\n" + "".join(f'{key} = "{value}"\n' for key, value in PALETTE.items())
    config = _config(tmp_path / "ws", body)
    output_dir = tmp_path / "out"
    provider = _core(tmp_path)

    files = provider.resolve(_request(config, "colors", "base16-colors", output_dir=str(output_dir)))

    assert [item.rel_path.as_posix() for item in files] == ["colors.css", "colors.json", "colors.sh"]
    assert all(item.target_base == output_dir for item in files)
    assert all(" bundle:" in item.info for item in files)
    colors = json.loads(files[1].abs_path.read_text())
    assert colors["base0F"] == "#0f0f0f"
    assert "export BASE0A='#0a0a0a'" in files[2].abs_path.read_text()

    again = provider.resolve(_request(config, "colors", "base16-colors", output_dir=str(output_dir)))
    assert [item.info for item in again] == [item.info for item in files]


def test_base16_colors_from_scheme_file(tmp_path: Path, fake_home: Path) -> None:
    config = _config(tmp_path / "ws")
    scheme = tmp_path / "dark.yaml"
    scheme.write_text(
        "system: base16\nname: Dark\npalette:\n" + "".join(f'  {key}: "{value}"\n' for key, value in PALETTE.items())
    )

    files = _core(tmp_path).resolve(_request(config, "colors", "base16-colors", scheme=str(scheme)))

    assert files[0].target_base == fake_home / ".config/dotforge/colors"
    assert "--base00: #000000;" in files[0].abs_path.read_text()


def test_base16_colors_requires_palette(tmp_path: Path, fake_home: Path) -> None:
    config = _config(tmp_path / "ws")

    with pytest.raises(ConfigError, match="requires modules.base16"):
        _core(tmp_path).resolve(_request(config, "colors", "base16-colors"))


def test_shims_generate_executable_scripts(tmp_path: Path, fake_home: Path) -> None:
    config = _config(tmp_path / "ws")

    files = _core(tmp_path).resolve(
        _request(config, "shims", "shims", commands={"ll": "ls -la", "gs": ["git", "status"]})
    )

    assert [item.rel_path.as_posix() for item in files] == ["gs", "ll"]
    assert all(item.mode & 0o777 == 0o755 for item in files)
    assert all(item.target_base == fake_home / ".local/bin" for item in files)
    assert files[0].abs_path.read_text() == '#!/bin/sh\nexec git status "$@"\n'


def test_unknown_core_module(tmp_path: Path, fake_home: Path) -> None:
    config = _config(tmp_path / "ws")

    with pytest.raises(ConfigError, match="unknown core module"):
        _core(tmp_path).resolve(_request(config, "x", "icons"))


def _scanner(config: Config, tmp_path: Path) -> ModuleScanner:
    services = Services(shims=ShimGenerator(shell="/bin/sh"))
    cache = SourceCache(tmp_path / "cache")
    sources = default_source_registry(cache, services)
    modules = default_module_registry(sources, cache, services)
    return ModuleScanner(Workspace.from_config(config), config, modules, sources)


def test_module_scanner_emits_enabled_modules_in_order(tmp_path: Path, fake_home: Path) -> None:
    config = _config(
        tmp_path / "ws",
        f"""
        [modules.zsh]
        enable = true

        [modules.colors]
        enable = true
        scheme = "local:schemes/dark.yaml"
        output_dir = "{tmp_path / 'colors'}"

        [modules.tmux]
        enable = false
        """,
    )
    modules_dir = config.settings.modules_dir
    (modules_dir / "zsh" / "home").mkdir(parents=True)
    (modules_dir / "zsh" / "home" / ".zshrc").write_text("setopt autocd\n")
    (modules_dir / "schemes").mkdir()
    (modules_dir / "schemes" / "dark.yaml").write_text(
        "".join(f'{key}: "{value}"\n' for key, value in PALETTE.items())
    )

    files = _scanner(config, tmp_path).process([])

    assert [item.source_info.split(" ")[0] for item in files] == [
        "module:colors",
        "module:colors",
        "module:colors",
        "module:zsh",
    ]
    assert files[-1].target == fake_home / ".zshrc"
    assert files[-1].file_type is FileType.REGULAR


def test_module_scanner_error_names_module(tmp_path: Path, fake_home: Path) -> None:
    config = _config(
        tmp_path / "ws",
        """
        [modules.broken]
        enable = true
        """,
    )

    with pytest.raises(ConfigError, match="module 'broken'"):
        _scanner(config, tmp_path).process([])
