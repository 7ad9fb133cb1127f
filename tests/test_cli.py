from __future__ import annotations

import tomllib
from pathlib import Path

from click.testing import Result
from typer.testing import CliRunner

from dotforge.cli import app
from dotforge.config import DEFAULT_CONFIG_FILENAME

runner = CliRunner()


def _write_config(directory: Path, body: str) -> Path:
    config_path = directory / DEFAULT_CONFIG_FILENAME
    config_path.write_text(body)
    return config_path


def _out(result: Result) -> str:
    # rich wraps long lines at the runner's terminal width
    return " ".join(result.stdout.split())


def _project(tmp_path: Path) -> tuple[Path, Path, Path]:
    project = tmp_path / "project"
    home = project / "home"
    target = tmp_path / "target"
    home.mkdir(parents=True)

    config_body = f"""
[settings]
target_root = "{target}"
state_path = "{tmp_path / 'state.json'}"
cache_dir = "{tmp_path / 'cache'}"
"""
    return _write_config(project, config_body), home, target


def test_cli_apply_and_status_flow(tmp_path: Path, fake_home: Path) -> None:
    config_path, home, target = _project(tmp_path)
    (home / ".bashrc").write_text("export A=1\n")

    plan_result = runner.invoke(app, ["plan", "--config", str(config_path)])
    assert plan_result.exit_code == 0
    assert "1 create, 0 update, 0 delete, 0 noop" in _out(plan_result)
    assert not (target / ".bashrc").exists()

    apply_result = runner.invoke(app, ["apply", "--config", str(config_path)])
    assert apply_result.exit_code == 0
    assert "1 create" in _out(apply_result)
    assert (target / ".bashrc").read_text() == "export A=1\n"

    status_result = runner.invoke(app, ["status", "--config", str(config_path)])
    assert status_result.exit_code == 0
    assert "in_sync" in _out(status_result)
    assert "out of sync" not in _out(status_result)

    again = runner.invoke(app, ["plan", "--config", str(config_path), "--all"])
    assert again.exit_code == 0
    assert "noop" in _out(again)
    assert "0 create, 0 update, 0 delete, 1 noop" in _out(again)


def test_cli_dry_run(tmp_path: Path, fake_home: Path) -> None:
    config_path, home, target = _project(tmp_path)
    (home / ".vimrc").write_text("set nu\n")

    result = runner.invoke(app, ["apply", "--config", str(config_path), "--dry-run"])

    assert result.exit_code == 0
    assert "dry run:" in _out(result)
    assert not (target / ".vimrc").exists()
    assert not (tmp_path / "state.json").exists()


def test_cli_status_reports_drift(tmp_path: Path, fake_home: Path) -> None:
    config_path, home, target = _project(tmp_path)
    (home / ".bashrc").write_text("export A=1\n")
    runner.invoke(app, ["apply", "--config", str(config_path)])
    (target / ".bashrc").write_text("changed\n")

    result = runner.invoke(app, ["status", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "drifted" in _out(result)
    assert "out of sync" in _out(result)


def test_cli_missing_config(tmp_path: Path) -> None:
    result = runner.invoke(app, ["plan", "--config", str(tmp_path / "missing.toml")])

    assert result.exit_code == 1
    assert "does not exist" in _out(result)
    assert "dotforge init" in _out(result)


def test_cli_conflict_exits_non_zero(tmp_path: Path, fake_home: Path) -> None:
    config_path, home, _ = _project(tmp_path)
    (home / "app.conf").write_text("plain\n")
    (home / "app.conf.tmpl").write_text("rendered\n")

    result = runner.invoke(app, ["apply", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "conflicting desired files" in _out(result)


def test_cli_init_creates_workspace(tmp_path: Path) -> None:
    workspace = tmp_path / "dots"

    result = runner.invoke(app, ["init", str(workspace)])

    assert result.exit_code == 0
    assert (workspace / DEFAULT_CONFIG_FILENAME).exists()
    assert (workspace / "home").is_dir()
    assert (workspace / "modules").is_dir()
    assert (workspace / "dotforge.mod.toml").exists()
    assert (workspace / "dotforge.sum.toml").exists()

    again = runner.invoke(app, ["init", str(workspace)])
    assert again.exit_code == 1
    assert "already exists" in _out(again)

    forced = runner.invoke(app, ["init", str(workspace), "--force"])
    assert forced.exit_code == 0


def test_cli_mod_commands(tmp_path: Path, fake_home: Path) -> None:
    config_path, _, _ = _project(tmp_path)
    mod_path = config_path.parent / "dotforge.mod.toml"

    added = runner.invoke(app, ["mod", "add", "git", "--config", str(config_path)])
    assert added.exit_code == 0
    aliased = runner.invoke(app, ["mod", "add", "nvim", "gh:nvim", "--config", str(config_path)])
    assert aliased.exit_code == 0
    source = runner.invoke(app, ["mod", "source", "gh", "github:owner/dots@main", "--config", str(config_path)])
    assert source.exit_code == 0

    with mod_path.open("rb") as handle:
        data = tomllib.load(handle)
    assert data["modules"] == {"git": "local:git", "nvim": "gh:nvim"}
    assert data["sources"] == {"gh": "github:owner/dots@main"}

    rejected = runner.invoke(app, ["mod", "source", "local", "local:elsewhere", "--config", str(config_path)])
    assert rejected.exit_code == 1
    assert "built-in provider" in _out(rejected)


def test_cli_mod_lock(tmp_path: Path, fake_home: Path) -> None:
    config_path, _, _ = _project(tmp_path)
    config_path.write_text(config_path.read_text() + "\n[modules.git]\nenable = true\n")

    result = runner.invoke(app, ["mod", "lock", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "0 sources, 0 modules" in _out(result)
    assert (config_path.parent / "dotforge.sum.toml").exists()


def test_cli_mod_tidy_is_lock_alias(tmp_path: Path, fake_home: Path) -> None:
    config_path, _, _ = _project(tmp_path)

    result = runner.invoke(app, ["mod", "tidy", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "0 sources, 0 modules" in _out(result)
    assert (config_path.parent / "dotforge.sum.toml").exists()
