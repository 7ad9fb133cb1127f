from __future__ import annotations

from pathlib import Path

import pytest

from dotforge.errors import ConflictError, TemplateError
from dotforge.models import DesiredFile, FileType, MemoryFile
from dotforge.pipeline import Pipeline
from dotforge.plugins import Scanner, StrictConflictResolver


class _Emit:
    def __init__(self, name: str, rel: str, base: Path) -> None:
        self.name = name
        self.priority = 0
        self.rel = rel
        self.base = base

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]:
        return [
            *files,
            MemoryFile(
                rel_path=Path(self.rel),
                target_base=self.base,
                mode=0o644,
                file_type=FileType.REGULAR,
                source_info=f"{self.name}:{self.rel}",
                content=b"",
            ),
        ]


class _Fail:
    name = "fail"
    priority = 0

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]:
        raise TemplateError("boom")


class _Record:
    name = "record"
    priority = 0

    def __init__(self) -> None:
        self.calls = 0

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]:
        self.calls += 1
        return files


def test_plugins_run_in_registration_order(tmp_path: Path) -> None:
    pipeline = Pipeline()
    pipeline.add_plugin(_Emit("first", "a", tmp_path))
    pipeline.add_plugin(_Emit("second", "b", tmp_path))

    files = pipeline.run()

    assert [item.source_info for item in files] == ["first:a", "second:b"]


def test_plugin_error_aborts_pipeline(tmp_path: Path) -> None:
    after = _Record()
    pipeline = Pipeline([_Emit("first", "a", tmp_path), _Fail(), after])

    with pytest.raises(TemplateError, match="boom"):
        pipeline.run()
    assert after.calls == 0


@pytest.mark.parametrize("order", [("one", "two"), ("two", "one")])
def test_duplicate_targets_always_conflict(tmp_path: Path, order: tuple[str, str]) -> None:
    pipeline = Pipeline([*(_Emit(name, "same.txt", tmp_path) for name in order), StrictConflictResolver()])

    with pytest.raises(ConflictError) as excinfo:
        pipeline.run()

    (sources,) = excinfo.value.collisions.values()
    assert sorted(sources) == ["one:same.txt", "two:same.txt"]


def test_conflicts_compare_normalized_targets(tmp_path: Path) -> None:
    pipeline = Pipeline(
        [
            _Emit("one", "dir/../same.txt", tmp_path),
            _Emit("two", "same.txt", tmp_path),
            StrictConflictResolver(),
        ]
    )

    with pytest.raises(ConflictError):
        pipeline.run()


def test_scanner_walks_sorted_and_keeps_symlinks(tmp_path: Path) -> None:
    base = tmp_path / "home"
    (base / ".config" / "nvim").mkdir(parents=True)
    (base / ".config" / "nvim" / "init.lua").write_text("-- nvim\n")
    (base / ".bashrc").write_text("export A=1\n")
    (base / ".git").mkdir()
    (base / ".git" / "HEAD").write_text("ref\n")
    (base / ".profile").symlink_to(".bashrc")
    (base / "linked-dir").symlink_to(".config")
    target = tmp_path / "target"

    files = Scanner(base, target, ignore=[".git"]).process([])

    assert [(item.rel_path.as_posix(), item.file_type) for item in files] == [
        (".bashrc", FileType.REGULAR),
        (".profile", FileType.SYMLINK),
        ("linked-dir", FileType.SYMLINK),
        (".config/nvim/init.lua", FileType.REGULAR),
    ]
    assert files[0].target == target / ".bashrc"
    assert files[0].source_info == "scan:.bashrc"


def test_scanner_skips_missing_base(tmp_path: Path) -> None:
    assert Scanner(tmp_path / "absent", tmp_path).process([]) == []
