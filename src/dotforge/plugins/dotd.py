"""Fragment directory (``name.d/``) concatenation plugin."""

from __future__ import annotations

import logging
from pathlib import Path

from ..models import DesiredFile, FileType, MemoryFile
from ..templating import TemplateEngine
from .templates import read_text

logger = logging.getLogger(__name__)


class DotDProcessor:
    """Concatenates the fragments of each ``<name><suffix>/`` directory into ``<name>``.

    The suffix defaults to ``.d.tmpl``, so plain ``conf.d/`` directories deploy as
    directories. Only direct regular-file children are fragments; each is rendered
    as a template and they are joined in lexical order of their names.
    """

    name = "dotd"

    def __init__(
        self,
        engine: TemplateEngine,
        *,
        suffix: str = ".d.tmpl",
        priority: int = 0,
    ) -> None:
        self.engine = engine
        self.suffix = suffix
        self.priority = priority

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]:
        groups: dict[tuple[Path, Path], list[DesiredFile]] = {}
        slots: list[DesiredFile | tuple[Path, Path]] = []

        for desired in files:
            key = self._group_key(desired)
            if key is None:
                slots.append(desired)
                continue
            if key not in groups:
                groups[key] = []
                slots.append(key)
            groups[key].append(desired)

        out: list[DesiredFile] = []
        for slot in slots:
            if isinstance(slot, tuple):
                out.append(self._concatenate(slot, groups[slot]))
            else:
                out.append(slot)
        return out

    def _group_key(self, desired: DesiredFile) -> tuple[Path, Path] | None:
        parent = desired.rel_path.parent
        if desired.file_type is not FileType.REGULAR or parent == Path("."):
            return None
        if not parent.name.endswith(self.suffix) or parent.name == self.suffix:
            return None
        return (desired.target_base, parent)

    def _concatenate(self, key: tuple[Path, Path], fragments: list[DesiredFile]) -> DesiredFile:
        target_base, directory = key
        ordered = sorted(fragments, key=lambda item: item.rel_path.name)

        chunks: list[str] = []
        for fragment in ordered:
            text = self.engine.render(read_text(fragment), name=fragment.source_info)
            if text and not text.endswith("\n"):
                text += "\n"
            chunks.append(text)

        output = directory.with_name(directory.name[: -len(self.suffix)])
        logger.debug("joined %d fragments into %s", len(ordered), output)
        return MemoryFile(
            rel_path=output,
            target_base=target_base,
            mode=ordered[0].mode,
            file_type=FileType.REGULAR,
            source_info=f"dotd:{directory.as_posix()}",
            content="".join(chunks).encode("utf-8"),
        )
