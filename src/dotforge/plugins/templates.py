"""Template expansion plugin."""

from __future__ import annotations

import logging

from ..errors import TemplateError
from ..models import DesiredFile, FileType, MemoryFile
from ..templating import TemplateEngine, parse_multifile, safe_relative

logger = logging.getLogger(__name__)


def read_text(desired: DesiredFile) -> str:
    """Return the content of ``desired`` decoded as UTF-8."""

    with desired.open() as handle:
        raw = handle.read()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise TemplateError(f"template {desired.source_info} is not valid UTF-8") from exc


class TemplateExpander:
    """Renders files ending in the template suffix.

    A rendered document that contains multi-file markers expands into one desired
    file per block, placed next to the template.
    """

    name = "template-expander"

    def __init__(self, engine: TemplateEngine, *, suffix: str = ".tmpl", priority: int = 0) -> None:
        self.engine = engine
        self.suffix = suffix
        self.priority = priority

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]:
        out: list[DesiredFile] = []
        for desired in files:
            if desired.file_type is FileType.REGULAR and desired.rel_path.name.endswith(self.suffix):
                out.extend(self._expand(desired))
            else:
                out.append(desired)
        return out

    def _expand(self, desired: DesiredFile) -> list[DesiredFile]:
        rendered = self.engine.render(read_text(desired), name=desired.source_info)
        blocks = parse_multifile(rendered)

        if blocks is None:
            output_name = desired.rel_path.name[: -len(self.suffix)]
            if not output_name:
                raise TemplateError(f"template {desired.source_info} has an empty output name")
            return [
                MemoryFile(
                    rel_path=desired.rel_path.with_name(output_name),
                    target_base=desired.target_base,
                    mode=desired.mode,
                    file_type=FileType.REGULAR,
                    source_info=f"template:{desired.source_info}",
                    content=rendered.encode("utf-8"),
                )
            ]

        logger.debug("template %s expands into %d files", desired.source_info, len(blocks))
        return [
            MemoryFile(
                rel_path=desired.rel_path.parent / safe_relative(block.name, template=desired.source_info),
                target_base=desired.target_base,
                mode=block.mode,
                file_type=FileType.REGULAR,
                source_info=f"template:{desired.source_info}#{block.name}",
                content=block.content.encode("utf-8"),
            )
            for block in blocks
        ]
