"""Jinja2 rendering and the multi-file template convention."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError as JinjaTemplateError

from .config import Config
from .errors import TemplateError

# Block bodies are whitespace-trimmed and end with exactly one newline; an
# all-blank block yields an empty file.
MARKER_FILE_START = "<<<DOTFORGE_FILE:"
MARKER_FILE_END = "<<<DOTFORGE_ENDFILE>>>"
DEFAULT_MODE = 0o644


@dataclass(frozen=True, slots=True)
class MultiFile:
    """One file carved out of a multi-file template."""

    name: str
    mode: int
    content: str


class TemplateEngine:
    """Renders template text against the effective configuration."""

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        self._env = Environment(undefined=StrictUndefined, keep_trailing_newline=True, autoescape=False)
        self._context = dict(context or {})

    @classmethod
    def from_config(cls, config: Config) -> "TemplateEngine":
        return cls(
            {
                "vars": config.vars,
                "modules": config.modules,
                "colors": config.palette(),
                "env": dict(os.environ),
                "hostname": socket.gethostname(),
            }
        )

    @property
    def context(self) -> Mapping[str, Any]:
        return self._context

    def render(self, text: str, *, name: str) -> str:
        try:
            return self._env.from_string(text).render(self._context)
        except JinjaTemplateError as exc:
            raise TemplateError(f"failed to render template {name}: {exc}") from exc


def parse_multifile(rendered: str) -> list[MultiFile] | None:
    """Split ``rendered`` into files if it uses the multi-file markers.

    Returns ``None`` when no start marker is present. Text before the first marker
    is ignored; a block without an end marker runs to the end of the document.
    """

    if MARKER_FILE_START not in rendered:
        return None

    files: list[MultiFile] = []
    for part in rendered.split(MARKER_FILE_START)[1:]:
        header, sep, rest = part.partition(">>>")
        if not sep:
            continue
        name, colon, mode_text = header.partition(":")
        if not colon:
            continue

        end = rest.find(MARKER_FILE_END)
        body = rest if end == -1 else rest[:end]

        mode = DEFAULT_MODE
        if mode_text:
            try:
                mode = int(mode_text, 8)
            except ValueError:
                mode = DEFAULT_MODE

        content = body.strip()
        if content:
            content += "\n"
        files.append(MultiFile(name=name.strip(), mode=mode, content=content))

    return files or None


def safe_relative(name: str, *, template: str) -> Path:
    """Validate a multi-file entry name and return it as a relative path."""

    candidate = Path(name)
    if not name or candidate.is_absolute() or ".." in candidate.parts:
        raise TemplateError(f"template {template} declares unsafe file name '{name}'")
    return candidate
