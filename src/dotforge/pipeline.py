"""Ordered plugin chain producing the desired file set."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence

from .models import DesiredFile

logger = logging.getLogger(__name__)


class Plugin(Protocol):
    """A pipeline stage.

    ``process`` receives the cumulative output of every earlier plugin and returns
    the new cumulative list. ``priority`` is informational only.
    """

    name: str
    priority: int

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]: ...


class Pipeline:
    """Runs plugins strictly in registration order."""

    def __init__(self, plugins: Iterable[Plugin] | None = None) -> None:
        self._plugins: list[Plugin] = list(plugins or [])

    def add_plugin(self, plugin: Plugin) -> None:
        self._plugins.append(plugin)

    @property
    def plugins(self) -> Sequence[Plugin]:
        return tuple(self._plugins)

    def run(self, seed: Iterable[DesiredFile] | None = None) -> list[DesiredFile]:
        files: list[DesiredFile] = list(seed or [])
        for plugin in self._plugins:
            before = len(files)
            files = plugin.process(files)
            logger.debug("plugin %s: %d -> %d files", plugin.name, before, len(files))
        return files
