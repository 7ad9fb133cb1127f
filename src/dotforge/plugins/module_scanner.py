"""Pipeline plugin that expands enabled modules into desired files."""

from __future__ import annotations

import logging

from ..config import Config
from ..errors import ConfigError, FetchError
from ..modfile import ModFile
from ..models import DesiredFile, FileType, StaticFile
from ..modules.base import ModuleRegistry, ResolveRequest
from ..sources.base import SourceProviderRegistry
from ..sumfile import SumFile
from ..workspace import Workspace

logger = logging.getLogger(__name__)

# core module settings that may name a path inside a source alias
SOURCE_REF_KEYS = ("scheme", "input_dir")


class ModuleScanner:
    name = "module-scanner"

    def __init__(
        self,
        workspace: Workspace,
        config: Config,
        modules: ModuleRegistry,
        sources: SourceProviderRegistry,
        *,
        priority: int = 50,
    ) -> None:
        self.workspace = workspace
        self.config = config
        self.modules = modules
        self.sources = sources
        self.priority = priority

    def process(self, files: list[DesiredFile]) -> list[DesiredFile]:
        mod = ModFile.load(self.workspace.mod_path)
        sum_file = SumFile.load(self.workspace.sum_path)
        modules_dir = self.workspace.modules_dir

        discovered: list[DesiredFile] = []
        for name in self.config.enabled_modules():
            module_config = dict(self.config.modules[name])
            explicit = module_config.get("from", "")
            if not isinstance(explicit, str):
                raise ConfigError(f"module '{name}': 'from' must be a string")

            try:
                source = mod.resolve_module_source(name, explicit, modules_dir, sum_file)
            except ConfigError as exc:
                raise type(exc)(f"module '{name}': {exc}") from exc
            logger.info("loading module %s from %s", name, source.spec())

            try:
                provider = self.modules.get(source.provider)
                if source.provider == "core":
                    self._resolve_source_refs(module_config, mod, sum_file)

                alias_source, expected_hash = None, ""
                if source.alias:
                    alias_source, expected_hash = mod.source_for(source.alias, sum_file)

                resolved = provider.resolve(
                    ResolveRequest(
                        module_name=name,
                        ref=source.ref,
                        version=source.version,
                        module_config=module_config,
                        modules_base_dir=modules_dir,
                        config=self.config,
                        source=alias_source,
                        expected_hash=expected_hash,
                    )
                )
            except (ConfigError, FetchError) as exc:
                raise type(exc)(f"module '{name}' from {source.provider}:{source.ref}: {exc}") from exc

            for item in resolved:
                discovered.append(
                    StaticFile(
                        rel_path=item.rel_path,
                        target_base=item.target_base,
                        mode=item.mode,
                        file_type=FileType.SYMLINK if item.symlink else FileType.REGULAR,
                        source_info=item.info,
                        abs_path=item.abs_path,
                    )
                )

        return [*files, *discovered]

    def _resolve_source_refs(self, module_config: dict, mod: ModFile, sum_file: SumFile) -> None:
        for key in SOURCE_REF_KEYS:
            value = module_config.get(key)
            if not isinstance(value, str) or not value.strip():
                continue
            try:
                path = mod.try_resolve_source_ref(value, self.workspace.modules_dir, self.sources, sum_file)
            except (ConfigError, FetchError) as exc:
                raise type(exc)(f"input {key}='{value}': {exc}") from exc
            if path is not None:
                module_config[key] = str(path)
