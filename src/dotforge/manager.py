"""High level orchestration for dotforge operations."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import Config
from .errors import ConfigError
from .executor import Executor, apply
from .lock import LockResult, generate_lock
from .modfile import BUILTIN_PROVIDERS, ModFile, parse_source_spec, write_mod_file
from .models import Action, ActionType, DesiredFile, StatusEntry, StatusReport, StatusState
from .modules import ModuleRegistry, default_module_registry
from .pipeline import Pipeline
from .planner import Planner
from .plugins import DotDProcessor, ModuleScanner, Scanner, StrictConflictResolver, TemplateExpander
from .services import Services
from .sources import SourceCache, SourceProviderRegistry, default_source_registry
from .state import StateStore
from .templating import TemplateEngine
from .workspace import Workspace

logger = logging.getLogger(__name__)


class DotforgeManager:
    """Coordinates plan, apply, status, and lock operations for one workspace."""

    def __init__(
        self,
        config: Config,
        *,
        services: Services | None = None,
        sources: SourceProviderRegistry | None = None,
        modules: ModuleRegistry | None = None,
    ) -> None:
        self.config = config
        self.services = services or Services()
        self.workspace = Workspace.from_config(config)
        self.cache = SourceCache(config.settings.cache_dir)
        self.sources = sources or default_source_registry(self.cache, self.services)
        self.modules = modules or default_module_registry(self.sources, self.cache, self.services)
        self.store = StateStore(config.settings.state_path)
        self.planner = Planner(config.settings.workers or None)
        self.executor = Executor()

    def build_pipeline(self) -> Pipeline:
        settings = self.config.settings
        engine = TemplateEngine.from_config(self.config)
        return Pipeline(
            [
                Scanner(settings.home_dir, settings.target_root, ignore=settings.ignore, priority=0),
                ModuleScanner(self.workspace, self.config, self.modules, self.sources, priority=50),
                DotDProcessor(
                    engine,
                    suffix=settings.dotd_suffix,
                    priority=80,
                ),
                TemplateExpander(engine, suffix=settings.template_suffix, priority=90),
                StrictConflictResolver(priority=100),
            ]
        )

    def desired_files(self) -> list[DesiredFile]:
        return self.build_pipeline().run()

    def plan(self) -> list[Action]:
        return self.planner.plan(self.desired_files(), self.store.load())

    def apply(self, *, dry_run: bool = False) -> list[Action]:
        """Reconcile the target tree; the state file is only written after a clean pass."""

        previous = self.store.load()
        actions, state = apply(
            self.desired_files(),
            previous,
            dry_run=dry_run,
            planner=self.planner,
            executor=self.executor,
        )
        if state is not previous:
            self.store.save(state)
        return actions

    def status(self) -> StatusReport:
        state = self.store.load()
        entries: list[StatusEntry] = []
        for action in self.planner.plan(self.desired_files(), state):
            current = state.get(action.target)
            source_info = action.desired.source_info if action.desired else (current.source_info if current else "")
            entries.append(
                StatusEntry(
                    target=action.target,
                    state=_status_for(action, managed=current is not None),
                    source_info=source_info,
                    details=_details_for(action, managed=current is not None),
                )
            )
        entries.sort(key=lambda item: str(item.target))
        return StatusReport(entries=tuple(entries))

    def lock(self) -> LockResult:
        return generate_lock(self.workspace, self.config, self.sources)

    def add_module(self, name: str, source: str | None = None) -> str:
        """Record ``name = source`` in the mod-file ``[modules]`` table."""

        name = name.strip()
        if not name:
            raise ConfigError("module name cannot be empty")
        spec = (source or f"local:{name}").strip()
        if ":" not in spec:
            raise ConfigError(f"invalid source '{spec}' (expected provider-or-alias:path)")
        if spec.startswith("core:"):
            raise ConfigError(f"core modules are built-in; do not add them to {self.workspace.mod_path.name}")

        self.workspace.ensure_files()
        mod = ModFile.load(self.workspace.mod_path)
        mod.modules[name] = spec
        write_mod_file(self.workspace.mod_path, mod)
        logger.info("updated %s: %s = %s", self.workspace.mod_path, name, spec)
        return spec

    def add_source(self, alias: str, spec: str) -> Path:
        """Record a ``[sources]`` alias in the mod-file."""

        alias = alias.strip()
        if not alias:
            raise ConfigError("source alias cannot be empty")
        if alias in BUILTIN_PROVIDERS:
            raise ConfigError(f"'{alias}' is a built-in provider and cannot be used as an alias")

        src = parse_source_spec(alias, spec)
        if self.sources.get(src.provider) is None:
            raise ConfigError(f"unknown source provider '{src.provider}'")

        self.workspace.ensure_files()
        mod = ModFile.load(self.workspace.mod_path)
        mod.sources[alias] = src
        write_mod_file(self.workspace.mod_path, mod)
        logger.info("updated %s: source %s = %s", self.workspace.mod_path, alias, spec)
        return self.workspace.mod_path

    def close(self) -> None:
        self.services.close()


def _status_for(action: Action, *, managed: bool) -> StatusState:
    if action.type is ActionType.NOOP:
        return StatusState.IN_SYNC
    if action.type is ActionType.DELETE:
        return StatusState.ORPHANED
    if action.type is ActionType.CREATE:
        return StatusState.MISSING if managed else StatusState.PENDING
    return StatusState.DRIFTED if managed else StatusState.PENDING


def _details_for(action: Action, *, managed: bool) -> str | None:
    if action.type is ActionType.DELETE:
        return "Managed entry no longer desired"
    if action.type is ActionType.CREATE and managed:
        return "Managed file missing from disk"
    if action.type is ActionType.UPDATE and not managed:
        return "Existing unmanaged file will be replaced"
    if action.type is ActionType.UPDATE:
        return "Desired content or mode differs"
    return None
