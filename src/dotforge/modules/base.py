"""Module provider contract and registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import Config
from ..errors import ConfigError
from ..models import ResolvedFile
from ..sources.base import SourceConfig


@dataclass(frozen=True, slots=True)
class ResolveRequest:
    """Everything a module provider needs to list a module's files."""

    module_name: str
    ref: str
    config: Config
    modules_base_dir: Path
    version: str = ""
    module_config: dict[str, Any] = field(default_factory=dict)
    source: SourceConfig | None = None
    expected_hash: str = ""


class ModuleProvider(ABC):
    id: str = ""
    name: str = ""

    @abstractmethod
    def resolve(self, request: ResolveRequest) -> list[ResolvedFile]:
        """Return the files ``request`` contributes, in a deterministic order."""


class ModuleRegistry:
    """Explicit set of module providers, keyed by provider id."""

    def __init__(self, providers: list[ModuleProvider] | None = None) -> None:
        self._providers: dict[str, ModuleProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ModuleProvider) -> None:
        self._providers[provider.id] = provider

    def get(self, provider_id: str) -> ModuleProvider:
        try:
            return self._providers[provider_id]
        except KeyError as exc:
            raise ConfigError(f"unknown module provider '{provider_id}'") from exc

    def ids(self) -> list[str]:
        return sorted(self._providers)
