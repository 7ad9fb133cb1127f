"""Source provider contract and registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from ..errors import ConfigError


class SourceConfig(BaseModel):
    """Provider-specific fields of a mod-file source alias."""

    model_config = ConfigDict(frozen=True)

    provider: str = ""
    path: str = ""
    repo: str = ""
    url: str = ""
    ref: str = ""

    def provider_for(self, alias: str) -> str:
        """Explicit provider, falling back to the alias name itself."""

        return self.provider.strip() or alias.strip()


class SourceProvider(ABC):
    """Turns a source alias into a directory and a lock hash."""

    id: str = ""

    def normalize(self, src: SourceConfig) -> SourceConfig:
        return src.model_copy(
            update={
                "provider": self.id,
                "path": src.path.strip(),
                "repo": src.repo.strip(),
                "url": src.url.strip(),
                "ref": src.ref.strip(),
            }
        )

    @abstractmethod
    def resolve_path(
        self,
        alias: str,
        src: SourceConfig,
        rel: str,
        modules_base_dir: Path,
        *,
        expected_hash: str = "",
    ) -> Path:
        """Return the concrete path of ``rel`` inside the source."""

    @abstractmethod
    def lock_hash(self, alias: str, src: SourceConfig, modules_base_dir: Path) -> tuple[str, str]:
        """Return ``(hash, resolved_url)`` pinning the source's current content."""


class SourceProviderRegistry:
    """Explicit set of source providers, keyed by provider id."""

    def __init__(self, providers: list[SourceProvider] | None = None) -> None:
        self._providers: dict[str, SourceProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: SourceProvider, *, provider_id: str | None = None) -> None:
        self._providers[provider_id or provider.id] = provider

    def get(self, provider_id: str) -> SourceProvider | None:
        return self._providers.get(provider_id.strip())

    def require(self, provider_id: str) -> SourceProvider:
        provider = self.get(provider_id)
        if provider is None:
            raise ConfigError(f"unknown source provider '{provider_id}'")
        return provider

    def ids(self) -> list[str]:
        return sorted(self._providers)
