"""Module providers: turn a resolved module reference into files."""

from ..services import Services
from ..sources.base import SourceProviderRegistry
from ..sources.cache import SourceCache
from ..sources.github import GitHubSourceProvider
from .base import ModuleProvider, ModuleRegistry, ResolveRequest
from .core import CoreModuleProvider
from .github import GitHubModuleProvider
from .local import LocalModuleProvider


def default_module_registry(
    sources: SourceProviderRegistry,
    cache: SourceCache,
    services: Services,
) -> ModuleRegistry:
    """Registry holding every built-in module provider."""

    github = sources.get("github")
    if not isinstance(github, GitHubSourceProvider):
        github = GitHubSourceProvider(cache, services)
    return ModuleRegistry(
        [
            LocalModuleProvider(),
            CoreModuleProvider(cache, services.shims),
            GitHubModuleProvider(github),
        ]
    )


__all__ = [
    "CoreModuleProvider",
    "GitHubModuleProvider",
    "LocalModuleProvider",
    "ModuleProvider",
    "ModuleRegistry",
    "ResolveRequest",
    "default_module_registry",
]
