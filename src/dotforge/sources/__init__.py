"""Source providers: where module and input files come from."""

from ..services import Services
from .base import SourceConfig, SourceProvider, SourceProviderRegistry
from .cache import SourceCache
from .github import GitHubSourceProvider
from .http import TarballSourceProvider
from .local import LocalSourceProvider


def default_source_registry(cache: SourceCache, services: Services) -> SourceProviderRegistry:
    """Registry holding every built-in source provider."""

    return SourceProviderRegistry(
        [
            LocalSourceProvider(),
            GitHubSourceProvider(cache, services),
            TarballSourceProvider("http", cache, services),
            TarballSourceProvider("https", cache, services),
        ]
    )


__all__ = [
    "GitHubSourceProvider",
    "LocalSourceProvider",
    "SourceCache",
    "SourceConfig",
    "SourceProvider",
    "SourceProviderRegistry",
    "TarballSourceProvider",
    "default_source_registry",
]
