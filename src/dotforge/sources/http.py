"""Plain tarball URL source provider (``http``/``https``)."""

from __future__ import annotations

from pathlib import Path

from ..errors import ConfigError, DotforgeError, FetchError
from ..services import Services
from .base import SourceConfig, SourceProvider
from .cache import SourceCache
from .tarball import fetch_tarball, load_meta, verify_meta


class TarballSourceProvider(SourceProvider):
    """Downloads a ``.tar.gz`` from a fixed URL."""

    def __init__(self, provider_id: str, cache: SourceCache, services: Services) -> None:
        self.id = provider_id
        self.cache = cache
        self.services = services

    def normalize(self, src: SourceConfig) -> SourceConfig:
        normalized = super().normalize(src)
        if not normalized.url and normalized.path.startswith("//"):
            normalized = normalized.model_copy(update={"url": f"{self.id}:{normalized.path}", "path": ""})
        return normalized

    def ensure_source(self, alias: str, src: SourceConfig, *, expected_hash: str = "") -> Path:
        src = self.normalize(src)
        if not src.url:
            raise ConfigError(f"source alias '{alias}' ({self.id}) requires url")

        def fetch(tmp: Path) -> None:
            try:
                fetch_tarball(self.services.http, self.services.fetcher, src.url, tmp, expected_hash=expected_hash)
            except DotforgeError as exc:
                raise FetchError(f"failed to fetch source '{alias}': {exc}") from exc

        root = self.cache.ensure(self.id, f"v1:url:{src.url}", fetch)
        if expected_hash:
            verify_meta(root, alias, expected_hash)
        return root

    def resolve_path(
        self,
        alias: str,
        src: SourceConfig,
        rel: str,
        modules_base_dir: Path,
        *,
        expected_hash: str = "",
    ) -> Path:
        return self.ensure_source(alias, src, expected_hash=expected_hash) / rel

    def lock_hash(self, alias: str, src: SourceConfig, modules_base_dir: Path) -> tuple[str, str]:
        meta = load_meta(self.ensure_source(alias, src), alias)
        return meta.hash, meta.url
