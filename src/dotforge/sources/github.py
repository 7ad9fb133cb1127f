"""GitHub tarball source provider."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import httpx

from ..errors import ConfigError, DotforgeError, FetchError
from ..services import Services
from .base import SourceConfig, SourceProvider
from .cache import SourceCache
from .tarball import fetch_tarball, load_meta, verify_meta

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
CODELOAD_URL = "https://codeload.github.com"
CACHE_KEY_VERSION = "v1"

_SHA_REF = re.compile(r"^[a-fA-F0-9]{7,40}$")


def normalize_repo(value: str) -> str:
    """Trim slashes and a ``github:`` prefix from a repository string."""

    repo = value.strip().strip("/")
    repo = repo.removeprefix("github:")
    return repo.strip("/")


def split_repo_path(ref: str) -> tuple[str, str]:
    """Split ``owner/repo/sub/dir`` into ``("owner/repo", "sub/dir")``."""

    parts = [part for part in ref.strip().strip("/").split("/") if part]
    if len(parts) < 2:
        raise ConfigError(f"github reference '{ref}' must look like owner/repo[/path]")
    return "/".join(parts[:2]), "/".join(parts[2:])


class GitHubSourceProvider(SourceProvider):
    """Fetches ``owner/repo`` at a pinned commit into the source cache."""

    id = "github"

    def __init__(
        self,
        cache: SourceCache,
        services: Services,
        *,
        api_url: str = API_URL,
        codeload_url: str = CODELOAD_URL,
    ) -> None:
        self.cache = cache
        self.services = services
        self.api_url = api_url.rstrip("/")
        self.codeload_url = codeload_url.rstrip("/")

    def normalize(self, src: SourceConfig) -> SourceConfig:
        normalized = super().normalize(src)
        return normalized.model_copy(update={"repo": normalize_repo(normalized.repo)})

    def cache_key(self, src: SourceConfig) -> str:
        if src.url:
            return f"{CACHE_KEY_VERSION}:url:{src.url}"
        return f"{CACHE_KEY_VERSION}:repo:{src.repo}@{src.ref or 'HEAD'}"

    def ensure_source(self, alias: str, src: SourceConfig, *, expected_hash: str = "") -> Path:
        """Return the cached extraction of ``src``, fetching it at most once."""

        src = self.normalize(src)
        if not src.repo and not src.url:
            raise ConfigError(f"source alias '{alias}' (github) requires repo")

        logger.info("resolving github source %s (repo=%s ref=%s url=%s)", alias, src.repo, src.ref, src.url)

        def fetch(tmp: Path) -> None:
            try:
                url = self.pinned_tarball_url(src)
                fetch_tarball(self.services.http, self.services.fetcher, url, tmp, expected_hash=expected_hash)
            except DotforgeError as exc:
                raise FetchError(f"failed to fetch source '{alias}': {exc}") from exc

        root = self.cache.ensure(self.id, self.cache_key(src), fetch)
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

    def pinned_tarball_url(self, src: SourceConfig) -> str:
        """Tarball URL of an immutable commit for ``src``.

        Branch names, and the default branch when no ref is given, are resolved to a
        commit SHA so later fetches of a moving branch converge on the same archive.
        """

        if src.url:
            return src.url
        ref = src.ref
        if not ref:
            ref = self._default_branch(src.repo)
        if not _SHA_REF.match(ref):
            ref = self._commit_sha(src.repo, ref)
        return f"{self.codeload_url}/{src.repo}/tar.gz/{ref}"

    def _default_branch(self, repo: str) -> str:
        payload = self._get_json(f"{self.api_url}/repos/{repo}", what="repo metadata lookup")
        branch = str(payload.get("default_branch") or "").strip()
        if not branch:
            raise FetchError(f"missing default_branch in github response for {repo}")
        return branch

    def _commit_sha(self, repo: str, ref: str) -> str:
        payload = self._get_json(f"{self.api_url}/repos/{repo}/commits/{ref}", what="commit lookup")
        sha = str(payload.get("sha") or "").strip()
        if not sha:
            raise FetchError(f"missing sha in github response for {repo}@{ref}")
        return sha

    def _get_json(self, url: str, *, what: str) -> dict[str, Any]:
        try:
            response = self.services.http.get(url, headers={"Accept": "application/vnd.github+json"})
        except httpx.HTTPError as exc:
            raise FetchError(f"{what} failed: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise FetchError(f"{what} failed: HTTP {response.status_code} for {url}")
        payload = response.json()
        if not isinstance(payload, dict):
            raise FetchError(f"{what} returned an unexpected payload")
        return payload
