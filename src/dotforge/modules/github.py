"""Modules fetched from a GitHub repository."""

from __future__ import annotations

from ..models import ResolvedFile
from ..sources.base import SourceConfig
from ..sources.github import GitHubSourceProvider, split_repo_path
from .base import ModuleProvider, ResolveRequest
from .local import resolve_module_dir


class GitHubModuleProvider(ModuleProvider):
    """Fetches ``owner/repo`` and lays out ``[path]`` like a local module."""

    id = "github"
    name = "GitHub Module"

    def __init__(self, sources: GitHubSourceProvider) -> None:
        self.sources = sources

    def resolve(self, request: ResolveRequest) -> list[ResolvedFile]:
        repo, sub = split_repo_path(request.ref)
        src, expected_hash = self._source(request, repo)

        root = self.sources.ensure_source(request.module_name, src, expected_hash=expected_hash)
        module_dir = root / sub if sub else root
        return resolve_module_dir(f"github:{request.ref}", module_dir, request.module_config)

    @staticmethod
    def _source(request: ResolveRequest, repo: str) -> tuple[SourceConfig, str]:
        """Source to fetch and the hash it must match.

        A locked alias pins the commit of its own ``ref`` only. A module asking the
        same alias for another version fetches ``repo@version`` unverified.
        """

        alias = request.source
        if alias is None:
            return SourceConfig(provider="github", repo=repo, ref=request.version), ""

        version = request.version or alias.ref
        if version == alias.ref:
            return alias, request.expected_hash
        return alias.model_copy(update={"repo": alias.repo or repo, "ref": version, "url": ""}), ""
