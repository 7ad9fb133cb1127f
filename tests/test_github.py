from __future__ import annotations

import hashlib
import io
import tarfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx
import pytest

from dotforge.config import load_config
from dotforge.errors import ConfigError, FetchError
from dotforge.lock import generate_lock
from dotforge.modules import GitHubModuleProvider, ResolveRequest, default_module_registry
from dotforge.plugins import ModuleScanner
from dotforge.services import Services, build_http_client
from dotforge.sources import GitHubSourceProvider, SourceCache, SourceConfig, default_source_registry
from dotforge.sources.tarball import META_FILENAME, read_meta
from dotforge.sumfile import SumFile
from dotforge.workspace import Workspace

SHA = "0123456789abcdef0123456789abcdef01234567"
SHA_V2 = "fedcba9876543210fedcba9876543210fedcba98"


def _tarball(files: dict[str, bytes], prefix: str = "owner-repo-0123456") -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        root = tarfile.TarInfo(prefix)
        root.type = tarfile.DIRTYPE
        root.mode = 0o755
        archive.addfile(root)
        for name, data in files.items():
            info = tarfile.TarInfo(f"{prefix}/{name}")
            info.size = len(data)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class FakeGitHub:
    """Serves the GitHub API and codeload endpoints from memory."""

    def __init__(
        self,
        archive: bytes,
        *,
        default_branch: str = "main",
        refs: dict[str, tuple[str, bytes]] | None = None,
    ) -> None:
        self.default_branch = default_branch
        self.refs = {default_branch: (SHA, archive), **(refs or {})}
        self.archives = {sha: data for sha, data in self.refs.values()}
        self.api_calls: list[str] = []
        self.tarball_calls = 0
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.url.host == "api.github.com":
            with self._lock:
                self.api_calls.append(path)
            if path == "/repos/owner/repo":
                return httpx.Response(200, json={"default_branch": self.default_branch})
            prefix = "/repos/owner/repo/commits/"
            if path.startswith(prefix) and path[len(prefix) :] in self.refs:
                return httpx.Response(200, json={"sha": self.refs[path[len(prefix) :]][0]})
            return httpx.Response(404, json={"message": "Not Found"})
        prefix = "/owner/repo/tar.gz/"
        if request.url.host == "codeload.github.com" and path.startswith(prefix) and path[len(prefix) :] in self.archives:
            with self._lock:
                self.tarball_calls += 1
            return httpx.Response(200, content=self.archives[path[len(prefix) :]])
        return httpx.Response(404)


@pytest.fixture
def archive() -> bytes:
    return _tarball(
        {
            "README.md": b"# repo\n",
            "nvim/home/.config/nvim/init.lua": b"vim.o.number = true\n",
            "nvim/README.md": b"nvim module\n",
        }
    )


@pytest.fixture
def github(archive: bytes) -> FakeGitHub:
    return FakeGitHub(archive)


@pytest.fixture
def provider(tmp_path: Path, github: FakeGitHub) -> GitHubSourceProvider:
    services = Services(http=build_http_client(transport=httpx.MockTransport(github)))
    return GitHubSourceProvider(SourceCache(tmp_path / "cache"), services)


def test_default_branch_resolved_to_commit(provider: GitHubSourceProvider, github: FakeGitHub, archive: bytes) -> None:
    root = provider.ensure_source("gh", SourceConfig(repo="owner/repo"))

    assert (root / "nvim/home/.config/nvim/init.lua").read_bytes() == b"vim.o.number = true\n"
    assert github.api_calls == ["/repos/owner/repo", "/repos/owner/repo/commits/main"]
    meta = read_meta(root)
    assert meta.url == f"https://codeload.github.com/owner/repo/tar.gz/{SHA}"
    assert meta.hash == hashlib.sha256(archive).hexdigest()
    assert not any(path.name.endswith(".tar.gz") for path in root.iterdir())


def test_concurrent_resolution_fetches_tarball_once(provider: GitHubSourceProvider, github: FakeGitHub) -> None:
    src = SourceConfig(repo="owner/repo", ref="main")

    with ThreadPoolExecutor(max_workers=2) as pool:
        first, second = pool.map(lambda _: provider.ensure_source("gh", src), range(2))

    assert first == second
    assert github.tarball_calls == 1


def test_sha_ref_skips_api(provider: GitHubSourceProvider, github: FakeGitHub) -> None:
    provider.ensure_source("gh", SourceConfig(repo="owner/repo", ref=SHA))

    assert github.api_calls == []
    assert github.tarball_calls == 1


def test_lock_hash_reuses_cached_fetch(provider: GitHubSourceProvider, github: FakeGitHub, archive: bytes) -> None:
    src = SourceConfig(repo="owner/repo", ref="main")
    provider.ensure_source("gh", src)

    digest, resolved = provider.lock_hash("gh", src, Path("/unused"))

    assert digest == hashlib.sha256(archive).hexdigest()
    assert resolved == f"https://codeload.github.com/owner/repo/tar.gz/{SHA}"
    assert github.tarball_calls == 1


def test_locked_url_is_verified(provider: GitHubSourceProvider, github: FakeGitHub, archive: bytes) -> None:
    locked = SourceConfig(repo="owner/repo", url=f"https://codeload.github.com/owner/repo/tar.gz/{SHA}")

    with pytest.raises(FetchError, match="mismatch"):
        provider.ensure_source("gh", locked, expected_hash="0" * 64)
    assert not provider.cache.path_for("github", provider.cache_key(locked)).exists()

    root = provider.ensure_source("gh", locked, expected_hash=hashlib.sha256(archive).hexdigest())
    assert (root / META_FILENAME).exists()
    assert github.api_calls == []


def test_cache_hit_is_checked_against_locked_hash(
    provider: GitHubSourceProvider, github: FakeGitHub, archive: bytes
) -> None:
    locked = SourceConfig(repo="owner/repo", url=f"https://codeload.github.com/owner/repo/tar.gz/{SHA}")
    provider.ensure_source("gh", locked)

    with pytest.raises(FetchError, match="lock expects"):
        provider.ensure_source("gh", locked, expected_hash="0" * 64)

    provider.ensure_source("gh", locked, expected_hash=hashlib.sha256(archive).hexdigest())
    assert github.tarball_calls == 1


def test_unknown_ref_fails(provider: GitHubSourceProvider) -> None:
    with pytest.raises(FetchError, match="commit lookup failed"):
        provider.ensure_source("gh", SourceConfig(repo="owner/repo", ref="no-such-branch"))


def test_missing_repo_rejected(provider: GitHubSourceProvider) -> None:
    with pytest.raises(ConfigError, match="requires repo"):
        provider.ensure_source("gh", SourceConfig())


def test_escaping_archive_member_rejected(tmp_path: Path) -> None:
    github = FakeGitHub(_tarball({"../../evil": b"x"}))
    services = Services(http=build_http_client(transport=httpx.MockTransport(github)))
    provider = GitHubSourceProvider(SourceCache(tmp_path / "cache"), services)

    with pytest.raises(FetchError, match="escapes"):
        provider.ensure_source("gh", SourceConfig(repo="owner/repo", ref=SHA))
    assert not (tmp_path / "evil").exists()


def test_github_module_provider_lays_out_subdirectory(
    tmp_path: Path, fake_home: Path, provider: GitHubSourceProvider
) -> None:
    config_path = tmp_path / "dotforge.toml"
    config_path.write_text("")
    request = ResolveRequest(
        module_name="nvim",
        ref="owner/repo/nvim",
        version="main",
        config=load_config(config_path),
        modules_base_dir=tmp_path / "modules",
    )

    files = GitHubModuleProvider(provider).resolve(request)

    assert [(item.target_base, item.rel_path.as_posix()) for item in files] == [(fake_home, ".config/nvim/init.lua")]
    assert files[0].info == "module:github:owner/repo/nvim (home/.config/nvim/init.lua)"


def _registries(cache_dir: Path, github: FakeGitHub):
    services = Services(http=build_http_client(transport=httpx.MockTransport(github)))
    cache = SourceCache(cache_dir)
    sources = default_source_registry(cache, services)
    return sources, default_module_registry(sources, cache, services)


def test_locked_alias_keeps_module_version(tmp_path: Path, fake_home: Path) -> None:
    main = _tarball({"nvim/home/.config/nvim/init.lua": b"main\n"})
    v2 = _tarball({"nvim/home/.config/nvim/init.lua": b"v2\n"})
    github = FakeGitHub(main, refs={"v2": (SHA_V2, v2)})
    root = tmp_path / "ws"
    root.mkdir()
    (root / "dotforge.toml").write_text('[modules.nvim]\nenable = true\nfrom = "gh:nvim@v2"\n')
    (root / "dotforge.mod.toml").write_text('[sources]\ngh = "github:owner/repo@main"\n')
    config = load_config(root / "dotforge.toml")
    workspace = Workspace.from_config(config)

    def deployed(sources, modules) -> bytes:
        (desired,) = ModuleScanner(workspace, config, modules, sources).process([])
        assert desired.target == fake_home / ".config/nvim/init.lua"
        return desired.abs_path.read_bytes()

    sources, modules = _registries(tmp_path / "cache", github)
    assert deployed(sources, modules) == b"v2\n"

    generate_lock(workspace, config, sources)
    lock = SumFile.load(workspace.sum_path)
    assert lock.modules["nvim"].version == "v2"
    assert lock.sources["gh"].resolved == f"https://codeload.github.com/owner/repo/tar.gz/{SHA}"

    assert deployed(sources, modules) == b"v2\n"
    assert deployed(*_registries(tmp_path / "fresh-cache", github)) == b"v2\n"


def test_locked_alias_without_version_uses_pinned_commit(tmp_path: Path, fake_home: Path, archive: bytes) -> None:
    github = FakeGitHub(archive)
    sources, modules = _registries(tmp_path / "cache", github)
    root = tmp_path / "ws"
    root.mkdir()
    (root / "dotforge.toml").write_text('[modules.nvim]\nenable = true\nfrom = "gh:nvim"\n')
    (root / "dotforge.mod.toml").write_text('[sources]\ngh = "github:owner/repo@main"\n')
    config = load_config(root / "dotforge.toml")
    workspace = Workspace.from_config(config)
    generate_lock(workspace, config, sources)
    github.api_calls.clear()

    fresh_sources, fresh_modules = _registries(tmp_path / "fresh-cache", github)
    (desired,) = ModuleScanner(workspace, config, fresh_modules, fresh_sources).process([])

    assert desired.abs_path.read_bytes() == b"vim.o.number = true\n"
    assert github.api_calls == []
