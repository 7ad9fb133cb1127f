"""Tarball download, extraction, and cache metadata."""

from __future__ import annotations

import hashlib
import json
import logging
import tarfile
from dataclasses import asdict, dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO

import httpx

from ..errors import FetchError
from ..services import Fetcher

logger = logging.getLogger(__name__)

META_FILENAME = ".dotforge-source-meta.json"
ARCHIVE_NAME = ".dotforge-source.tar.gz"


@dataclass(frozen=True, slots=True)
class SourceMeta:
    """Sidecar recorded next to an extracted source."""

    url: str
    hash: str


def write_meta(directory: Path, meta: SourceMeta) -> None:
    (directory / META_FILENAME).write_text(json.dumps(asdict(meta)))


def read_meta(directory: Path) -> SourceMeta:
    data = json.loads((directory / META_FILENAME).read_text())
    return SourceMeta(url=str(data.get("url", "")), hash=str(data.get("hash", "")))


def load_meta(directory: Path, alias: str) -> SourceMeta:
    """Like ``read_meta``, raising ``FetchError`` for a missing or unreadable sidecar."""

    try:
        meta = read_meta(directory)
    except (OSError, ValueError) as exc:
        raise FetchError(f"failed to read source metadata for '{alias}': {exc}") from exc
    if not meta.hash:
        raise FetchError(f"missing cached source hash metadata for '{alias}'")
    return meta


def verify_meta(directory: Path, alias: str, expected_hash: str) -> None:
    """Check a cached extraction against the locked hash."""

    meta = load_meta(directory, alias)
    if meta.hash.lower() != expected_hash.lower():
        raise FetchError(
            f"cached source '{alias}' at {directory} has sha256 {meta.hash}, lock expects {expected_hash}; "
            "remove the cached directory to refetch"
        )


def fetch_tarball(
    client: httpx.Client,
    fetcher: Fetcher,
    url: str,
    dest: Path,
    *,
    expected_hash: str = "",
) -> SourceMeta:
    """Download ``url`` into ``dest`` and extract it, dropping the top-level folder.

    With ``expected_hash`` the download goes through the verifying fetcher;
    otherwise the digest of the downloaded bytes is recorded.
    """

    archive = dest / ARCHIVE_NAME
    try:
        with archive.open("w+b") as out:
            if expected_hash:
                fetcher.fetch([url], "sha256", expected_hash, out)
                digest = expected_hash.lower()
            else:
                digest = _download(client, url, out)
            out.seek(0)
            extract_tarball(out, dest)
    finally:
        archive.unlink(missing_ok=True)

    meta = SourceMeta(url=url, hash=digest)
    write_meta(dest, meta)
    logger.info("fetched %s (sha256 %s)", url, digest)
    return meta


def _download(client: httpx.Client, url: str, out: BinaryIO) -> str:
    hasher = hashlib.sha256()
    try:
        with client.stream("GET", url) as response:
            if response.status_code != httpx.codes.OK:
                raise FetchError(f"unexpected status fetching {url}: HTTP {response.status_code}")
            for chunk in response.iter_bytes():
                hasher.update(chunk)
                out.write(chunk)
    except httpx.HTTPError as exc:
        raise FetchError(f"failed to fetch {url}: {exc}") from exc
    return hasher.hexdigest()


def extract_tarball(handle: BinaryIO, dest: Path) -> None:
    """Extract a gzip tarball, stripping its first path component."""

    root = dest.resolve()
    try:
        with tarfile.open(fileobj=handle, mode="r:gz") as archive:
            for member in archive.getmembers():
                rel = _strip_top_level(member.name)
                if rel is None:
                    continue
                target = (root / rel).resolve()
                if target != root and root not in target.parents:
                    raise FetchError(f"archive member '{member.name}' escapes extraction root '{root}'")

                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                elif member.isfile():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    source = archive.extractfile(member)
                    if source is None:
                        continue
                    with source, target.open("wb") as out:
                        out.write(source.read())
                    target.chmod(member.mode & 0o777)
                elif member.issym():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    if not target.is_symlink():
                        target.symlink_to(member.linkname)
    except tarfile.TarError as exc:
        raise FetchError(f"invalid tarball: {exc}") from exc


def _strip_top_level(name: str) -> PurePosixPath | None:
    parts = PurePosixPath(name.removeprefix("./")).parts
    if len(parts) < 2:
        return None
    rel = PurePosixPath(*parts[1:])
    if rel.is_absolute() or ".." in rel.parts:
        raise FetchError(f"archive member '{name}' escapes extraction root")
    return rel
