"""Platform services consumed by the resolver and generators."""

from __future__ import annotations

import hashlib
import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Sequence

import httpx

from . import __version__
from .errors import FetchError
from .filesystem import ensure_parent

logger = logging.getLogger(__name__)

USER_AGENT = f"dotforge/{__version__}"
DEFAULT_TIMEOUT = 30.0


class Command:
    """A prepared process invocation."""

    def __init__(self, argv: Sequence[str], *, cwd: Path | None = None) -> None:
        self.argv = list(argv)
        self.cwd = cwd
        self.stdin: BinaryIO | None = None

    def run(self) -> None:
        subprocess.run(self.argv, cwd=self.cwd, stdin=self.stdin, check=True)

    def output(self) -> str:
        proc = subprocess.run(self.argv, cwd=self.cwd, stdin=self.stdin, capture_output=True, text=True, check=True)
        return proc.stdout

    def combined_output(self) -> str:
        proc = subprocess.run(
            self.argv,
            cwd=self.cwd,
            stdin=self.stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=True,
        )
        return proc.stdout


class CommandRunner:
    """Builds ``Command`` objects for executables found on ``PATH``."""

    def run(self, name: str, *args: str, cwd: Path | None = None) -> Command:
        return Command([name, *args], cwd=cwd)


def build_http_client(*, timeout: float = DEFAULT_TIMEOUT, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    """Return an ``httpx.Client`` honouring ``SSL_CERT_FILE`` when it is set."""

    verify: str | bool = os.environ.get("SSL_CERT_FILE") or True
    return httpx.Client(
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        verify=verify,
        transport=transport,
    )


class Fetcher:
    """Downloads a file from the first working URL and verifies its digest."""

    def __init__(self, client: httpx.Client) -> None:
        self.client = client

    def fetch(self, urls: Sequence[str], algorithm: str, expected_hash: str, out: BinaryIO) -> None:
        if not urls:
            raise FetchError("no URLs to fetch")

        errors: list[str] = []
        for url in urls:
            hasher = hashlib.new(algorithm)
            out.seek(0)
            out.truncate()
            try:
                with self.client.stream("GET", url) as response:
                    if response.status_code != httpx.codes.OK:
                        errors.append(f"{url}: HTTP {response.status_code}")
                        continue
                    for chunk in response.iter_bytes():
                        hasher.update(chunk)
                        out.write(chunk)
            except httpx.HTTPError as exc:
                errors.append(f"{url}: {exc}")
                continue

            digest = hasher.hexdigest()
            if digest != expected_hash.lower():
                errors.append(f"{url}: {algorithm} mismatch (expected {expected_hash}, got {digest})")
                continue
            logger.debug("fetched %s (%s verified)", url, algorithm)
            return

        raise FetchError("failed to fetch any URL:\n  " + "\n  ".join(errors))


class ShimGenerator:
    """Writes small shell scripts that ``exec`` a fixed command line."""

    def __init__(self, shell: str | None = None) -> None:
        self._shell = shell

    @property
    def shell(self) -> str:
        if self._shell:
            return self._shell
        candidate = os.environ.get("SHELL", "")
        if "bash" in candidate:
            return candidate
        return shutil.which("bash") or "/bin/sh"

    def generate_content(self, command: Sequence[str]) -> str:
        if not command:
            raise ValueError("command cannot be empty")
        return f"#!{self.shell}\nexec {shlex.join(command)} \"$@\"\n"

    def generate(self, path: Path, command: Sequence[str]) -> None:
        content = self.generate_content(command)
        ensure_parent(path)
        path.write_text(content)
        path.chmod(0o755)


@dataclass
class Services:
    """Bundle of platform services handed to providers."""

    http: httpx.Client = field(default_factory=build_http_client)
    runner: CommandRunner = field(default_factory=CommandRunner)
    shims: ShimGenerator = field(default_factory=ShimGenerator)
    fetcher: Fetcher | None = None

    def __post_init__(self) -> None:
        if self.fetcher is None:
            self.fetcher = Fetcher(self.http)

    def close(self) -> None:
        self.http.close()
