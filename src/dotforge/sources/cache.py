"""Content-addressed cache for fetched sources."""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"


class SourceCache:
    """Publishes fetched directories under ``root/sources/<provider>/<sha256(key)>``.

    A directory is filled at most once per key: a lock-free existence check, then a
    per-key lock, then a second check, then fetch into ``<dest>.tmp`` and rename.
    A failed fetch removes the temporary directory and never publishes.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        # guards creation of per-key locks only, never the cached directories
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def path_for(self, provider: str, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.root / "sources" / provider / digest

    def ensure(self, provider: str, key: str, fetch: Callable[[Path], None]) -> Path:
        dest = self.path_for(provider, key)
        if dest.is_dir():
            logger.debug("source cache hit: %s %s", provider, dest)
            return dest

        with self._key_lock(f"{provider}|{key}"):
            if dest.is_dir():
                logger.debug("source cache hit after wait: %s %s", provider, dest)
                return dest

            logger.info("source cache miss: %s %s", provider, dest)
            dest.parent.mkdir(parents=True, exist_ok=True)
            tmp = dest.with_name(dest.name + TMP_SUFFIX)
            shutil.rmtree(tmp, ignore_errors=True)
            tmp.mkdir()
            try:
                fetch(tmp)
                os.rename(tmp, dest)
            except BaseException:
                shutil.rmtree(tmp, ignore_errors=True)
                raise
            logger.info("source fetch done: %s %s", provider, dest)
            return dest

    def _key_lock(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock
