"""Diff desired files against managed state into a list of actions."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Sequence

from .errors import PlanError
from .filesystem import hash_file, hash_stream, permission_bits
from .models import Action, ActionType, DesiredFile, FileType, ManagedEntry, State

logger = logging.getLogger(__name__)

BUNDLE_MARKER = "bundle:"


class PlanCancelled(Exception):
    """Raised inside a worker that observed cancellation before starting."""


def default_workers() -> int:
    return max(os.cpu_count() or 1, 1)


def plan_one(target: Path, desired: DesiredFile, current: ManagedEntry | None) -> Action:
    """Compute the action for a single target.

    Content equality is decided by comparing digests of the desired stream and the
    live file; size and mtime are never trusted.
    """

    try:
        info = target.lstat()
    except FileNotFoundError:
        return Action(ActionType.CREATE, target, desired=desired)

    managed = current is not None
    # Generator modules encode a full-content fingerprint in their provenance, so an
    # identical bundle provenance means identical bytes.
    if managed and current.source_info == desired.source_info and BUNDLE_MARKER in current.source_info:
        return Action(ActionType.NOOP, target, desired=desired, current=current)

    if _needs_update(target, info, desired):
        return Action(ActionType.UPDATE, target, desired=desired, current=current)
    if not managed or current.source_info != desired.source_info:
        return Action(ActionType.UPDATE, target, desired=desired, current=current)
    return Action(ActionType.NOOP, target, desired=desired, current=current)


def _needs_update(target: Path, info: os.stat_result, desired: DesiredFile) -> bool:
    desired_is_link = desired.file_type is FileType.SYMLINK
    actual_is_link = target.is_symlink()

    if desired_is_link != actual_is_link:
        return True
    if desired_is_link:
        return desired.link_target() != os.readlink(target)

    if target.is_dir():
        return True
    if permission_bits(info.st_mode) != permission_bits(desired.mode):
        return True

    with desired.open() as handle:
        desired_hash = hash_stream(handle)
    return desired_hash != hash_file(target)


class Planner:
    """Computes the action list for a reconciliation pass.

    Per-target comparisons run on a bounded thread pool; results land in the slot
    matching their input index so output order follows input order. Orphaned
    managed entries are appended as deletes after every worker has finished.
    """

    def __init__(self, workers: int | None = None) -> None:
        self.workers = workers if workers and workers > 0 else default_workers()

    def plan(
        self,
        desired: Sequence[DesiredFile],
        state: State,
        *,
        cancel: threading.Event | None = None,
    ) -> list[Action]:
        cancel = cancel or threading.Event()
        slots: list[Action | None] = [None] * len(desired)
        desired_targets = {str(item.target) for item in desired}

        def work(index: int, item: DesiredFile) -> None:
            if cancel.is_set():
                raise PlanCancelled()
            target = item.target
            try:
                slots[index] = plan_one(target, item, state.get(target))
            except OSError as exc:
                raise PlanError(target, exc) from exc

        if desired:
            with ThreadPoolExecutor(max_workers=min(self.workers, len(desired)), thread_name_prefix="plan") as pool:
                futures: list[Future[None]] = []
                for index, item in enumerate(desired):
                    if cancel.is_set():
                        break
                    futures.append(pool.submit(work, index, item))

                done, pending = wait(futures, return_when=FIRST_EXCEPTION)
                error = _first_error(futures, done)
                if error is not None:
                    cancel.set()
                    for future in pending:
                        future.cancel()
                    wait(pending)
                    raise error

        if cancel.is_set() and any(slot is None for slot in slots):
            raise PlanCancelled("planning pass cancelled")

        actions: list[Action] = [slot for slot in slots if slot is not None]
        for target, current in state.files.items():
            if target not in desired_targets:
                actions.append(Action(ActionType.DELETE, Path(target), current=current))

        logger.debug("planned %d actions with %d workers", len(actions), self.workers)
        return actions


def _first_error(futures: list[Future[None]], done: set[Future[None]]) -> BaseException | None:
    cancelled: BaseException | None = None
    for future in futures:
        if future not in done or future.cancelled():
            continue
        exc = future.exception()
        if exc is None:
            continue
        if isinstance(exc, PlanCancelled):
            cancelled = cancelled or exc
            continue
        return exc
    return cancelled
