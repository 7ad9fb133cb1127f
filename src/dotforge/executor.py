"""Apply planned actions to the filesystem."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .errors import ApplyError
from .filesystem import ensure_symlink, remove_path, write_stream
from .models import Action, ActionType, DesiredFile, FileType, ManagedEntry, State
from .planner import Planner

logger = logging.getLogger(__name__)


class Executor:
    """Applies actions one by one; a failing action never stops the others."""

    def execute(self, actions: Sequence[Action], state: State) -> State:
        new_state = state.copy()
        failures: list[tuple[Path, BaseException]] = []

        for action in actions:
            try:
                self._apply_action(action, new_state)
            except OSError as exc:
                logger.error("failed to %s %s: %s", action.type.value, action.target, exc)
                failures.append((action.target, exc))

        if failures:
            raise ApplyError(failures)
        return new_state

    def _apply_action(self, action: Action, state: State) -> None:
        key = str(action.target)

        if action.type is ActionType.NOOP:
            return

        if action.type is ActionType.DELETE:
            logger.info("delete %s", action.target)
            remove_path(action.target)
            state.files.pop(key, None)
            return

        desired = action.desired
        if desired is None:
            raise ValueError(f"{action.type.value} action for {action.target} has no desired file")

        logger.info("%s %s", action.type.value, action.target)
        self._write(action.target, desired)
        state.files[key] = ManagedEntry(source_info=desired.source_info, file_type=desired.file_type)

    @staticmethod
    def _write(target: Path, desired: DesiredFile) -> None:
        if desired.file_type is FileType.SYMLINK:
            ensure_symlink(target, desired.link_target())
            return

        if target.is_symlink():
            remove_path(target)
        with desired.open() as handle:
            write_stream(target, handle, mode=desired.mode & 0o7777)


def apply(
    desired: Sequence[DesiredFile],
    previous_state: State,
    *,
    dry_run: bool = False,
    planner: Planner | None = None,
    executor: Executor | None = None,
) -> tuple[list[Action], State]:
    """Plan ``desired`` against ``previous_state`` and, unless ``dry_run``, apply it.

    Returns the actions and the resulting state. In dry-run mode, or when the plan
    holds nothing but no-ops, ``previous_state`` is returned unchanged.
    """

    actions = (planner or Planner()).plan(desired, previous_state)
    if dry_run or all(action.type is ActionType.NOOP for action in actions):
        return actions, previous_state
    return actions, (executor or Executor()).execute(actions, previous_state)
