"""Exception hierarchy shared across dotforge."""

from __future__ import annotations

from pathlib import Path


class DotforgeError(RuntimeError):
    """Raised when dotforge encounters an unrecoverable state."""


class ConfigError(DotforgeError):
    """Raised when configuration, mod-file, or module settings are invalid."""


class LockMismatchError(ConfigError):
    """Raised when a resolution disagrees with the pinned sum-file entry."""


class ConflictError(DotforgeError):
    """Raised when two desired files resolve to the same target path."""

    def __init__(self, collisions: dict[Path, list[str]]) -> None:
        self.collisions = collisions
        lines = [
            f"  {target}: " + ", ".join(sources) for target, sources in sorted(collisions.items(), key=lambda i: str(i[0]))
        ]
        super().__init__("conflicting desired files for the same target:\n" + "\n".join(lines))


class FetchError(DotforgeError):
    """Raised when a remote source cannot be downloaded or verified."""


class TemplateError(DotforgeError):
    """Raised when a template fails to render or produces an unsafe file."""


class PlanError(DotforgeError):
    """Raised when a planning pass cannot read one side of the comparison."""

    def __init__(self, target: Path, cause: BaseException) -> None:
        self.target = target
        super().__init__(f"failed to plan '{target}': {cause}")


class ApplyError(DotforgeError):
    """Raised when one or more actions failed during apply."""

    def __init__(self, failures: list[tuple[Path, BaseException]]) -> None:
        self.failures = failures
        details = "\n".join(f"  {target}: {exc}" for target, exc in failures)
        super().__init__(f"{len(failures)} action(s) failed:\n{details}")
