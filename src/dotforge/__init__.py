"""Core package for the dotforge project."""

__version__ = "0.1.0"

from .cli import app, run  # noqa: E402
from .config import Config, Settings, load_config  # noqa: E402
from .errors import (  # noqa: E402
    ApplyError,
    ConfigError,
    ConflictError,
    DotforgeError,
    FetchError,
    LockMismatchError,
    PlanError,
    TemplateError,
)
from .executor import Executor, apply  # noqa: E402
from .manager import DotforgeManager  # noqa: E402
from .models import (  # noqa: E402
    Action,
    ActionType,
    DesiredFile,
    FileType,
    ManagedEntry,
    MemoryFile,
    State,
    StaticFile,
    StatusEntry,
    StatusReport,
    StatusState,
)
from .pipeline import Pipeline  # noqa: E402
from .planner import Planner  # noqa: E402

__all__ = [
    "Action",
    "ActionType",
    "ApplyError",
    "Config",
    "ConfigError",
    "ConflictError",
    "DesiredFile",
    "DotforgeError",
    "DotforgeManager",
    "Executor",
    "FetchError",
    "FileType",
    "LockMismatchError",
    "ManagedEntry",
    "MemoryFile",
    "Pipeline",
    "PlanError",
    "Planner",
    "Settings",
    "State",
    "StaticFile",
    "StatusEntry",
    "StatusReport",
    "StatusState",
    "TemplateError",
    "__version__",
    "app",
    "apply",
    "load_config",
    "run",
]
