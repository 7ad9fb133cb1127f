"""Pipeline plugins shipped with dotforge."""

from .conflicts import StrictConflictResolver
from .dotd import DotDProcessor
from .module_scanner import ModuleScanner
from .scanner import Scanner
from .templates import TemplateExpander

__all__ = [
    "DotDProcessor",
    "ModuleScanner",
    "Scanner",
    "StrictConflictResolver",
    "TemplateExpander",
]
