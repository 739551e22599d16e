"""
stackfix

Scan/fix reconciliation for a staged deployment stack: each stage's fixes
detect drift and remediate it, pass after pass, until the stage converges.
"""

__version__ = "1.0.0"

from .core.context import ReconcileContext
from .core.executor import FixExecutor
from .core.models import Fix, FixOutcome, FixStatus, ReconcileResult, Severity, Stage
from .core.registry import FixRegistry
from .core.scanner import ScanEngine

__all__ = [
    "ReconcileContext",
    "FixExecutor",
    "FixRegistry",
    "ScanEngine",
    "Fix",
    "FixOutcome",
    "FixStatus",
    "ReconcileResult",
    "Severity",
    "Stage",
]
