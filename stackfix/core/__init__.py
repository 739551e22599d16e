"""Core functionality for drift scanning and reconciliation."""

from .context import ReconcileContext
from .executor import FixExecutor
from .models import DriftReport, Fix, FixOutcome, FixStatus, ReconcileResult, Severity, Stage
from .registry import FixRegistry
from .scanner import ScanEngine
from .stages import classify, select_for_stage

__all__ = [
    "ReconcileContext",
    "FixExecutor",
    "FixRegistry",
    "ScanEngine",
    "Fix",
    "FixOutcome",
    "FixStatus",
    "DriftReport",
    "ReconcileResult",
    "Severity",
    "Stage",
    "classify",
    "select_for_stage",
]
