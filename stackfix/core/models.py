"""
Data model for scan/fix reconciliation.

A Fix is a stage-scoped, severity-tagged detect/remediate pair. Scans produce
DriftReports; reconciliation produces FixOutcomes gathered in a
ReconcileResult.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class Stage(str, Enum):
    """Deployment stages, in reconciliation order."""
    DEV = "dev"
    SECRETS = "secrets"
    STAGING = "staging"
    PROD = "prod"


class Severity(str, Enum):
    """Fix severity. Only critical blocks readiness."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class FixStatus(str, Enum):
    FIXED = "fixed"
    MANUAL = "manual"
    FAILED = "failed"
    UNRESOLVED = "unresolved"
    SCAN_ERROR = "scan_error"


ALL_STAGES = [Stage.DEV, Stage.SECRETS, Stage.STAGING, Stage.PROD]

# Outcomes that leave drift (or unknown state) behind.
UNRESOLVED_STATUSES = {
    FixStatus.MANUAL,
    FixStatus.FAILED,
    FixStatus.UNRESOLVED,
    FixStatus.SCAN_ERROR,
}

Predicate = Callable[[Any], bool]


@dataclass(frozen=True)
class Fix:
    """
    A single unit of reconciliation.

    ``detect`` and ``remediate`` receive the reconciliation context. ``detect``
    must return False when the resource it depends on does not exist yet.
    ``remediate`` is None for manual-only fixes and must be a no-op returning
    True when the drift is already gone.
    """
    id: str
    stage: Stage
    severity: Severity
    description: str
    detect: Predicate
    remediate: Optional[Predicate] = None
    manual_instructions: str = ""
    source: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("Fix id must not be empty")
        # Coerce plain strings so fix sources can write stage="prod".
        object.__setattr__(self, "stage", Stage(self.stage))
        object.__setattr__(self, "severity", Severity(self.severity))
        if not callable(self.detect):
            raise ValueError(f"Fix {self.id}: detect must be callable")
        if self.remediate is not None and not callable(self.remediate):
            raise ValueError(f"Fix {self.id}: remediate must be callable or None")

    @property
    def auto_fixable(self) -> bool:
        return self.remediate is not None


@dataclass
class DriftEntry:
    """Result of one detection: ``error`` set means "could not confirm"."""
    fix: Fix
    detected: bool
    error: Optional[str] = None


@dataclass
class DriftReport:
    """Ordered detection results for one stage and one pass."""
    stage: Stage
    entries: List[DriftEntry] = field(default_factory=list)

    @property
    def detected_entries(self) -> List[DriftEntry]:
        return [e for e in self.entries if e.detected]

    @property
    def errors(self) -> List[DriftEntry]:
        return [e for e in self.entries if e.error is not None]

    @property
    def has_drift(self) -> bool:
        return any(e.detected for e in self.entries)

    def has_critical_drift(self) -> bool:
        """True when a critical fix detected drift or could not be checked."""
        return any(
            e.fix.severity == Severity.CRITICAL and (e.detected or e.error is not None)
            for e in self.entries
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "entries": [
                {
                    "id": e.fix.id,
                    "severity": e.fix.severity.value,
                    "description": e.fix.description,
                    "detected": e.detected,
                    "error": e.error,
                    "auto_fixable": e.fix.auto_fixable,
                }
                for e in self.entries
            ],
        }


@dataclass
class FixOutcome:
    """Final status of one fix after reconciliation."""
    fix: Fix
    status: FixStatus
    attempts: int = 0
    error: Optional[str] = None
    passes: List[int] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.status == FixStatus.FIXED

    @property
    def blocking(self) -> bool:
        return self.fix.severity == Severity.CRITICAL and self.status in UNRESOLVED_STATUSES

    @property
    def manual_instructions(self) -> str:
        return self.fix.manual_instructions


@dataclass
class ReconcileResult:
    """Outcome of ``FixExecutor.reconcile`` for a single stage."""
    stage: Stage
    outcomes: List[FixOutcome] = field(default_factory=list)
    passes_run: int = 0
    converged: bool = False

    @property
    def ready(self) -> bool:
        return not self.blocking

    @property
    def blocking(self) -> List[FixOutcome]:
        return [o for o in self.outcomes if o.blocking]

    def by_status(self, status: FixStatus) -> List[FixOutcome]:
        return [o for o in self.outcomes if o.status == status]

    def counts(self) -> Dict[str, int]:
        return {status.value: len(self.by_status(status)) for status in FixStatus}
