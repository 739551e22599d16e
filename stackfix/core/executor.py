"""
Fix executor.

Applies remediations for detected drift in multiple passes. There is no
explicit dependency graph: a fix whose prerequisite is created in one pass is
detected, and fixed, in the next. Reconciliation stops when nothing is
detected, when a pass makes no progress, or when the pass budget runs out.
"""

import logging
from typing import Dict, Iterable, List, Optional

from .models import (
    DriftEntry,
    DriftReport,
    Fix,
    FixOutcome,
    FixStatus,
    ReconcileResult,
    Severity,
    Stage,
)
from .registry import FixRegistry
from .scanner import ScanEngine

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES = 5


class FixExecutor:
    """
    Reconciles one stage at a time.

    Fixes run strictly sequentially in registration order: remediating one fix
    can change the precondition of the next one in the same pass.
    """

    def __init__(
        self,
        registry: FixRegistry,
        scanner: Optional[ScanEngine] = None,
        max_passes: int = DEFAULT_MAX_PASSES,
        actionable: Optional[Iterable[Severity]] = None
    ):
        """
        Initialize the fix executor.

        Args:
            registry: Fix registry shared with the scan engine
            scanner: Scan engine (created from the registry when omitted)
            max_passes: Default pass budget for ``reconcile``
            actionable: Severities that are remediated automatically; detected
                drift of other severities is reported as manual
        """
        self.registry = registry
        self.scanner = scanner or ScanEngine(registry)
        self.max_passes = max_passes
        self.actionable = set(Severity(s) for s in actionable) if actionable else set(Severity)

    def reconcile(self, stage: Stage, context, max_passes: Optional[int] = None) -> ReconcileResult:
        """
        Scan and fix a stage until it converges, stalls or runs out of passes.

        Args:
            stage: Stage to reconcile
            context: Reconciliation context passed to every fix
            max_passes: Pass budget (defaults to the executor's)

        Returns:
            ReconcileResult with one outcome per fix that drifted or could not
            be checked
        """
        stage = Stage(stage)
        passes = self.max_passes if max_passes is None else max_passes
        if passes < 1:
            raise ValueError("max_passes must be at least 1")

        logger.info(f"=== RECONCILE {stage.value}: up to {passes} passes ===")
        result = ReconcileResult(stage=stage)
        outcomes: Dict[str, FixOutcome] = {}
        exhausted = False

        for pass_number in range(1, passes + 1):
            self._begin_pass(context)
            report = self.scanner.scan(stage, context)
            result.passes_run = pass_number
            self._apply_report(report, outcomes)

            if not report.has_drift:
                # Checks that could not run leave the state unknown.
                result.converged = not report.errors
                logger.info(f"{stage.value}: no drift after {pass_number} pass(es)")
                break

            progress = 0
            for entry in report.detected_entries:
                if self._process(entry, context, pass_number, outcomes):
                    progress += 1

            logger.info(
                f"Pass {pass_number} for {stage.value}: {len(report.detected_entries)} detected, "
                f"{progress} fixed"
            )

            if progress == 0:
                logger.warning(
                    f"No progress in pass {pass_number} for {stage.value}; "
                    f"stopping with {len(report.detected_entries)} unresolved"
                )
                break
        else:
            exhausted = True

        if exhausted:
            # The last pass made progress; see what is still drifting.
            self._begin_pass(context)
            final = self.scanner.scan(stage, context)
            self._apply_report(final, outcomes)
            for entry in final.detected_entries:
                outcome = outcomes.get(entry.fix.id)
                if outcome is None or outcome.status == FixStatus.FIXED:
                    outcome = outcome or FixOutcome(fix=entry.fix, status=FixStatus.UNRESOLVED)
                    outcome.status = FixStatus.UNRESOLVED
                    outcomes[entry.fix.id] = outcome
            result.converged = not final.has_drift and not final.errors
            if final.has_drift:
                logger.warning(
                    f"Pass budget exhausted for {stage.value}: "
                    f"{len(final.detected_entries)} still detected"
                )

        result.outcomes = self._ordered(stage, outcomes)
        if not result.ready:
            ids = ", ".join(o.fix.id for o in result.blocking)
            logger.warning(f"{stage.value} is not ready: {ids}")
        return result

    def _begin_pass(self, context) -> None:
        begin = getattr(context, "begin_pass", None)
        if callable(begin):
            begin()

    def _apply_report(self, report: DriftReport, outcomes: Dict[str, FixOutcome]) -> None:
        """Update outcomes with the latest observation of every fix."""
        for entry in report.entries:
            if entry.error is not None:
                self._mark_error(entry, outcomes)
            elif not entry.detected:
                self._mark_healthy(entry.fix, outcomes)

    def _mark_error(self, entry: DriftEntry, outcomes: Dict[str, FixOutcome]) -> None:
        outcome = outcomes.get(entry.fix.id) or FixOutcome(fix=entry.fix, status=FixStatus.SCAN_ERROR)
        outcome.status = FixStatus.SCAN_ERROR
        outcome.error = entry.error
        outcomes[entry.fix.id] = outcome

    def _mark_healthy(self, fix: Fix, outcomes: Dict[str, FixOutcome]) -> None:
        outcome = outcomes.get(fix.id)
        if outcome is None:
            return
        if outcome.attempts > 0:
            outcome.status = FixStatus.FIXED
            outcome.error = None
        else:
            del outcomes[fix.id]

    def _process(
        self,
        entry: DriftEntry,
        context,
        pass_number: int,
        outcomes: Dict[str, FixOutcome]
    ) -> bool:
        """Handle one detected fix. Returns True for a new successful remediation."""
        fix = entry.fix
        outcome = outcomes.get(fix.id) or FixOutcome(fix=fix, status=FixStatus.UNRESOLVED)
        outcomes[fix.id] = outcome

        if fix.remediate is None or fix.severity not in self.actionable:
            outcome.status = FixStatus.MANUAL
            outcome.error = None
            logger.info(f"Manual fix required: {fix.id}")
            return False

        # Never remediate stale drift: an earlier fix in this pass may have
        # already changed the state this one depends on.
        fresh = self.scanner.detect_one(fix, context)
        if fresh.error is not None:
            self._mark_error(fresh, outcomes)
            return False
        if not fresh.detected:
            logger.debug(f"{fix.id} no longer detected; skipping remediation")
            self._mark_healthy(fix, outcomes)
            return False

        outcome.attempts += 1
        outcome.passes.append(pass_number)
        logger.info(f"Fixing {fix.id}: {fix.description}")

        error = None
        try:
            succeeded = bool(fix.remediate(context))
        except Exception as e:
            logger.error(f"Error fixing {fix.id}: {e}")
            succeeded = False
            error = str(e) or e.__class__.__name__

        if succeeded:
            outcome.status = FixStatus.FIXED
            outcome.error = None
            logger.info(f"Fixed: {fix.id}")
            return True

        outcome.status = FixStatus.FAILED
        outcome.error = error or "remediation reported failure"
        logger.warning(f"Failed to fix {fix.id}: {outcome.error}")
        return False

    def _ordered(self, stage: Stage, outcomes: Dict[str, FixOutcome]) -> List[FixOutcome]:
        order = {fix.id: index for index, fix in enumerate(self.registry.for_stage(stage))}
        return sorted(outcomes.values(), key=lambda o: order.get(o.fix.id, len(order)))
