"""
Scan engine.

Evaluates the detection predicate of every fix registered for a stage and
produces a DriftReport. A predicate that raises is recorded as an error and
never counted as drift; a predicate whose prerequisite is missing returns
False and is indistinguishable from a healthy check.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, Optional

from .models import DriftEntry, DriftReport, Fix, Stage
from .registry import FixRegistry

logger = logging.getLogger(__name__)


class ScanEngine:
    """
    Runs detection predicates against the current state.

    Fixes within a stage are always evaluated one at a time in registration
    order. Different stages touch disjoint resources and may be scanned in
    parallel with ``scan_stages``.
    """

    def __init__(self, registry: FixRegistry):
        """
        Initialize the scan engine.

        Args:
            registry: Fix registry; frozen on construction
        """
        self.registry = registry
        self.registry.freeze()

    def detect_one(self, fix: Fix, context) -> DriftEntry:
        """Evaluate a single fix's detection predicate."""
        try:
            detected = bool(fix.detect(context))
        except Exception as e:
            logger.warning(f"Error scanning {fix.id}: {e}")
            return DriftEntry(fix=fix, detected=False, error=str(e) or e.__class__.__name__)

        if detected:
            logger.debug(f"Drift detected: {fix.id}")
        return DriftEntry(fix=fix, detected=detected)

    def scan(self, stage: Stage, context) -> DriftReport:
        """
        Scan all fixes registered for a stage.

        Args:
            stage: Stage to scan
            context: Reconciliation context passed to every predicate

        Returns:
            DriftReport with one entry per fix, in registration order
        """
        stage = Stage(stage)
        fixes = self.registry.for_stage(stage)
        logger.info(f"Scanning {stage.value}: {len(fixes)} checks")

        report = DriftReport(stage=stage)
        for fix in fixes:
            report.entries.append(self.detect_one(fix, context))

        logger.info(
            f"Scan of {stage.value} complete: {len(report.detected_entries)} detected, "
            f"{len(report.errors)} errors"
        )
        return report

    def scan_stages(
        self,
        stages: Iterable[Stage],
        context,
        max_workers: Optional[int] = None
    ) -> Dict[Stage, DriftReport]:
        """
        Scan several stages, in parallel when ``max_workers`` > 1.

        Returns:
            Reports keyed by stage, in the order the stages were given
        """
        stages = [Stage(s) for s in stages]
        if not stages:
            return {}

        workers = max(1, min(max_workers or 1, len(stages)))
        if workers == 1:
            return {stage: self.scan(stage, context) for stage in stages}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scan") as pool:
            futures = {stage: pool.submit(self.scan, stage, context) for stage in stages}
            return {stage: futures[stage].result() for stage in stages}
