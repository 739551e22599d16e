"""
Console rendering of scan and fix results.

Reports are printed, not logged, so they stay readable whatever the log
level and format.
"""

import sys
from typing import Dict, Iterable, Optional, TextIO

from .core.models import DriftReport, FixStatus, ReconcileResult, Stage

RULE = "=" * 60
THIN_RULE = "-" * 60

STATUS_MARKERS = {
    FixStatus.FIXED: "[OK]",
    FixStatus.MANUAL: "[man]",
    FixStatus.FAILED: "[ERROR]",
    FixStatus.UNRESOLVED: "[ERROR]",
    FixStatus.SCAN_ERROR: "[ERROR]",
}


def _out(stream: Optional[TextIO]) -> TextIO:
    return stream if stream is not None else sys.stdout


def print_scan_reports(reports: Dict[Stage, DriftReport], stream: Optional[TextIO] = None) -> None:
    """Print detected drift for each scanned stage."""
    out = _out(stream)
    print("\n" + RULE, file=out)
    print("SCAN RESULTS", file=out)
    print(RULE, file=out)

    total_drift = 0
    total_errors = 0
    for stage, report in reports.items():
        detected = report.detected_entries
        errors = report.errors
        total_drift += len(detected)
        total_errors += len(errors)

        print(f"\n{stage.value.upper()}", file=out)
        print(THIN_RULE, file=out)
        if not detected and not errors:
            print("  No issues found", file=out)
            continue
        for entry in detected:
            fix = entry.fix
            marker = "auto" if fix.auto_fixable else "man"
            print(f"  [{marker}] {fix.severity.value:<8} {fix.id}: {fix.description}", file=out)
        for entry in errors:
            print(f"  [ERROR] {entry.fix.id}: could not check ({entry.error})", file=out)

    print("\n" + RULE, file=out)
    print(f"TOTAL: {total_drift} issue(s), {total_errors} check error(s)", file=out)
    print(RULE, file=out)


def print_fix_results(results: Iterable[ReconcileResult], stream: Optional[TextIO] = None) -> None:
    """Print per-stage outcomes with manual instructions and a totals line."""
    out = _out(stream)
    results = list(results)
    print("\n" + RULE, file=out)
    print("FIX RESULTS", file=out)
    print(RULE, file=out)

    totals = {status: 0 for status in FixStatus}
    for result in results:
        state = "converged" if result.converged else "not converged"
        print(f"\n{result.stage.value.upper()} ({result.passes_run} pass(es), {state})", file=out)
        print(THIN_RULE, file=out)
        if not result.outcomes:
            print("  No issues found", file=out)
            continue
        for outcome in result.outcomes:
            totals[outcome.status] += 1
            marker = STATUS_MARKERS[outcome.status]
            print(f"  {marker} {outcome.fix.id}: {outcome.status.value}", file=out)
            if outcome.error:
                print(f"        {outcome.error}", file=out)
            if not outcome.resolved and outcome.manual_instructions:
                for line in outcome.manual_instructions.splitlines():
                    print(f"        {line}", file=out)

    blocking = sum(len(r.blocking) for r in results)
    summary = ", ".join(f"{count} {status.value}" for status, count in totals.items() if count)
    print("\n" + RULE, file=out)
    print(f"TOTAL: {summary or 'nothing to do'}", file=out)
    if blocking:
        print(f"NOT READY: {blocking} critical issue(s) remain", file=out)
    else:
        print("READY", file=out)
    print(RULE, file=out)
