"""
Unit tests for report rendering and the command line entry point.
"""

import io
import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from stackfix.core.models import DriftEntry, DriftReport, Fix, FixOutcome, FixStatus, ReconcileResult, Severity, Stage
from stackfix.main import build_parser, main, scan_workers
from stackfix.report import print_fix_results, print_scan_reports


def make_fix(fix_id, severity=Severity.CRITICAL, remediate=None, manual=""):
    return Fix(
        id=fix_id,
        stage=Stage.PROD,
        severity=severity,
        description=f"{fix_id} description",
        detect=lambda c: True,
        remediate=remediate,
        manual_instructions=manual,
    )


class TestReport(unittest.TestCase):
    """Test cases for report rendering."""

    def test_scan_report(self):
        report = DriftReport(Stage.PROD, [
            DriftEntry(make_fix("vpc", remediate=lambda c: True), detected=True),
            DriftEntry(make_fix("sg"), detected=False, error="AccessDenied"),
            DriftEntry(make_fix("ok"), detected=False),
        ])
        out = io.StringIO()

        print_scan_reports({Stage.PROD: report, Stage.DEV: DriftReport(Stage.DEV)}, stream=out)

        text = out.getvalue()
        self.assertIn("[auto] critical vpc: vpc description", text)
        self.assertIn("[ERROR] sg: could not check (AccessDenied)", text)
        self.assertIn("No issues found", text)
        self.assertIn("TOTAL: 1 issue(s), 1 check error(s)", text)

    def test_fix_results(self):
        result = ReconcileResult(Stage.PROD, [
            FixOutcome(make_fix("vpc", manual="Create the VPC by hand"), FixStatus.FIXED, attempts=1, passes=[1]),
            FixOutcome(make_fix("dns", manual="Point A record at 1.2.3.4\nthen wait"), FixStatus.MANUAL),
            FixOutcome(make_fix("sg", severity=Severity.WARNING), FixStatus.FAILED, attempts=1, error="quota"),
        ], passes_run=2, converged=False)
        out = io.StringIO()

        print_fix_results([result], stream=out)

        text = out.getvalue()
        self.assertIn("PROD (2 pass(es), not converged)", text)
        self.assertIn("[OK] vpc: fixed", text)
        self.assertNotIn("Create the VPC by hand", text)
        self.assertIn("[man] dns: manual", text)
        self.assertIn("        Point A record at 1.2.3.4\n        then wait", text)
        self.assertIn("[ERROR] sg: failed", text)
        self.assertIn("quota", text)
        self.assertIn("TOTAL: 1 fixed, 1 manual, 1 failed", text)
        self.assertIn("NOT READY: 1 critical issue(s) remain", text)


class TestCli(unittest.TestCase):
    """Test cases for the stackfix command."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        env = patch.dict(os.environ, {"HOME": self.tmp.name}, clear=True)
        env.start()
        self.addCleanup(env.stop)

    def tearDown(self):
        self.tmp.cleanup()

    def write_stack(self, text):
        (self.root / "stack.yml").write_text(text, encoding="utf-8")

    def run_cli(self, *args):
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = main(["--root", self.tmp.name] + list(args))
        return code, out.getvalue()

    def test_stage_flags(self):
        args = build_parser().parse_args(["fix", "--prod", "--dev", "--max-passes", "3"])
        self.assertEqual(args.stages, [Stage.PROD, Stage.DEV])
        self.assertEqual(args.max_passes, 3)

    def test_validate(self):
        self.write_stack("name: shop\nstaging2:\n  domain: s.example\nproduction:\n  host: 1.2.3.4\n")
        code, out = self.run_cli("validate")
        self.assertEqual(code, 0)
        self.assertIn("staging2", out)
        self.assertIn("prod", out)
        self.assertIn("Stages: staging, prod", out)

    def test_validate_rejects_unknown_environment(self):
        self.write_stack("name: shop\nqa:\n  domain: qa.example\n")
        code, out = self.run_cli("validate")
        self.assertEqual(code, 1)
        self.assertIn("qa", out)

    def test_scan_exit_code_reflects_critical_drift(self):
        self.write_stack("name: shop\nrequired_env_vars: [DATABASE_URL]\n")
        (self.root / ".env.example").write_text("OTHER=1\n")

        code, out = self.run_cli("scan", "--dev")
        self.assertEqual(code, 1)
        self.assertIn("dev-env-example-database_url", out)

        (self.root / ".env.example").write_text("DATABASE_URL=\n")
        code, _ = self.run_cli("scan", "--dev")
        self.assertEqual(code, 0)

    def test_scan_json(self):
        self.write_stack("name: shop\n")
        code, out = self.run_cli("scan", "--dev", "--json")
        data = json.loads(out)
        self.assertEqual(data[0]["stage"], "dev")
        self.assertEqual(code, 0)

    def test_fix_creates_env_example(self):
        self.write_stack("name: shop\nrequired_env_vars: [DATABASE_URL]\n")

        code, out = self.run_cli("fix", "--dev")

        self.assertEqual(code, 0)
        self.assertTrue((self.root / ".env.example").exists())
        self.assertIn("[OK] dev-env-example-missing: fixed", out)
        self.assertIn("READY", out)

    def test_fix_reports_manual_and_fails(self):
        self.write_stack("required_env_vars: [DATABASE_URL]\n")
        code, out = self.run_cli("fix", "--dev")
        self.assertEqual(code, 1)
        self.assertIn("Add 'name: <project>' to stack.yml", out)

    def test_secrets_without_vault(self):
        self.write_stack("name: shop\n")
        code, out = self.run_cli("secrets", "get", "PROD_SSH")
        self.assertEqual(code, 1)
        self.assertIn("No vault configured", out)

    def test_invalid_settings(self):
        os.environ["MAX_PASSES"] = "0"
        code, out = self.run_cli("scan")
        self.assertEqual(code, 1)
        self.assertIn("Invalid settings", out)


class TestScanWorkers(unittest.TestCase):
    """Test cases for choosing scan parallelism."""

    def make_settings(self, **kwargs):
        values = {"interactive": True, "on_server": False, "max_concurrent_checks": 4}
        values.update(kwargs)
        return Mock(**values)

    @patch("stackfix.main.sys.stdin")
    def test_terminal_scans_sequentially(self, mock_stdin):
        mock_stdin.isatty.return_value = True
        self.assertEqual(scan_workers(self.make_settings()), 1)

    @patch("stackfix.main.sys.stdin")
    def test_parallel_without_prompt(self, mock_stdin):
        mock_stdin.isatty.return_value = False
        self.assertEqual(scan_workers(self.make_settings()), 4)

        mock_stdin.isatty.return_value = True
        self.assertEqual(scan_workers(self.make_settings(interactive=False)), 4)
        self.assertEqual(scan_workers(self.make_settings(on_server=True)), 4)


if __name__ == "__main__":
    unittest.main()
