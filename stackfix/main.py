#!/usr/bin/env python3
"""
Main entry point for stackfix.

    stackfix scan [--dev] [--secrets] [--staging] [--prod]
    stackfix fix [--prod] [--max-passes N]
    stackfix secrets set PROD_SSH --value-file ~/.ssh/prod_deploy_key
    stackfix validate

``scan`` and ``fix`` exit 0 only when no critical issue remains.
"""

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .config.settings import Settings
from .config.stack_config import load_stack_config
from .core.context import ReconcileContext
from .core.errors import ConfigError, StackfixError, VaultIOError
from .core.executor import FixExecutor
from .core.models import ALL_STAGES, Stage
from .core.scanner import ScanEngine
from .core.stages import parse_stage
from .fixes import build_registry
from .fixes.secrets import REMOTE_STAGES, write_ssh_key
from .providers.aws import AwsProvider
from .remote.credentials import CredentialResolver
from .remote.ssh import RemoteExecutor, SSHTransport
from .report import RULE, print_fix_results, print_scan_reports
from .utils.aws_client import AWSClientManager
from .utils.logging import setup_logging
from .vault.secrets import SecretsVault, ssh_key_secret_name

logger = logging.getLogger(__name__)


def _add_stage_flags(parser: argparse.ArgumentParser) -> None:
    for stage in ALL_STAGES:
        parser.add_argument(
            f"--{stage.value}",
            dest="stages",
            action="append_const",
            const=stage,
            help=f"Only the {stage.value} stage",
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stackfix",
        description="Scan a deployment stack for drift and fix it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stackfix scan
  stackfix fix --prod --max-passes 3
  stackfix secrets env-set staging DATABASE_URL
        """
    )
    parser.add_argument("--root", default=".", help="Project root containing stack.yml (default: .)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="Report drift without changing anything")
    _add_stage_flags(scan)
    scan.add_argument("--json", action="store_true", help="Print the reports as JSON")

    fix = commands.add_parser("fix", help="Scan and remediate until the stack converges")
    _add_stage_flags(fix)
    fix.add_argument("--max-passes", type=int, default=None, help="Pass budget per stage")

    commands.add_parser("validate", help="Check stack.yml and show the stage of every environment")

    secrets = commands.add_parser("secrets", help="Manage the secrets vault")
    actions = secrets.add_subparsers(dest="action", required=True)

    actions.add_parser("init", help="Create an empty vault")

    set_secret = actions.add_parser("set", help="Store a secret")
    set_secret.add_argument("name")
    value = set_secret.add_mutually_exclusive_group()
    value.add_argument("--value")
    value.add_argument("--value-file", help="Read the value from a file (e.g. a private key)")

    get_secret = actions.add_parser("get", help="Print a secret")
    get_secret.add_argument("name")

    check = actions.add_parser("check", help="Report which secrets are present")
    check.add_argument("names", nargs="+")

    env_set = actions.add_parser("env-set", help="Store an environment secret for a stage")
    env_set.add_argument("stage")
    env_set.add_argument("name")
    env_set.add_argument("--value")

    env_list = actions.add_parser("env-list", help="List environment secret names for a stage")
    env_list.add_argument("stage")

    actions.add_parser("write-ssh-keys", help="Write vault SSH keys to ~/.ssh/{stage}_deploy_key")

    return parser


def build_context(settings: Settings, root_dir: Path, config) -> ReconcileContext:
    """Wire the vault, SSH execution and AWS provider for one run."""
    vault = SecretsVault.from_config(config, settings, root_dir)
    transport = SSHTransport.from_settings(settings)
    resolver = CredentialResolver.from_settings(settings, probe=transport.probe, vault=vault)
    remote = RemoteExecutor(resolver, transport, on_server=settings.on_server)

    def provider_factory():
        region = config.aws_region(default=settings.aws_region)
        return AwsProvider(AWSClientManager(settings, region=region), config.project_name, region=region)

    return ReconcileContext(
        config,
        root_dir,
        settings=settings,
        vault=vault,
        remote=remote,
        provider_factory=provider_factory,
    )


def _selected_stages(args) -> List[Stage]:
    selected = args.stages or ALL_STAGES
    return [stage for stage in ALL_STAGES if stage in selected]


def scan_workers(settings: Settings) -> int:
    """Stage scans run one at a time whenever an SSH password prompt could open."""
    if settings.interactive and not settings.on_server and sys.stdin.isatty():
        return 1
    return settings.max_concurrent_checks


def run_scan(args, settings: Settings, context: ReconcileContext) -> int:
    registry = build_registry(context.config)
    scanner = ScanEngine(registry)
    reports = scanner.scan_stages(_selected_stages(args), context, max_workers=scan_workers(settings))

    if args.json:
        print(json.dumps([report.to_dict() for report in reports.values()], indent=2))
    else:
        print_scan_reports(reports)
    return 1 if any(report.has_critical_drift() for report in reports.values()) else 0


def run_fix(args, settings: Settings, context: ReconcileContext) -> int:
    registry = build_registry(context.config)
    executor = FixExecutor(registry, max_passes=settings.max_passes)

    results = []
    for stage in _selected_stages(args):
        logger.info(f"Reconciling {stage.value}...")
        results.append(executor.reconcile(stage, context, max_passes=args.max_passes))

    print_fix_results(results)
    return 0 if all(result.ready for result in results) else 1


def run_validate(args, settings: Settings, root_dir: Path) -> int:
    path = root_dir / settings.stack_config_file
    if not path.exists():
        print(f"No {settings.stack_config_file} found in {root_dir}")
        return 1
    try:
        config = load_stack_config(path, strict=True)
    except ConfigError as e:
        print(f"Invalid {path.name}: {e}")
        return 1

    print("\n" + RULE)
    print(f"{config.project_name} ({path})")
    print(RULE)
    for name, env in config.environments.items():
        target = env.target_host or "no host"
        print(f"  {name:<20} {env.stage.value:<8} {target}")
    if not config.environments:
        print("  No environments defined")
    else:
        print(f"Stages: {', '.join(stage.value for stage in config.stages())}")
    print(RULE)
    return 0


def _read_value(args, prompt: str) -> Optional[str]:
    if getattr(args, "value_file", None):
        return Path(args.value_file).expanduser().read_text(encoding="utf-8")
    if args.value is not None:
        return args.value
    return getpass.getpass(prompt) or None


def run_secrets(args, settings: Settings, context: ReconcileContext) -> int:
    vault = context.vault
    if vault is None:
        print("No vault configured: add ansible.vault_path to stack.yml")
        return 1

    if args.action == "init":
        created = vault.ensure_vault_exists()
        print(f"Created vault at {vault.path}" if created else f"Vault already exists at {vault.path}")
        return 0

    if args.action == "set":
        value = _read_value(args, f"Value for {args.name}: ")
        if not value:
            print("No value given")
            return 1
        vault.set_secret(args.name, value)
        print(f"Stored {args.name}")
        return 0

    if args.action == "get":
        value = vault.get_secret(args.name)
        if value is None:
            print(f"{args.name} not found")
            return 1
        print(value)
        return 0

    if args.action == "check":
        check = vault.check_secrets(args.names)
        for name in check.present:
            print(f"  [OK] {name}")
        for name in check.missing:
            print(f"  [missing] {name}")
        return 0 if check.complete else 1

    if args.action == "env-set":
        stage = parse_stage(args.stage)
        value = _read_value(args, f"{stage.value} value for {args.name}: ")
        if not value:
            print("No value given")
            return 1
        vault.set_environment_secret(stage, args.name, value)
        print(f"Stored {args.name} for {stage.value}")
        return 0

    if args.action == "env-list":
        stage = parse_stage(args.stage)
        names = vault.list_environment_secret_keys(stage)
        if not names:
            print(f"No environment secrets for {stage.value}")
        for name in names:
            print(name)
        return 0

    if args.action == "write-ssh-keys":
        written = 0
        for stage in REMOTE_STAGES:
            if vault.get_ssh_key(stage) is None:
                print(f"  {ssh_key_secret_name(stage)} not in vault, skipped")
                continue
            path = write_ssh_key(vault, stage, settings.ssh_dir)
            print(f"  Wrote {path}")
            written += 1
        return 0 if written else 1

    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the stackfix CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        overrides = {"log_level": "DEBUG", "enable_debug_logs": True} if args.verbose else {}
        settings = Settings(**overrides)
    except ValidationError as e:
        print(f"Invalid settings: {e}")
        return 1
    setup_logging(settings)

    root_dir = Path(args.root).expanduser().resolve()
    if args.command == "validate":
        return run_validate(args, settings, root_dir)

    try:
        config = load_stack_config(root_dir / settings.stack_config_file, strict=False)
        context = build_context(settings, root_dir, config)

        if args.command == "scan":
            return run_scan(args, settings, context)
        if args.command == "fix":
            return run_fix(args, settings, context)
        if args.command == "secrets":
            return run_secrets(args, settings, context)

    except VaultIOError as e:
        logger.error(f"Vault error: {e}")
        print(f"\n❌ Vault error: {e}")
        return 1
    except (StackfixError, ValueError, OSError) as e:
        logger.error(f"Error: {e}")
        print(f"\n❌ Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
