"""
Local project checks for the dev stage.

Every variable listed in ``required_env_vars`` must appear in
``.env.example`` so new developers know what to set.
"""

import logging
from pathlib import Path
from typing import Iterable, List

from ..core.models import Fix, Severity, Stage

logger = logging.getLogger(__name__)

SOURCE = "env_files"
ENV_EXAMPLE = ".env.example"


def _env_example(context) -> Path:
    return context.root_dir / ENV_EXAMPLE


def _declared_vars(path: Path) -> List[str]:
    names = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        names.append(line.split("=", 1)[0].strip())
    return names


def _project_name_missing(context) -> bool:
    return not context.config.name


def _env_example_missing(context) -> bool:
    return not _env_example(context).exists()


def _create_env_example(context) -> bool:
    path = _env_example(context)
    if path.exists():
        return True
    lines = ["# Environment variables required by this project", ""]
    lines += [f"{name}=" for name in context.config.required_env_vars]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info(f"Created {path}")
    return True


def _stage_env_missing(stage: Stage):
    def detect(context) -> bool:
        if not context.environments_for(stage) or not _env_example(context).exists():
            return False
        return not (context.root_dir / f".env.{stage.value}").exists()

    def remediate(context) -> bool:
        path = context.root_dir / f".env.{stage.value}"
        if path.exists():
            return True
        lines = [f"# {stage.value} values, pushed to the vault with: stackfix secrets env-set {stage.value} NAME", ""]
        lines += [f"{name}=" for name in _declared_vars(_env_example(context))]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        logger.info(f"Created {path}")
        return True

    return detect, remediate


def _var_missing_check(name: str):
    def detect(context) -> bool:
        path = _env_example(context)
        if not path.exists():
            return False  # created by dev-env-example-missing first
        return name not in _declared_vars(path)
    return detect


def build_fixes(required_env_vars: Iterable[str] = ()) -> List[Fix]:
    """Dev-stage fixes; one variable check per required env var."""
    fixes = [
        Fix(
            id="dev-project-name-missing",
            stage=Stage.DEV,
            severity=Severity.CRITICAL,
            description="stack.yml has no project name",
            detect=_project_name_missing,
            manual_instructions="Add 'name: <project>' to stack.yml",
            source=SOURCE,
        ),
        Fix(
            id="dev-env-example-missing",
            stage=Stage.DEV,
            severity=Severity.WARNING,
            description=f"{ENV_EXAMPLE} not found",
            detect=_env_example_missing,
            remediate=_create_env_example,
            manual_instructions=f"Create {ENV_EXAMPLE} listing the environment variables the app needs",
            source=SOURCE,
        ),
    ]

    for name in required_env_vars:
        fixes.append(Fix(
            id=f"dev-env-example-{name.lower()}",
            stage=Stage.DEV,
            severity=Severity.CRITICAL,
            description=f"{name} not found in {ENV_EXAMPLE}",
            detect=_var_missing_check(name),
            manual_instructions=f"Add {name}=your_value to {ENV_EXAMPLE}",
            source=SOURCE,
        ))

    for stage in (Stage.STAGING, Stage.PROD):
        detect, remediate = _stage_env_missing(stage)
        fixes.append(Fix(
            id=f"dev-env-{stage.value}-missing",
            stage=Stage.DEV,
            severity=Severity.INFO,
            description=f".env.{stage.value} template not found",
            detect=detect,
            remediate=remediate,
            manual_instructions=f"Copy {ENV_EXAMPLE} to .env.{stage.value} and fill in {stage.value} values",
            source=SOURCE,
        ))
    return fixes
