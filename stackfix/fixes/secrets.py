"""
Secrets-stage checks: the vault exists, holds the deploy keys and
per-stage environment secrets, and the keys are written where the
credential resolver looks for them.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List

from ..core.models import Fix, Severity, Stage
from ..remote.credentials import deploy_key_path
from ..vault.secrets import ssh_key_secret_name

logger = logging.getLogger(__name__)

SOURCE = "secrets"
REMOTE_STAGES = (Stage.STAGING, Stage.PROD)


def write_ssh_key(vault, stage: Stage, ssh_dir: str) -> Path:
    """
    Write the stage's private key from the vault to ``~/.ssh/{stage}_deploy_key``.

    Raises:
        ValueError: If the vault holds no key for the stage
    """
    key = vault.get_ssh_key(stage)
    if not key:
        raise ValueError(f"{ssh_key_secret_name(stage)} not found in vault")
    if not key.endswith("\n"):
        key += "\n"

    path = deploy_key_path(ssh_dir, stage)
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(key)
    os.chmod(path, 0o600)
    logger.info(f"Wrote {ssh_key_secret_name(stage)} to {path}")
    return path


def _ssh_dir(context) -> str:
    return context.settings.ssh_dir if context.settings is not None else "~/.ssh"


def _vault_ready(context) -> bool:
    return context.vault is not None and context.vault.exists


def _vault_not_configured(context) -> bool:
    return context.vault is None


def _vault_missing(context) -> bool:
    return context.vault is not None and not context.vault.exists


def _create_vault(context) -> bool:
    context.vault.ensure_vault_exists()
    return True


def _ssh_key_missing(stage: Stage):
    def detect(context) -> bool:
        if not _vault_ready(context) or not context.environments_for(stage):
            return False
        return not context.vault.check_secrets([ssh_key_secret_name(stage)]).complete
    return detect


def _ssh_key_not_written(stage: Stage):
    def detect(context) -> bool:
        if not _vault_ready(context) or not context.environments_for(stage):
            return False
        if deploy_key_path(_ssh_dir(context), stage).exists():
            return False
        return context.vault.get_ssh_key(stage) is not None

    def remediate(context) -> bool:
        if deploy_key_path(_ssh_dir(context), stage).exists():
            return True
        write_ssh_key(context.vault, stage, _ssh_dir(context))
        return True

    return detect, remediate


def _env_secret_missing(stage: Stage, name: str):
    def detect(context) -> bool:
        if not _vault_ready(context) or not context.environments_for(stage):
            return False
        value = context.vault.get_environment_secrets(stage).get(name, "")
        return not value.strip()
    return detect


def build_fixes(required_env_vars: Iterable[str] = ()) -> List[Fix]:
    """Secrets-stage fixes, vault first so later checks can rely on it."""
    required_env_vars = list(required_env_vars)
    fixes = [
        Fix(
            id="secrets-vault-not-configured",
            stage=Stage.SECRETS,
            severity=Severity.CRITICAL,
            description="No secrets vault configured",
            detect=_vault_not_configured,
            manual_instructions="Add ansible.vault_path (and vault_password_file) to stack.yml",
            source=SOURCE,
        ),
        Fix(
            id="secrets-vault-missing",
            stage=Stage.SECRETS,
            severity=Severity.CRITICAL,
            description="Vault file does not exist",
            detect=_vault_missing,
            remediate=_create_vault,
            manual_instructions="Run: stackfix secrets init",
            source=SOURCE,
        ),
    ]

    for stage in REMOTE_STAGES:
        key_name = ssh_key_secret_name(stage)
        fixes.append(Fix(
            id=f"secrets-{stage.value}-ssh-key-missing",
            stage=Stage.SECRETS,
            severity=Severity.WARNING,
            description=f"{key_name} not stored in vault",
            detect=_ssh_key_missing(stage),
            manual_instructions=(
                f"Store the {stage.value} deploy key: stackfix secrets set {key_name} "
                f"--value-file ~/.ssh/{stage.value}_deploy_key"
            ),
            source=SOURCE,
        ))

        detect, remediate = _ssh_key_not_written(stage)
        fixes.append(Fix(
            id=f"secrets-{stage.value}-ssh-key-not-written",
            stage=Stage.SECRETS,
            severity=Severity.WARNING,
            description=f"{key_name} is in the vault but not at ~/.ssh/{stage.value}_deploy_key",
            detect=detect,
            remediate=remediate,
            manual_instructions="Run: stackfix secrets write-ssh-keys",
            source=SOURCE,
        ))

        for name in required_env_vars:
            fixes.append(Fix(
                id=f"secrets-{stage.value}-env-{name.lower()}",
                stage=Stage.SECRETS,
                severity=Severity.WARNING,
                description=f"{name} not set in vault {stage.value}_envs",
                detect=_env_secret_missing(stage, name),
                manual_instructions=f"Run: stackfix secrets env-set {stage.value} {name}",
                source=SOURCE,
            ))
    return fixes
