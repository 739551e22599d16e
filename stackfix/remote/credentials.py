"""
SSH credential resolution.

For a (stage, host, user) triple the resolver tries, in a fixed order:

1. a stage key file at ``~/.ssh/{stage}_deploy_key``
2. a ``{STAGE}_SSH_PASSWORD`` secret stored in the vault
3. an interactive password prompt

Key files are the steady state; prompting is the bootstrap path. A prompted
password that passes the connectivity probe is written to the vault so the
next run does not prompt again.
"""

import getpass
import logging
import os
import sys
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..core.errors import VaultIOError
from ..core.models import Stage
from ..vault.secrets import ssh_password_secret_name

logger = logging.getLogger(__name__)


class CredentialMethod(str, Enum):
    KEY_FILE = "key_file"
    VAULT_PASSWORD = "vault_password"
    INTERACTIVE = "interactive"


@dataclass(frozen=True)
class Credential:
    """A working way to authenticate to a host."""
    stage: Stage
    host: str
    user: str
    method: CredentialMethod
    key_path: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    secret_name: Optional[str] = None
    persisted: bool = True


@dataclass
class CredentialUnavailable:
    """No authentication method succeeded; returned, not raised."""
    stage: Stage
    host: str
    user: str
    attempted: List[CredentialMethod] = field(default_factory=list)
    reasons: Dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        tried = ", ".join(m.value for m in self.attempted) or "none"
        detail = "; ".join(f"{k}: {v}" for k, v in self.reasons.items())
        message = f"No working SSH credential for {self.user}@{self.host} ({self.stage.value}); attempted: {tried}"
        return f"{message} ({detail})" if detail else message


def deploy_key_path(ssh_dir: str, stage: Union[Stage, str]) -> Path:
    """Conventional location of a stage key file: ~/.ssh/{stage}_deploy_key."""
    return Path(os.path.expanduser(ssh_dir)) / f"{Stage(stage).value}_deploy_key"


Probe = Callable[[str, str, Credential], bool]
Resolution = Union[Credential, CredentialUnavailable]


class PasswordPrompt:
    """Reads a password from the terminal without echo."""

    def __init__(self, interactive: bool = True):
        self.interactive = interactive

    def __call__(self, message: str) -> Optional[str]:
        if not self.interactive or not sys.stdin.isatty():
            logger.debug("Not prompting for a password: no interactive terminal")
            return None
        try:
            return getpass.getpass(message)
        except EOFError:
            return None


class CredentialResolver:
    """Selects and validates an SSH authentication method."""

    def __init__(
        self,
        probe: Probe,
        vault=None,
        prompt: Optional[Callable[[str], Optional[str]]] = None,
        ssh_dir: str = "~/.ssh",
        max_prompt_attempts: int = 3
    ):
        """
        Initialize the resolver.

        Args:
            probe: Lightweight connectivity check, ``probe(host, user, credential) -> bool``
            vault: SecretsVault, or None when no vault is configured
            prompt: Password prompt; None disables prompting
            ssh_dir: Directory holding the stage key files
            max_prompt_attempts: Prompts allowed before giving up
        """
        self.probe = probe
        self.vault = vault
        self.prompt = prompt
        self.ssh_dir = ssh_dir
        self.max_prompt_attempts = max_prompt_attempts
        self._prompt_lock = threading.Lock()
        self._session: Dict[Tuple[Stage, str, str], Credential] = {}

    @classmethod
    def from_settings(cls, settings, probe: Probe, vault=None, prompt=None) -> "CredentialResolver":
        return cls(
            probe=probe,
            vault=vault,
            prompt=prompt if prompt is not None else PasswordPrompt(interactive=settings.interactive),
            ssh_dir=settings.ssh_dir,
            max_prompt_attempts=settings.ssh_prompt_attempts,
        )

    def key_file_path(self, stage: Union[Stage, str]) -> Path:
        return deploy_key_path(self.ssh_dir, stage)

    def resolve(self, stage: Union[Stage, str], host: str, user: str) -> Resolution:
        """
        Find a working credential for ``user@host``.

        Returns:
            A Credential, or CredentialUnavailable naming the methods tried
        """
        stage = Stage(stage)
        failure = CredentialUnavailable(stage=stage, host=host, user=user)

        credential = self._from_key_file(stage, host, user, failure)
        if credential is not None:
            return credential

        credential = self._from_vault(stage, host, user, failure)
        if credential is not None:
            return credential

        cached = self._session.get((stage, host, user))
        if cached is not None:
            return cached

        credential = self._from_prompt(stage, host, user, failure)
        if credential is not None:
            return credential

        logger.error(str(failure))
        return failure

    def _from_key_file(self, stage, host, user, failure) -> Optional[Credential]:
        failure.attempted.append(CredentialMethod.KEY_FILE)
        key_path = self.key_file_path(stage)
        if key_path.is_file():
            logger.debug(f"Using key file {key_path} for {user}@{host}")
            return Credential(stage, host, user, CredentialMethod.KEY_FILE, key_path=str(key_path))
        failure.reasons[CredentialMethod.KEY_FILE.value] = f"no key at {key_path}"
        return None

    def _from_vault(self, stage, host, user, failure) -> Optional[Credential]:
        if self.vault is None:
            return None

        failure.attempted.append(CredentialMethod.VAULT_PASSWORD)
        secret_name = ssh_password_secret_name(stage)
        try:
            password = self.vault.get_secret(secret_name)
        except VaultIOError as e:
            logger.warning(f"Could not read {secret_name} from vault: {e}")
            failure.reasons[CredentialMethod.VAULT_PASSWORD.value] = f"vault unreadable: {e}"
            return None

        if not password:
            failure.reasons[CredentialMethod.VAULT_PASSWORD.value] = f"{secret_name} not in vault"
            return None

        credential = Credential(
            stage, host, user, CredentialMethod.VAULT_PASSWORD,
            password=password, secret_name=secret_name,
        )
        if self.probe(host, user, credential):
            logger.debug(f"Using stored password {secret_name} for {user}@{host}")
            return credential

        # The stale entry is left in place for the operator to rotate.
        logger.warning(
            f"Stored password {secret_name} was rejected by {user}@{host}. "
            f"Rotate it with: stackfix secrets set {secret_name}"
        )
        failure.reasons[CredentialMethod.VAULT_PASSWORD.value] = "stored password rejected"
        return None

    def _from_prompt(self, stage, host, user, failure) -> Optional[Credential]:
        if self.prompt is None:
            return None

        secret_name = ssh_password_secret_name(stage)
        with self._prompt_lock:
            # Another thread may have prompted for the same host meanwhile.
            cached = self._session.get((stage, host, user))
            if cached is not None:
                return cached

            failure.attempted.append(CredentialMethod.INTERACTIVE)
            for attempt in range(1, self.max_prompt_attempts + 1):
                password = self.prompt(f"SSH password for {user}@{host} ({stage.value}): ")
                if not password:
                    failure.reasons[CredentialMethod.INTERACTIVE.value] = "no password entered"
                    return None

                credential = Credential(
                    stage, host, user, CredentialMethod.INTERACTIVE,
                    password=password, secret_name=secret_name, persisted=False,
                )
                if not self.probe(host, user, credential):
                    logger.warning(f"Password rejected by {user}@{host} (attempt {attempt}/{self.max_prompt_attempts})")
                    continue

                credential = replace(credential, persisted=self._persist(secret_name, password))
                self._session[(stage, host, user)] = credential
                return credential

            failure.reasons[CredentialMethod.INTERACTIVE.value] = "password rejected"
            return None

    def _persist(self, secret_name: str, password: str) -> bool:
        if self.vault is None:
            logger.warning(
                f"No vault configured: {secret_name} was not saved and you will be prompted again next run"
            )
            return False
        try:
            self.vault.set_secret(secret_name, password)
        except VaultIOError as e:
            logger.warning(f"Could not store {secret_name} in vault: {e}")
            return False
        logger.info(f"Saved {secret_name} to vault")
        return True
