"""
Encrypted secrets vault.

The decrypted container is a YAML mapping of flat secrets (SSH keys, provider
keys, stored SSH passwords) plus ``{stage}_envs`` maps of per-stage environment
variables. The encryption tool cannot update single fields, so every write
decrypts the whole container, mutates it in memory and re-encrypts it to a
temporary file that atomically replaces the original.
"""

import copy
import logging
import os
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

import yaml

from ..core.errors import VaultIOError
from ..core.models import Stage
from .cipher import AnsibleVaultCipher, VaultPasswordSource

logger = logging.getLogger(__name__)

VAULT_HEADER = "# stackfix secrets\n"


def env_secrets_key(stage: Union[Stage, str]) -> str:
    return f"{Stage(stage).value}_envs"


def ssh_key_secret_name(stage: Union[Stage, str]) -> str:
    """Vault name of the SSH private key for a stage (e.g. PROD_SSH)."""
    return f"{Stage(stage).value.upper()}_SSH"


def ssh_password_secret_name(stage: Union[Stage, str]) -> str:
    """Vault name of the stored SSH password for a stage (e.g. PROD_SSH_PASSWORD)."""
    return f"{Stage(stage).value.upper()}_SSH_PASSWORD"


@dataclass
class SecretCheck:
    """Which of the requested secrets hold a non-blank value."""
    present: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing


def _is_set(value: Any) -> bool:
    if value is None or isinstance(value, (dict, list)):
        return False
    return bool(str(value).strip())


class SecretsVault:
    """
    Key/value store on top of an encrypted YAML document.

    Reads that cannot decrypt raise VaultIOError, so callers can tell "secret
    not stored" (None) from "vault unreadable". Writes are serialized within
    the process; concurrent writers in other processes are not supported.
    """

    def __init__(self, path: Union[str, Path], cipher):
        """
        Initialize the vault.

        Args:
            path: Location of the encrypted container
            cipher: Object with ``decrypt(path) -> str`` and
                ``encrypt(plaintext, output_path)``
        """
        self.path = Path(os.path.expanduser(str(path)))
        self.cipher = cipher
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config, settings, root_dir: Union[str, Path]) -> Optional["SecretsVault"]:
        """
        Build the vault described by stack.yml and settings.

        Returns:
            The vault, or None when no vault path is configured
        """
        vault_path = settings.vault_path or config.vault_path
        if not vault_path:
            return None

        path = Path(os.path.expanduser(vault_path))
        if not path.is_absolute():
            path = Path(root_dir) / path

        source = VaultPasswordSource.from_settings(settings, password_file=config.vault_password_file)
        if not source.available:
            logger.warning(f"No vault password configured for {path}; vault operations will fail")
        cipher = AnsibleVaultCipher(source, executable=settings.ansible_vault_bin, timeout=settings.vault_timeout)
        return cls(path, cipher)

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> Dict[str, Any]:
        """Decrypt and return the full container; an absent container is empty."""
        if not self.exists:
            return {}

        content = self.cipher.decrypt(self.path)
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise VaultIOError(f"Vault content is not valid YAML: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise VaultIOError("Vault content must be a mapping")
        return data

    def ensure_vault_exists(self) -> bool:
        """
        Create an empty encrypted container if none exists.

        Returns:
            True if the container was created, False if it already existed
        """
        with self._lock:
            if self.exists:
                return False
            self._write({})
            logger.info(f"Created vault at {self.path}")
            return True

    def get_secret(self, name: str) -> Optional[str]:
        value = self.read().get(name)
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)

    def set_secret(self, name: str, value: str) -> None:
        def apply(data):
            data[name] = value

        self._mutate(apply)
        logger.info(f"Stored secret {name} in vault")

    def delete_secret(self, name: str) -> bool:
        """Remove a flat secret. Returns False when it was not stored."""
        removed = []

        def apply(data):
            if name in data and not isinstance(data[name], dict):
                del data[name]
                removed.append(name)

        self._mutate(apply)
        return bool(removed)

    def check_secrets(self, names: Iterable[str]) -> SecretCheck:
        data = self.read()
        check = SecretCheck()
        for name in names:
            if _is_set(data.get(name)):
                check.present.append(name)
            else:
                check.missing.append(name)
        return check

    def get_ssh_key(self, stage: Union[Stage, str]) -> Optional[str]:
        return self.get_secret(ssh_key_secret_name(stage))

    def get_environment_secrets(self, stage: Union[Stage, str]) -> Dict[str, str]:
        envs = self.read().get(env_secrets_key(stage))
        if not isinstance(envs, dict):
            return {}
        return {str(k): "" if v is None else str(v) for k, v in envs.items()}

    def set_environment_secret(self, stage: Union[Stage, str], name: str, value: str) -> None:
        self.set_environment_secrets(stage, {name: value})

    def set_environment_secrets(self, stage: Union[Stage, str], secrets: Mapping[str, str]) -> None:
        key = env_secrets_key(stage)

        def apply(data):
            envs = data.get(key)
            if not isinstance(envs, dict):
                envs = {}
            envs.update(secrets)
            data[key] = envs

        self._mutate(apply)
        logger.info(f"Stored {len(secrets)} environment secret(s) under {key}")

    def list_environment_secret_keys(self, stage: Union[Stage, str]) -> List[str]:
        return list(self.get_environment_secrets(stage))

    def _mutate(self, mutation: Callable[[Dict[str, Any]], None]) -> None:
        """Decrypt, apply ``mutation`` to a copy, and atomically re-encrypt."""
        with self._lock:
            current = self.read()
            updated = copy.deepcopy(current)
            mutation(updated)
            self._write(updated)

    def _write(self, data: Dict[str, Any]) -> None:
        text = VAULT_HEADER + yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise VaultIOError(f"Cannot create vault directory {self.path.parent}: {e}") from e

        tmp_path = self.path.parent / f".{self.path.name}.{uuid.uuid4().hex}.tmp"
        try:
            self.cipher.encrypt(text, tmp_path)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise VaultIOError(f"Failed to write vault {self.path}: {e}") from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
