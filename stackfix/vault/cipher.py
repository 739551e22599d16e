"""
Vault encryption primitive.

Encryption and decryption are delegated to the ``ansible-vault`` executable.
The vault password comes from, in order: an explicit password file, the
``ANSIBLE_VAULT_PASSWORD_FILE`` path, or the ``ANSIBLE_VAULT_PASSWORD`` value.
A password value is only ever written to a private temporary file that is
removed as soon as the call finishes.
"""

import logging
import os
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..core.errors import VaultIOError

logger = logging.getLogger(__name__)


def _expand(path: Optional[str]) -> Optional[Path]:
    if not path:
        return None
    return Path(os.path.expanduser(path))


class VaultPasswordSource:
    """Resolves where the vault password comes from."""

    def __init__(
        self,
        password_file: Optional[str] = None,
        env_password_file: Optional[str] = None,
        env_password: Optional[str] = None
    ):
        """
        Args:
            password_file: Explicit password file (stack.yml ansible.vault_password_file)
            env_password_file: ANSIBLE_VAULT_PASSWORD_FILE
            env_password: ANSIBLE_VAULT_PASSWORD
        """
        self.password_file = password_file
        self.env_password_file = env_password_file
        self.env_password = env_password

    @classmethod
    def from_settings(cls, settings, password_file: Optional[str] = None) -> "VaultPasswordSource":
        return cls(
            password_file=password_file,
            env_password_file=settings.vault_password_file,
            env_password=settings.vault_password,
        )

    def _existing_file(self) -> Optional[Path]:
        for candidate in (self.password_file, self.env_password_file):
            path = _expand(candidate)
            if path is not None and path.is_file():
                return path
        return None

    @property
    def available(self) -> bool:
        return self._existing_file() is not None or bool(self.env_password)

    @contextmanager
    def password_file_path(self) -> Iterator[str]:
        """
        Yield a path to a file holding the vault password.

        Raises:
            VaultIOError: If no password source is available
        """
        existing = self._existing_file()
        if existing is not None:
            yield str(existing)
            return

        if not self.env_password:
            raise VaultIOError(
                "Vault password required. Set ansible.vault_password_file in stack.yml, "
                "or ANSIBLE_VAULT_PASSWORD_FILE / ANSIBLE_VAULT_PASSWORD."
            )

        fd, tmp_path = tempfile.mkstemp(prefix="stackfix-vault-pass-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.env_password)
            yield tmp_path
        finally:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass


class AnsibleVaultCipher:
    """Encrypts and decrypts vault files with the ansible-vault CLI."""

    def __init__(
        self,
        password_source: VaultPasswordSource,
        executable: str = "ansible-vault",
        timeout: int = 60
    ):
        self.password_source = password_source
        self.executable = executable
        self.timeout = timeout

    def decrypt(self, path: Union[str, Path]) -> str:
        """Return the decrypted content of an encrypted file."""
        with self.password_source.password_file_path() as password_file:
            return self._run(["view", str(path), "--vault-password-file", password_file])

    def encrypt(self, plaintext: str, output: Union[str, Path]) -> None:
        """Encrypt ``plaintext`` into ``output``."""
        fd, plain_path = tempfile.mkstemp(prefix="stackfix-vault-edit-", suffix=".yml")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(plaintext)
            with self.password_source.password_file_path() as password_file:
                self._run([
                    "encrypt", plain_path,
                    f"--output={output}",
                    "--vault-password-file", password_file,
                ])
        finally:
            try:
                os.unlink(plain_path)
            except FileNotFoundError:
                pass

    def _run(self, args: List[str]) -> str:
        command = [self.executable] + args
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise VaultIOError(f"{self.executable} not found on PATH (install ansible-core)") from e
        except subprocess.TimeoutExpired as e:
            raise VaultIOError(f"ansible-vault {args[0]} timed out after {self.timeout}s") from e

        if completed.returncode != 0:
            raise VaultIOError(
                f"ansible-vault {args[0]} failed: {completed.stderr.strip() or completed.returncode}"
            )
        return completed.stdout
