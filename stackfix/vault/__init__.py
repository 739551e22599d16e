"""Encrypted secrets storage."""

from .cipher import AnsibleVaultCipher, VaultPasswordSource
from .secrets import (
    SecretCheck,
    SecretsVault,
    env_secrets_key,
    ssh_key_secret_name,
    ssh_password_secret_name,
)

__all__ = [
    "AnsibleVaultCipher",
    "VaultPasswordSource",
    "SecretCheck",
    "SecretsVault",
    "env_secrets_key",
    "ssh_key_secret_name",
    "ssh_password_secret_name",
]
