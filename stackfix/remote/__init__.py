"""SSH credentials and remote command execution."""

from .credentials import (
    Credential,
    CredentialMethod,
    CredentialResolver,
    CredentialUnavailable,
    PasswordPrompt,
)
from .ssh import CommandResult, RemoteExecutor, SSHTransport

__all__ = [
    "Credential",
    "CredentialMethod",
    "CredentialResolver",
    "CredentialUnavailable",
    "PasswordPrompt",
    "CommandResult",
    "RemoteExecutor",
    "SSHTransport",
]
