"""
Error taxonomy for scan/fix reconciliation.

Errors are recovered at the smallest possible scope (one fix, one credential
attempt, one vault write) and converted into structured outcomes. A missing
prerequisite is not an error: detection predicates report it as "no drift".
"""

from typing import List, Optional


class StackfixError(Exception):
    """Base class for all stackfix errors."""


class ConfigError(StackfixError):
    """stack.yml or settings could not be loaded or validated."""


class StageClassificationError(ConfigError, ValueError):
    """An environment name does not map to any stage."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Cannot determine stage for environment: {name}. "
            "Environment names must start with 'staging', 'stage-' or 'prod', "
            "or be 'dev', 'secrets' or 'production'."
        )


class DuplicateFixError(StackfixError):
    """A fix id was registered twice."""


class RegistryFrozenError(StackfixError):
    """The registry is read-only once reconciliation has started."""


class DetectionError(StackfixError):
    """A detection predicate failed to execute."""

    def __init__(self, fix_id: str, message: str):
        self.fix_id = fix_id
        super().__init__(f"{fix_id}: {message}")


class RemediationFailure(StackfixError):
    """A remediation ran and did not succeed."""

    def __init__(self, fix_id: str, message: str):
        self.fix_id = fix_id
        super().__init__(f"{fix_id}: {message}")


class VaultIOError(StackfixError):
    """Encryption, decryption or file I/O on the vault failed."""


class RemoteCommandError(StackfixError):
    """A remote command exited with a non-zero status."""

    def __init__(self, command: str, exit_status: int, stderr: str = "", host: Optional[str] = None):
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        self.host = host
        where = f" on {host}" if host else ""
        detail = stderr.strip() or "no output"
        super().__init__(f"Command failed{where} (exit {exit_status}): {detail}")


class CredentialUnavailableError(StackfixError):
    """No authentication method worked for a host.

    Raised only at the remote execution seam; the credential resolver itself
    returns a ``CredentialUnavailable`` value.
    """

    def __init__(self, failure):
        self.failure = failure
        super().__init__(str(failure))

    @property
    def attempted(self) -> List[str]:
        return list(self.failure.attempted)
