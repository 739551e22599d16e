"""
Remote command execution.

Commands for an environment are run over SSH using the credential picked by
the CredentialResolver. Key files use plain ``ssh``; passwords go through
``sshpass`` with the password passed in the environment, never on the
command line. When running on the server itself commands run locally.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..core.errors import ConfigError, CredentialUnavailableError, RemoteCommandError
from ..core.models import Stage
from .credentials import Credential, CredentialMethod, CredentialResolver, CredentialUnavailable

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    exit_status: int
    stdout: str
    stderr: str


class SSHTransport:
    """Builds and runs ssh/sshpass invocations with bounded timeouts."""

    def __init__(
        self,
        connect_timeout: int = 10,
        command_timeout: int = 600,
        ssh_bin: str = "ssh",
        sshpass_bin: str = "sshpass"
    ):
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.ssh_bin = ssh_bin
        self.sshpass_bin = sshpass_bin

    @classmethod
    def from_settings(cls, settings) -> "SSHTransport":
        return cls(
            connect_timeout=settings.ssh_connect_timeout,
            command_timeout=settings.ssh_command_timeout,
        )

    def build_command(
        self,
        host: str,
        user: str,
        credential: Credential,
        command: str
    ) -> Tuple[List[str], Dict[str, str]]:
        """Return argv and extra environment for running ``command`` on ``host``."""
        options = [
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", f"ConnectTimeout={self.connect_timeout}",
        ]
        target = f"{user}@{host}"

        if credential.method == CredentialMethod.KEY_FILE:
            argv = [self.ssh_bin, "-i", credential.key_path, "-o", "BatchMode=yes"] + options + [target, command]
            return argv, {}

        argv = [
            self.sshpass_bin, "-e", self.ssh_bin,
            "-o", "PreferredAuthentications=password,keyboard-interactive",
            "-o", "PubkeyAuthentication=no",
        ] + options + [target, command]
        return argv, {"SSHPASS": credential.password or ""}

    def run(
        self,
        host: str,
        user: str,
        credential: Credential,
        command: str,
        timeout: Optional[int] = None
    ) -> CommandResult:
        argv, extra_env = self.build_command(host, user, credential, command)
        env = dict(os.environ, **extra_env) if extra_env else None
        return self._execute(argv, command, timeout or self.command_timeout, env=env, host=host)

    def run_local(self, command: str, timeout: Optional[int] = None) -> CommandResult:
        return self._execute(["/bin/sh", "-c", command], command, timeout or self.command_timeout)

    def probe(self, host: str, user: str, credential: Credential) -> bool:
        """Connectivity check: can we run ``true`` on the host?"""
        try:
            result = self.run(host, user, credential, "true", timeout=self.connect_timeout + 5)
        except RemoteCommandError as e:
            logger.debug(f"Probe of {user}@{host} failed: {e}")
            return False
        return result.exit_status == 0

    def _execute(self, argv, command, timeout, env=None, host=None) -> CommandResult:
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env,
            )
        except FileNotFoundError as e:
            raise RemoteCommandError(command, 127, f"{argv[0]} not found on PATH", host) from e
        except subprocess.TimeoutExpired as e:
            raise RemoteCommandError(command, 124, f"timed out after {timeout}s", host) from e
        return CommandResult(completed.returncode, completed.stdout, completed.stderr)


class RemoteExecutor:
    """
    Runs commands on environment hosts for fixes.

    A host for which no credential works stays unreachable until the next
    pass, so its remaining fixes fail fast instead of prompting again.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        transport: SSHTransport,
        on_server: bool = False
    ):
        self.resolver = resolver
        self.transport = transport
        self.on_server = on_server
        self._credentials: Dict[Tuple[Stage, str, str], Credential] = {}
        self._unreachable: Dict[Tuple[Stage, str, str], CredentialUnavailable] = {}

    def exec(self, environment, command: str, stage: Optional[Stage] = None) -> str:
        """
        Run ``command`` on an environment's host.

        Args:
            environment: Environment with domain/host and ssh_user
            command: Shell command to run remotely
            stage: Stage whose credentials to use (defaults to the environment's)

        Returns:
            Stripped stdout

        Raises:
            RemoteCommandError: If the command exits non-zero
            CredentialUnavailableError: If no authentication method works
        """
        if self.on_server:
            result = self.transport.run_local(command)
            return self._check(result, command, None)

        host = environment.target_host
        if not host:
            raise ConfigError(f"Environment '{environment.name}' has no domain or host")
        stage = Stage(stage) if stage is not None else environment.stage
        user = environment.ssh_user
        key = (stage, host, user)

        credential = self.credential_for(stage, host, user)
        logger.debug(f"Running on {user}@{host}: {command}")
        result = self.transport.run(host, user, credential, command)
        if result.exit_status == 255 and credential.method != CredentialMethod.KEY_FILE:
            # ssh reports connection/auth failures as 255
            self._credentials.pop(key, None)
        return self._check(result, command, host)

    def credential_for(self, stage: Stage, host: str, user: str) -> Credential:
        key = (stage, host, user)
        if key in self._unreachable:
            raise CredentialUnavailableError(self._unreachable[key])
        if key in self._credentials:
            return self._credentials[key]

        resolved = self.resolver.resolve(stage, host, user)
        if isinstance(resolved, CredentialUnavailable):
            self._unreachable[key] = resolved
            raise CredentialUnavailableError(resolved)
        self._credentials[key] = resolved
        return resolved

    def reset_pass_state(self) -> None:
        """Forget unreachable hosts and resolved credentials before a new pass."""
        self._unreachable.clear()
        self._credentials.clear()

    def _check(self, result: CommandResult, command: str, host: Optional[str]) -> str:
        if result.exit_status != 0:
            raise RemoteCommandError(command, result.exit_status, result.stderr, host)
        return result.stdout.strip()
