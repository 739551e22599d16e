"""
Unit tests for SSHTransport and RemoteExecutor.
"""

import os
import subprocess
import sys
import unittest
from unittest.mock import Mock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from stackfix.config.stack_config import Environment
from stackfix.core.errors import ConfigError, CredentialUnavailableError, RemoteCommandError
from stackfix.core.models import Stage
from stackfix.remote.credentials import Credential, CredentialMethod, CredentialUnavailable
from stackfix.remote.ssh import CommandResult, RemoteExecutor, SSHTransport


def key_credential():
    return Credential(Stage.PROD, "prod.example.com", "ubuntu", CredentialMethod.KEY_FILE, key_path="/k/prod_deploy_key")


def password_credential():
    return Credential(Stage.PROD, "prod.example.com", "ubuntu", CredentialMethod.VAULT_PASSWORD, password="pw")


class TestSSHTransport(unittest.TestCase):
    """Test cases for SSHTransport."""

    def setUp(self):
        self.transport = SSHTransport(connect_timeout=7, command_timeout=30)

    def test_key_file_command(self):
        argv, env = self.transport.build_command("h", "ubuntu", key_credential(), "uptime")

        self.assertEqual(argv[:3], ["ssh", "-i", "/k/prod_deploy_key"])
        self.assertIn("BatchMode=yes", argv)
        self.assertIn("ConnectTimeout=7", argv)
        self.assertEqual(argv[-2:], ["ubuntu@h", "uptime"])
        self.assertEqual(env, {})

    def test_password_never_on_command_line(self):
        argv, env = self.transport.build_command("h", "ubuntu", password_credential(), "uptime")

        self.assertEqual(argv[:3], ["sshpass", "-e", "ssh"])
        self.assertNotIn("pw", argv)
        self.assertEqual(env, {"SSHPASS": "pw"})

    @patch("stackfix.remote.ssh.subprocess.run")
    def test_run_passes_timeout_and_env(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="ok\n", stderr="")

        result = self.transport.run("h", "ubuntu", password_credential(), "uptime")

        self.assertEqual(result.exit_status, 0)
        kwargs = mock_run.call_args[1]
        self.assertEqual(kwargs["timeout"], 30)
        self.assertEqual(kwargs["env"]["SSHPASS"], "pw")

    @patch("stackfix.remote.ssh.subprocess.run")
    def test_missing_binary_and_timeout(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        with self.assertRaises(RemoteCommandError) as ctx:
            self.transport.run("h", "u", key_credential(), "true")
        self.assertEqual(ctx.exception.exit_status, 127)

        mock_run.side_effect = subprocess.TimeoutExpired("ssh", 30)
        with self.assertRaises(RemoteCommandError) as ctx:
            self.transport.run("h", "u", key_credential(), "true")
        self.assertEqual(ctx.exception.exit_status, 124)

    @patch("stackfix.remote.ssh.subprocess.run")
    def test_probe(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")
        self.assertTrue(self.transport.probe("h", "u", key_credential()))
        self.assertEqual(mock_run.call_args[1]["timeout"], 12)

        mock_run.return_value = Mock(returncode=255, stdout="", stderr="Permission denied")
        self.assertFalse(self.transport.probe("h", "u", key_credential()))

        mock_run.side_effect = subprocess.TimeoutExpired("ssh", 12)
        self.assertFalse(self.transport.probe("h", "u", key_credential()))


class TestRemoteExecutor(unittest.TestCase):
    """Test cases for RemoteExecutor."""

    def setUp(self):
        self.resolver = Mock()
        self.resolver.resolve.return_value = key_credential()
        self.transport = Mock()
        self.transport.run.return_value = CommandResult(0, "  docker 24.0\n", "")
        self.executor = RemoteExecutor(self.resolver, self.transport)
        self.environment = Environment(name="prod", domain="prod.example.com")

    def test_exec_returns_stripped_stdout(self):
        output = self.executor.exec(self.environment, "docker --version")

        self.assertEqual(output, "docker 24.0")
        self.resolver.resolve.assert_called_once_with(Stage.PROD, "prod.example.com", "ubuntu")
        self.transport.run.assert_called_once_with("prod.example.com", "ubuntu", key_credential(), "docker --version")

    def test_non_zero_exit_raises_with_stderr(self):
        self.transport.run.return_value = CommandResult(2, "", "No such file\n")

        with self.assertRaises(RemoteCommandError) as ctx:
            self.executor.exec(self.environment, "cat missing")

        self.assertEqual(ctx.exception.exit_status, 2)
        self.assertEqual(ctx.exception.stderr, "No such file\n")
        self.assertEqual(ctx.exception.command, "cat missing")
        self.assertEqual(ctx.exception.host, "prod.example.com")

    def test_credentials_resolved_once_per_pass(self):
        self.executor.exec(self.environment, "a")
        self.executor.exec(self.environment, "b")
        self.assertEqual(self.resolver.resolve.call_count, 1)

        self.executor.reset_pass_state()
        self.executor.exec(self.environment, "c")
        self.assertEqual(self.resolver.resolve.call_count, 2)

    def test_unreachable_host_fails_fast_until_next_pass(self):
        failure = CredentialUnavailable(Stage.PROD, "prod.example.com", "ubuntu", [CredentialMethod.KEY_FILE])
        self.resolver.resolve.return_value = failure

        for _ in range(2):
            with self.assertRaises(CredentialUnavailableError) as ctx:
                self.executor.exec(self.environment, "true")
            self.assertEqual(ctx.exception.attempted, [CredentialMethod.KEY_FILE])
        self.assertEqual(self.resolver.resolve.call_count, 1)
        self.transport.run.assert_not_called()

        self.executor.reset_pass_state()
        with self.assertRaises(CredentialUnavailableError):
            self.executor.exec(self.environment, "true")
        self.assertEqual(self.resolver.resolve.call_count, 2)

    def test_explicit_stage_overrides_environment(self):
        self.executor.exec(self.environment, "true", stage=Stage.STAGING)
        self.resolver.resolve.assert_called_once_with(Stage.STAGING, "prod.example.com", "ubuntu")

    def test_environment_without_host(self):
        with self.assertRaises(ConfigError):
            self.executor.exec(Environment(name="prod"), "true")

    def test_on_server_runs_locally(self):
        self.transport.run_local.return_value = CommandResult(0, "local\n", "")
        executor = RemoteExecutor(self.resolver, self.transport, on_server=True)

        self.assertEqual(executor.exec(self.environment, "hostname"), "local")
        self.resolver.resolve.assert_not_called()
        self.transport.run.assert_not_called()


if __name__ == "__main__":
    unittest.main()
