"""
Unit tests for the secrets vault and the ansible-vault cipher.

The vault is exercised with an in-memory cipher so no ansible-vault binary
is needed; the cipher itself is tested with subprocess patched.
"""

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from stackfix.core.errors import VaultIOError
from stackfix.core.models import Stage
from stackfix.vault.cipher import AnsibleVaultCipher, VaultPasswordSource
from stackfix.vault.secrets import SecretsVault, env_secrets_key, ssh_key_secret_name, ssh_password_secret_name


class FakeCipher:
    """Reversible "encryption" that just tags the plaintext."""

    PREFIX = "FAKE-VAULT\n"

    def __init__(self):
        self.fail_encrypt = False
        self.fail_decrypt = False

    def decrypt(self, path):
        if self.fail_decrypt:
            raise VaultIOError("Decryption failed (wrong password?)")
        content = Path(path).read_text(encoding="utf-8")
        assert content.startswith(self.PREFIX)
        return content[len(self.PREFIX):]

    def encrypt(self, plaintext, output):
        # Write partially, then fail, to look like an interrupted write.
        Path(output).write_text(self.PREFIX + plaintext[: len(plaintext) // 2], encoding="utf-8")
        if self.fail_encrypt:
            raise VaultIOError("ansible-vault encrypt failed: killed")
        Path(output).write_text(self.PREFIX + plaintext, encoding="utf-8")


class TestSecretNames(unittest.TestCase):
    """Test cases for secret naming helpers."""

    def test_names(self):
        self.assertEqual(env_secrets_key(Stage.STAGING), "staging_envs")
        self.assertEqual(ssh_key_secret_name("prod"), "PROD_SSH")
        self.assertEqual(ssh_password_secret_name(Stage.PROD), "PROD_SSH_PASSWORD")


class TestSecretsVault(unittest.TestCase):
    """Test cases for SecretsVault."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "group_vars" / "all" / "vault.yml"
        self.cipher = FakeCipher()
        self.vault = SecretsVault(self.path, self.cipher)

    def tearDown(self):
        self.tmp.cleanup()

    def _leftover_temp_files(self):
        return [p for p in self.path.parent.iterdir() if p.name.endswith(".tmp")]

    def test_missing_vault_reads_empty(self):
        self.assertFalse(self.vault.exists)
        self.assertEqual(self.vault.read(), {})
        self.assertIsNone(self.vault.get_secret("ANY"))

    def test_ensure_vault_exists_is_idempotent(self):
        self.assertTrue(self.vault.ensure_vault_exists())
        self.assertTrue(self.vault.exists)
        self.assertFalse(self.vault.ensure_vault_exists())
        self.assertEqual(self.vault.read(), {})

    def test_set_then_get(self):
        self.vault.set_secret("PROD_SSH", "-----BEGIN KEY-----\nabc\n")
        self.vault.set_secret("API_TOKEN", "t0k3n")

        self.assertEqual(self.vault.get_secret("PROD_SSH"), "-----BEGIN KEY-----\nabc\n")
        self.assertEqual(self.vault.get_ssh_key(Stage.PROD), "-----BEGIN KEY-----\nabc\n")
        self.assertEqual(self.vault.get_secret("API_TOKEN"), "t0k3n")
        self.assertEqual(self._leftover_temp_files(), [])

    def test_content_has_header(self):
        self.vault.set_secret("A", "1")
        raw = self.path.read_text(encoding="utf-8")
        self.assertIn("# stackfix secrets", raw)

    def test_interrupted_write_leaves_previous_content(self):
        self.vault.set_secret("KEEP", "original")
        before = self.path.read_bytes()

        self.cipher.fail_encrypt = True
        with self.assertRaises(VaultIOError):
            self.vault.set_secret("NEW", "value")

        self.assertEqual(self.path.read_bytes(), before)
        self.cipher.fail_encrypt = False
        self.assertEqual(self.vault.get_secret("KEEP"), "original")
        self.assertIsNone(self.vault.get_secret("NEW"))
        self.assertEqual(self._leftover_temp_files(), [])

    def test_unreadable_vault_raises_not_none(self):
        self.vault.set_secret("A", "1")
        self.cipher.fail_decrypt = True
        with self.assertRaises(VaultIOError):
            self.vault.get_secret("A")

    def test_failed_read_aborts_write(self):
        self.vault.set_secret("A", "1")
        before = self.path.read_bytes()
        self.cipher.fail_decrypt = True
        with self.assertRaises(VaultIOError):
            self.vault.set_secret("B", "2")
        self.assertEqual(self.path.read_bytes(), before)

    def test_check_secrets(self):
        self.vault.set_secret("PRESENT", "x")
        self.vault.set_secret("BLANK", "   ")

        check = self.vault.check_secrets(["PRESENT", "BLANK", "ABSENT"])

        self.assertEqual(check.present, ["PRESENT"])
        self.assertEqual(check.missing, ["BLANK", "ABSENT"])
        self.assertFalse(check.complete)

    def test_environment_secrets_are_nested_per_stage(self):
        self.vault.set_environment_secret(Stage.STAGING, "DATABASE_URL", "postgres://s")
        self.vault.set_environment_secrets(Stage.PROD, {"DATABASE_URL": "postgres://p", "DEBUG": "0"})
        self.vault.set_environment_secret(Stage.PROD, "DEBUG", "1")

        self.assertEqual(self.vault.get_environment_secrets(Stage.STAGING), {"DATABASE_URL": "postgres://s"})
        self.assertEqual(
            self.vault.get_environment_secrets("prod"),
            {"DATABASE_URL": "postgres://p", "DEBUG": "1"},
        )
        self.assertEqual(self.vault.list_environment_secret_keys(Stage.PROD), ["DATABASE_URL", "DEBUG"])
        self.assertIn("prod_envs", self.vault.read())

    def test_delete_secret(self):
        self.vault.set_secret("A", "1")
        self.assertTrue(self.vault.delete_secret("A"))
        self.assertFalse(self.vault.delete_secret("A"))
        self.assertIsNone(self.vault.get_secret("A"))

    def test_from_config_without_path(self):
        config = Mock(vault_path=None, vault_password_file=None)
        settings = Mock(vault_path=None)
        self.assertIsNone(SecretsVault.from_config(config, settings, self.tmp.name))

    def test_from_config_resolves_relative_path(self):
        config = Mock(vault_path="group_vars/all/vault.yml", vault_password_file="~/.vault_pass")
        settings = Mock(
            vault_path=None,
            vault_password_file=None,
            vault_password=None,
            ansible_vault_bin="ansible-vault",
            vault_timeout=30,
        )
        vault = SecretsVault.from_config(config, settings, self.tmp.name)
        self.assertEqual(vault.path, Path(self.tmp.name) / "group_vars/all/vault.yml")
        self.assertEqual(vault.cipher.password_source.password_file, "~/.vault_pass")

    def test_from_config_warns_without_password_source(self):
        config = Mock(vault_path="vault.yml", vault_password_file=None)
        settings = Mock(
            vault_path=None,
            vault_password_file=None,
            vault_password=None,
            ansible_vault_bin="ansible-vault",
            vault_timeout=30,
        )
        with self.assertLogs("stackfix.vault.secrets", level="WARNING") as logs:
            vault = SecretsVault.from_config(config, settings, self.tmp.name)
        self.assertIsNotNone(vault)
        self.assertTrue(any("No vault password" in line for line in logs.output))


class TestVaultPasswordSource(unittest.TestCase):
    """Test cases for VaultPasswordSource."""

    def test_explicit_file_wins(self):
        with tempfile.NamedTemporaryFile("w", delete=False) as explicit, \
                tempfile.NamedTemporaryFile("w", delete=False) as from_env:
            pass
        try:
            source = VaultPasswordSource(explicit.name, from_env.name, "secret")
            with source.password_file_path() as path:
                self.assertEqual(path, explicit.name)
        finally:
            os.unlink(explicit.name)
            os.unlink(from_env.name)

    def test_missing_explicit_file_falls_back_to_env_file(self):
        with tempfile.NamedTemporaryFile("w", delete=False) as from_env:
            pass
        try:
            source = VaultPasswordSource("/nonexistent/pass", from_env.name, None)
            with source.password_file_path() as path:
                self.assertEqual(path, from_env.name)
        finally:
            os.unlink(from_env.name)

    def test_password_value_written_to_temp_file_and_removed(self):
        source = VaultPasswordSource(env_password="hunter2")
        with source.password_file_path() as path:
            self.assertEqual(Path(path).read_text(), "hunter2")
            self.assertEqual(os.stat(path).st_mode & 0o777, 0o600)
        self.assertFalse(os.path.exists(path))

    def test_temp_file_removed_on_failure(self):
        source = VaultPasswordSource(env_password="hunter2")
        with self.assertRaises(RuntimeError):
            with source.password_file_path() as path:
                raise RuntimeError("boom")
        self.assertFalse(os.path.exists(path))

    def test_no_source(self):
        source = VaultPasswordSource()
        self.assertFalse(source.available)
        with self.assertRaises(VaultIOError):
            with source.password_file_path():
                pass


class TestAnsibleVaultCipher(unittest.TestCase):
    """Test cases for AnsibleVaultCipher."""

    def setUp(self):
        self.cipher = AnsibleVaultCipher(VaultPasswordSource(env_password="pw"), timeout=5)

    @patch("stackfix.vault.cipher.subprocess.run")
    def test_decrypt_runs_view(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="A: '1'\n", stderr="")

        self.assertEqual(self.cipher.decrypt("vault.yml"), "A: '1'\n")

        command = mock_run.call_args[0][0]
        self.assertEqual(command[:3], ["ansible-vault", "view", "vault.yml"])
        self.assertIn("--vault-password-file", command)
        self.assertEqual(mock_run.call_args[1]["timeout"], 5)

    @patch("stackfix.vault.cipher.subprocess.run")
    def test_encrypt_writes_to_output(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

        self.cipher.encrypt("A: 1\n", "/tmp/out.yml")

        command = mock_run.call_args[0][0]
        self.assertEqual(command[1], "encrypt")
        self.assertIn("--output=/tmp/out.yml", command)
        self.assertFalse(os.path.exists(command[2]))

    @patch("stackfix.vault.cipher.subprocess.run")
    def test_non_zero_exit_raises(self, mock_run):
        mock_run.return_value = Mock(returncode=1, stdout="", stderr="Decryption failed")
        with self.assertRaises(VaultIOError) as ctx:
            self.cipher.decrypt("vault.yml")
        self.assertIn("Decryption failed", str(ctx.exception))

    @patch("stackfix.vault.cipher.subprocess.run")
    def test_missing_binary_and_timeout(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        with self.assertRaises(VaultIOError):
            self.cipher.decrypt("vault.yml")

        mock_run.side_effect = subprocess.TimeoutExpired("ansible-vault", 5)
        with self.assertRaises(VaultIOError):
            self.cipher.decrypt("vault.yml")


if __name__ == "__main__":
    unittest.main()
