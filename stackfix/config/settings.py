"""
Configuration settings for stackfix.

Uses Pydantic Settings for environment variable management with validation.
AWS credentials follow the default boto3 credential chain unless explicit keys
are set. Vault password settings use the standard ansible-vault variables.
"""

from typing import Optional
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS Configuration
    # Note: leave keys unset to let boto3 use the default credential chain
    aws_region: str = Field(default="us-east-1")
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    aws_session_token: Optional[str] = Field(default=None)
    aws_profile: Optional[str] = Field(default=None)

    # Stack configuration
    stack_config_file: str = Field(default="stack.yml")

    # Vault Configuration
    vault_path: Optional[str] = Field(default=None, validation_alias=AliasChoices("vault_path", "STACK_VAULT_PATH"))
    vault_password_file: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("vault_password_file", "ANSIBLE_VAULT_PASSWORD_FILE"),
    )
    vault_password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("vault_password", "ANSIBLE_VAULT_PASSWORD"),
    )
    ansible_vault_bin: str = Field(default="ansible-vault")
    vault_timeout: int = Field(default=60)

    # SSH Configuration
    ssh_dir: str = Field(default="~/.ssh")
    ssh_connect_timeout: int = Field(default=10)
    ssh_command_timeout: int = Field(default=600)  # 10 minutes
    ssh_prompt_attempts: int = Field(default=3)
    interactive: bool = Field(default=True, validation_alias=AliasChoices("interactive", "STACK_INTERACTIVE"))
    on_server: bool = Field(default=False, validation_alias=AliasChoices("on_server", "STACK_ON_SERVER"))

    # Reconciliation
    max_passes: int = Field(default=5)
    max_concurrent_checks: int = Field(default=4)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text")
    enable_debug_logs: bool = Field(default=False)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format is supported."""
        valid_formats = ["json", "text"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v.lower()

    @field_validator("ssh_connect_timeout")
    @classmethod
    def validate_ssh_connect_timeout(cls, v):
        """Validate SSH connect timeout is reasonable."""
        if not 1 <= v <= 120:
            raise ValueError("SSH connect timeout must be between 1 and 120 seconds")
        return v

    @field_validator("ssh_command_timeout")
    @classmethod
    def validate_ssh_command_timeout(cls, v):
        """Validate remote command timeout is reasonable."""
        if not 10 <= v <= 3600:  # 10 seconds to 1 hour
            raise ValueError("SSH command timeout must be between 10 and 3600 seconds")
        return v

    @field_validator("ssh_prompt_attempts")
    @classmethod
    def validate_prompt_attempts(cls, v):
        if not 1 <= v <= 5:
            raise ValueError("SSH prompt attempts must be between 1 and 5")
        return v

    @field_validator("max_passes")
    @classmethod
    def validate_max_passes(cls, v):
        """Validate the reconciliation pass budget."""
        if not 1 <= v <= 50:
            raise ValueError("Max passes must be between 1 and 50")
        return v

    @field_validator("max_concurrent_checks")
    @classmethod
    def validate_max_concurrent_checks(cls, v):
        if not 1 <= v <= 16:
            raise ValueError("Max concurrent checks must be between 1 and 16")
        return v

    @field_validator("vault_timeout")
    @classmethod
    def validate_vault_timeout(cls, v):
        if not 5 <= v <= 600:
            raise ValueError("Vault timeout must be between 5 and 600 seconds")
        return v

    def get_aws_credentials(self) -> dict:
        """
        Get AWS credentials dictionary for boto3 session creation.

        Returns empty dict when using the default credential chain.

        Returns:
            Dictionary containing AWS credentials, or empty dict for default chain
        """
        credentials = {}

        if self.aws_access_key_id and self.aws_secret_access_key:
            credentials["aws_access_key_id"] = self.aws_access_key_id
            credentials["aws_secret_access_key"] = self.aws_secret_access_key

            # Session token is optional (for temporary credentials)
            if self.aws_session_token:
                credentials["aws_session_token"] = self.aws_session_token

        if self.aws_profile:
            credentials["profile_name"] = self.aws_profile

        return credentials

    def is_using_credential_chain(self) -> bool:
        """
        Check if we're using the default AWS credential chain.

        Returns:
            True if using default credential chain (aws-vault, IAM roles, etc.)
        """
        return not (self.aws_access_key_id and self.aws_secret_access_key)
