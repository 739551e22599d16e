"""
stack.yml loading.

Top-level keys are either reserved settings (name, ansible, aws, ...) or
environments. Every mapping-valued key that is not reserved is an
environment, and its name decides its stage.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import ConfigError, StageClassificationError
from ..core.models import Stage
from ..core.stages import classify

logger = logging.getLogger(__name__)

RESERVED_CONFIG_KEYS = (
    "name",
    "config_version",
    "github_repo",
    "ssl_email",
    "pipeline",
    "prisma_schema",
    "prisma_version",
    "container_exclusions",
    "trusted_plugins",
    "ansible",
    "aws",
    "required_env_vars",
    "env_match_exceptions",
)


class AnsibleConfig(BaseModel):
    """Vault location and password file from the ``ansible`` block."""
    model_config = ConfigDict(extra="allow")

    vault_path: Optional[str] = None
    vault_password_file: Optional[str] = None


class AwsConfig(BaseModel):
    """Project-wide AWS options from the ``aws`` block."""
    model_config = ConfigDict(extra="allow")

    region: Optional[str] = None
    cidr_block: str = "10.0.0.0/16"
    public_subnet_cidr: str = "10.0.1.0/24"


class Environment(BaseModel):
    """
    A named deployment target.

    Only ``domain``/``host`` and ``ssh_user`` are read for SSH targeting; other
    keys pass through to provider-specific fixes.
    """
    model_config = ConfigDict(extra="allow")

    name: str
    domain: Optional[str] = None
    host: Optional[str] = None
    ssh_user: str = "ubuntu"
    pipeline: Optional[str] = None
    server: Optional[str] = None
    access_key_id: Optional[str] = None
    region: Optional[str] = None

    @property
    def stage(self) -> Stage:
        return classify(self.name)

    @property
    def target_host(self) -> Optional[str]:
        return self.host or self.domain

    @property
    def uses_aws(self) -> bool:
        return self.pipeline == "aws" or bool(self.access_key_id)


class StackConfig(BaseModel):
    """Parsed stack.yml."""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    config_version: Optional[str] = None
    ansible: Optional[AnsibleConfig] = None
    aws: Optional[AwsConfig] = None
    required_env_vars: List[str] = Field(default_factory=list)
    environments: Dict[str, Environment] = Field(default_factory=dict)
    source_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], strict: bool = True) -> "StackConfig":
        """
        Build a config from the decoded YAML mapping.

        Args:
            data: Decoded stack.yml content
            strict: Reject environment names that do not map to a stage

        Raises:
            ConfigError: On invalid structure or, when strict, an
                unclassifiable environment name
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("stack.yml must contain a mapping at the top level")

        reserved = {k: v for k, v in data.items() if k in RESERVED_CONFIG_KEYS}
        environments = {}
        for key, value in data.items():
            if key in RESERVED_CONFIG_KEYS or not isinstance(value, dict):
                continue
            if strict:
                try:
                    classify(key)
                except StageClassificationError as e:
                    raise ConfigError(str(e)) from e
            try:
                environments[key] = Environment(**{**value, "name": key})
            except ValidationError as e:
                raise ConfigError(f"Invalid environment '{key}': {e}") from e

        try:
            return cls(environments=environments, **reserved)
        except ValidationError as e:
            raise ConfigError(f"Invalid stack.yml: {e}") from e

    @property
    def project_name(self) -> str:
        return self.name or "stack"

    @property
    def vault_path(self) -> Optional[str]:
        return self.ansible.vault_path if self.ansible else None

    @property
    def vault_password_file(self) -> Optional[str]:
        return self.ansible.vault_password_file if self.ansible else None

    def uses_aws(self) -> bool:
        """AWS fixes apply when an aws block exists or any environment uses the aws pipeline."""
        return self.aws is not None or any(env.uses_aws for env in self.environments.values())

    def aws_region(self, default: str = "us-east-1") -> str:
        if self.aws and self.aws.region:
            return self.aws.region
        for env in self.environments.values():
            if env.uses_aws and env.region:
                return env.region
        return default

    def stages(self) -> List[Stage]:
        """Stages that have at least one environment (leniently classified)."""
        found = set()
        for name in self.environments:
            try:
                found.add(classify(name))
            except StageClassificationError:
                continue
        return [s for s in Stage if s in found]


def load_stack_config(path: Union[str, Path], strict: bool = True) -> StackConfig:
    """
    Load stack.yml from disk.

    A missing file yields an empty config; unreadable or malformed YAML
    raises ConfigError.
    """
    path = Path(path)
    if not path.exists():
        logger.debug(f"No config file at {path}")
        config = StackConfig()
        config.source_path = path
        return config

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error parsing {path.name}: {e}") from e

    config = StackConfig.from_dict(data, strict=strict)
    config.source_path = path
    logger.debug(f"Loaded {path} with {len(config.environments)} environments")
    return config
