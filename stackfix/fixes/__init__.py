"""
Built-in fix sources.

Registration order is the order fixes run within a stage: local files,
then the vault, then cloud networking, then the servers themselves.
"""

from typing import List

from ..core.models import Fix
from ..core.registry import FixRegistry
from . import aws, env_files, secrets, server


def builtin_fixes(config) -> List[Fix]:
    required = list(config.required_env_vars)
    return (
        env_files.build_fixes(required)
        + secrets.build_fixes(required)
        + aws.build_fixes()
        + server.build_fixes()
    )


def build_registry(config) -> FixRegistry:
    """Registry holding every built-in fix for ``config``."""
    registry = FixRegistry()
    registry.register_all(builtin_fixes(config))
    return registry


__all__ = ["build_registry", "builtin_fixes"]
