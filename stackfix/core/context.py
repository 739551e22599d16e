"""
Reconciliation context.

The single object handed to every detect/remediate call. It carries the loaded
stack config and project root (the ``(config, root_dir)`` pair of the fix
contract) plus the collaborators fixes may use: the secrets vault, remote
command execution and the cloud provider.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Optional, Set

from .models import Stage
from .stages import select_for_stage

logger = logging.getLogger(__name__)


class ReconcileContext:
    """State shared by the scan engine and fix executor for one run."""

    def __init__(
        self,
        config,
        root_dir: Path,
        settings=None,
        vault=None,
        remote=None,
        provider_factory: Optional[Callable[[], object]] = None
    ):
        """
        Initialize the context.

        Args:
            config: Loaded stack.yml
            root_dir: Project root directory
            settings: Application settings
            vault: SecretsVault, or None when no vault is configured
            remote: RemoteExecutor for commands on environment hosts
            provider_factory: Builds the cloud provider on first use
        """
        self.config = config
        self.root_dir = Path(root_dir)
        self.settings = settings
        self.vault = vault
        self.remote = remote
        self._provider_factory = provider_factory
        self._provider = None
        self._skipped_environments: Set[str] = set()

    @property
    def provider(self):
        """Cloud provider API, created lazily so stages without cloud fixes never need credentials."""
        if self._provider is None:
            if self._provider_factory is None:
                raise RuntimeError("No cloud provider configured")
            self._provider = self._provider_factory()
        return self._provider

    def environments_for(self, stage: Stage) -> Dict[str, object]:
        return select_for_stage(self.config.environments, stage, warned=self._skipped_environments)

    def begin_pass(self) -> None:
        """Reset per-pass state before a scan."""
        if self.remote is not None:
            self.remote.reset_pass_state()
