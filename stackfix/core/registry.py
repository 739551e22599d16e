"""
Fix registry.

Fix sources register their fixes once at process start. Registration order is
the dependency hint: a fix that provisions a prerequisite is registered before
the fix that consumes it.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Union

from .errors import DuplicateFixError, RegistryFrozenError
from .models import ALL_STAGES, Fix, Stage

logger = logging.getLogger(__name__)


class FixRegistry:
    """Append-only, ordered collection of fixes."""

    def __init__(self, fixes: Optional[Iterable[Fix]] = None):
        self._fixes: List[Fix] = []
        self._by_id: Dict[str, Fix] = {}
        self._frozen = False
        if fixes:
            self.register_all(fixes)

    def register(self, fix: Fix) -> Fix:
        """
        Add a fix to the registry.

        Raises:
            DuplicateFixError: If a fix with the same id is already registered
            RegistryFrozenError: If reconciliation has already started
        """
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register {fix.id}: registry is frozen")
        if fix.id in self._by_id:
            raise DuplicateFixError(f"Fix id already registered: {fix.id}")
        self._fixes.append(fix)
        self._by_id[fix.id] = fix
        logger.debug(f"Registered fix {fix.id} ({fix.stage.value}/{fix.severity.value})")
        return fix

    def register_all(self, fixes: Iterable[Fix]) -> None:
        for fix in fixes:
            self.register(fix)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def for_stage(self, stage: Union[Stage, str]) -> List[Fix]:
        """Fixes for ``stage`` in registration order."""
        stage = Stage(stage)
        return [fix for fix in self._fixes if fix.stage == stage]

    def get(self, fix_id: str) -> Optional[Fix]:
        return self._by_id.get(fix_id)

    def stages(self) -> List[Stage]:
        """Stages that have at least one fix, in canonical order."""
        present = {fix.stage for fix in self._fixes}
        return [stage for stage in ALL_STAGES if stage in present]

    def __len__(self) -> int:
        return len(self._fixes)

    def __iter__(self) -> Iterator[Fix]:
        return iter(list(self._fixes))

    def __contains__(self, fix_id: object) -> bool:
        return fix_id in self._by_id
