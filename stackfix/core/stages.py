"""
Stage/environment mapping.

``classify`` is strict and is used to validate user input and config at load
time. ``select_for_stage`` is lenient: it iterates existing config and skips
environments it cannot classify.
"""

import logging
from typing import Dict, Mapping, Optional, Set, TypeVar, Union

from .errors import StageClassificationError
from .models import Stage

logger = logging.getLogger(__name__)

T = TypeVar("T")


def classify(name: str) -> Stage:
    """
    Map an environment name to its stage.

    Args:
        name: Environment name (e.g. 'staging2', 'production')

    Returns:
        The stage for the name

    Raises:
        StageClassificationError: If the name matches no stage pattern
    """
    if name == "dev":
        return Stage.DEV
    if name == "secrets":
        return Stage.SECRETS
    if name.startswith("staging") or name.startswith("stage-"):
        return Stage.STAGING
    if name.startswith("prod") or name == "production":
        return Stage.PROD
    raise StageClassificationError(name)


def select_for_stage(
    environments: Mapping[str, T],
    stage: Union[Stage, str],
    warned: Optional[Set[str]] = None
) -> Dict[str, T]:
    """
    Return the environments belonging to ``stage``, in their original order.

    Environments whose names cannot be classified are skipped with a warning.
    Names already in ``warned`` are skipped silently; newly warned names are
    added to it.
    """
    stage = Stage(stage)
    selected = {}
    for name, environment in environments.items():
        try:
            env_stage = classify(name)
        except StageClassificationError:
            if warned is None or name not in warned:
                logger.warning(f"Skipping environment '{name}': name does not match any stage")
                if warned is not None:
                    warned.add(name)
            continue
        if env_stage == stage:
            selected[name] = environment
    return selected


def parse_stage(value: str) -> Stage:
    """Parse a stage name given on the command line."""
    try:
        return Stage(value.strip().lower())
    except ValueError:
        valid = ", ".join(s.value for s in Stage)
        raise ValueError(f"Unknown stage '{value}'. Valid stages: {valid}")
