"""Expansion of one logical deployment step into concrete executions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import IteratorKind, ResolvedNetworkConfig
from .env import project_env
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Expansion:
    """Overrides for a single execution and its position in the iterator, if any."""

    overrides: Dict[str, str] = field(default_factory=dict)
    index: Optional[int] = None


def expand(
    config: ResolvedNetworkConfig,
    iterator_key: Optional[str] = None,
    script: Optional[str] = None,
) -> List[Expansion]:
    """
    Turn a step into 0..N executions.

    The field consulted is ``iterator_key`` when given, otherwise the script
    name. A list yields one expansion per element with a zero-based index, an
    explicit ``null`` yields nothing (the step is skipped on this network) and
    anything else yields exactly one expansion without an index.
    """
    key = iterator_key or script
    if not key:
        return [Expansion()]

    shape = config.iterator_for(key)

    if shape.kind is IteratorKind.MANY:
        return [
            Expansion(
                overrides=project_env(item),
                index=index,
            )
            for index, item in enumerate(shape.items)
        ]

    if shape.kind is IteratorKind.SKIP:
        logger.info("network=%s: Skipped deployment of %s", config.network.value, script or key)
        return []

    if iterator_key:
        reason = "is not a list" if iterator_key in config.values else "is not configured"
        logger.warning(
            "network=%s: iterator %s %s, running once",
            config.network.value,
            iterator_key,
            reason,
        )
    return [Expansion()]
