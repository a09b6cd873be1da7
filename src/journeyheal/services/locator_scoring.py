"""Selector priority scoring and forbidden-pattern filtering for locator candidates."""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from ..core.models.mapping_models import LocatorSpec, SelectorPolicy

logger = logging.getLogger(__name__)


@dataclass
class LocatorSelection:
    """The chosen locator and why the others were dropped."""
    locator: LocatorSpec
    all_forbidden: bool = False
    rejected: List[LocatorSpec] = field(default_factory=list)


def score_locator(locator: LocatorSpec, policy: Optional[SelectorPolicy] = None) -> int:
    """Index of the locator's strategy in the priority list; lower is better.

    Strategies missing from the list score worst (the list length).
    """
    policy = policy or SelectorPolicy()
    try:
        return policy.priority.index(locator.strategy)
    except ValueError:
        return len(policy.priority)


def is_forbidden(locator: LocatorSpec, policy: SelectorPolicy) -> bool:
    return any(re.search(pattern, locator.value) for pattern in policy.forbidden_patterns)


def select_best_locator(candidates: List[LocatorSpec],
                        policy: Optional[SelectorPolicy] = None) -> Optional[LocatorSelection]:
    """Pick the best allowed candidate.

    Forbidden candidates are dropped before scoring; ties keep input order.
    If every candidate is forbidden the first one is returned with
    ``all_forbidden`` set, and the caller should surface a warning.
    """
    if not candidates:
        return None

    policy = policy or SelectorPolicy()
    allowed: List[LocatorSpec] = []
    rejected: List[LocatorSpec] = []
    for candidate in candidates:
        (rejected if is_forbidden(candidate, policy) else allowed).append(candidate)

    if not allowed:
        logger.warning(f"All {len(candidates)} locator candidates match forbidden patterns, "
                       f"falling back to '{candidates[0].value}'")
        return LocatorSelection(locator=candidates[0], all_forbidden=True, rejected=rejected)

    # sorted() is stable, so equal scores keep their input order
    best = sorted(allowed, key=lambda c: score_locator(c, policy))[0]
    return LocatorSelection(locator=best, rejected=rejected)
