"""Healing rule engine: which fixes may be tried for a classified failure, and in what order."""

import logging
from typing import List, Optional

from ..core.models.healing_models import (
    FailureCategory, FailureClassification, HealingConfiguration, HealingEvaluation, HealingRule
)
from .failure_classifier import is_healable

logger = logging.getLogger(__name__)

DEFAULT_HEALING_RULES: List[HealingRule] = [
    HealingRule(
        fix_type="missing-await",
        applies_to=[FailureCategory.SELECTOR, FailureCategory.TIMING, FailureCategory.SCRIPT],
        priority=1,
        description="Add missing await to async operations",
    ),
    HealingRule(
        fix_type="selector-refine",
        applies_to=[FailureCategory.SELECTOR],
        priority=2,
        description="Replace CSS selector with role/label/testid",
    ),
    HealingRule(
        fix_type="add-exact",
        applies_to=[FailureCategory.SELECTOR],
        priority=3,
        description="Add exact: true to resolve ambiguous locators",
    ),
    HealingRule(
        fix_type="navigation-wait",
        applies_to=[FailureCategory.NAVIGATION, FailureCategory.TIMING],
        priority=4,
        description="Add waitForURL or toHaveURL assertion",
    ),
    HealingRule(
        fix_type="web-first-assertion",
        applies_to=[FailureCategory.TIMING, FailureCategory.DATA],
        priority=5,
        description="Convert to auto-retrying web-first assertion",
    ),
    HealingRule(
        fix_type="timeout-increase",
        applies_to=[FailureCategory.TIMING],
        priority=6,
        enabled_by_default=False,
        description="Increase operation timeout (bounded)",
    ),
]

DEFAULT_HEALING_CONFIG = HealingConfiguration()

# Never offered, whatever the configuration says
FORBIDDEN_FIXES = frozenset([
    "add-sleep",
    "remove-assertion",
    "weaken-assertion",
    "force-click",
    "bypass-auth",
])

KNOWN_FIX_TYPES = frozenset(rule.fix_type for rule in DEFAULT_HEALING_RULES)


def is_fix_forbidden(fix_type: str, config: Optional[HealingConfiguration] = None) -> bool:
    """Built-in forbidden fixes, plus any the configuration adds."""
    if fix_type in FORBIDDEN_FIXES:
        return True
    return config is not None and fix_type in config.forbidden_fixes


def is_fix_allowed(fix_type: str, config: HealingConfiguration = DEFAULT_HEALING_CONFIG) -> bool:
    return config.enabled and fix_type in config.allowed_fixes and not is_fix_forbidden(fix_type, config)


def get_applicable_rules(classification: FailureClassification,
                         config: HealingConfiguration = DEFAULT_HEALING_CONFIG) -> List[HealingRule]:
    """Rules for the category that the configuration allows, by ascending priority."""
    if not config.enabled or not is_healable(classification):
        return []
    rules = [
        rule for rule in DEFAULT_HEALING_RULES
        if classification.category in rule.applies_to and is_fix_allowed(rule.fix_type, config)
    ]
    return sorted(rules, key=lambda r: r.priority)


def evaluate_healing(classification: FailureClassification,
                     config: HealingConfiguration = DEFAULT_HEALING_CONFIG) -> HealingEvaluation:
    if not config.enabled:
        return HealingEvaluation(can_heal=False, reason="Healing is disabled")

    if not is_healable(classification):
        return HealingEvaluation(
            can_heal=False,
            reason=f"Category '{classification.category.value}' cannot be healed automatically",
        )

    rules = get_applicable_rules(classification, config)
    if not rules:
        return HealingEvaluation(can_heal=False, reason="No applicable healing rules for this failure")

    return HealingEvaluation(can_heal=True, applicable_fixes=[r.fix_type for r in rules])


def get_next_fix(classification: FailureClassification, attempted_fixes: List[str],
                 config: HealingConfiguration = DEFAULT_HEALING_CONFIG) -> Optional[str]:
    """First applicable fix not yet attempted in this session, or None when exhausted."""
    evaluation = evaluate_healing(classification, config)
    if not evaluation.can_heal:
        return None
    return next((fix for fix in evaluation.applicable_fixes if fix not in attempted_fixes), None)


def get_healing_recommendation(classification: FailureClassification) -> str:
    return {
        FailureCategory.SELECTOR: "Refine selector to use role, label, or testid locator strategy",
        FailureCategory.TIMING: "Add explicit wait for expected state or use web-first assertion",
        FailureCategory.NAVIGATION: "Add waitForURL or toHaveURL assertion after navigation",
        FailureCategory.DATA: "Verify test data and consider using expect.poll for dynamic values",
        FailureCategory.AUTH: "Check authentication state; may need to refresh session",
        FailureCategory.ENV: "Verify environment connectivity and application availability",
        FailureCategory.SCRIPT: "Fix the JavaScript/TypeScript error in the test code",
    }.get(classification.category, "Review error details manually to determine appropriate fix")


def get_post_healing_recommendation(category: FailureCategory, attempt_count: int) -> str:
    """Recommendation recorded when a session runs out of fixes or attempts."""
    base = f"Healing exhausted after {attempt_count} attempts."
    if category == FailureCategory.SELECTOR:
        return f"{base} Consider adding data-testid to the target element or quarantining the test."
    if category == FailureCategory.TIMING:
        return f"{base} The application may have a genuine performance issue. Consider quarantining."
    if category == FailureCategory.NAVIGATION:
        return f"{base} The navigation flow may have changed. Review Journey steps."
    return f"{base} Consider quarantining the test and filing a bug report."
