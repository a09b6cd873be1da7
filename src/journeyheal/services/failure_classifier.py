"""
Failure classifier for generated test runs.

Each category carries a list of regex detectors. The category with the
strictly greatest number of matching detectors wins; on a tie the category
that comes first in ``CLASSIFICATION_PATTERNS`` keeps the win, so the table
order is part of the behavior.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..core.models.healing_models import FailureCategory, FailureClassification, TestResultRecord

logger = logging.getLogger(__name__)

# Healable categories are the ones that usually point at brittle test code
HEALABLE_CATEGORIES = frozenset([FailureCategory.SELECTOR, FailureCategory.TIMING])

# Matches needed for full confidence
FULL_CONFIDENCE_MATCHES = 3


@dataclass(frozen=True)
class ClassificationPattern:
    category: FailureCategory
    keywords: List[re.Pattern]
    explanation: str
    suggestion: str
    is_test_issue: bool


def _keywords(*patterns: str) -> List[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


CLASSIFICATION_PATTERNS: List[ClassificationPattern] = [
    ClassificationPattern(
        category=FailureCategory.SELECTOR,
        keywords=_keywords(
            r"locator\s+resolved\s+to\s+\d+\s+elements",
            r"locator\.click:\s+Error",
            r"waiting\s+for\s+locator",
            r"element\s+is\s+not\s+visible",
            r"element\s+is\s+not\s+attached",
            r"element\s+is\s+not\s+enabled",
            r"getBy\w+\s*\([^)]+\)",
            r"strict\s+mode\s+violation",
            r"No\s+element\s+matches\s+selector",
            r"Target\s+closed",
            r"element\s+is\s+outside\s+of\s+the\s+viewport",
        ),
        explanation="Element locator failed to find or interact with element",
        suggestion="Update selector to use more stable locator strategy (role, label, testid)",
        is_test_issue=True,
    ),
    ClassificationPattern(
        category=FailureCategory.TIMING,
        keywords=_keywords(
            r"timeout\s+\d+ms\s+exceeded",
            r"exceeded\s+while\s+waiting",
            r"timed?\s*out",
            r"waiting\s+for\s+navigation",
            r"waiting\s+for\s+load\s+state",
            r"response\s+took\s+too\s+long",
            r"expect\.\w+:\s+Timeout",
            r"navigation\s+was\s+interrupted",
        ),
        explanation="Operation timed out waiting for element or network",
        suggestion="Increase timeout or add explicit wait for expected state",
        is_test_issue=True,
    ),
    ClassificationPattern(
        category=FailureCategory.NAVIGATION,
        keywords=_keywords(
            r"expected\s+url.*to.*match",
            r"expected.*toHaveURL",
            r"page\s+has\s+been\s+closed",
            r"navigation\s+failed",
            r"net::ERR_",
            r"ERR_CONNECTION",
            r"ERR_NAME_NOT_RESOLVED",
            r"redirect",
            r"page\.goto:\s+Error",
            r"URL\s+is\s+not\s+valid",
        ),
        explanation="Navigation to URL failed or URL mismatch",
        suggestion="Check URL configuration and network connectivity",
        is_test_issue=False,
    ),
    ClassificationPattern(
        category=FailureCategory.DATA,
        keywords=_keywords(
            r"expected.*to\s+(?:be|equal|match|contain|have)",
            r"received.*but\s+expected",
            r"toEqual",
            r"toBe\(",
            r"toContain",
            r"toHaveText",
            r"toHaveValue",
            r"assertion\s+failed",
            r"expected\s+value",
            r"does\s+not\s+match",
        ),
        explanation="Assertion failed due to unexpected data",
        suggestion="Verify test data matches expected application state",
        is_test_issue=False,
    ),
    ClassificationPattern(
        category=FailureCategory.AUTH,
        keywords=_keywords(
            r"401\s+Unauthorized",
            r"403\s+Forbidden",
            r"authentication\s+failed",
            r"login\s+failed",
            r"session\s+expired",
            r"token\s+invalid",
            r"access\s+denied",
            r"not\s+authenticated",
            r"sign\s*in\s+required",
            r"invalid\s+credentials",
        ),
        explanation="Authentication or authorization failed",
        suggestion="Check authentication state and credentials",
        is_test_issue=False,
    ),
    ClassificationPattern(
        category=FailureCategory.ENV,
        keywords=_keywords(
            r"ECONNREFUSED",
            r"ENOTFOUND",
            r"ETIMEDOUT",
            r"connection\s+refused",
            r"network\s+error",
            r"502\s+Bad\s+Gateway",
            r"503\s+Service\s+Unavailable",
            r"504\s+Gateway\s+Timeout",
            r"server\s+error",
            r"browser\s+has\s+been\s+closed",
            r"browser\s+crash",
            r"context\s+closed",
        ),
        explanation="Environment or infrastructure issue",
        suggestion="Check application availability and environment configuration",
        is_test_issue=False,
    ),
    ClassificationPattern(
        category=FailureCategory.SCRIPT,
        keywords=_keywords(
            r"SyntaxError",
            r"TypeError",
            r"ReferenceError",
            r"undefined\s+is\s+not",
            r"is\s+not\s+a\s+function",
            r"Cannot\s+read\s+propert",
            r"null\s+is\s+not",
            r"is\s+not\s+defined",
            r"Unexpected\s+token",
        ),
        explanation="Test script has a code error",
        suggestion="Fix the JavaScript/TypeScript error in the test",
        is_test_issue=True,
    ),
]


def _unknown(explanation: str, suggestion: str) -> FailureClassification:
    return FailureClassification(
        category=FailureCategory.UNKNOWN,
        confidence=0.0,
        explanation=explanation,
        suggestion=suggestion,
        is_test_issue=False,
    )


def classify_error(message: str, stack: Optional[str] = None) -> FailureClassification:
    """Classify one error by counting matching detectors per category."""
    error_text = f"{message} {stack or ''}"
    best: Optional[ClassificationPattern] = None
    best_keywords: List[str] = []
    max_matches = 0

    for pattern in CLASSIFICATION_PATTERNS:
        matched = [k.pattern for k in pattern.keywords if k.search(error_text)]
        if len(matched) > max_matches:
            max_matches = len(matched)
            best = pattern
            best_keywords = matched

    if best is None:
        logger.debug("🔍 CLASSIFIER: no detector matched")
        return _unknown("Unable to classify failure", "Review error details manually")

    logger.debug(f"🔍 CLASSIFIER: {best.category.value} ({max_matches} detectors matched)")
    return FailureClassification(
        category=best.category,
        confidence=min(max_matches / FULL_CONFIDENCE_MATCHES, 1.0),
        explanation=best.explanation,
        suggestion=best.suggestion,
        is_test_issue=best.is_test_issue,
        matched_keywords=best_keywords,
    )


def classify_test_result(record: TestResultRecord) -> FailureClassification:
    """Most confident classification among a failed test's errors."""
    if not record.failed or not record.errors:
        return _unknown("Test did not fail or has no errors", "N/A")

    classifications = [classify_error(e.message, e.stack) for e in record.errors]
    best = classifications[0]
    for current in classifications[1:]:
        if current.confidence > best.confidence:
            best = current
    return best


def classify_test_results(records: List[TestResultRecord]) -> Dict[str, FailureClassification]:
    return {record.key: classify_test_result(record) for record in records if record.failed}


def get_failure_stats(classifications: Dict[str, FailureClassification]) -> Dict[str, int]:
    stats = {category.value: 0 for category in FailureCategory}
    for classification in classifications.values():
        stats[classification.category.value] += 1
    return stats


def is_healable(classification: FailureClassification) -> bool:
    return classification.category in HEALABLE_CATEGORIES


def get_healable_failures(classifications: Dict[str, FailureClassification]) -> Dict[str, FailureClassification]:
    return {key: c for key, c in classifications.items() if is_healable(c)}


def generate_classification_report(classifications: Dict[str, FailureClassification]) -> str:
    """Render classifications as a markdown report."""
    lines = ["# Failure Classification Report", "", "## Summary", ""]

    for category, count in get_failure_stats(classifications).items():
        if count > 0:
            lines.append(f"- {category}: {count}")

    lines.extend(["", "## Detailed Classifications", ""])

    for test_name, classification in classifications.items():
        lines.extend([
            f"### {test_name}",
            "",
            f"- **Category**: {classification.category.value}",
            f"- **Confidence**: {round(classification.confidence * 100)}%",
            f"- **Explanation**: {classification.explanation}",
            f"- **Suggestion**: {classification.suggestion}",
            f"- **Is Test Issue**: {'Yes' if classification.is_test_issue else 'No'}",
            "",
        ])

    return "\n".join(lines)
