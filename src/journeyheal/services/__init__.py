"""
Services module for step mapping and self-healing.
"""

from .step_mapper import StepMapper, StepMapperOptions, get_mapping_stats, suggest_improvements
from .llkb_store import LearnedPatternStore
from .failure_classifier import classify_error, classify_test_result, is_healable
from .healing_rules import evaluate_healing, get_next_fix
from .healing_session import HealingSessionController, HealingOutcome

__all__ = [
    "StepMapper",
    "StepMapperOptions",
    "get_mapping_stats",
    "suggest_improvements",
    "LearnedPatternStore",
    "classify_error",
    "classify_test_result",
    "is_healable",
    "evaluate_healing",
    "get_next_fix",
    "HealingSessionController",
    "HealingOutcome"
]
