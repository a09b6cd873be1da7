"""Core data models for step mapping and self-healing."""

from .mapping_models import (
    LocatorStrategy,
    LocatorSpec,
    ValueType,
    ValueSpec,
    PrimitiveType,
    IRPrimitive,
    MatchSource,
    StepMappingResult,
    AcceptanceCriterion,
    ProceduralStep,
    IRStep,
    ACMappingResult,
    SelectorPolicy,
    DEFAULT_SELECTOR_PRIORITY
)
from .llkb_models import (
    LearnedPattern,
    PromotedPattern,
    LlkbPolicy,
    MIN_CONFIDENCE,
    MAX_CONFIDENCE
)
from .healing_models import (
    FailureCategory,
    FailureClassification,
    HealingRule,
    HealingConfiguration,
    HealingEvaluation,
    HealingStatus,
    AttemptResult,
    HealingAttempt,
    HealingSession,
    RunnerResult,
    TestError,
    TestResultRecord,
    FixApplication
)

# Note: Service classes are imported separately from their respective modules

__all__ = [
    "LocatorStrategy",
    "LocatorSpec",
    "ValueType",
    "ValueSpec",
    "PrimitiveType",
    "IRPrimitive",
    "MatchSource",
    "StepMappingResult",
    "AcceptanceCriterion",
    "ProceduralStep",
    "IRStep",
    "ACMappingResult",
    "SelectorPolicy",
    "DEFAULT_SELECTOR_PRIORITY",
    "LearnedPattern",
    "PromotedPattern",
    "LlkbPolicy",
    "MIN_CONFIDENCE",
    "MAX_CONFIDENCE",
    "FailureCategory",
    "FailureClassification",
    "HealingRule",
    "HealingConfiguration",
    "HealingEvaluation",
    "HealingStatus",
    "AttemptResult",
    "HealingAttempt",
    "HealingSession",
    "RunnerResult",
    "TestError",
    "TestResultRecord",
    "FixApplication"
]
