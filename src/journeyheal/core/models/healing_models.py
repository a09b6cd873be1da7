"""Data models for failure classification and the self-healing loop."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any
from enum import Enum


class FailureCategory(Enum):
    """Why a generated test failed."""
    SELECTOR = "selector"
    TIMING = "timing"
    NAVIGATION = "navigation"
    DATA = "data"
    AUTH = "auth"
    ENV = "env"
    SCRIPT = "script"
    UNKNOWN = "unknown"


class HealingStatus(Enum):
    """Status of a healing session."""
    IN_PROGRESS = "in_progress"
    HEALED = "healed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self != HealingStatus.IN_PROGRESS


class AttemptResult(Enum):
    """Outcome of a single healing attempt."""
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


@dataclass
class FailureClassification:
    """Classified cause of a test failure."""
    category: FailureCategory
    confidence: float
    explanation: str
    suggestion: str
    is_test_issue: bool
    matched_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "suggestion": self.suggestion,
            "isTestIssue": self.is_test_issue,
            "matchedKeywords": list(self.matched_keywords),
        }


@dataclass
class HealingRule:
    """A repair strategy and the failure categories it applies to."""
    fix_type: str
    applies_to: List[FailureCategory]
    priority: int
    enabled_by_default: bool = True
    description: str = ""


@dataclass
class HealingConfiguration:
    """Configuration settings for the self-healing loop."""
    enabled: bool = True
    max_attempts: int = 3
    max_timeout_increase: int = 30000  # ms
    allowed_fixes: List[str] = field(default_factory=lambda: [
        "selector-refine",
        "add-exact",
        "missing-await",
        "navigation-wait",
        "web-first-assertion",
    ])
    forbidden_fixes: List[str] = field(default_factory=lambda: [
        "add-sleep",
        "remove-assertion",
        "weaken-assertion",
        "force-click",
        "bypass-auth",
    ])

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "enabled": self.enabled,
            "max_attempts": self.max_attempts,
            "max_timeout_increase": self.max_timeout_increase,
            "allowed_fixes": list(self.allowed_fixes),
            "forbidden_fixes": list(self.forbidden_fixes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HealingConfiguration':
        """Create configuration from dictionary."""
        return cls(**data)


@dataclass
class HealingEvaluation:
    """Whether a failure can be healed and which fixes to try, in order."""
    can_heal: bool
    applicable_fixes: List[str] = field(default_factory=list)
    reason: Optional[str] = None


@dataclass
class HealingAttempt:
    """Record of one fix applied and re-verified. Never mutated once logged."""
    attempt: int
    timestamp: datetime
    failure_type: FailureCategory
    fix_type: str
    file: str
    change: str
    evidence: List[str]
    result: AttemptResult
    duration_ms: int
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "attempt": self.attempt,
            "timestamp": self.timestamp.isoformat(),
            "failureType": self.failure_type.value,
            "fixType": self.fix_type,
            "file": self.file,
            "change": self.change,
            "evidence": list(self.evidence),
            "result": self.result.value,
            "durationMs": self.duration_ms,
        }
        if self.error_message:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HealingAttempt':
        return cls(
            attempt=data["attempt"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            failure_type=FailureCategory(data["failureType"]),
            fix_type=data["fixType"],
            file=data.get("file", ""),
            change=data.get("change", ""),
            evidence=list(data.get("evidence") or []),
            result=AttemptResult(data["result"]),
            duration_ms=data.get("durationMs", 0),
            error_message=data.get("errorMessage"),
        )


@dataclass
class HealingSession:
    """Represents a complete healing session for one journey."""
    journey_id: str
    started_at: datetime
    max_attempts: int
    status: HealingStatus = HealingStatus.IN_PROGRESS
    ended_at: Optional[datetime] = None
    attempts: List[HealingAttempt] = field(default_factory=list)
    recommendation: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        """Calculate session duration in seconds."""
        if self.ended_at:
            return (self.ended_at - self.started_at).total_seconds()
        return None

    @property
    def success_rate(self) -> float:
        """Calculate success rate of attempts."""
        if not self.attempts:
            return 0.0
        successful = sum(1 for attempt in self.attempts if attempt.result == AttemptResult.PASS)
        return successful / len(self.attempts)

    @property
    def attempted_fixes(self) -> List[str]:
        return [a.fix_type for a in self.attempts]

    def summary(self) -> Dict[str, Any]:
        """Summarize attempts the way they are written to the log file."""
        fix_types: List[str] = []
        for attempt in self.attempts:
            if attempt.fix_type not in fix_types:
                fix_types.append(attempt.fix_type)
        data = {
            "totalAttempts": len(self.attempts),
            "successfulFixes": sum(1 for a in self.attempts if a.result == AttemptResult.PASS),
            "failedAttempts": sum(1 for a in self.attempts if a.result != AttemptResult.PASS),
            "totalDuration": sum(a.duration_ms for a in self.attempts),
            "fixTypesAttempted": fix_types,
        }
        if self.recommendation:
            data["recommendation"] = self.recommendation
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert session to the healing-log JSON shape."""
        return {
            "journeyId": self.journey_id,
            "sessionStart": self.started_at.isoformat(),
            "sessionEnd": self.ended_at.isoformat() if self.ended_at else None,
            "maxAttempts": self.max_attempts,
            "status": self.status.value,
            "attempts": [a.to_dict() for a in self.attempts],
            "summary": self.summary(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HealingSession':
        """Create session from the healing-log JSON shape."""
        ended = data.get("sessionEnd")
        return cls(
            journey_id=data["journeyId"],
            started_at=datetime.fromisoformat(data["sessionStart"]),
            max_attempts=data["maxAttempts"],
            status=HealingStatus(data["status"]),
            ended_at=datetime.fromisoformat(ended) if ended else None,
            attempts=[HealingAttempt.from_dict(a) for a in data.get("attempts", [])],
            recommendation=(data.get("summary") or {}).get("recommendation"),
        )


@dataclass
class RunnerResult:
    """What the external test runner reports back."""
    success: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    report_path: Optional[str] = None
    duration_ms: int = 0


@dataclass
class TestError:
    """A single error reported for a test."""
    __test__ = False

    message: str
    stack: Optional[str] = None


@dataclass
class TestResultRecord:
    """Per-test result ingested from the runner's report."""
    __test__ = False

    status: str
    title_path: List[str]
    errors: List[TestError] = field(default_factory=list)

    @property
    def key(self) -> str:
        return " > ".join(self.title_path)

    @property
    def failed(self) -> bool:
        return self.status in ("failed", "timedOut")


@dataclass
class FixApplication:
    """Result of applying a repair strategy to test source."""
    applied: bool
    fix_type: str
    file: str = ""
    change: str = ""
    evidence: List[str] = field(default_factory=list)
    confidence: float = 0.0
    learned_pattern_id: Optional[str] = None
