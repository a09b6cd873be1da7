"""Data models for the learned pattern store (LLKB)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any

from .mapping_models import IRPrimitive


MIN_CONFIDENCE = 0.10
MAX_CONFIDENCE = 0.95


@dataclass
class LearnedPattern:
    """A step text the system has learned to map, with its track record."""
    id: str
    original_text: str
    normalized_text: str
    mapped_primitive: IRPrimitive
    confidence: float = 0.5
    success_count: int = 0
    fail_count: int = 0
    source_journeys: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    last_used_at: datetime = field(default_factory=datetime.now)
    last_success_at: Optional[datetime] = None
    promoted_to_core: bool = False
    promoted_at: Optional[datetime] = None

    @property
    def applications(self) -> int:
        """How many times the pattern has been confirmed or refuted."""
        return self.success_count + self.fail_count

    def add_journey(self, journey_id: str) -> None:
        if journey_id not in self.source_journeys:
            self.source_journeys.append(journey_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert pattern to dictionary for storage."""
        return {
            "id": self.id,
            "originalText": self.original_text,
            "normalizedText": self.normalized_text,
            "mappedPrimitive": self.mapped_primitive.to_dict(),
            "confidence": round(self.confidence, 4),
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "sourceJourneys": list(self.source_journeys),
            "createdAt": self.created_at.isoformat(),
            "lastUsedAt": self.last_used_at.isoformat(),
            "lastSuccessAt": self.last_success_at.isoformat() if self.last_success_at else None,
            "promotedToCore": self.promoted_to_core,
            "promotedAt": self.promoted_at.isoformat() if self.promoted_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LearnedPattern':
        """Create pattern from dictionary."""
        last_success = data.get("lastSuccessAt")
        promoted_at = data.get("promotedAt")
        created_at = data.get("createdAt")
        last_used = data.get("lastUsedAt") or data.get("lastUsed")
        journeys: List[str] = []
        for journey_id in data.get("sourceJourneys") or []:
            if journey_id not in journeys:
                journeys.append(journey_id)
        return cls(
            id=data["id"],
            original_text=data.get("originalText", ""),
            normalized_text=data["normalizedText"],
            mapped_primitive=IRPrimitive.from_dict(data["mappedPrimitive"]),
            confidence=float(data.get("confidence", 0.5)),
            success_count=int(data.get("successCount", 0)),
            fail_count=int(data.get("failCount", 0)),
            source_journeys=journeys,
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
            last_used_at=datetime.fromisoformat(last_used) if last_used else datetime.now(),
            last_success_at=datetime.fromisoformat(last_success) if last_success else None,
            promoted_to_core=bool(data.get("promotedToCore", False)),
            promoted_at=datetime.fromisoformat(promoted_at) if promoted_at else None,
        )


@dataclass
class PromotedPattern:
    """A learned pattern ready to become a fixed library rule."""
    pattern: LearnedPattern
    generated_regex: str
    priority: float


@dataclass
class LlkbPolicy:
    """Thresholds for matching, pruning and publishing learned patterns."""
    min_confidence: float = 0.7
    prune_min_confidence: float = 0.3
    prune_min_applications: int = 3
    publish_threshold: float = 0.7

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_confidence": self.min_confidence,
            "prune_min_confidence": self.prune_min_confidence,
            "prune_min_applications": self.prune_min_applications,
            "publish_threshold": self.publish_threshold,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LlkbPolicy':
        return cls(**data)
