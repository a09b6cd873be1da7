"""
Learned pattern store (LLKB).

Persists step texts the system has learned to map, each with a confidence
that moves with confirmed successes and failures. The store is a single
JSON document under ``<root>/learned-patterns.json``. Every mutation
re-reads the file, applies the change and writes it back atomically.
Callers must serialize writers against the same root themselves.
"""

import json
import logging
import os
import random
import re
import string
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any

from ..core.models.llkb_models import (
    LearnedPattern, PromotedPattern, LlkbPolicy, MIN_CONFIDENCE, MAX_CONFIDENCE
)
from ..core.models.mapping_models import IRPrimitive
from .glossary import Glossary, default_glossary

logger = logging.getLogger(__name__)

PATTERNS_FILE = "learned-patterns.json"
STORE_VERSION = "1.0.0"

SUCCESS_DELTA = 0.05
FAILURE_DELTA = 0.10

PROMOTION_MIN_CONFIDENCE = 0.9
PROMOTION_MIN_SUCCESSES = 5
PROMOTION_MIN_JOURNEYS = 2

HIGH_CONFIDENCE = 0.7
LOW_CONFIDENCE = 0.3

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_pattern_id() -> str:
    """``LP`` + base36 millisecond timestamp + 4 random base36 chars, upper-cased."""
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"LP{_to_base36(int(time.time() * 1000))}{suffix}".upper()


def _clamp(confidence: float) -> float:
    return round(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, confidence)), 4)


def generate_regex_from_text(text: str) -> str:
    """Generalize a learned step text into an anchored regex for promotion."""
    pattern = re.sub(r"[.*+?^${}()|\[\]\\]", lambda m: "\\" + m.group(0), text.lower())
    # Quoted values become capture groups
    pattern = re.sub(r'"[^"]+"', lambda m: '"([^"]+)"', pattern)
    pattern = re.sub(r"'[^']+'", lambda m: "'([^']+)'", pattern)
    # Articles and the "user" prefix become optional
    pattern = re.sub(r"\b(the|a|an)\s+", lambda m: f"(?:{m.group(1)}\\s+)?", pattern)
    pattern = re.sub(r"^user\s+", lambda m: "(?:user\\s+)?", pattern)
    for verb in ("click", "fill", "select", "type", "see", "wait"):
        pattern = re.sub(rf"\b{verb}s?\b", f"{verb}s?", pattern)
    return f"^{pattern}$"


class LearnedPatternStore:
    """Owner of all learned patterns under one store root."""

    def __init__(self, root: str, glossary: Optional[Glossary] = None,
                 policy: Optional[LlkbPolicy] = None):
        self.root = Path(root)
        self.path = self.root / PATTERNS_FILE
        self.glossary = glossary or default_glossary()
        self.policy = policy or LlkbPolicy()
        self._patterns: List[LearnedPattern] = []
        self._mtime: Optional[float] = None
        self._loaded = False

    # ------------------------------------------------------------------ lifecycle

    def load(self, force: bool = False) -> List[LearnedPattern]:
        """Load patterns from disk.

        A missing file gives an empty store. A corrupt or wrongly shaped
        file also gives an empty store, with a warning.
        """
        current_mtime = self.path.stat().st_mtime if self.path.exists() else None
        if self._loaded and not force and current_mtime == self._mtime:
            return self._patterns

        self._patterns = self._read_patterns()
        self._mtime = current_mtime
        self._loaded = True
        return self._patterns

    def _read_patterns(self) -> List[LearnedPattern]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"⚠️ LLKB: Corrupt pattern store at {self.path}, starting empty: {e}")
            return []

        if not isinstance(data, dict) or not isinstance(data.get("patterns"), list):
            logger.warning(f"⚠️ LLKB: Unexpected pattern store shape at {self.path}, starting empty")
            return []

        patterns: List[LearnedPattern] = []
        seen = set()
        for raw in data["patterns"]:
            try:
                pattern = LearnedPattern.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"⚠️ LLKB: Skipping malformed pattern entry: {e}")
                continue
            if pattern.normalized_text in seen:
                logger.warning(f"⚠️ LLKB: Skipping duplicate pattern for '{pattern.normalized_text}'")
                continue
            seen.add(pattern.normalized_text)
            patterns.append(pattern)
        return patterns

    def save(self) -> None:
        """Write the store atomically (temp file, then rename)."""
        self.root.mkdir(parents=True, exist_ok=True)
        document = {
            "version": STORE_VERSION,
            "lastUpdated": datetime.now().isoformat(),
            "patterns": [p.to_dict() for p in self._patterns],
        }

        fd, tmp_path = tempfile.mkstemp(prefix=".learned-patterns.", suffix=".tmp", dir=str(self.root))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        self._mtime = self.path.stat().st_mtime
        self._loaded = True

    def reset(self) -> None:
        """Forget every pattern and delete the store file."""
        self._patterns = []
        self._mtime = None
        self._loaded = True
        if self.path.exists():
            self.path.unlink()
        logger.info(f"🧹 LLKB: Reset pattern store at {self.root}")

    # ------------------------------------------------------------------ queries

    @property
    def patterns(self) -> List[LearnedPattern]:
        return list(self.load())

    def normalize(self, text: str) -> str:
        return self.glossary.normalize_step_text(text.strip())

    def get(self, pattern_id: str) -> Optional[LearnedPattern]:
        return next((p for p in self.load() if p.id == pattern_id), None)

    def find_by_text(self, text: str) -> Optional[LearnedPattern]:
        normalized = self.normalize(text)
        return next((p for p in self.load() if p.normalized_text == normalized), None)

    def match(self, text: str, min_confidence: Optional[float] = None) -> Optional[LearnedPattern]:
        """Exact match on normalized text at or above ``min_confidence``.

        Promoted patterns are served by the fixed library and never match here.
        """
        threshold = self.policy.min_confidence if min_confidence is None else min_confidence
        pattern = self.find_by_text(text)
        if pattern is None or pattern.promoted_to_core or pattern.confidence < threshold:
            return None
        return pattern

    # ------------------------------------------------------------------ learning

    def learn(self, original_text: str, primitive: IRPrimitive,
              journey_id: Optional[str]) -> Optional[LearnedPattern]:
        """Record a confirmed mapping, creating the pattern on first sight."""
        if not journey_id:
            logger.debug(f"LLKB: Not learning '{original_text}' without a journey id")
            return None

        self.load(force=True)
        normalized = self.normalize(original_text)
        existing = next((p for p in self._patterns if p.normalized_text == normalized), None)
        if existing:
            self._apply_success(existing, journey_id)
            self.save()
            return existing

        now = datetime.now()
        pattern = LearnedPattern(
            id=generate_pattern_id(),
            original_text=original_text,
            normalized_text=normalized,
            mapped_primitive=primitive,
            confidence=0.5,
            success_count=1,
            fail_count=0,
            source_journeys=[journey_id],
            created_at=now,
            last_used_at=now,
            last_success_at=now,
        )
        self._patterns.append(pattern)
        self.save()
        logger.info(f"🧠 LLKB: Learned new pattern {pattern.id} for '{normalized}'")
        return pattern

    def _apply_success(self, pattern: LearnedPattern, journey_id: str) -> None:
        now = datetime.now()
        pattern.success_count += 1
        pattern.confidence = _clamp(pattern.confidence + SUCCESS_DELTA)
        pattern.last_used_at = now
        pattern.last_success_at = now
        pattern.add_journey(journey_id)

    def record_success(self, pattern_id: str, journey_id: Optional[str]) -> Optional[LearnedPattern]:
        """Confirm a pattern. Without a journey id nothing is recorded."""
        if not journey_id:
            logger.debug(f"LLKB: Ignoring success for {pattern_id} without a journey id")
            return None

        self.load(force=True)
        pattern = next((p for p in self._patterns if p.id == pattern_id), None)
        if pattern is None:
            logger.warning(f"⚠️ LLKB: Cannot record success, pattern {pattern_id} not found")
            return None

        self._apply_success(pattern, journey_id)
        self.save()
        logger.info(f"✅ LLKB: Pattern {pattern_id} confirmed by {journey_id}, "
                    f"confidence now {pattern.confidence:.2f}")
        return pattern

    def record_failure(self, pattern_id: str) -> Optional[LearnedPattern]:
        self.load(force=True)
        pattern = next((p for p in self._patterns if p.id == pattern_id), None)
        if pattern is None:
            logger.warning(f"⚠️ LLKB: Cannot record failure, pattern {pattern_id} not found")
            return None

        pattern.fail_count += 1
        pattern.confidence = _clamp(pattern.confidence - FAILURE_DELTA)
        pattern.last_used_at = datetime.now()
        self.save()
        logger.info(f"❌ LLKB: Pattern {pattern_id} failed, confidence now {pattern.confidence:.2f}")
        return pattern

    # ------------------------------------------------------------------ maintenance

    def prune_lessons(self, min_confidence: Optional[float] = None,
                      min_applications: Optional[int] = None) -> Dict[str, int]:
        """Remove well-tried patterns whose confidence stayed low.

        Patterns with fewer than ``min_applications`` outcomes are always kept.
        """
        min_confidence = self.policy.prune_min_confidence if min_confidence is None else min_confidence
        min_applications = self.policy.prune_min_applications if min_applications is None else min_applications

        self.load(force=True)
        before = len(self._patterns)
        self._patterns = [
            p for p in self._patterns
            if not (p.applications >= min_applications and p.confidence < min_confidence)
        ]
        removed = before - len(self._patterns)
        if removed:
            self.save()
            logger.info(f"🧹 LLKB: Pruned {removed} low-confidence patterns")
        return {"removed": removed, "remaining": len(self._patterns)}

    def export_top(self, n: int = 20, publish_threshold: Optional[float] = None) -> List[Dict[str, Any]]:
        """Read-only export of the ``n`` most confident patterns at or above the threshold."""
        threshold = self.policy.publish_threshold if publish_threshold is None else publish_threshold
        eligible = [p for p in self.load() if p.confidence >= threshold]
        eligible.sort(key=lambda p: p.confidence, reverse=True)
        return [p.to_dict() for p in eligible[:max(n, 0)]]

    def get_promotable_patterns(self) -> List[PromotedPattern]:
        promotable = [
            PromotedPattern(
                pattern=p,
                generated_regex=generate_regex_from_text(p.original_text),
                priority=p.success_count * p.confidence,
            )
            for p in self.load()
            if p.confidence >= PROMOTION_MIN_CONFIDENCE
            and p.success_count >= PROMOTION_MIN_SUCCESSES
            and len(p.source_journeys) >= PROMOTION_MIN_JOURNEYS
            and not p.promoted_to_core
        ]
        promotable.sort(key=lambda pp: pp.priority, reverse=True)
        return promotable

    def mark_patterns_promoted(self, pattern_ids: List[str]) -> int:
        self.load(force=True)
        now = datetime.now()
        marked = 0
        for pattern in self._patterns:
            if pattern.id in pattern_ids and not pattern.promoted_to_core:
                pattern.promoted_to_core = True
                pattern.promoted_at = now
                marked += 1
        if marked:
            self.save()
        return marked

    def get_pattern_stats(self) -> Dict[str, Any]:
        patterns = self.load()
        total = len(patterns)
        return {
            "total": total,
            "promoted": sum(1 for p in patterns if p.promoted_to_core),
            "highConfidence": sum(1 for p in patterns if p.confidence >= HIGH_CONFIDENCE),
            "lowConfidence": sum(1 for p in patterns if p.confidence < LOW_CONFIDENCE),
            "avgConfidence": round(sum(p.confidence for p in patterns) / total, 4) if total else 0.0,
            "totalSuccesses": sum(p.success_count for p in patterns),
            "totalFailures": sum(p.fail_count for p in patterns),
        }
