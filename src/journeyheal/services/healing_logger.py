"""
Per-journey healing logs.

Each healing session is one JSON document at
``<output_dir>/<journeyId>.heal-log.json``. The file is written when the
session starts and rewritten after every attempt and status change, so a
crash mid-session leaves an accurate partial record.
"""

import json
import logging
import os
import tempfile
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any

from ..core.models.healing_models import (
    AttemptResult, FailureCategory, HealingAttempt, HealingSession, HealingStatus
)

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".heal-log.json"


class HealingLogger:
    """Append-only record of one journey's healing session."""

    def __init__(self, journey_id: str, output_dir: str, max_attempts: int = 3):
        self.output_path = Path(output_dir) / f"{journey_id}{LOG_SUFFIX}"
        self.session = HealingSession(journey_id=journey_id, started_at=datetime.now(), max_attempts=max_attempts)
        self.save()

    @property
    def attempt_count(self) -> int:
        return len(self.session.attempts)

    def is_max_attempts_reached(self) -> bool:
        return self.attempt_count >= self.session.max_attempts

    def log_attempt(self, failure_type: FailureCategory, fix_type: str, result: AttemptResult,
                    duration_ms: int, file: str = "", change: str = "",
                    evidence: Optional[List[str]] = None, error_message: Optional[str] = None) -> HealingAttempt:
        """Append the next attempt, numbered from 1, and persist the log."""
        if self.session.status.is_terminal:
            raise RuntimeError(f"Healing session for {self.session.journey_id} is already "
                               f"{self.session.status.value}")
        if self.is_max_attempts_reached():
            raise RuntimeError(f"Healing session for {self.session.journey_id} already has "
                               f"{self.session.max_attempts} attempts")

        attempt = HealingAttempt(
            attempt=self.attempt_count + 1,
            timestamp=datetime.now(),
            failure_type=failure_type,
            fix_type=fix_type,
            file=file,
            change=change,
            evidence=list(evidence or []),
            result=result,
            duration_ms=duration_ms,
            error_message=error_message,
        )
        self.session.attempts.append(attempt)
        self.save()
        return attempt

    def _finish(self, status: HealingStatus, recommendation: Optional[str] = None):
        self.session.status = status
        self.session.ended_at = datetime.now()
        if recommendation:
            self.session.recommendation = recommendation
        self.save()

    def mark_healed(self):
        self._finish(HealingStatus.HEALED)

    def mark_failed(self, reason: Optional[str] = None):
        self._finish(HealingStatus.FAILED, reason)

    def mark_exhausted(self, recommendation: Optional[str] = None):
        self._finish(HealingStatus.EXHAUSTED, recommendation)

    def get_session(self) -> HealingSession:
        return self.session

    def get_summary(self) -> Dict[str, Any]:
        return self.session.summary()

    def save(self):
        """Write the session atomically so readers never see a half-written log."""
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=str(self.output_path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.session.to_dict(), f, indent=2)
            os.replace(temp_path, self.output_path)
        except OSError:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise


def load_healing_log(path: str) -> Optional[HealingSession]:
    """Read a healing log; None when the file is missing or unreadable."""
    log_path = Path(path)
    if not log_path.exists():
        return None
    try:
        with open(log_path, "r", encoding="utf-8") as f:
            return HealingSession.from_dict(json.load(f))
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring unreadable healing log {path}: {e}")
        return None


def load_healing_logs(log_dir: str) -> List[HealingSession]:
    directory = Path(log_dir)
    if not directory.is_dir():
        return []
    sessions = (load_healing_log(str(p)) for p in sorted(directory.glob(f"*{LOG_SUFFIX}")))
    return [s for s in sessions if s is not None]


def format_healing_log(session: HealingSession) -> str:
    """Render a session as markdown."""
    lines = [
        f"# Healing Log: {session.journey_id}",
        "",
        f"Status: {session.status.value.upper()}",
        f"Started: {session.started_at.isoformat()}",
    ]
    if session.ended_at:
        lines.append(f"Ended: {session.ended_at.isoformat()}")
    lines.extend(["", "## Attempts", ""])

    for attempt in session.attempts:
        icon = "✅" if attempt.result == AttemptResult.PASS else "❌"
        lines.extend([
            f"### Attempt {attempt.attempt} {icon}",
            "",
            f"- **Fix Type**: {attempt.fix_type}",
            f"- **Failure Type**: {attempt.failure_type.value}",
            f"- **File**: {attempt.file}",
            f"- **Duration**: {attempt.duration_ms}ms",
            f"- **Result**: {attempt.result.value}",
        ])
        if attempt.error_message:
            lines.append(f"- **Error**: {attempt.error_message}")
        if attempt.change:
            lines.append(f"- **Change**: {attempt.change}")
        if attempt.evidence:
            lines.append(f"- **Evidence**: {', '.join(attempt.evidence)}")
        lines.append("")

    if session.status.is_terminal:
        summary = session.summary()
        lines.extend([
            "## Summary",
            "",
            f"- Total Attempts: {summary['totalAttempts']}",
            f"- Successful Fixes: {summary['successfulFixes']}",
            f"- Failed Attempts: {summary['failedAttempts']}",
            f"- Total Duration: {summary['totalDuration']}ms",
            f"- Fix Types Tried: {', '.join(summary['fixTypesAttempted'])}",
        ])
        if session.recommendation:
            lines.extend(["", f"**Recommendation**: {session.recommendation}"])

    return "\n".join(lines)


def aggregate_healing_logs(log_dir: str) -> Dict[str, Any]:
    """Totals across every healing log in a directory."""
    sessions = load_healing_logs(log_dir)
    fix_counts: Counter = Counter()
    failure_counts: Counter = Counter()

    for session in sessions:
        for attempt in session.attempts:
            fix_counts[attempt.fix_type] += 1
            failure_counts[attempt.failure_type.value] += 1

    statuses = Counter(s.status for s in sessions)
    return {
        "totalJourneys": len(sessions),
        "healed": statuses[HealingStatus.HEALED],
        "failed": statuses[HealingStatus.FAILED],
        "exhausted": statuses[HealingStatus.EXHAUSTED],
        "totalAttempts": sum(fix_counts.values()),
        "mostCommonFixes": [{"fix": fix, "count": n} for fix, n in fix_counts.most_common()],
        "mostCommonFailures": [{"failure": f, "count": n} for f, n in failure_counts.most_common()],
    }
