"""
Bounded self-healing loop for one journey's generated test.

The controller runs the test, classifies the failure, then applies fixes
one at a time in rule priority order, re-running the test after each. A fix
is never tried twice in one session, and a session never records more than
``max_attempts`` attempts. Every attempt and status change is persisted to
the journey's healing log as it happens.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from ..core.config import settings
from ..core.config_loader import get_healing_config, get_llkb_policy, get_selector_policy
from ..core.logging_config import get_healing_logger
from ..core.models.healing_models import (
    AttemptResult, FailureCategory, FailureClassification, FixApplication, HealingConfiguration,
    HealingSession, HealingStatus, RunnerResult
)
from .code_fixes import PlaywrightTestCodeUpdater
from .failure_classifier import classify_error
from .healing_logger import HealingLogger
from .healing_rules import evaluate_healing, get_next_fix, get_post_healing_recommendation
from .llkb_store import LearnedPatternStore
from .test_runner import PlaywrightRunner, RunOptions, parse_playwright_report

logger = logging.getLogger(__name__)

# (fix_type, test_file, error_text) -> FixApplication
FixApplier = Callable[[str, Optional[str], str], FixApplication]
Classifier = Callable[[str, Optional[str]], FailureClassification]


@dataclass
class FailureObservation:
    """Classified failure plus the raw error text the fixes work from."""
    classification: FailureClassification
    error_text: str


@dataclass
class HealingOutcome:
    session: HealingSession
    log_path: str
    applied_fix: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.session.status == HealingStatus.HEALED

    @property
    def status(self) -> HealingStatus:
        return self.session.status

    @property
    def attempts(self) -> int:
        return len(self.session.attempts)

    @property
    def recommendation(self) -> Optional[str]:
        return self.session.recommendation


class HealingSessionController:
    """Drives the classify, fix, re-run cycle for one journey at a time."""

    def __init__(self, config: Optional[HealingConfiguration] = None, runner: Optional[PlaywrightRunner] = None,
                 fix_applier: Optional[FixApplier] = None, log_dir: Optional[str] = None,
                 store: Optional[LearnedPatternStore] = None, classifier: Optional[Classifier] = None):
        self.config = config or get_healing_config()
        self.runner = runner or PlaywrightRunner()
        self.fix_applier = fix_applier or PlaywrightTestCodeUpdater(
            selector_policy=get_selector_policy(),
            max_timeout_increase=self.config.max_timeout_increase,
        )
        self.log_dir = log_dir or settings.HEALING_LOG_DIR
        if store is None and settings.LLKB_ENABLED:
            store = LearnedPatternStore(settings.LLKB_ROOT, policy=get_llkb_policy())
        self.store = store
        self.classifier = classifier or classify_error

    def observe(self, result: RunnerResult) -> FailureObservation:
        """Classify a failed run from its report, or from its console output when there is none."""
        records = parse_playwright_report(result.report_path) if result.report_path else []
        failed = [r for r in records if r.failed and r.errors]

        if failed:
            best: Optional[FailureObservation] = None
            for error in failed[0].errors:
                observation = FailureObservation(
                    classification=self.classifier(error.message, error.stack),
                    error_text=f"{error.message}\n{error.stack or ''}".strip(),
                )
                if best is None or observation.classification.confidence > best.classification.confidence:
                    best = observation
            return best

        error_text = "\n".join(part for part in (result.stderr, result.stdout) if part)
        return FailureObservation(classification=self.classifier(error_text, None), error_text=error_text)

    def run(self, journey_id: str, test_file: Optional[str] = None,
            initial_result: Optional[RunnerResult] = None, grep: Optional[str] = None,
            learned_pattern_id: Optional[str] = None) -> HealingOutcome:
        """Heal one journey's test. Returns once the session reaches a terminal status.

        ``learned_pattern_id`` names the learned pattern the failing step was
        mapped from. When a fix heals the test that pattern is confirmed.
        """
        healing_log = HealingLogger(journey_id, self.log_dir, self.config.max_attempts)
        session_logger = get_healing_logger("healing", journey_id, test_file)
        session_logger.log_operation_start("healing_session", max_attempts=self.config.max_attempts)
        started = time.monotonic()

        outcome = self._run(healing_log, journey_id, test_file, initial_result, grep, learned_pattern_id)

        duration = time.monotonic() - started
        if outcome.success:
            session_logger.log_operation_success("healing_session", duration,
                                                 attempts=outcome.attempts, fix=outcome.applied_fix)
        else:
            session_logger.log_operation_failure("healing_session", duration,
                                                 outcome.recommendation or outcome.status.value,
                                                 error_code=outcome.status.value, attempts=outcome.attempts)
        return outcome

    def _run(self, healing_log: HealingLogger, journey_id: str, test_file: Optional[str],
             initial_result: Optional[RunnerResult], grep: Optional[str],
             learned_pattern_id: Optional[str] = None) -> HealingOutcome:
        log_path = str(healing_log.output_path)

        def finish(applied_fix: Optional[str] = None) -> HealingOutcome:
            return HealingOutcome(session=healing_log.get_session(), log_path=log_path, applied_fix=applied_fix)

        if test_file and not Path(test_file).exists():
            healing_log.mark_failed("Test file not found")
            return finish()

        options = RunOptions(test_file=test_file, grep=grep)
        if initial_result is None:
            try:
                initial_result = self.runner.run(options)
            except Exception as e:
                logger.error(f"Initial verification failed for {journey_id}: {e}")
                healing_log.mark_failed(f"Initial verification failed: {e}")
                return finish()
            observation = self._consume(initial_result)
        else:
            observation = None if initial_result.success else self.observe(initial_result)

        if initial_result.success:
            logger.info(f"🩹 HEALING: {journey_id} already passes, nothing to heal")
            healing_log.mark_healed()
            return finish()

        evaluation = evaluate_healing(observation.classification, self.config)
        if not evaluation.can_heal:
            logger.info(f"🩹 HEALING: {journey_id} not healable: {evaluation.reason}")
            healing_log.mark_failed(evaluation.reason)
            return finish()

        attempted: List[str] = []
        while not healing_log.is_max_attempts_reached():
            category = observation.classification.category
            fix_type = get_next_fix(observation.classification, attempted, self.config)
            if fix_type is None:
                if healing_log.attempt_count == 0:
                    healing_log.mark_failed(evaluate_healing(observation.classification, self.config).reason
                                            or "No applicable healing rules for this failure")
                else:
                    healing_log.mark_exhausted(
                        get_post_healing_recommendation(category, healing_log.attempt_count))
                return finish()

            attempted.append(fix_type)
            logger.info(f"🩹 HEALING: {journey_id} attempt {healing_log.attempt_count + 1} "
                        f"trying {fix_type} for {category.value} failure")
            start = time.monotonic()

            try:
                application = self.fix_applier(fix_type, test_file, observation.error_text)
                if not application.applied:
                    healing_log.log_attempt(
                        failure_type=category, fix_type=fix_type, result=AttemptResult.FAIL,
                        duration_ms=_elapsed_ms(start), file=application.file or test_file or "",
                        change=application.change, error_message="Fix not applied",
                    )
                    continue
                if learned_pattern_id and not application.learned_pattern_id:
                    application.learned_pattern_id = learned_pattern_id

                rerun = self.runner.run(options)
            except Exception as e:
                logger.error(f"Healing attempt {fix_type} for {journey_id} raised: {e}")
                healing_log.log_attempt(
                    failure_type=category, fix_type=fix_type, result=AttemptResult.ERROR,
                    duration_ms=_elapsed_ms(start), file=test_file or "", error_message=str(e),
                )
                continue

            new_observation = self._consume(rerun)
            evidence = list(application.evidence)

            if rerun.success:
                healing_log.log_attempt(
                    failure_type=category, fix_type=fix_type, result=AttemptResult.PASS,
                    duration_ms=_elapsed_ms(start), file=application.file or test_file or "",
                    change=application.change, evidence=evidence,
                )
                self._record_learned_success(application, journey_id)
                healing_log.mark_healed()
                logger.info(f"🩹 HEALING: {journey_id} healed by {fix_type}")
                return finish(applied_fix=fix_type)

            healing_log.log_attempt(
                failure_type=category, fix_type=fix_type, result=AttemptResult.FAIL,
                duration_ms=_elapsed_ms(start), file=application.file or test_file or "",
                change=application.change, evidence=evidence,
                error_message=_first_line(new_observation.error_text) or "Unknown error",
            )
            # The failure may have moved on to a different category
            if new_observation.classification.category != FailureCategory.UNKNOWN:
                observation = new_observation
            else:
                observation = FailureObservation(observation.classification, new_observation.error_text
                                                 or observation.error_text)

        if healing_log.attempt_count == 0:
            healing_log.mark_failed("No healing attempts allowed")
        else:
            healing_log.mark_exhausted(
                get_post_healing_recommendation(observation.classification.category, healing_log.attempt_count))
        return finish()

    def _consume(self, result: RunnerResult) -> Optional[FailureObservation]:
        """Classify a run this controller started, then drop its report file."""
        try:
            return None if result.success else self.observe(result)
        finally:
            self.runner.discard_report(result)

    def _record_learned_success(self, application: FixApplication, journey_id: str):
        if application.learned_pattern_id and journey_id and self.store is not None:
            self.store.record_success(application.learned_pattern_id, journey_id)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _first_line(text: str) -> str:
    return text.strip().split("\n")[0] if text else ""
