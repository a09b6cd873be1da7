"""External browser-test runner invocation and JSON report ingestion."""

import json
import logging
import os
import shlex
import subprocess
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Any

from ..core.config import settings
from ..core.models.healing_models import RunnerResult, TestError, TestResultRecord

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Selection and execution options for one runner invocation."""
    test_file: Optional[str] = None
    grep: Optional[str] = None
    workers: Optional[int] = None
    retries: Optional[int] = None
    timeout_ms: Optional[int] = None
    reporter: str = "json,line"


class PlaywrightRunner:
    """Runs the Playwright CLI as a subprocess with a bounded whole-run timeout.

    Never raises into the caller: a timeout or a missing executable comes back
    as a failed ``RunnerResult``.
    """

    def __init__(self, command: Optional[str] = None, cwd: Optional[str] = None,
                 timeout_ms: Optional[int] = None, multiplier: Optional[int] = None,
                 report_dir: Optional[str] = None):
        self.command = shlex.split(command or settings.RUNNER_COMMAND)
        self.cwd = cwd
        self.timeout_ms = timeout_ms or settings.TEST_TIMEOUT_MS
        self.multiplier = multiplier or settings.RUN_TIMEOUT_MULTIPLIER
        self.report_dir = Path(report_dir) if report_dir else Path(tempfile.gettempdir()) / "journeyheal-reports"

    def build_command(self, options: RunOptions) -> List[str]:
        args = list(self.command)
        if options.test_file:
            args.append(options.test_file)
        if options.grep:
            args.extend(["--grep", options.grep])
        if options.workers is not None:
            args.extend(["--workers", str(options.workers)])
        if options.retries is not None:
            args.extend(["--retries", str(options.retries)])
        args.extend(["--timeout", str(options.timeout_ms or self.timeout_ms)])
        if options.reporter:
            args.extend(["--reporter", options.reporter])
        return args

    def run_timeout_seconds(self, options: RunOptions) -> float:
        return (options.timeout_ms or self.timeout_ms) * self.multiplier / 1000

    def discard_report(self, result: RunnerResult):
        """Delete a run's JSON report once it has been read."""
        if result.report_path:
            _remove_report(Path(result.report_path))

    def run(self, options: Optional[RunOptions] = None) -> RunnerResult:
        options = options or RunOptions()
        args = self.build_command(options)
        self.report_dir.mkdir(parents=True, exist_ok=True)
        report_path = self.report_dir / f"results-{uuid.uuid4().hex}.json"
        env = {**os.environ, "PLAYWRIGHT_JSON_OUTPUT_NAME": str(report_path)}

        logger.info(f"▶️ RUNNER: {' '.join(args)}")
        start = time.monotonic()
        try:
            completed = subprocess.run(
                args,
                cwd=self.cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.run_timeout_seconds(options),
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"Test run timed out after {e.timeout}s")
            _remove_report(report_path)
            return RunnerResult(
                success=False,
                exit_code=124,
                stdout=_as_text(e.stdout),
                stderr=f"Test run timed out after {e.timeout}s",
                duration_ms=_elapsed_ms(start),
            )
        except OSError as e:
            logger.error(f"Failed to start test runner: {e}")
            _remove_report(report_path)
            return RunnerResult(success=False, exit_code=127, stderr=str(e), duration_ms=_elapsed_ms(start))

        duration_ms = _elapsed_ms(start)
        logger.info(f"▶️ RUNNER: exit code {completed.returncode} in {duration_ms}ms")
        return RunnerResult(
            success=completed.returncode == 0,
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            report_path=str(report_path) if report_path.exists() else None,
            duration_ms=duration_ms,
        )


def _remove_report(path: Path):
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove test report {path}: {e}")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _as_text(output: Any) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def _extract_from_suite(suite: Dict[str, Any], title_path: List[str], records: List[TestResultRecord]):
    current = [t for t in title_path + [suite.get("title", "")] if t]
    for spec in suite.get("specs", []):
        for test in spec.get("tests", []):
            for result in test.get("results", []):
                errors = [
                    TestError(message=e.get("message", ""), stack=e.get("stack"))
                    for e in (result.get("errors") or [])
                ]
                if not errors and result.get("error"):
                    error = result["error"]
                    errors.append(TestError(message=error.get("message", ""), stack=error.get("stack")))
                records.append(TestResultRecord(
                    status=result.get("status", "unknown"),
                    title_path=current + [spec.get("title", "")],
                    errors=errors,
                ))
    for child in suite.get("suites", []):
        _extract_from_suite(child, current, records)


def parse_report(report: Dict[str, Any]) -> List[TestResultRecord]:
    """Flatten a Playwright JSON report into one record per test result."""
    records: List[TestResultRecord] = []
    for suite in report.get("suites", []):
        _extract_from_suite(suite, [], records)
    return records


def parse_playwright_report(path: str) -> List[TestResultRecord]:
    """Read a JSON report file; an unreadable report yields no records."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_report(json.load(f))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read test report {path}: {e}")
        return []
