"""Unit tests for the Playwright runner wrapper and report parsing."""

import json
import subprocess
from unittest.mock import patch, MagicMock

import pytest

from src.journeyheal.services.test_runner import (
    PlaywrightRunner, RunOptions, parse_playwright_report, parse_report
)

SAMPLE_REPORT = {
    "suites": [{
        "title": "cart.spec.ts",
        "specs": [],
        "suites": [{
            "title": "Cart",
            "specs": [{
                "title": "adds an item",
                "tests": [{
                    "results": [{
                        "status": "failed",
                        "errors": [{"message": "Timeout 30000ms exceeded", "stack": "at cart.spec.ts:12:5"}],
                    }],
                }],
            }, {
                "title": "shows the total",
                "tests": [{"results": [{"status": "passed"}]}],
            }, {
                "title": "checks out",
                "tests": [{"results": [{"status": "timedOut", "error": {"message": "Test timeout"}}]}],
            }],
        }],
    }],
}


@pytest.fixture
def runner(tmp_path):
    """Runner with a fixed command and a temp report directory."""
    return PlaywrightRunner(command="npx playwright test", cwd=str(tmp_path), timeout_ms=5000,
                            multiplier=10, report_dir=str(tmp_path / "reports"))


class TestBuildCommand:
    """Test cases for command construction."""

    def test_defaults(self, runner):
        """The timeout and reporter are always passed."""
        assert runner.build_command(RunOptions()) == [
            "npx", "playwright", "test", "--timeout", "5000", "--reporter", "json,line"]

    def test_selection_options(self, runner):
        """File, grep, workers and retries are appended in order."""
        options = RunOptions(test_file="tests/cart.spec.ts", grep="@JRN-0001", workers=1, retries=0,
                             timeout_ms=8000)
        assert runner.build_command(options) == [
            "npx", "playwright", "test", "tests/cart.spec.ts", "--grep", "@JRN-0001",
            "--workers", "1", "--retries", "0", "--timeout", "8000", "--reporter", "json,line"]

    def test_run_timeout(self, runner):
        """The whole-run timeout is the per-test timeout times the multiplier."""
        assert runner.run_timeout_seconds(RunOptions()) == 50
        assert runner.run_timeout_seconds(RunOptions(timeout_ms=1000)) == 10


class TestRun:
    """Test cases for running the subprocess."""

    @patch("src.journeyheal.services.test_runner.subprocess.run")
    def test_successful_run(self, mock_run, runner):
        """Exit code 0 is a success and the JSON output path is set in the environment."""
        mock_run.return_value = MagicMock(returncode=0, stdout="1 passed", stderr="")

        result = runner.run(RunOptions(test_file="tests/cart.spec.ts"))

        assert result.success
        assert result.exit_code == 0
        assert result.stdout == "1 passed"
        assert result.report_path is None
        kwargs = mock_run.call_args.kwargs
        assert kwargs["timeout"] == 50
        assert kwargs["env"]["PLAYWRIGHT_JSON_OUTPUT_NAME"].endswith(".json")

    @patch("src.journeyheal.services.test_runner.subprocess.run")
    def test_failed_run(self, mock_run, runner):
        """A non-zero exit code is a failure carrying the console output."""
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="1 failed")
        result = runner.run()
        assert not result.success
        assert (result.exit_code, result.stderr) == (1, "1 failed")

    @patch("src.journeyheal.services.test_runner.subprocess.run")
    def test_timeout(self, mock_run, runner):
        """A run that exceeds the bound is reported with exit code 124."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="npx", timeout=50, output=b"partial")
        result = runner.run()
        assert not result.success
        assert result.exit_code == 124
        assert result.stdout == "partial"
        assert result.stderr == "Test run timed out after 50s"

    @patch("src.journeyheal.services.test_runner.subprocess.run")
    def test_missing_executable(self, mock_run, runner):
        """A runner that cannot start is reported with exit code 127."""
        mock_run.side_effect = FileNotFoundError("npx: not found")
        result = runner.run()
        assert result.exit_code == 127
        assert "npx: not found" in result.stderr

    @patch("src.journeyheal.services.test_runner.subprocess.run")
    def test_report_is_discarded_after_reading(self, mock_run, runner, tmp_path):
        """The report written by a run is removed by discard_report, leaving the directory empty."""
        def write_report(args, env, **kwargs):
            with open(env["PLAYWRIGHT_JSON_OUTPUT_NAME"], "w", encoding="utf-8") as f:
                json.dump(SAMPLE_REPORT, f)
            return MagicMock(returncode=1, stdout="", stderr="1 failed")

        mock_run.side_effect = write_report
        result = runner.run()

        assert len(parse_playwright_report(result.report_path)) == 3
        runner.discard_report(result)
        assert list((tmp_path / "reports").iterdir()) == []
        # a second discard is harmless
        runner.discard_report(result)

    @patch("src.journeyheal.services.test_runner.subprocess.run")
    def test_partial_report_removed_on_timeout(self, mock_run, runner, tmp_path):
        """A report left behind by a timed-out run is deleted."""
        def write_partial(args, env, **kwargs):
            with open(env["PLAYWRIGHT_JSON_OUTPUT_NAME"], "w", encoding="utf-8") as f:
                f.write('{"suites": [')
            raise subprocess.TimeoutExpired(cmd="npx", timeout=50)

        mock_run.side_effect = write_partial
        result = runner.run()

        assert result.report_path is None
        assert list((tmp_path / "reports").iterdir()) == []


class TestParseReport:
    """Test cases for JSON report ingestion."""

    def test_nested_suites(self):
        """Every result becomes a record with its full title path."""
        records = parse_report(SAMPLE_REPORT)
        assert [r.key for r in records] == [
            "cart.spec.ts > Cart > adds an item",
            "cart.spec.ts > Cart > shows the total",
            "cart.spec.ts > Cart > checks out",
        ]
        assert records[0].failed
        assert records[0].errors[0].message == "Timeout 30000ms exceeded"
        assert records[0].errors[0].stack == "at cart.spec.ts:12:5"
        assert not records[1].failed
        assert records[2].failed
        assert records[2].errors[0].message == "Test timeout"

    def test_report_file(self, tmp_path):
        """Reports are read from disk."""
        path = tmp_path / "results.json"
        path.write_text(json.dumps(SAMPLE_REPORT), encoding="utf-8")
        assert len(parse_playwright_report(str(path))) == 3

    def test_unreadable_report(self, tmp_path):
        """Missing or invalid reports give no records."""
        bad = tmp_path / "bad.json"
        bad.write_text("{", encoding="utf-8")
        assert parse_playwright_report(str(bad)) == []
        assert parse_playwright_report(str(tmp_path / "missing.json")) == []
