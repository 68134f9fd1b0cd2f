"""Build and test verifiers.

Each verifier checks skip conditions before running anything, then executes
its command through ``sh -c`` under the caller's context and classifies the
output. Verifiers install no timeouts of their own.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Any

from ralph.build.models import (
    BuildError,
    BuildResult,
    ProjectAnalysis,
    TestFailure,
    TestResult,
)
from ralph.build.parsers import parse_build_errors, parse_test_counts, parse_test_failures
from ralph.build.shell import ShellOutcome, run_shell
from ralph.config.models import BuildConfig, TestConfig
from ralph.context import ContextError, RunContext

logger = logging.getLogger(__name__)

NO_BUILD_COMMAND = "no build command available"
NO_TEST_COMMAND = "no test command available"


class BuildVerifier:
    """Runs the build command with bootstrap awareness."""

    def __init__(
        self,
        project_dir: Path,
        config: BuildConfig,
        analysis: ProjectAnalysis | None = None,
        output_sink: IO[Any] | None = None,
    ) -> None:
        """Initialize build verifier.

        Args:
            project_dir: Root directory of the project
            config: Build configuration; ``command`` overrides the analysis
            analysis: Optional project analysis used for skips and command detection
            output_sink: Optional stream receiving live command output
        """
        self.project_dir = project_dir
        self.config = config
        self.analysis = analysis
        self.output_sink = output_sink

    def verify(self, ctx: RunContext | None = None) -> BuildResult:
        """Run build verification.

        Returns:
            BuildResult; skipped builds report success.

        Raises:
            ExecutionError: If the shell could not be started.
        """
        reason = self.skip_reason()
        if reason:
            logger.debug("Skipping build: %s", reason)
            return BuildResult(success=True, skipped=True, skip_reason=reason)

        command = self.command()
        if not command:
            logger.debug("Skipping build: %s", NO_BUILD_COMMAND)
            return BuildResult(success=True, skipped=True, skip_reason=NO_BUILD_COMMAND)

        outcome = run_shell(command, self.project_dir, ctx, self.output_sink)
        return self._result(command, outcome)

    def skip_reason(self) -> str:
        """Reason to skip the build, or "" to run it."""
        analysis = self.analysis
        if analysis is None:
            return ""
        if analysis.is_greenfield:
            return "greenfield project (no buildable code yet)"
        if not analysis.build.ready:
            return analysis.build.reason or "build not ready"
        return ""

    def command(self) -> str:
        """Configured command, falling back to the analysis-detected one."""
        if self.config.command:
            return self.config.command
        if self.analysis is not None and self.analysis.build.command:
            return self.analysis.build.command
        return ""

    def _result(self, command: str, outcome: ShellOutcome) -> BuildResult:
        common: dict[str, Any] = {
            "command": command,
            "output": outcome.output,
            "duration": outcome.duration,
        }
        if outcome.context_error == ContextError.DEADLINE_EXCEEDED:
            return BuildResult(
                success=False, errors=[BuildError(message="build timed out")], **common
            )
        if outcome.context_error == ContextError.CANCELED:
            return BuildResult(
                success=False, errors=[BuildError(message="build was canceled")], **common
            )
        if outcome.exit_code != 0:
            errors = parse_build_errors(outcome.output)
            logger.debug("Build exited %d with %d errors", outcome.exit_code, len(errors))
            return BuildResult(
                success=False, exit_code=outcome.exit_code, errors=errors, **common
            )
        return BuildResult(success=True, **common)


class TestVerifier:
    """Runs the test command with bootstrap awareness."""

    __test__ = False

    def __init__(
        self,
        project_dir: Path,
        config: TestConfig,
        analysis: ProjectAnalysis | None = None,
        output_sink: IO[Any] | None = None,
    ) -> None:
        self.project_dir = project_dir
        self.config = config
        self.analysis = analysis
        self.output_sink = output_sink

    def verify(self, ctx: RunContext | None = None) -> TestResult:
        """Run test verification; skipped runs report success.

        Raises:
            ExecutionError: If the shell could not be started.
        """
        reason = self.skip_reason()
        if reason:
            logger.debug("Skipping tests: %s", reason)
            return TestResult(success=True, skipped=True, skip_reason=reason)

        command = self.command()
        if not command:
            logger.debug("Skipping tests: %s", NO_TEST_COMMAND)
            return TestResult(success=True, skipped=True, skip_reason=NO_TEST_COMMAND)

        outcome = run_shell(command, self.project_dir, ctx, self.output_sink)
        return self._result(command, outcome)

    def skip_reason(self) -> str:
        """Reason to skip the tests, or "" to run them."""
        analysis = self.analysis
        if analysis is None:
            return ""
        if analysis.is_greenfield:
            return "greenfield project (no test files yet)"
        if not analysis.test.ready:
            return analysis.test.reason or "tests not ready"
        if not analysis.test.has_test_files:
            return "no test files found"
        return ""

    def command(self) -> str:
        if self.config.command:
            return self.config.command
        if self.analysis is not None and self.analysis.test.command:
            return self.analysis.test.command
        return ""

    def _result(self, command: str, outcome: ShellOutcome) -> TestResult:
        common: dict[str, Any] = {
            "command": command,
            "output": outcome.output,
            "duration": outcome.duration,
        }
        counts = parse_test_counts(outcome.output)
        if counts is not None:
            common.update(
                total_tests=counts.total,
                passed_tests=counts.passed,
                failed_tests=counts.failed,
            )
        if outcome.context_error == ContextError.DEADLINE_EXCEEDED:
            return TestResult(
                success=False, failures=[TestFailure(message="tests timed out")], **common
            )
        if outcome.context_error == ContextError.CANCELED:
            return TestResult(
                success=False, failures=[TestFailure(message="tests were canceled")], **common
            )
        if outcome.exit_code != 0:
            failures = parse_test_failures(outcome.output)
            logger.debug("Tests exited %d with %d failures", outcome.exit_code, len(failures))
            return TestResult(
                success=False, exit_code=outcome.exit_code, failures=failures, **common
            )
        return TestResult(success=True, **common)
