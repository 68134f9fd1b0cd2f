"""VerificationGate — build → test → mode policy, under task overrides.

Stages run sequentially in the project directory. A failed build ends the
gate before tests run. The test stage result is then judged by the
configured mode:

- gate: any test failure fails the gate
- tdd: only regressions against the baseline fail the gate
- report: never fails, only describes the outcome

Status only ever moves towards greater severity; FAILED is final.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import IO, Any

from ralph.build.models import (
    BuildResult,
    GateResult,
    GateStatus,
    ProjectAnalysis,
    Task,
    TaskGateOverride,
    TestResult,
)
from ralph.build.tdd import TDDManager
from ralph.build.verifiers import BuildVerifier, TestVerifier
from ralph.config.models import BuildConfig, TestConfig, TestMode
from ralph.context import RunContext

logger = logging.getLogger(__name__)

TEST_GATE_KEY = "test_gate"
BUILD_GATE_KEY = "build_gate"
MAX_SUMMARISED_ERRORS = 3

# (pattern, override flag). Matched case-insensitively against the task
# description plus the test_gate/build_gate metadata values.
OVERRIDE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"tests?\s*:\s*(?:not\s+required|none|n/?a|skip)", re.I), "test_not_required"),
    (re.compile(r"no\s+tests?\s+(?:needed|required)", re.I), "test_not_required"),
    (re.compile(r"build\s*:\s*(?:not\s+required|none|n/?a|skip)", re.I), "build_not_required"),
    (re.compile(r"no\s+build\s+(?:needed|required)", re.I), "build_not_required"),
)


def parse_task_gate_override(task: Task | None) -> TaskGateOverride:
    """Derive stage overrides from a task's free text and gate metadata."""
    if task is None:
        return TaskGateOverride()

    text = task.description
    for key in (TEST_GATE_KEY, BUILD_GATE_KEY):
        value = task.get_metadata(key)
        if value is not None:
            text += " " + value

    flags = {"build_not_required": False, "test_not_required": False}
    for pattern, flag in OVERRIDE_PATTERNS:
        if not flags[flag] and pattern.search(text):
            flags[flag] = True
    return TaskGateOverride(**flags)


class VerificationGate:
    """Orchestrates build and test verification for a task."""

    def __init__(
        self,
        project_dir: Path,
        build_config: BuildConfig | None = None,
        test_config: TestConfig | None = None,
        analysis: ProjectAnalysis | None = None,
        session_id: str = "",
        output_sink: IO[Any] | None = None,
    ) -> None:
        """Initialize verification gate.

        Args:
            project_dir: Root directory of the project
            build_config: Build settings (command override, detection)
            test_config: Test settings (command override, mode, baseline)
            analysis: Project analysis used for bootstrap skips and commands
            session_id: Current session, used by session-scoped baselines
            output_sink: Optional stream receiving live command output
        """
        self.project_dir = project_dir
        self.build_config = build_config or BuildConfig()
        self.test_config = test_config or TestConfig()
        self.analysis = analysis
        self.session_id = session_id
        self.output_sink = output_sink

    def verify(self, task: Task | None, ctx: RunContext | None = None) -> GateResult:
        """Run the gate for a task, honouring its overrides.

        Raises:
            ExecutionError: If a build or test shell could not be started.
            BaselineError: If the TDD baseline cannot be read or written.
        """
        return self.verify_with_override(parse_task_gate_override(task), ctx)

    def verify_with_override(
        self,
        override: TaskGateOverride | None,
        ctx: RunContext | None = None,
    ) -> GateResult:
        """Run the gate with explicit overrides."""
        override = override or TaskGateOverride()
        result = GateResult(status=GateStatus.PASSED)

        self._run_build(result, override, ctx)
        if result.status == GateStatus.FAILED:
            logger.info("Gate failed at build stage: %s", result.reason)
            return result

        self._run_tests(result, override, ctx)
        logger.info("Gate %s: %s", result.status, result.reason)
        return result

    def _run_build(
        self, result: GateResult, override: TaskGateOverride, ctx: RunContext | None
    ) -> None:
        if override.build_not_required:
            result.build_skipped = True
            result.build_skip_reason = "build not required for this task"
            _escalate(result, GateStatus.SKIPPED_BY_TASK, "build skipped per task metadata")
            return

        verifier = BuildVerifier(
            self.project_dir, self.build_config, self.analysis, self.output_sink
        )
        build = verifier.verify(ctx)
        result.build_result = build

        if build.skipped:
            # A skipped build is routine and leaves the status alone.
            result.build_skipped = True
            result.build_skip_reason = build.skip_reason
            return

        if not build.success:
            _escalate(result, GateStatus.FAILED, format_build_failure(build))

    def _run_tests(
        self, result: GateResult, override: TaskGateOverride, ctx: RunContext | None
    ) -> None:
        if override.test_not_required:
            result.test_skipped = True
            result.test_skip_reason = "tests not required for this task"
            _escalate(result, GateStatus.SKIPPED_BY_TASK, "tests skipped per task metadata")
            return

        verifier = TestVerifier(self.project_dir, self.test_config, self.analysis, self.output_sink)
        tests = verifier.verify(ctx)
        result.test_result = tests

        if tests.skipped:
            result.test_skipped = True
            result.test_skip_reason = tests.skip_reason
            _escalate(result, GateStatus.SKIPPED, f"tests skipped: {tests.skip_reason}")
            return

        match self.test_config.mode:
            case TestMode.TDD:
                self._judge_tdd(result, tests)
            case TestMode.REPORT:
                self._judge_report(result, tests)
            case _:
                self._judge_gate(result, tests)

    def _judge_gate(self, result: GateResult, tests: TestResult) -> None:
        if not tests.success:
            _escalate(result, GateStatus.FAILED, format_test_failure(tests))
            return
        _describe(result, "all checks passed")

    def _judge_tdd(self, result: GateResult, tests: TestResult) -> None:
        manager = TDDManager(self.project_dir, self.test_config, self.analysis, self.session_id)
        tdd = manager.evaluate(tests)
        result.tdd_result = tdd

        if tdd.skipped:
            result.test_skipped = True
            result.test_skip_reason = tdd.skip_reason
            _escalate(result, GateStatus.SKIPPED, tdd.message)
            return
        if not tdd.passed:
            _escalate(result, GateStatus.FAILED, tdd.message)
            return
        _describe(result, tdd.message)

    def _judge_report(self, result: GateResult, tests: TestResult) -> None:
        if not tests.success:
            _describe(
                result,
                f"tests failed ({len(tests.failures)} failures), continuing in report mode",
            )
        else:
            _describe(result, "all tests passed")


def _escalate(result: GateResult, candidate: GateStatus, reason: str) -> None:
    """Move to a more severe status, recording the reason only on change."""
    upgraded = result.status.upgrade(candidate)
    if upgraded != result.status:
        result.status = upgraded
        result.reason = reason


def _describe(result: GateResult, reason: str) -> None:
    """Set a reason on a still-passing result that has none yet."""
    if result.status == GateStatus.PASSED and not result.reason:
        result.reason = reason


def format_build_failure(build: BuildResult) -> str:
    """Summarise at most three build errors for the gate reason."""
    if not build.errors:
        return "build failed"
    if len(build.errors) == 1:
        return f"build failed: {build.errors[0].message}"
    summary = "; ".join(e.message for e in build.errors[:MAX_SUMMARISED_ERRORS])
    extra = len(build.errors) - MAX_SUMMARISED_ERRORS
    if extra > 0:
        summary += f" (+{extra} more)"
    return f"build failed: {summary}"


def format_test_failure(tests: TestResult) -> str:
    """Name the failing test when there is one, otherwise count them."""
    if not tests.failures:
        return "tests failed"
    if len(tests.failures) == 1:
        failure = tests.failures[0]
        return f"test failed: {failure.test_name or failure.message}"
    return f"{len(tests.failures)} tests failed"
