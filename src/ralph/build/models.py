"""Build verification data models.

Covers the project analysis document consumed by the gate, the build and test
stage results, TDD baselines, and the unified gate result.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from ralph.config.models import BaselineScope


class BuildAnalysis(BaseModel):
    """Build readiness as reported by project analysis."""

    ready: bool = False
    command: str | None = None
    reason: str = ""


class TestAnalysis(BaseModel):
    """Test readiness as reported by project analysis."""

    __test__ = False

    ready: bool = False
    command: str | None = None
    has_test_files: bool = False
    reason: str = ""


class LintAnalysis(BaseModel):
    command: str | None = None
    available: bool = False


class DependencyAnalysis(BaseModel):
    manager: str = ""
    installed: bool = False


class TaskListAnalysis(BaseModel):
    detected: bool = False
    path: str = ""
    format: str = ""
    task_count: int = 0


class ProjectAnalysis(BaseModel):
    """Snapshot of a project's build/test readiness.

    Produced once per project by an external analysis step. The gate only
    reads it; lint, dependency and task-list sections are carried through.
    """

    project_type: str = "unknown"
    languages: list[str] = Field(default_factory=list)
    is_greenfield: bool = False
    is_monorepo: bool = False
    build: BuildAnalysis = Field(default_factory=BuildAnalysis)
    test: TestAnalysis = Field(default_factory=TestAnalysis)
    lint: LintAnalysis = Field(default_factory=LintAnalysis)
    dependencies: DependencyAnalysis = Field(default_factory=DependencyAnalysis)
    task_list: TaskListAnalysis = Field(default_factory=TaskListAnalysis)
    project_context: str = ""


class CachedAnalysis(BaseModel):
    """A ProjectAnalysis with caching metadata."""

    analysis: ProjectAnalysis
    cached_at: datetime
    agent_name: str = ""
    agent_model: str = ""


class BootstrapState(BaseModel):
    """Readiness verdict from the project state detector."""

    model_config = ConfigDict(frozen=True)

    build_ready: bool
    test_ready: bool
    reason: str


class BuildError(BaseModel):
    """A single diagnostic parsed from build output."""

    model_config = ConfigDict(frozen=True)

    file: str | None = None
    line: int | None = None
    column: int | None = None
    message: str

    def __str__(self) -> str:
        if not self.file:
            return self.message
        location = self.file
        if self.line:
            location += f":{self.line}"
            if self.column:
                location += f":{self.column}"
        return f"{location}: {self.message}"


class TestFailure(BaseModel):
    """A single failure parsed from test output."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    test_name: str | None = None
    package: str | None = None
    file: str | None = None
    line: int | None = None
    message: str = ""

    @property
    def identifier(self) -> str | None:
        """``package/test_name`` (or just the test name), None without a name."""
        if not self.test_name:
            return None
        if self.package:
            return f"{self.package}/{self.test_name}"
        return self.test_name

    def __str__(self) -> str:
        text = ""
        if self.package:
            text += f"{self.package}/"
        if self.test_name:
            text += self.test_name
        if self.file:
            text += f" ({self.file}"
            if self.line:
                text += f":{self.line}"
            text += ")"
        if text:
            text += ": "
        return text + self.message


class ExecutionResult(BaseModel):
    """Shared shape of a build or test stage outcome.

    A skipped stage always reports success; skipping never blocks.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    skipped: bool = False
    skip_reason: str = ""
    command: str = ""
    output: str = ""
    duration: timedelta = timedelta(0)
    exit_code: int = 0


class BuildResult(ExecutionResult):
    """Outcome of the build stage."""

    errors: list[BuildError] = Field(default_factory=list)


class TestResult(ExecutionResult):
    """Outcome of the test stage, with optional counts when parseable."""

    __test__ = False

    failures: list[TestFailure] = Field(default_factory=list)
    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0


class TestBaseline(BaseModel):
    """Persisted snapshot of passing/failing test identifiers."""

    __test__ = False

    captured_at: datetime
    scope: BaselineScope = BaselineScope.GLOBAL
    passing: list[str] = Field(default_factory=list)
    failing: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    bootstrap_completed_at: datetime | None = None
    session_id: str = ""


class TDDResult(BaseModel):
    """Outcome of comparing a test run against the baseline."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    skipped: bool = False
    skip_reason: str = ""
    baseline_captured: bool = False
    regressions: list[str] = Field(default_factory=list)
    newly_passing: list[str] = Field(default_factory=list)
    total_passing: int = 0
    total_failing: int = 0
    message: str = ""


class GateStatus(StrEnum):
    """Overall gate outcome, ordered by severity."""

    PASSED = "passed"
    SKIPPED = "skipped"
    SKIPPED_BY_TASK = "skipped_by_task"
    FAILED = "failed"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def upgrade(self, candidate: GateStatus) -> GateStatus:
        """Return the more severe of self and candidate. FAILED is terminal."""
        if self == GateStatus.FAILED:
            return self
        if candidate.severity > self.severity:
            return candidate
        return self


_SEVERITY = {
    GateStatus.PASSED: 0,
    GateStatus.SKIPPED: 1,
    GateStatus.SKIPPED_BY_TASK: 1,
    GateStatus.FAILED: 2,
}


class GateResult(BaseModel):
    """Unified verification gate result.

    Stage results are None when the stage did not run. Build and test skip
    flags are independent of the overall status.
    """

    status: GateStatus = GateStatus.PASSED
    reason: str = ""
    build_result: BuildResult | None = None
    test_result: TestResult | None = None
    tdd_result: TDDResult | None = None
    build_skipped: bool = False
    build_skip_reason: str = ""
    test_skipped: bool = False
    test_skip_reason: str = ""

    @property
    def passed(self) -> bool:
        """True for passed and both skipped statuses."""
        return self.status != GateStatus.FAILED


class TaskGateOverride(BaseModel):
    """Stages a task has declared unnecessary."""

    model_config = ConfigDict(frozen=True)

    build_not_required: bool = False
    test_not_required: bool = False


class Task(BaseModel):
    """The subset of a stored task the gate reads."""

    id: str = ""
    title: str = ""
    description: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)

    def get_metadata(self, key: str) -> str | None:
        return self.metadata.get(key)
