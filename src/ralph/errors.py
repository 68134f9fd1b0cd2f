"""Error taxonomy with actionable suggestions.

Configuration and execution problems are raised. Command failures, timeouts
and skips are encoded in result models instead and never raised from here.
"""

from __future__ import annotations

from datetime import timedelta
from enum import StrEnum


class RalphError(Exception):
    """Base error carrying a message, optional suggestion and details."""

    kind = "error"

    def __init__(
        self,
        message: str,
        suggestion: str = "",
        details: dict[str, str] | None = None,
    ) -> None:
        """Initialize RalphError with a message."""
        self.message = message
        self.suggestion = suggestion
        self.details = dict(details) if details else {}
        super().__init__(message)

    def with_details(self, key: str, value: str) -> RalphError:
        """Attach a detail entry and return self for chaining."""
        self.details[key] = value
        return self

    def format(self) -> str:
        """Render the error with details and suggestion for display."""
        lines = [f"{self.kind.capitalize()}: {self}"]
        if self.details:
            lines.append("")
            lines.append("Details:")
            lines.extend(f"  {key}: {value}" for key, value in self.details.items())
        if self.suggestion:
            lines.append("")
            lines.append(f"Suggestion: {self.suggestion}")
        return "\n".join(lines) + "\n"


class ConfigurationError(RalphError):
    """Invalid or incomplete gate configuration."""

    kind = "configuration error"


class ExecutionError(RalphError):
    """A shell could not be launched for a build, test or probe command."""

    kind = "execution error"


class BaselineError(RalphError):
    """The test baseline file could not be read or written."""

    kind = "baseline error"


class AnalysisError(RalphError):
    """A project analysis document could not be loaded or parsed."""

    kind = "analysis error"


class TimeoutState(StrEnum):
    """Activity state reported by the smart timeout monitor."""

    ACTIVE = "active"
    STUCK = "stuck"


class TimeoutExpiredError(RalphError):
    """Raised or returned when the smart timeout monitor has expired."""

    kind = "timeout error"

    def __init__(self, state: TimeoutState, elapsed: timedelta, limit: timedelta) -> None:
        self.state = state
        self.elapsed = elapsed
        self.limit = limit
        super().__init__(
            f"timeout: agent {state} after {_round_seconds(elapsed)} "
            f"(limit: {_round_seconds(limit)})"
        )

    @property
    def is_stuck(self) -> bool:
        """True if the stuck (no output) deadline triggered expiry."""
        return self.state == TimeoutState.STUCK


def _round_seconds(value: timedelta) -> timedelta:
    return timedelta(seconds=round(value.total_seconds()))


def build_failed_error(command: str, exit_code: int, error_count: int) -> RalphError:
    """Build a user-facing error for a failed build."""
    err = RalphError(
        "build failed",
        suggestion=(
            "Review the build errors above and fix them.\n"
            "  Missing imports: add the required import statements\n"
            "  Type errors: check variable types and function signatures\n"
            "  Missing dependencies: run your package manager"
        ),
        details={"command": command, "exit_code": str(exit_code)},
    )
    if error_count > 0:
        err.with_details("errors", f"{error_count} errors found")
    return err


def tests_failed_error(command: str, failed_count: int, total_count: int) -> RalphError:
    """Build a user-facing error for failing tests."""
    details = {
        "command": command,
        "failed": str(failed_count),
        "total": str(total_count),
    }
    if total_count > 0:
        rate = (total_count - failed_count) / total_count * 100
        details["passing_rate"] = f"{rate:.1f}%"
    return RalphError(
        f"{failed_count} of {total_count} tests failed",
        suggestion=(
            "Review the test failures and fix them.\n"
            "In tdd mode only regressions block progress; "
            "pre-existing failures are tracked but tolerated."
        ),
        details=details,
    )


def regression_error(regressed_tests: list[str]) -> RalphError:
    """Build a user-facing error listing regressed tests (first five shown)."""
    shown = regressed_tests[:5]
    listing = "\n  - ".join(shown)
    if len(regressed_tests) > 5:
        listing += f"\n  ... and {len(regressed_tests) - 5} more"
    return RalphError(
        f"{len(regressed_tests)} test regressions detected",
        suggestion=(
            "These tests were passing before but are now failing. "
            "Fix the code, or update the tests if behavior changed intentionally."
        ),
        details={"regressed_tests": listing},
    )


def no_tests_found_error(project_dir: str) -> RalphError:
    """Build an informational error for projects without tests yet."""
    return RalphError(
        "no test files found (bootstrap phase)",
        suggestion=(
            "This is normal for new projects. Test verification is skipped until "
            "test files appear, then a baseline is captured."
        ),
        details={"directory": project_dir},
    )
