"""Tests for the error taxonomy."""

from datetime import timedelta

from ralph.errors import (
    BaselineError,
    ConfigurationError,
    ExecutionError,
    RalphError,
    TimeoutExpiredError,
    TimeoutState,
    build_failed_error,
    no_tests_found_error,
    regression_error,
    tests_failed_error,
)


class TestRalphError:
    """Test RalphError formatting."""

    def test_message_only(self) -> None:
        """Errors without extras format to a single line."""
        err = RalphError("something broke")
        assert str(err) == "something broke"
        assert err.format() == "Error: something broke\n"

    def test_format_with_details_and_suggestion(self) -> None:
        """Details and suggestion are rendered in order."""
        err = RalphError("bad", suggestion="fix it").with_details("command", "make")
        text = err.format()
        assert "Error: bad" in text
        assert "Details:\n  command: make" in text
        assert text.rstrip().endswith("Suggestion: fix it")

    def test_subclasses(self) -> None:
        """Every category is a RalphError."""
        for cls in (ConfigurationError, ExecutionError, BaselineError):
            assert issubclass(cls, RalphError)

    def test_format_names_kind(self) -> None:
        """Subclasses lead with their own kind."""
        err = ConfigurationError("unknown test mode: strict")
        assert err.format().startswith("Configuration error: unknown test mode: strict")


class TestTimeoutExpiredError:
    """Test TimeoutExpiredError."""

    def test_stuck_message(self) -> None:
        """Durations are rounded to whole seconds."""
        err = TimeoutExpiredError(
            TimeoutState.STUCK, timedelta(seconds=1800.4), timedelta(minutes=30)
        )
        assert str(err) == "timeout: agent stuck after 0:30:00 (limit: 0:30:00)"
        assert err.is_stuck

    def test_active_is_not_stuck(self) -> None:
        err = TimeoutExpiredError(TimeoutState.ACTIVE, timedelta(hours=2), timedelta(hours=2))
        assert not err.is_stuck
        assert "agent active" in str(err)


class TestErrorConstructors:
    """Test the user-facing error constructors."""

    def test_build_failed(self) -> None:
        err = build_failed_error("go build ./...", 2, 3)
        assert err.details["command"] == "go build ./..."
        assert err.details["exit_code"] == "2"
        assert err.details["errors"] == "3 errors found"

    def test_build_failed_without_parsed_errors(self) -> None:
        assert "errors" not in build_failed_error("make", 1, 0).details

    def test_tests_failed_passing_rate(self) -> None:
        err = tests_failed_error("pytest", 2, 10)
        assert str(err) == "2 of 10 tests failed"
        assert err.details["passing_rate"] == "80.0%"

    def test_regressions_truncated(self) -> None:
        """Only the first five regressions are listed."""
        names = [f"test_{i}" for i in range(1, 8)]
        err = regression_error(names)
        assert str(err) == "7 test regressions detected"
        listing = err.details["regressed_tests"]
        assert "test_5" in listing
        assert "test_6" not in listing
        assert "... and 2 more" in listing

    def test_no_tests_found(self) -> None:
        err = no_tests_found_error("/work/app")
        assert err.details["directory"] == "/work/app"
        assert "bootstrap" in str(err)
