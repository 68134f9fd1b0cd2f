"""Gate configuration models.

Plain BaseModels with defaults; reading them from YAML or the environment is
left to the caller. Blank mode strings fall back to defaults, unknown ones
are configuration errors.
"""

from __future__ import annotations

from datetime import timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from ralph.errors import ConfigurationError

DEFAULT_ACTIVE_TIMEOUT = timedelta(hours=2)
DEFAULT_STUCK_TIMEOUT = timedelta(minutes=30)
DEFAULT_BASELINE_FILE = ".ralph/test_baseline.json"


class BootstrapDetection(StrEnum):
    """How the project's bootstrap (greenfield) state is determined."""

    AUTO = "auto"
    MANUAL = "manual"
    DISABLED = "disabled"


class TestMode(StrEnum):
    """Test-stage policy: block on failures, on regressions, or never."""

    __test__ = False

    GATE = "gate"
    TDD = "tdd"
    REPORT = "report"


class BaselineScope(StrEnum):
    """When a TDD baseline is (re)captured."""

    GLOBAL = "global"
    SESSION = "session"
    TASK = "task"


def _blank_to(default: StrEnum, value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return value


class TimeoutConfig(BaseModel):
    """Smart timeout budgets."""

    active: timedelta = DEFAULT_ACTIVE_TIMEOUT
    stuck: timedelta = DEFAULT_STUCK_TIMEOUT

    @field_validator("active", "stuck")
    @classmethod
    def _positive(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("timeout durations must be positive")
        return value


class BuildConfig(BaseModel):
    """Build verification settings."""

    command: str = ""
    bootstrap_detection: BootstrapDetection = BootstrapDetection.AUTO
    # Manual mode probe: exit 0 = still bootstrapping, non-zero = ready.
    bootstrap_check: str = ""

    @field_validator("bootstrap_detection", mode="before")
    @classmethod
    def _default_detection(cls, value: Any) -> Any:
        return _blank_to(BootstrapDetection.AUTO, value)


class TestConfig(BaseModel):
    """Test verification settings."""

    __test__ = False

    command: str = ""
    mode: TestMode = TestMode.GATE
    baseline_file: str = DEFAULT_BASELINE_FILE
    baseline_scope: BaselineScope = BaselineScope.GLOBAL

    @field_validator("mode", mode="before")
    @classmethod
    def _default_mode(cls, value: Any) -> Any:
        return _blank_to(TestMode.GATE, value)

    @field_validator("baseline_scope", mode="before")
    @classmethod
    def _default_scope(cls, value: Any) -> Any:
        return _blank_to(BaselineScope.GLOBAL, value)

    @field_validator("baseline_file", mode="before")
    @classmethod
    def _default_baseline_file(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_BASELINE_FILE
        return value


class GateConfig(BaseModel):
    """Complete configuration for the verification gate."""

    timeout: TimeoutConfig = TimeoutConfig()
    build: BuildConfig = BuildConfig()
    test: TestConfig = TestConfig()

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> GateConfig:
        """Validate a raw mapping (e.g. parsed YAML) into a GateConfig.

        Raises:
            ConfigurationError: If any value is invalid, such as an unknown mode.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise ConfigurationError(
                f"invalid gate configuration: {problems}",
                suggestion="Check the build, test and timeout sections of your config.",
            ) from exc
