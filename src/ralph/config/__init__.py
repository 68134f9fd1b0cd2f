"""Ralph configuration — gate settings and the smart timeout monitor."""

from ralph.config.models import (
    DEFAULT_ACTIVE_TIMEOUT,
    DEFAULT_BASELINE_FILE,
    DEFAULT_STUCK_TIMEOUT,
    BaselineScope,
    BootstrapDetection,
    BuildConfig,
    GateConfig,
    TestConfig,
    TestMode,
    TimeoutConfig,
)
from ralph.config.timeout import MonitoredWriter, TimeoutMonitor, TimeoutState

__all__ = [
    "DEFAULT_ACTIVE_TIMEOUT",
    "DEFAULT_BASELINE_FILE",
    "DEFAULT_STUCK_TIMEOUT",
    "BaselineScope",
    "BootstrapDetection",
    "BuildConfig",
    "GateConfig",
    "MonitoredWriter",
    "TestConfig",
    "TestMode",
    "TimeoutConfig",
    "TimeoutMonitor",
    "TimeoutState",
]
