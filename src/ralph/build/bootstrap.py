"""Project state (bootstrap/greenfield) detection."""

from __future__ import annotations

import logging
from pathlib import Path

from ralph.build.models import BootstrapState, ProjectAnalysis
from ralph.build.shell import run_shell
from ralph.config.models import BootstrapDetection, BuildConfig
from ralph.context import RunContext
from ralph.errors import ConfigurationError, ExecutionError

logger = logging.getLogger(__name__)

DISABLED_REASON = "bootstrap detection disabled"
GREENFIELD_REASON = "greenfield project (no buildable code yet)"
PROBE_READY_REASON = "bootstrap_check command returned non-zero (project ready)"
PROBE_BOOTSTRAPPING_REASON = "bootstrap_check command returned 0 (still bootstrapping)"


class BootstrapDetector:
    """Decides whether a project has reached a buildable/testable state.

    Modes:
    - disabled: always ready
    - manual: runs ``bootstrap_check``; exit 0 means still bootstrapping,
      any non-zero exit means ready
    - auto: reads a previously supplied ProjectAnalysis
    """

    def __init__(
        self,
        project_dir: Path,
        config: BuildConfig,
        analysis: ProjectAnalysis | None = None,
    ) -> None:
        self.project_dir = project_dir
        self.config = config
        self.analysis = analysis

    def detect(self, ctx: RunContext | None = None) -> BootstrapState:
        """Return the readiness verdict for the configured mode.

        Raises:
            ConfigurationError: Unknown mode, manual mode without a probe
                command, or auto mode without an analysis.
            ExecutionError: The probe command could not be started.
        """
        mode = self.config.bootstrap_detection
        if mode == BootstrapDetection.DISABLED:
            return BootstrapState(build_ready=True, test_ready=True, reason=DISABLED_REASON)
        if mode == BootstrapDetection.MANUAL:
            return self._detect_manual(ctx)
        if mode == BootstrapDetection.AUTO:
            return self._detect_from_analysis()
        raise ConfigurationError(f"unknown bootstrap_detection mode: {mode}")

    def _detect_manual(self, ctx: RunContext | None) -> BootstrapState:
        probe = self.config.bootstrap_check
        if not probe:
            raise ConfigurationError(
                "bootstrap_detection is 'manual' but bootstrap_check command is not set",
                suggestion="Set build.bootstrap_check, or use bootstrap_detection: auto.",
            )

        try:
            outcome = run_shell(probe, self.project_dir, ctx)
        except ExecutionError as exc:
            raise ExecutionError(f"failed to run bootstrap_check: {exc.message}") from exc

        if outcome.context_error is not None:
            raise ExecutionError(f"failed to run bootstrap_check: {outcome.context_error}")

        # Inverted convention: exit 0 means the project is still bootstrapping.
        if outcome.exit_code != 0:
            logger.debug("bootstrap_check exited %d: project ready", outcome.exit_code)
            return BootstrapState(build_ready=True, test_ready=True, reason=PROBE_READY_REASON)
        logger.debug("bootstrap_check exited 0: still bootstrapping")
        return BootstrapState(
            build_ready=False, test_ready=False, reason=PROBE_BOOTSTRAPPING_REASON
        )

    def _detect_from_analysis(self) -> BootstrapState:
        analysis = self.analysis
        if analysis is None:
            raise ConfigurationError(
                "bootstrap_detection is 'auto' but no project analysis is available",
                suggestion="Run project analysis first, or set bootstrap_detection: disabled.",
            )

        if analysis.is_greenfield:
            return BootstrapState(build_ready=False, test_ready=False, reason=GREENFIELD_REASON)

        build_ready = analysis.build.ready
        test_ready = analysis.test.ready and analysis.test.has_test_files
        build_reason = analysis.build.reason or (
            "build ready" if build_ready else "build not ready"
        )
        if analysis.test.ready and not analysis.test.has_test_files:
            test_reason = analysis.test.reason or "no test files found"
        else:
            test_reason = analysis.test.reason or (
                "tests ready" if test_ready else "tests not ready"
            )
        return BootstrapState(
            build_ready=build_ready,
            test_ready=test_ready,
            reason=f"{build_reason}; {test_reason}",
        )
