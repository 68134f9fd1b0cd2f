"""Ralph build — bootstrap detection, build/test verification and the gate.

Public API for the build module.
"""

from ralph.build.analysis import AnalysisCache, fallback_analysis, parse_analysis_output
from ralph.build.bootstrap import BootstrapDetector
from ralph.build.gate import VerificationGate, parse_task_gate_override
from ralph.build.models import (
    BootstrapState,
    BuildError,
    BuildResult,
    GateResult,
    GateStatus,
    ProjectAnalysis,
    Task,
    TaskGateOverride,
    TDDResult,
    TestBaseline,
    TestFailure,
    TestResult,
)
from ralph.build.parsers import parse_build_errors, parse_test_failures
from ralph.build.shell import run_shell
from ralph.build.tdd import TDDManager, find_newly_passing, find_regressions
from ralph.build.verifiers import BuildVerifier, TestVerifier

__all__ = [
    "AnalysisCache",
    "BootstrapDetector",
    "BootstrapState",
    "BuildError",
    "BuildResult",
    "BuildVerifier",
    "GateResult",
    "GateStatus",
    "ProjectAnalysis",
    "TDDManager",
    "TDDResult",
    "Task",
    "TaskGateOverride",
    "TestBaseline",
    "TestFailure",
    "TestResult",
    "TestVerifier",
    "VerificationGate",
    "fallback_analysis",
    "find_newly_passing",
    "find_regressions",
    "parse_analysis_output",
    "parse_build_errors",
    "parse_task_gate_override",
    "parse_test_failures",
    "run_shell",
]
