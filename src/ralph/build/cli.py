"""CLI commands for the verification gate."""

from __future__ import annotations

import json
import logging
import os
import sys
from contextlib import AbstractContextManager, nullcontext
from datetime import timedelta
from pathlib import Path
from typing import IO

import rich
from rich.markup import escape

from ralph.build.analysis import AnalysisCache, load_analysis_file
from ralph.build.bootstrap import BootstrapDetector
from ralph.build.gate import VerificationGate
from ralph.build.models import BootstrapState, GateResult, GateStatus, ProjectAnalysis, Task
from ralph.build.tdd import TDDManager
from ralph.config.models import BootstrapDetection, GateConfig
from ralph.config.timeout import MonitoredWriter, TimeoutMonitor
from ralph.context import RunContext
from ralph.errors import (
    RalphError,
    build_failed_error,
    no_tests_found_error,
    regression_error,
    tests_failed_error,
)

logger = logging.getLogger(__name__)


def verify_command(
    project_root: Path,
    config: GateConfig,
    analysis_file: Path | None = None,
    task_description: str = "",
    session_id: str = "",
    format: str = "human",
    stream_output: bool = False,
) -> int:
    """Run the verification gate on a project.

    Args:
        project_root: Root directory of the project
        config: Gate configuration
        analysis_file: Optional analysis JSON; the cached analysis is used otherwise
        task_description: Free text searched for stage overrides
        session_id: Session id for session-scoped baselines
        format: Output format: "human" or "json"
        stream_output: Echo command output to stderr while it runs

    Returns:
        Exit code (0 = gate passed or skipped, 1 = failed or error)
    """
    try:
        if not project_root.exists():
            _error(format, f"Project root does not exist: {project_root}")
            return 1

        analysis = _load_analysis(project_root, analysis_file)

        # The readiness probe and the gate share one monitor.
        monitor = TimeoutMonitor(config.timeout)
        ctx, cancel = monitor.context_with_deadline()
        try:
            state = _detect_state(project_root, config, analysis, ctx)
            if state is not None and not state.build_ready and not state.test_ready:
                result = GateResult(
                    status=GateStatus.SKIPPED,
                    reason=f"project not ready: {state.reason}",
                    build_skipped=True,
                    build_skip_reason=state.reason,
                    test_skipped=True,
                    test_skip_reason=state.reason,
                )
            else:
                with _output_stream(stream_output) as stream:
                    gate = VerificationGate(
                        project_root,
                        build_config=config.build,
                        test_config=config.test,
                        analysis=analysis,
                        session_id=session_id,
                        output_sink=MonitoredWriter(stream, monitor),
                    )
                    result = gate.verify(Task(description=task_description), ctx)
        finally:
            cancel()

        timeout = monitor.error()
        if timeout is not None:
            logger.warning("%s", timeout)

        _output_result(result, format, project_root)
        return 0 if result.passed else 1

    except RalphError as e:
        if format == "human":
            rich.print(f"[red]{escape(e.format())}[/red]")
        else:
            _error(format, str(e))
        return 1


def baseline_command(
    project_root: Path,
    config: GateConfig,
    clear: bool = False,
    format: str = "human",
) -> int:
    """Show or clear the persisted TDD baseline.

    Returns:
        Exit code (0 = success, 1 = missing baseline or error)
    """
    manager = TDDManager(project_root, config.test)
    try:
        if clear:
            removed = manager.clear_baseline()
            if format == "human":
                message = "Baseline removed" if removed else "No baseline to remove"
                rich.print(f"[green]{message}[/green]")
            else:
                print(json.dumps({"removed": removed}))
            return 0

        baseline = manager.load_baseline()
    except RalphError as e:
        _error(format, str(e))
        return 1

    if baseline is None:
        _error(format, f"No baseline at {manager.baseline_path}")
        return 1

    if format == "json":
        print(baseline.model_dump_json(indent=2))
    else:
        rich.print(f"[bold]Baseline[/bold] {manager.baseline_path}")
        rich.print(f"  scope: {baseline.scope}")
        rich.print(f"  captured: {baseline.captured_at.isoformat()}")
        if baseline.session_id:
            rich.print(f"  session: {baseline.session_id}")
        rich.print(f"  passing: {len(baseline.passing)}")
        rich.print(f"  failing: {len(baseline.failing)}")
    return 0


def _load_analysis(project_root: Path, analysis_file: Path | None) -> ProjectAnalysis | None:
    if analysis_file is not None:
        return load_analysis_file(analysis_file)
    cache = AnalysisCache(project_root)
    analysis = cache.load_fresh()
    if analysis is None:
        logger.debug("No fresh project analysis cached in %s", cache.path)
    return analysis


def _output_stream(stream_output: bool) -> AbstractContextManager[IO[str]]:
    """stderr when streaming, otherwise a stream that discards output."""
    if stream_output:
        return nullcontext(sys.stderr)
    return open(os.devnull, "w", encoding="utf-8")


def _detect_state(
    project_root: Path,
    config: GateConfig,
    analysis: ProjectAnalysis | None,
    ctx: RunContext,
) -> BootstrapState | None:
    """Readiness verdict, or None when auto detection has no analysis to read."""
    if config.build.bootstrap_detection == BootstrapDetection.AUTO and analysis is None:
        logger.debug("Skipping bootstrap detection: no project analysis")
        return None
    state = BootstrapDetector(project_root, config.build, analysis).detect(ctx)
    logger.info(
        "Bootstrap state: build_ready=%s test_ready=%s (%s)",
        state.build_ready,
        state.test_ready,
        state.reason,
    )
    return state


def _error(format: str, message: str) -> None:
    if format == "human":
        rich.print(f"[red]Error:[/red] {message}")
    else:
        print(json.dumps({"error": message}))


def _output_result(result: GateResult, format: str, project_root: Path) -> None:
    """Output a gate result in the requested format."""
    if format == "json":
        print(result.model_dump_json(indent=2))
        return

    if result.status == GateStatus.FAILED:
        rich.print(f"\n[red]✗ Gate failed:[/red] {escape(result.reason)}\n")
    elif result.status == GateStatus.PASSED:
        rich.print(f"\n[green]✓ Gate passed:[/green] {escape(result.reason)}\n")
    else:
        rich.print(f"\n[yellow]○ Gate {result.status}:[/yellow] {escape(result.reason)}\n")

    build = result.build_result
    if result.build_skipped:
        rich.print(f"[dim]build skipped: {escape(result.build_skip_reason)}[/dim]")
    elif build is not None:
        mark = "[green]✓[/green]" if build.success else "[red]✗[/red]"
        rich.print(f"{mark} build: {escape(build.command)} ({_seconds(build.duration)})")
        for error in build.errors[:10]:
            rich.print(f"  {escape(str(error))}")

    tests = result.test_result
    if result.test_skipped:
        rich.print(f"[dim]tests skipped: {escape(result.test_skip_reason)}[/dim]")
    elif tests is not None:
        mark = "[green]✓[/green]" if tests.success else "[red]✗[/red]"
        rich.print(f"{mark} tests: {escape(tests.command)} ({_seconds(tests.duration)})")
        for failure in tests.failures[:10]:
            rich.print(f"  {escape(str(failure))}")

    tdd = result.tdd_result
    if tdd is not None and not tdd.skipped:
        rich.print(f"[dim]{escape(tdd.message)}[/dim]")
        if tdd.newly_passing:
            rich.print(f"[green]  now passing: {escape(', '.join(tdd.newly_passing))}[/green]")

    hint = _hint(result, project_root)
    if hint is not None:
        rich.print(f"\n[yellow]{escape(hint.format())}[/yellow]")

    rich.print("")


def _hint(result: GateResult, project_root: Path) -> RalphError | None:
    """User-facing explanation for a failed gate or a test-less project."""
    if result.status != GateStatus.FAILED:
        if result.test_skip_reason == "no test files found":
            return no_tests_found_error(str(project_root))
        return None
    if result.tdd_result is not None and result.tdd_result.regressions:
        return regression_error(result.tdd_result.regressions)
    build = result.build_result
    if build is not None and not build.success:
        return build_failed_error(build.command, build.exit_code, len(build.errors))
    tests = result.test_result
    if tests is not None and not tests.success:
        failed = tests.failed_tests or len(tests.failures)
        return tests_failed_error(tests.command, failed, tests.total_tests or failed)
    return None


def _seconds(value: timedelta) -> str:
    return f"{value.total_seconds():.2f}s"
