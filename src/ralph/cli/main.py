"""Ralph CLI application."""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import StrEnum
from pathlib import Path
from typing import Annotated

import typer
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler

import ralph as ralph_pkg
from ralph.config.models import (
    DEFAULT_ACTIVE_TIMEOUT,
    DEFAULT_BASELINE_FILE,
    DEFAULT_STUCK_TIMEOUT,
    BaselineScope,
    BootstrapDetection,
    GateConfig,
    TestMode,
)
from ralph.errors import RalphError


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    human = "human"
    json = "json"


app = typer.Typer(
    name="ralph",
    help="Build and test verification gate for autonomous coding loops.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    if value:
        rprint(f"ralph {ralph_pkg.__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log gate activity to stderr."),
    ] = False,
) -> None:
    """Ralph — verify builds and tests between agent iterations."""
    from dotenv import load_dotenv

    load_dotenv()
    _configure_logging(verbose)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _config_or_exit(data: dict[str, object]) -> GateConfig:
    try:
        return GateConfig.from_mapping(data)
    except RalphError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command("verify")
def verify(
    project_root: Annotated[
        str | None,
        typer.Option("--project-root", "-p", help="Project root directory"),
    ] = None,
    build_command: Annotated[
        str,
        typer.Option("--build-command", envvar="RALPH_BUILD_COMMAND", help="Build command"),
    ] = "",
    test_command: Annotated[
        str,
        typer.Option("--test-command", envvar="RALPH_TEST_COMMAND", help="Test command"),
    ] = "",
    mode: Annotated[
        TestMode,
        typer.Option("--mode", "-m", envvar="RALPH_TEST_MODE", help="Test mode"),
    ] = TestMode.GATE,
    detection: Annotated[
        BootstrapDetection,
        typer.Option("--bootstrap-detection", help="How bootstrap state is detected"),
    ] = BootstrapDetection.AUTO,
    bootstrap_check: Annotated[
        str,
        typer.Option("--bootstrap-check", help="Probe command for manual detection"),
    ] = "",
    baseline_file: Annotated[
        str,
        typer.Option("--baseline-file", help="TDD baseline path, relative to the project"),
    ] = DEFAULT_BASELINE_FILE,
    baseline_scope: Annotated[
        BaselineScope,
        typer.Option("--baseline-scope", help="When a new TDD baseline is captured"),
    ] = BaselineScope.GLOBAL,
    session_id: Annotated[
        str,
        typer.Option("--session-id", help="Session id for session-scoped baselines"),
    ] = "",
    task: Annotated[
        str,
        typer.Option("--task", "-t", help="Task description, scanned for gate overrides"),
    ] = "",
    analysis_file: Annotated[
        str | None,
        typer.Option("--analysis", "-a", help="Project analysis JSON file"),
    ] = None,
    active_timeout: Annotated[
        float,
        typer.Option("--active-timeout", help="Active budget in minutes"),
    ] = DEFAULT_ACTIVE_TIMEOUT.total_seconds() / 60,
    stuck_timeout: Annotated[
        float,
        typer.Option("--stuck-timeout", help="No-output budget in minutes"),
    ] = DEFAULT_STUCK_TIMEOUT.total_seconds() / 60,
    stream: Annotated[
        bool,
        typer.Option("--stream", help="Echo command output to stderr"),
    ] = False,
    format: Annotated[
        OutputFormat,
        typer.Option("--format", "-f", help="Output format"),
    ] = OutputFormat.human,
) -> None:
    """Run build and test verification on the project."""
    from ralph.build.cli import verify_command

    root = Path(project_root) if project_root else Path.cwd()
    config = _config_or_exit(
        {
            "timeout": {
                "active": timedelta(minutes=active_timeout),
                "stuck": timedelta(minutes=stuck_timeout),
            },
            "build": {
                "command": build_command,
                "bootstrap_detection": detection,
                "bootstrap_check": bootstrap_check,
            },
            "test": {
                "command": test_command,
                "mode": mode,
                "baseline_file": baseline_file,
                "baseline_scope": baseline_scope,
            },
        }
    )

    exit_code = verify_command(
        project_root=root,
        config=config,
        analysis_file=Path(analysis_file) if analysis_file else None,
        task_description=task,
        session_id=session_id,
        format=format.value,
        stream_output=stream,
    )
    raise typer.Exit(exit_code)


baseline_app = typer.Typer(help="Inspect or reset the TDD test baseline.")
app.add_typer(baseline_app, name="baseline")


@baseline_app.callback(invoke_without_command=True)
def baseline(ctx: typer.Context) -> None:
    """TDD baseline tools."""
    if ctx.invoked_subcommand is None:
        rprint("Use [bold]ralph baseline show[/bold] or [bold]ralph baseline clear[/bold].")
        raise typer.Exit(0)


@baseline_app.command("show")
def baseline_show(
    project_root: Annotated[
        str | None,
        typer.Option("--project-root", "-p", help="Project root directory"),
    ] = None,
    baseline_file: Annotated[
        str,
        typer.Option("--baseline-file", help="TDD baseline path, relative to the project"),
    ] = DEFAULT_BASELINE_FILE,
    format: Annotated[
        OutputFormat,
        typer.Option("--format", "-f", help="Output format"),
    ] = OutputFormat.human,
) -> None:
    """Show the stored TDD baseline."""
    from ralph.build.cli import baseline_command

    root = Path(project_root) if project_root else Path.cwd()
    config = _config_or_exit({"test": {"baseline_file": baseline_file}})
    raise typer.Exit(baseline_command(root, config, clear=False, format=format.value))


@baseline_app.command("clear")
def baseline_clear(
    project_root: Annotated[
        str | None,
        typer.Option("--project-root", "-p", help="Project root directory"),
    ] = None,
    baseline_file: Annotated[
        str,
        typer.Option("--baseline-file", help="TDD baseline path, relative to the project"),
    ] = DEFAULT_BASELINE_FILE,
    format: Annotated[
        OutputFormat,
        typer.Option("--format", "-f", help="Output format"),
    ] = OutputFormat.human,
) -> None:
    """Delete the stored TDD baseline so the next tdd run captures a new one."""
    from ralph.build.cli import baseline_command

    root = Path(project_root) if project_root else Path.cwd()
    config = _config_or_exit({"test": {"baseline_file": baseline_file}})
    raise typer.Exit(baseline_command(root, config, clear=True, format=format.value))

