"""Shell execution bound to a RunContext.

Every build, test and bootstrap probe command runs as ``sh -c <command>`` in
the project directory, as a single foreground child per call.
"""

from __future__ import annotations

import codecs
import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import IO, Any

from ralph.context import ContextError, RunContext
from ralph.errors import ExecutionError

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.05
_DRAIN_SECONDS = 5.0
_READ_SIZE = 4096


@dataclass(frozen=True)
class ShellOutcome:
    """Raw outcome of one shell command.

    ``output`` is stdout followed by stderr. ``context_error`` is set when the
    command did not exit cleanly and the context was done by then.
    """

    output: str
    exit_code: int
    duration: timedelta
    context_error: ContextError | None = None


def run_shell(
    command: str,
    cwd: Path,
    ctx: RunContext | None = None,
    output_sink: IO[Any] | None = None,
) -> ShellOutcome:
    """Run a command through ``sh -c`` under ctx.

    Args:
        command: Shell command line
        cwd: Working directory (the project root)
        ctx: Context whose cancellation or deadline kills the command
        output_sink: Optional stream receiving output as it is produced,
            e.g. a MonitoredWriter feeding a TimeoutMonitor

    Returns:
        ShellOutcome with combined output and exit status

    Raises:
        ExecutionError: If the shell itself could not be started.
    """
    ctx = ctx or RunContext.background()
    start = time.monotonic()
    logger.debug("Running %r in %s", command, cwd)

    try:
        proc = subprocess.Popen(
            ["sh", "-c", command],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        raise ExecutionError(
            f"failed to execute command {command!r}: {exc}",
            suggestion="Check that sh is installed and the project directory exists.",
            details={"command": command, "cwd": str(cwd)},
        ) from exc

    sink_lock = threading.Lock()
    stdout_chunks: list[str] = []
    stderr_chunks: list[str] = []
    readers = [
        threading.Thread(
            target=_drain,
            args=(proc.stdout, stdout_chunks, output_sink, sink_lock),
            daemon=True,
        ),
        threading.Thread(
            target=_drain,
            args=(proc.stderr, stderr_chunks, output_sink, sink_lock),
            daemon=True,
        ),
    ]
    for reader in readers:
        reader.start()

    killed = False
    while True:
        try:
            proc.wait(timeout=_POLL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            if ctx.done:
                _kill(proc)
                killed = True

    for reader in readers:
        reader.join(timeout=_DRAIN_SECONDS if killed else None)

    duration = timedelta(seconds=time.monotonic() - start)
    exit_code = proc.returncode
    context_error = ctx.err() if exit_code != 0 else None
    if context_error is not None:
        logger.debug("Command %r stopped: %s", command, context_error)

    return ShellOutcome(
        output="".join(stdout_chunks) + "".join(stderr_chunks),
        exit_code=exit_code,
        duration=duration,
        context_error=context_error,
    )


def _drain(
    pipe: IO[bytes] | None,
    chunks: list[str],
    sink: IO[Any] | None,
    sink_lock: threading.Lock,
) -> None:
    """Forward output in raw chunks so partial lines reach the sink."""
    if pipe is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    with pipe:
        while True:
            data = os.read(pipe.fileno(), _READ_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                chunks.append(text)
                if sink is not None:
                    with sink_lock:
                        sink.write(text)
            if not data:
                return


def _kill(proc: subprocess.Popen[bytes]) -> None:
    """Kill the shell and everything it started."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    proc.wait()
