"""Smart timeout monitor.

Tracks output activity of a long-running process. A process that keeps
producing output is bounded by the active budget measured from the start; a
silent process is expired once the stuck budget passes since its last output.

All reads and writes go through one lock, so record_output() may be called
from an output pipe while other threads poll state() or is_expired().
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import timedelta
from typing import IO, Any

from ralph.config.models import TimeoutConfig
from ralph.context import RunContext
from ralph.errors import TimeoutExpiredError, TimeoutState

logger = logging.getLogger(__name__)

__all__ = ["MonitoredWriter", "TimeoutExpiredError", "TimeoutMonitor", "TimeoutState"]


class TimeoutMonitor:
    """Dual-mode (active/stuck) timeout tracking.

    Times are floats on the monitor's clock (time.monotonic by default). Every
    query accepts an explicit ``now`` so behavior can be checked at fixed points.
    """

    def __init__(
        self,
        config: TimeoutConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or TimeoutConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._activity = threading.Condition(self._lock)
        now = clock()
        self._start_time = now
        self._last_output_time = now
        self._total_bytes = 0

    @property
    def config(self) -> TimeoutConfig:
        return self._config

    @property
    def start_time(self) -> float:
        with self._lock:
            return self._start_time

    @property
    def last_output_time(self) -> float:
        with self._lock:
            return self._last_output_time

    @property
    def total_bytes_written(self) -> int:
        with self._lock:
            return self._total_bytes

    def record_output(self, bytes_written: int) -> None:
        """Record output at the current time, restarting the stuck countdown."""
        with self._activity:
            now = self._clock()
            if now > self._last_output_time:
                self._last_output_time = now
            self._total_bytes += bytes_written
            self._activity.notify_all()

    def state(self, now: float | None = None) -> TimeoutState:
        """ACTIVE if output was seen within the stuck window, else STUCK."""
        with self._lock:
            return self._state_at(self._now(now))

    def current_timeout(self, now: float | None = None) -> timedelta:
        """The budget that applies in the current state."""
        if self.state(now) == TimeoutState.STUCK:
            return self._config.stuck
        return self._config.active

    def time_since_last_output(self, now: float | None = None) -> timedelta:
        with self._lock:
            return timedelta(seconds=self._now(now) - self._last_output_time)

    def total_elapsed(self, now: float | None = None) -> timedelta:
        with self._lock:
            return timedelta(seconds=self._now(now) - self._start_time)

    def is_expired(self, now: float | None = None) -> bool:
        """True once either the stuck or the active deadline has passed."""
        with self._lock:
            return self._is_expired_at(self._now(now))

    def error(self, now: float | None = None) -> TimeoutExpiredError | None:
        """A TimeoutExpiredError naming the deadline that triggered, or None."""
        with self._lock:
            at = self._now(now)
            if not self._is_expired_at(at):
                return None
            silent = at - self._last_output_time
            if self._state_at(at) == TimeoutState.STUCK:
                return TimeoutExpiredError(
                    TimeoutState.STUCK, timedelta(seconds=silent), self._config.stuck
                )
            return TimeoutExpiredError(
                TimeoutState.ACTIVE,
                timedelta(seconds=at - self._start_time),
                self._config.active,
            )

    def deadline_time(self) -> float:
        """min(last output + stuck, start + active) on the monitor's clock."""
        with self._lock:
            return self._deadline()

    def time_remaining(self, now: float | None = None) -> timedelta:
        """Time until the current deadline; zero once expired."""
        with self._lock:
            remaining = self._deadline() - self._now(now)
        return timedelta(seconds=max(0.0, remaining))

    def reset(self) -> None:
        """Restart both budgets from now and clear the byte counter."""
        with self._activity:
            now = self._clock()
            self._start_time = now
            self._last_output_time = now
            self._total_bytes = 0
            self._activity.notify_all()

    def context_with_deadline(
        self,
        parent: RunContext | None = None,
        poll_interval: float = 1.0,
    ) -> tuple[RunContext, Callable[[], None]]:
        """Derive a context cancelled the first time the monitor expires.

        A watcher thread sleeps until the current deadline and is woken early
        by record_output() or reset(); poll_interval caps each sleep. The
        cancellation cause is the TimeoutExpiredError.

        Returns:
            (context, cancel) — call cancel() when done to stop the watcher.
        """
        ctx = RunContext.with_cancel(parent)
        watcher = threading.Thread(
            target=self._watch,
            args=(ctx, poll_interval),
            daemon=True,
            name="TimeoutMonitor",
        )
        watcher.start()
        return ctx, ctx.cancel

    def _watch(self, ctx: RunContext, poll_interval: float) -> None:
        while not ctx.done:
            with self._activity:
                now = self._clock()
                if not self._is_expired_at(now):
                    wait = min(poll_interval, max(0.0, self._deadline() - now))
                    self._activity.wait(timeout=max(wait, 0.001))
                    continue
            err = self.error()
            if err is None:
                continue
            logger.warning("Timeout monitor expired: %s", err)
            ctx.cancel(err)
            return

    @property
    def _stuck_seconds(self) -> float:
        return self._config.stuck.total_seconds()

    @property
    def _active_seconds(self) -> float:
        return self._config.active.total_seconds()

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now

    def _state_at(self, now: float) -> TimeoutState:
        if now >= self._last_output_time + self._stuck_seconds:
            return TimeoutState.STUCK
        return TimeoutState.ACTIVE

    def _is_expired_at(self, now: float) -> bool:
        # Stuck first: a young but silent process still expires.
        if self._state_at(now) == TimeoutState.STUCK:
            return True
        return now >= self._start_time + self._active_seconds

    def _deadline(self) -> float:
        return min(
            self._last_output_time + self._stuck_seconds,
            self._start_time + self._active_seconds,
        )


class MonitoredWriter:
    """Stream wrapper that records every non-empty write in a TimeoutMonitor."""

    def __init__(self, stream: IO[Any], monitor: TimeoutMonitor) -> None:
        self._stream = stream
        self._monitor = monitor

    @property
    def monitor(self) -> TimeoutMonitor:
        return self._monitor

    def write(self, data: Any) -> int:
        """Forward data and record its encoded size, not its character count."""
        written = self._stream.write(data)
        size = len(data.encode("utf-8")) if isinstance(data, str) else len(data)
        if size > 0:
            self._monitor.record_output(size)
        return len(data) if written is None else written

    def flush(self) -> None:
        self._stream.flush()
