"""RunContext — cancellation and deadline propagation for command execution.

A context is cancelled explicitly or expires when its deadline passes.
Children observe their parent's cancellation and never outlive its deadline.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from enum import StrEnum


class ContextError(StrEnum):
    """Why a context is done."""

    CANCELED = "context canceled"
    DEADLINE_EXCEEDED = "context deadline exceeded"


class RunContext:
    """Carries a cancellation signal and an optional deadline (monotonic seconds)."""

    def __init__(
        self,
        parent: RunContext | None = None,
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._parent = parent
        self._clock = parent._clock if parent is not None else clock
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._err: ContextError | None = None
        self._cause: BaseException | None = None

    @classmethod
    def background(cls) -> RunContext:
        """A context that is never done unless cancelled."""
        return cls()

    @classmethod
    def with_cancel(cls, parent: RunContext | None = None) -> RunContext:
        """Derive a cancellable context from parent."""
        return cls(parent=parent)

    @classmethod
    def with_timeout(cls, seconds: float, parent: RunContext | None = None) -> RunContext:
        """Derive a context that expires after seconds."""
        clock = parent._clock if parent is not None else time.monotonic
        return cls(parent=parent, deadline=clock() + seconds)

    @property
    def deadline(self) -> float | None:
        """Absolute deadline on this context's clock, or None."""
        return self._deadline

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def cancel(self, cause: BaseException | None = None) -> None:
        """Cancel the context. Only the first cancellation is recorded."""
        with self._lock:
            if self._err is None:
                self._err = ContextError.CANCELED
                self._cause = cause
            self._cancelled.set()

    def err(self) -> ContextError | None:
        """None while running, otherwise the reason the context is done."""
        with self._lock:
            if self._err is not None:
                return self._err
        if self._parent is not None:
            parent_err = self._parent.err()
            if parent_err is not None:
                self._finish(parent_err, self._parent.cause())
                return parent_err
        if self._deadline is not None and self._clock() >= self._deadline:
            self._finish(ContextError.DEADLINE_EXCEEDED, None)
            return ContextError.DEADLINE_EXCEEDED
        return None

    def cause(self) -> BaseException | None:
        """The exception passed to cancel(), if any."""
        with self._lock:
            return self._cause

    @property
    def done(self) -> bool:
        """True once cancelled or past the deadline."""
        return self.err() is not None

    def wait(self, timeout: float | None = None, interval: float = 0.05) -> bool:
        """Block until the context is done or timeout elapses. Returns done."""
        end = None if timeout is None else time.monotonic() + timeout
        while not self.done:
            slice_ = interval
            if end is not None:
                left = end - time.monotonic()
                if left <= 0:
                    return False
                slice_ = min(slice_, left)
            self._cancelled.wait(slice_)
        return True

    def _finish(self, err: ContextError, cause: BaseException | None) -> None:
        with self._lock:
            if self._err is None:
                self._err = err
                self._cause = cause
            self._cancelled.set()
