"""Tests for RunContext cancellation and deadlines."""

import threading

from ralph.context import ContextError, RunContext


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRunContext:
    """Test RunContext."""

    def test_background_is_never_done(self) -> None:
        """A background context has no deadline and no error."""
        ctx = RunContext.background()
        assert ctx.err() is None
        assert not ctx.done
        assert ctx.deadline is None
        assert ctx.remaining() is None

    def test_cancel(self) -> None:
        """Cancelling sets CANCELED and records the cause."""
        ctx = RunContext.with_cancel()
        cause = RuntimeError("stop")
        ctx.cancel(cause)
        assert ctx.err() == ContextError.CANCELED
        assert ctx.cause() is cause

    def test_first_cancel_wins(self) -> None:
        """Later cancellations do not replace the first cause."""
        ctx = RunContext.with_cancel()
        first = RuntimeError("first")
        ctx.cancel(first)
        ctx.cancel(RuntimeError("second"))
        assert ctx.cause() is first

    def test_child_sees_parent_cancel(self) -> None:
        """Cancelling a parent cancels its children."""
        parent = RunContext.with_cancel()
        child = RunContext.with_cancel(parent)
        parent.cancel()
        assert child.err() == ContextError.CANCELED

    def test_child_cancel_does_not_affect_parent(self) -> None:
        """Cancellation never propagates upwards."""
        parent = RunContext.with_cancel()
        child = RunContext.with_cancel(parent)
        child.cancel()
        assert parent.err() is None

    def test_deadline_exceeded(self) -> None:
        """A context expires once its clock reaches the deadline."""
        clock = FakeClock()
        parent = RunContext(clock=clock)
        ctx = RunContext.with_timeout(5, parent)
        assert ctx.deadline == 105.0
        assert ctx.remaining() == 5.0

        clock.now = 104.9
        assert ctx.err() is None

        clock.now = 105.0
        assert ctx.err() == ContextError.DEADLINE_EXCEEDED
        assert ctx.remaining() == 0.0

    def test_child_never_outlives_parent_deadline(self) -> None:
        """A child's deadline is capped by its parent's."""
        clock = FakeClock()
        parent = RunContext(deadline=110.0, clock=clock)
        child = RunContext.with_timeout(60, parent)
        assert child.deadline == 110.0

    def test_wait_times_out(self) -> None:
        """wait() returns False if the context stays live."""
        ctx = RunContext.with_cancel()
        assert ctx.wait(timeout=0.05) is False

    def test_wait_returns_on_cancel(self) -> None:
        """wait() returns True once another thread cancels."""
        ctx = RunContext.with_cancel()
        timer = threading.Timer(0.05, ctx.cancel)
        timer.start()
        try:
            assert ctx.wait(timeout=5) is True
        finally:
            timer.cancel()
