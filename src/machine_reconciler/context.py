"""Cancellable execution context with an optional deadline."""

import threading
import time
from collections.abc import Callable
from types import TracebackType


class ExecutionContext:
    """Cancellation signal plus deadline shared by one reconciliation pass.

    Derived contexts are bounded by their parent: they expire no later than
    the parent and are cancelled when the parent is cancelled.
    """

    def __init__(
        self,
        timeout: float | None = None,
        parent: "ExecutionContext | None" = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._children: list[ExecutionContext] = []
        self._parent = parent

        deadline = clock() + timeout if timeout is not None else None
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

        if parent is not None:
            parent._attach(self)

    def _attach(self, child: "ExecutionContext") -> None:
        with self._lock:
            cancelled = self._cancelled.is_set()
            if not cancelled:
                self._children.append(child)
        if cancelled:
            child.cancel()

    def _detach(self, child: "ExecutionContext") -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def child(self, timeout: float | None = None) -> "ExecutionContext":
        """Derive a context bounded by this one and by `timeout`."""
        return ExecutionContext(timeout=timeout, parent=self, clock=self._clock)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._cancelled.set()
        with self._lock:
            children, self._children = self._children, []
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and self._clock() >= self.deadline

    @property
    def done(self) -> bool:
        """Check if the context was cancelled or its deadline passed."""
        return self.cancelled or self.expired

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancellation.

        Returns True if the context is done when the sleep ends.
        """
        remaining = self.remaining()
        timeout = seconds if remaining is None else min(seconds, remaining)
        self._cancelled.wait(max(0.0, timeout))
        return self.done

    def close(self) -> None:
        """Cancel the context and release it from its parent."""
        self.cancel()
        if self._parent is not None:
            self._parent._detach(self)

    def __enter__(self) -> "ExecutionContext":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
