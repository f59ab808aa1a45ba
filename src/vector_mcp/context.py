"""Cancellable deadlines carried by every dispatched operation."""

from __future__ import annotations

import math
import threading
import time

from vector_mcp.errors import OperationCancelled, OperationTimeout


class OperationContext:
    """Deadline plus cancellation flag for one operation.

    Contexts form a tree: a child created with `child(timeout)` expires at the
    earlier of its own deadline and its parent's, and cancelling a parent
    cancels every child. Backends call `check()` between steps and use
    `wait()` instead of `time.sleep()` so they stop promptly.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        parent: OperationContext | None = None,
        label: str = "",
    ) -> None:
        self.label = label
        self._parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[OperationContext] = []
        self._reason = ""

        deadline = math.inf if timeout is None else time.monotonic() + timeout
        if parent is not None:
            deadline = min(deadline, parent.deadline)
        self.deadline = deadline

    @classmethod
    def background(cls) -> OperationContext:
        """A context that never expires on its own."""
        return cls(label="background")

    def child(self, timeout: float | None = None, *, label: str = "") -> OperationContext:
        ctx = OperationContext(timeout=timeout, parent=self, label=label or self.label)
        with self._lock:
            self._children.append(ctx)
            cancelled = self._event.is_set()
        if cancelled:
            ctx.cancel(self._reason)
        return ctx

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel(reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> float:
        """Seconds until the deadline (`inf` when unbounded, never negative)."""
        if self.deadline == math.inf:
            return math.inf
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise if the operation may no longer proceed."""
        if self._event.is_set():
            raise OperationCancelled(f"operation {self._describe()}{self._reason}")
        if self.expired:
            raise OperationTimeout(f"operation {self._describe()}exceeded its deadline")

    def wait(self, seconds: float) -> None:
        """Sleep up to `seconds`, waking early and raising on cancel or expiry."""
        budget = min(seconds, self.remaining())
        if budget > 0:
            self._event.wait(None if budget == math.inf else budget)
        self.check()
        if budget < seconds:
            raise OperationTimeout(f"operation {self._describe()}exceeded its deadline")

    def _describe(self) -> str:
        return f"'{self.label}' " if self.label else ""
