"""Caller-supplied deadline and cancellation for adapter operations."""

from __future__ import annotations

import threading
import time
from typing import Optional

from execution_evm.errors import CancellationError


class CallContext:
    """Deadline plus cancellation flag, checked before every engine round trip.

    The deadline is an absolute ``time.monotonic()`` value. A context can be
    shared by several threads; ``cancel()`` may be called from any of them.
    """

    def __init__(self, deadline: Optional[float] = None, cancel_event: Optional[threading.Event] = None) -> None:
        self.deadline = deadline
        self._cancelled = cancel_event if cancel_event is not None else threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> CallContext:
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, method: Optional[str] = None) -> None:
        """Raise CancellationError if the call must not proceed to ``method``."""
        if self.cancelled:
            raise CancellationError(_describe("cancelled", method), method=method)
        if self.expired:
            raise CancellationError(_describe("deadline exceeded", method), method=method)


def _describe(reason: str, method: Optional[str]) -> str:
    if method is None:
        return reason
    return f"{reason} before {method}"
