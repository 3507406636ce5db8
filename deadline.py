"""
Call deadlines and cooperative cancellation.

A Deadline is threaded through the rate limiter's poll loop and every
network call. Expiry and cancellation are reported with their own
exceptions so callers can tell them apart from transport failures.
"""

from __future__ import annotations

import threading
import time


class SearchCancelled(Exception):
    """The caller cancelled the operation."""


class DeadlineExceeded(Exception):
    """The operation ran past its deadline."""


class Deadline:
    """Absolute monotonic deadline with an optional cancel flag."""

    def __init__(self, seconds: float | None = None, clock=time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds
        self._cancelled = threading.Event()

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        """Seconds left, or None when there is no time bound."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        """Raise if cancelled or expired."""
        if self.cancelled:
            raise SearchCancelled("Operation cancelled by caller")
        if self.expired():
            raise DeadlineExceeded("Operation deadline exceeded")

    def clamp_timeout(self, timeout: float) -> float:
        """Shrink a request timeout so it cannot outlive the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return min(timeout, remaining)


def check(deadline: Deadline | None) -> None:
    if deadline is not None:
        deadline.check()
