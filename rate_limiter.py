"""
Sliding-window rate limiter shared by every outbound request.

The county allows 450 requests per 10 seconds. Admissions are counted in
coarse time buckets (100 ms by default); a bucket is only forgotten once
it lies entirely outside the trailing window, so no window of
`window_ms` ever sees more than `limit` admissions.

admit() busy-polls: when the window is full it sleeps `poll_interval`
and tries again. Fairness between concurrent waiters is only approximate
(whoever wakes first after a bucket expires wins).
"""

from __future__ import annotations

import logging
import threading
import time

from deadline import Deadline, check
from models import RateLimitStatus

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 450
DEFAULT_WINDOW_MS = 10_000


class SlidingWindowRateLimiter:
    """
    Admit at most `limit` requests in any trailing `window_ms` interval.

    `clock` returns seconds since the epoch and `sleep` blocks for a number
    of seconds; both are injectable so tests can run on a fake clock.
    """

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window_ms: int = DEFAULT_WINDOW_MS,
        bucket_ms: int = 100,
        poll_interval: float = 0.1,
        clock=time.time,
        sleep=time.sleep,
    ):
        if limit < 1:
            raise ValueError(f"limit must be positive: {limit}")
        if bucket_ms < 1 or bucket_ms > window_ms:
            raise ValueError(f"bucket_ms must be in [1, window_ms]: {bucket_ms}")
        self.limit = limit
        self.window_ms = window_ms
        self.bucket_ms = bucket_ms
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self._buckets: dict[int, int] = {}
        self._lock = threading.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _is_live(self, bucket: int, now_ms: int) -> bool:
        # A bucket stays live until its last millisecond has left the window.
        return (bucket + 1) * self.bucket_ms > now_ms - self.window_ms

    def _purge(self, now_ms: int) -> None:
        for bucket in [b for b in self._buckets if not self._is_live(b, now_ms)]:
            del self._buckets[bucket]

    def _try_admit(self) -> bool:
        with self._lock:
            now_ms = self._now_ms()
            self._purge(now_ms)
            if sum(self._buckets.values()) >= self.limit:
                return False
            bucket = now_ms // self.bucket_ms
            self._buckets[bucket] = self._buckets.get(bucket, 0) + 1
            return True

    def admit(self, deadline: Deadline | None = None) -> None:
        """Block until a permit is available, then reserve it."""
        waited = False
        while True:
            check(deadline)
            if self._try_admit():
                if waited:
                    logger.debug("Rate limit permit granted after waiting")
                return
            if not waited:
                logger.info(
                    f"Rate limit reached ({self.limit} per {self.window_ms} ms), waiting"
                )
                waited = True
            pause = self.poll_interval
            if deadline is not None:
                pause = deadline.clamp_timeout(pause)
            self._sleep(pause)

    def status(self) -> RateLimitStatus:
        """Current usage; read-only, safe to call at any frequency."""
        with self._lock:
            now_ms = self._now_ms()
            live = {b: c for b, c in self._buckets.items() if self._is_live(b, now_ms)}
        current = sum(live.values())
        if live:
            # When the oldest live bucket leaves the window, capacity frees up.
            reset_time = (min(live) + 1) * self.bucket_ms + self.window_ms
        else:
            reset_time = now_ms
        return RateLimitStatus(current=current, limit=self.limit, reset_time=reset_time)
