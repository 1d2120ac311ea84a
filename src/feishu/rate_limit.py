"""Rate limiting for outbound webhook calls.

The platform caps custom bots at a number of calls per second and per
minute. `AdmissionController` enforces both windows at once: every call
reserves one permit from a second-scoped and a minute-scoped token bucket,
each reservation being made at the start of its (truncated) window.

Waiting for one window can carry a caller past the boundary of the other,
so any wait restarts the whole admission attempt from the top.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from collections.abc import Callable, Generator
from dataclasses import dataclass

from .errors import AdmissionError, AdmissionTimeout

logger = logging.getLogger(__name__)

DEFAULT_PER_SECOND = 5
DEFAULT_PER_MINUTE = 100

SECOND = 1.0
MINUTE = 60.0


@dataclass(frozen=True)
class Reservation:
    """Outcome of reserving one permit from a `TokenBucket`.

    - `ok`: False when the permit can never be granted (capacity below one).
    - `delay`: seconds to wait after the reservation time before acting.
    """

    ok: bool
    delay: float = 0.0


class TokenBucket:
    """A thread-safe token bucket that refills continuously.

    State:
    - rate = capacity / window (tokens per second)
    - capacity = burst size
    - tokens available at `last`
    - last = time of the most recent reservation

    `reserve(at)`:
    - refill by (at - last) * rate, clamp to capacity
    - no tokens left (or `at` older than `last`) -> None, nothing consumed
    - otherwise consume one token; a negative balance becomes a delay
    """

    def __init__(self, capacity: int, window: float):
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0. Got: {capacity}")
        if window <= 0:
            raise ValueError(f"window must be > 0. Got: {window}")

        self.capacity: float = float(capacity)
        self.window: float = float(window)
        self.rate: float = self.capacity / self.window
        self._tokens: float = self.capacity
        self._last: float | None = None
        self._lock = threading.Lock()

    def _advance(self, at: float) -> float:
        """Return the token count at `at` without mutating state (lock held)."""
        last = self._last
        if last is None or at < last:
            last = at
        return min(self.capacity, self._tokens + (at - last) * self.rate)

    def tokens_at(self, at: float) -> float:
        """Tokens that would be available at time `at`."""
        with self._lock:
            return self._advance(at)

    def reserve(self, at: float) -> Reservation | None:
        """Atomically reserve one permit at time `at`.

        Returns None when the bucket is exhausted at `at`; the caller should
        wait for the next window and try again.
        """
        with self._lock:
            if self.capacity < 1:
                return Reservation(ok=False)
            if self._last is not None and at < self._last:
                # A later window already reserved from this bucket.
                return None

            tokens = self._advance(at)
            if tokens <= 0:
                return None

            tokens -= 1.0
            delay = -tokens / self.rate if tokens < 0 else 0.0
            self._tokens = tokens
            self._last = at
            return Reservation(ok=True, delay=delay)


class AdmissionController:
    """Dual-window (per-second + per-minute) admission control.

    A negative capacity (<= -1) on either window disables limiting entirely.
    `acquire()` blocks the calling thread, `acquire_async()` suspends the
    calling task; both return the admission timestamp (epoch seconds).
    """

    def __init__(
        self,
        per_second: int = DEFAULT_PER_SECOND,
        per_minute: int = DEFAULT_PER_MINUTE,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Create a controller; `clock` and `sleep` are injectable for tests."""
        self.per_second = per_second
        self.per_minute = per_minute
        self._clock = clock
        self._sleep = sleep

        self.second: TokenBucket | None = None
        self.minute: TokenBucket | None = None
        if per_second > -1 and per_minute > -1:
            self.second = TokenBucket(per_second, SECOND)
            self.minute = TokenBucket(per_minute, MINUTE)

    @property
    def enabled(self) -> bool:
        return self.second is not None and self.minute is not None

    def acquire(self, timeout: float | None = None) -> float:
        """Block until both windows grant a permit; return the admission time."""
        steps = self._admission_steps(timeout)
        while True:
            try:
                delay = next(steps)
            except StopIteration as done:
                return done.value
            self._sleep(delay)

    async def acquire_async(self, timeout: float | None = None) -> float:
        """Async variant of `acquire()` that sleeps with `asyncio.sleep`."""
        steps = self._admission_steps(timeout)
        while True:
            try:
                delay = next(steps)
            except StopIteration as done:
                return done.value
            await asyncio.sleep(delay)

    def _admission_steps(self, timeout: float | None) -> Generator[float, None, float]:
        """Yield the sleeps admission needs; return the admission timestamp."""
        if self.second is None or self.minute is None:
            return self._clock()

        deadline = None if timeout is None else self._clock() + timeout

        while True:
            now = self._clock()
            admitted_at = now

            ts = float(math.floor(now))
            reservation = self.second.reserve(ts)
            if reservation is None:
                yield self._wait_until(ts + SECOND, deadline, "second")
                continue
            if not reservation.ok:
                raise AdmissionError("second-window: cannot grant token")
            if reservation.delay > 0:
                yield self._wait(reservation.delay, deadline, "second")
                admitted_at = now + reservation.delay

            tm = ts - (ts % MINUTE)
            reservation = self.minute.reserve(tm)
            if reservation is None:
                yield self._wait_until(tm + MINUTE, deadline, "minute")
                continue
            if not reservation.ok:
                raise AdmissionError("minute-window: cannot grant token")
            if reservation.delay > 0:
                yield self._wait(reservation.delay, deadline, "minute")
                admitted_at = max(admitted_at, now + reservation.delay)

            return admitted_at

    def _wait_until(self, boundary: float, deadline: float | None, window: str) -> float:
        """Seconds left until `boundary`, checked against the deadline."""
        return self._wait(max(0.0, boundary - self._clock()), deadline, window)

    def _wait(self, delay: float, deadline: float | None, window: str) -> float:
        if deadline is not None and self._clock() + delay > deadline:
            raise AdmissionTimeout(f"{window}-window: waiting {delay:.3f}s would exceed the timeout")
        logger.debug("Rate limit (%s window): waiting %.3fs", window, delay)
        return delay
