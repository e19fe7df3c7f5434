"""
Exponential backoff and deadline helpers for status polling.

Polling a remote build is not a retry: every call succeeds or aborts. What
grows is the wait between successful calls, so that long builds do not cost
one API request per second for their whole duration.

Usage:
    from cdbuild.utils.backoff import calculate_backoff_delay, Deadline

    deadline = Deadline(timeout=600)
    attempt = 0
    while not done():
        if deadline.expired():
            raise TimeoutError
        time.sleep(deadline.clamp(calculate_backoff_delay(attempt, 1.0, 10.0, 1.5)))
        attempt += 1
"""

import random
import time
from typing import Callable, Optional


def calculate_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    multiplier: float,
    jitter: bool = False,
) -> float:
    """
    Calculate delay for exponential backoff with optional jitter.

    Formula:
        delay = min(base_delay * (multiplier ** attempt), max_delay)
        if jitter:
            delay = delay * random.uniform(0.5, 1.5)

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap
        multiplier: Exponential multiplier
        jitter: Whether to add random jitter

    Returns:
        Calculated delay in seconds

    Example:
        >>> calculate_backoff_delay(2, base_delay=1.0, max_delay=60.0, multiplier=2.0)
        4.0
    """
    delay = min(base_delay * (multiplier ** attempt), max_delay)

    if jitter:
        delay = delay * random.uniform(0.5, 1.5)

    return delay


class Deadline:
    """
    A point in time after which waiting should stop.

    ``timeout=None`` never expires. The clock is injectable so tests can
    drive it without sleeping.
    """

    def __init__(
        self,
        timeout: Optional[float],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = timeout
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout

    def remaining(self) -> Optional[float]:
        """Seconds left, never negative. None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def clamp(self, delay: float) -> float:
        """Shorten ``delay`` so a sleep does not overrun the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return delay
        return min(delay, remaining)
