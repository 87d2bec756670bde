"""
Invocation-wide deadline shared by every I/O call of a migration run.

A Deadline is created once when a migration starts and handed to the
listing call, every save and every concurrent load. Each call derives its
own socket timeout from the time that is left, so no call can outlive the
run.
"""

import time
from typing import Optional

from docker_migrate.error_utils import create_deadline_exceeded_error


class Deadline:
    """A fixed point in (monotonic) time after which work must stop."""

    def __init__(self, timeout: Optional[float], clock=time.monotonic):
        """Start the deadline clock.

        Args:
            timeout: Seconds from now until expiry; None means no deadline.
            clock: Monotonic clock, injectable for tests.
        """
        self._clock = clock
        self.timeout = timeout
        self.started_at = clock()
        self.expires_at = None if timeout is None else self.started_at + timeout

    def remaining(self) -> Optional[float]:
        """Seconds left before expiry (never negative), or None when unbounded."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def check(self, operation: str) -> None:
        """Raise DeadlineExceededError if the deadline has already passed."""
        if self.expired:
            raise create_deadline_exceeded_error(operation, self.timeout)

    def timeout_for(self, operation: str, cap: Optional[float] = None) -> Optional[float]:
        """Timeout to hand to a single blocking call.

        Returns the time left, optionally capped (e.g. by a connect timeout).
        Raises DeadlineExceededError when nothing is left.
        """
        self.check(operation)
        remaining = self.remaining()
        if remaining is None:
            return cap
        if cap is None:
            return remaining
        return min(remaining, cap)

    def __repr__(self) -> str:
        return f"Deadline(timeout={self.timeout}, remaining={self.remaining()})"
