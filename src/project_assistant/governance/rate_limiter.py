"""Per-caller fixed-window rate limiter.

Each caller identity gets its own window of ``window_seconds``; the first
``max_requests`` requests in a window are admitted and the rest are denied
until the window rolls over. Checked once per chat request, before any model
or tool work, so a denied request costs nothing.
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from project_assistant.telemetry import RATE_LIMIT_EXCEEDED, get_logger

log = get_logger(__name__)


@dataclass
class RateWindow:
    """Admission state for one caller."""

    window_start: float
    count: int = 0


@dataclass(frozen=True)
class RateDecision:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests still available in the current window.
        retry_after_seconds: Whole seconds until the window resets (0 when allowed).
        limit: Configured maximum requests per window.
    """

    allowed: bool
    remaining: int
    retry_after_seconds: int
    limit: int


class RateLimiter:
    """Fixed-window admission control keyed strictly by caller identity.

    Thread-safe: the window map is guarded by a lock that is never held across
    I/O. The clock is injectable so tests can roll windows over deterministically.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the limiter.

        Args:
            max_requests: Requests admitted per caller per window.
            window_seconds: Window length in seconds.
            clock: Monotonic time source in seconds.

        Raises:
            ValueError: If limits are not positive.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def admit(self, caller_id: str) -> RateDecision:
        """Count a request against the caller's window.

        Args:
            caller_id: Caller identity (user id).

        Returns:
            RateDecision. Denied requests are not counted.
        """
        with self._lock:
            now = self._clock()
            window = self._windows.get(caller_id)
            if window is None or now - window.window_start >= self.window_seconds:
                window = RateWindow(window_start=now)
                self._windows[caller_id] = window

            if window.count >= self.max_requests:
                retry_after = math.ceil(window.window_start + self.window_seconds - now)
                decision = RateDecision(
                    allowed=False,
                    remaining=0,
                    retry_after_seconds=max(retry_after, 1),
                    limit=self.max_requests,
                )
            else:
                window.count += 1
                decision = RateDecision(
                    allowed=True,
                    remaining=self.max_requests - window.count,
                    retry_after_seconds=0,
                    limit=self.max_requests,
                )

        if not decision.allowed:
            log.warning(
                RATE_LIMIT_EXCEEDED,
                caller_id=caller_id,
                limit=self.max_requests,
                window_seconds=self.window_seconds,
                retry_after=decision.retry_after_seconds,
            )
        return decision

    def purge_expired(self) -> int:
        """Drop windows that have already rolled over.

        Returns:
            Number of windows removed.
        """
        with self._lock:
            now = self._clock()
            stale = [
                caller_id
                for caller_id, window in self._windows.items()
                if now - window.window_start >= self.window_seconds
            ]
            for caller_id in stale:
                del self._windows[caller_id]
        return len(stale)

    def reset(self, caller_id: str | None = None) -> None:
        """Forget admission state for one caller, or for everyone."""
        with self._lock:
            if caller_id is None:
                self._windows.clear()
            else:
                self._windows.pop(caller_id, None)
