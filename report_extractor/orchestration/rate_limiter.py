"""Adaptive rate limiter for LLM API calls.

Enforces a requests-per-window budget over a sliding window of call
timestamps, and computes exponentially growing backoff delays after errors.
Optionally tightens itself from ``x-ratelimit-*`` response headers.

All state is mutated from a single event loop; suspension points are
cooperative, so no locking is needed.
"""

import asyncio
import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..core.errors import is_rate_limit_error

logger = logging.getLogger(__name__)

WINDOW_DURATION = 60.0  # Seconds
LOW_CAPACITY_RATIO = 0.1
HEADER_CONFIDENCE_THRESHOLD = 3  # Full header observations before trusting them
SAFE_PARALLELISM_RATIO = 0.1  # Share of the per-window budget allowed in flight

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


def parse_reset_duration(value: Optional[str]) -> Optional[float]:
    """Parse a rate limit reset header into seconds.

    Accepts Go-style durations (``"1s"``, ``"6m0s"``, ``"20ms"``) and plain
    numbers of seconds.
    """
    if not value:
        return None

    value = value.strip()
    try:
        return float(value)
    except ValueError:
        pass

    parts = _DURATION_PART.findall(value)
    if not parts:
        return None

    scale = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}
    return sum(float(amount) * scale[unit] for amount, unit in parts)


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


@dataclass
class HeaderLimits:
    """Most recent rate limit values reported by the API."""

    limit_requests: Optional[int] = None
    remaining_requests: Optional[int] = None
    reset_seconds: Optional[float] = None
    full_observations: int = 0


class AdaptiveRateLimiter:
    """Sliding-window rate limiter with progressive backoff.

    Features:
    - Requests-per-window budget enforced by delaying callers
    - Multiplicative backoff with jitter on errors, clamped to a ceiling
    - Backoff floor for explicit rate limit (429) errors
    - Recovery only after a quiet period of one window duration
    - Budget tightening from response headers
    """

    def __init__(
        self,
        max_requests_per_window: int = 3,
        window_duration: float = WINDOW_DURATION,
        backoff_multiplier: float = 2.0,
        min_backoff: float = 1.0,
        max_backoff: float = 60.0,
        rate_limit_min_backoff: float = 10.0,
        jitter: float = 0.1,
        max_rate_limit_errors: int = 5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the rate limiter.

        Args:
            max_requests_per_window: Maximum calls admitted per window.
            window_duration: Sliding window length in seconds.
            backoff_multiplier: Growth factor for backoff on errors.
            min_backoff: Starting (and reset) backoff in seconds.
            max_backoff: Backoff ceiling in seconds.
            rate_limit_min_backoff: Minimum backoff after a 429 error.
            jitter: Relative random variation applied to backoff growth.
            max_rate_limit_errors: Consecutive 429s before early termination
                is advised.
            clock: Monotonic time source in seconds.
            sleep: Async sleep function.
            rng: Random source for jitter.
        """
        if max_requests_per_window < 1:
            raise ValueError("max_requests_per_window must be at least 1")

        self._max_requests = max_requests_per_window
        self._window = window_duration
        self._backoff_multiplier = backoff_multiplier
        self._min_backoff = min_backoff
        self._max_backoff = max_backoff
        self._rate_limit_min_backoff = rate_limit_min_backoff
        self._jitter = jitter
        self._max_rate_limit_errors = max_rate_limit_errors
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()

        # Timestamps of admitted calls, oldest first
        self._request_window: list[float] = []

        self._current_backoff = min_backoff
        self._consecutive_errors = 0
        self._consecutive_rate_limit_errors = 0
        self._last_error_time: Optional[float] = None

        self._headers = HeaderLimits()
        self._paused_until = 0.0
        self._safe_parallelism: Optional[int] = None

    @property
    def max_requests_per_window(self) -> int:
        return self._max_requests

    @property
    def window_duration(self) -> float:
        return self._window

    @property
    def current_backoff(self) -> float:
        return self._current_backoff

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def last_error_time(self) -> Optional[float]:
        return self._last_error_time

    @property
    def safe_parallelism(self) -> Optional[int]:
        """Concurrency ceiling hint learned from response headers, if any."""
        return self._safe_parallelism

    @property
    def should_terminate_early(self) -> bool:
        """True once rate limit errors keep arriving with no success between."""
        return self._consecutive_rate_limit_errors >= self._max_rate_limit_errors

    def _prune(self, now: float) -> None:
        """Drop timestamps that have left the window."""
        cutoff = now - self._window
        drop = 0
        for stamp in self._request_window:
            if stamp > cutoff:
                break
            drop += 1
        if drop:
            del self._request_window[:drop]

    async def enforce(self) -> None:
        """Wait until a call fits the budget, then record it.

        Re-checks the window after every wait so that concurrent callers
        woken together cannot overshoot the budget.
        """
        now = self._clock()
        if self._paused_until > now:
            delay = self._paused_until - now
            logger.debug(f"API reported low capacity, pausing {delay:.2f}s")
            await self._sleep(delay)

        while True:
            now = self._clock()
            self._prune(now)

            excess = len(self._request_window) - self._max_requests
            if excess < 0:
                self._request_window.append(now)
                return

            # Wait until enough old entries leave for one more call to fit
            blocking = self._request_window[excess]
            delay = blocking + self._window - now
            if delay > 0:
                logger.debug(
                    f"Rate limit budget reached ({self._max_requests}/"
                    f"{self._window:.0f}s), waiting {delay:.2f}s"
                )
                await self._sleep(delay)
            else:
                # Entry sits exactly on the window edge
                await self._sleep(0)

    def on_error(self, error: Optional[BaseException] = None) -> float:
        """Record a failed call and compute the backoff to apply.

        Args:
            error: The error raised by the call.

        Returns:
            Delay in seconds the caller should wait.
        """
        self._consecutive_errors += 1
        self._last_error_time = self._clock()

        factor = 1.0 + self._rng.uniform(-self._jitter, self._jitter)
        delay = self._current_backoff * self._backoff_multiplier * factor
        delay = max(self._min_backoff, delay)

        if is_rate_limit_error(error):
            self._consecutive_rate_limit_errors += 1
            delay = max(delay, self._rate_limit_min_backoff)
            retry_after = getattr(error, "retry_after", None)
            if isinstance(retry_after, (int, float)):
                delay = max(delay, float(retry_after))

        # Never shrink while errors keep coming
        delay = min(self._max_backoff, max(delay, self._current_backoff))
        self._current_backoff = delay

        logger.debug(
            f"API error #{self._consecutive_errors}, backing off {delay:.2f}s"
        )
        return delay

    def on_success(self) -> None:
        """Record a successful call.

        Backoff and the error counter reset only once a full window has
        passed since the last error.
        """
        self._consecutive_rate_limit_errors = 0

        if self._last_error_time is None:
            return

        if self._clock() - self._last_error_time > self._window:
            logger.debug("No errors for a full window, resetting backoff")
            self._consecutive_errors = 0
            self._current_backoff = self._min_backoff
            self._last_error_time = None

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Refine the budget from ``x-ratelimit-*`` response headers.

        Args:
            headers: Response headers (any mapping; keys matched
                case-insensitively).
        """
        lowered = {str(k).lower(): v for k, v in headers.items()}
        limit = _parse_int(lowered.get("x-ratelimit-limit-requests"))
        remaining = _parse_int(lowered.get("x-ratelimit-remaining-requests"))
        reset = parse_reset_duration(lowered.get("x-ratelimit-reset-requests"))

        if limit is None and remaining is None:
            return

        self._headers.limit_requests = limit
        self._headers.remaining_requests = remaining
        self._headers.reset_seconds = reset

        if limit is not None and 0 < limit < self._max_requests:
            logger.info(
                f"API reports {limit} requests per window, tightening budget "
                f"from {self._max_requests}"
            )
            self._max_requests = limit

        if limit is None or remaining is None:
            return

        self._headers.full_observations += 1
        if (
            self._safe_parallelism is None
            and self._headers.full_observations >= HEADER_CONFIDENCE_THRESHOLD
        ):
            self._safe_parallelism = max(1, int(limit * SAFE_PARALLELISM_RATIO))
            logger.info(f"Safe parallelism estimated at {self._safe_parallelism}")

        if remaining < limit * LOW_CAPACITY_RATIO:
            self._current_backoff = min(
                self._max_backoff,
                self._current_backoff * self._backoff_multiplier,
            )
            pause = reset if reset is not None else self._current_backoff
            self._paused_until = max(self._paused_until, self._clock() + pause)
            logger.debug(
                f"Remaining capacity low ({remaining}/{limit}), pausing new calls "
                f"for {pause:.2f}s"
            )

    async def wait(self, delay: float) -> None:
        """Suspend the caller for a backoff delay."""
        if delay > 0:
            await self._sleep(delay)

    def get_status(self) -> dict[str, Any]:
        """Get current rate limiter status."""
        self._prune(self._clock())
        return {
            "max_requests_per_window": self._max_requests,
            "window_duration": self._window,
            "requests_in_window": len(self._request_window),
            "current_backoff": self._current_backoff,
            "consecutive_errors": self._consecutive_errors,
            "consecutive_rate_limit_errors": self._consecutive_rate_limit_errors,
            "safe_parallelism": self._safe_parallelism,
            "header_limits": {
                "limit_requests": self._headers.limit_requests,
                "remaining_requests": self._headers.remaining_requests,
                "reset_seconds": self._headers.reset_seconds,
            },
        }

    def reset(self) -> None:
        """Reset all tracked state except the configured budget."""
        self._request_window.clear()
        self._current_backoff = self._min_backoff
        self._consecutive_errors = 0
        self._consecutive_rate_limit_errors = 0
        self._last_error_time = None
        self._headers = HeaderLimits()
        self._paused_until = 0.0
        self._safe_parallelism = None
