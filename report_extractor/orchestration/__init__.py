"""Execution orchestration for extraction runs."""

from .rate_limiter import (
    AdaptiveRateLimiter,
    HeaderLimits,
    parse_reset_duration,
)
from .scheduler import (
    ConcurrencyScheduler,
    SchedulerStats,
    TerminationReason,
)

__all__ = [
    # Rate Limiter
    "AdaptiveRateLimiter",
    "HeaderLimits",
    "parse_reset_duration",
    # Scheduler
    "ConcurrencyScheduler",
    "SchedulerStats",
    "TerminationReason",
]
