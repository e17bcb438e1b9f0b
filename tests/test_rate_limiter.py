"""Tests for the adaptive rate limiter."""

import asyncio
import random

import pytest

from report_extractor.core.errors import ModelCallError, RateLimitError
from report_extractor.orchestration.rate_limiter import (
    AdaptiveRateLimiter,
    parse_reset_duration,
)


class TestEnforce:
    """Tests for the sliding-window request budget."""

    @pytest.mark.asyncio
    async def test_admits_up_to_budget_without_waiting(self, clock, make_limiter):
        """Calls within the budget should not sleep."""
        limiter = make_limiter(max_requests_per_window=3)

        for _ in range(3):
            await limiter.enforce()

        assert clock.sleeps == []
        assert limiter.get_status()["requests_in_window"] == 3

    @pytest.mark.asyncio
    async def test_waits_for_oldest_entry_to_leave_window(self, clock, make_limiter):
        """The call over budget should wait until the oldest call expires."""
        limiter = make_limiter(max_requests_per_window=3)

        await limiter.enforce()
        clock.advance(10)
        await limiter.enforce()
        await limiter.enforce()
        await limiter.enforce()

        # Oldest call at t=1000 leaves the window at t=1060
        assert clock.sleeps == [50.0]
        assert clock.now == 1060.0

    @pytest.mark.asyncio
    async def test_no_wait_after_window_elapsed(self, clock, make_limiter):
        """Entries older than the window should not count."""
        limiter = make_limiter(max_requests_per_window=2)

        await limiter.enforce()
        await limiter.enforce()
        clock.advance(61)
        await limiter.enforce()

        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_concurrent_callers_never_overshoot(self, clock, make_limiter):
        """Callers woken together must re-check the budget before proceeding."""
        limiter = make_limiter(max_requests_per_window=3)
        admitted: list[float] = []

        async def call():
            await limiter.enforce()
            admitted.append(clock.now)

        await asyncio.gather(*(call() for _ in range(7)))

        assert len(admitted) == 7
        for stamp in admitted:
            in_window = [t for t in admitted if stamp - 60.0 < t <= stamp]
            assert len(in_window) <= 3
        assert sorted(admitted) == [1000.0] * 3 + [1060.0] * 3 + [1120.0]

    @pytest.mark.asyncio
    async def test_low_capacity_pause_applies_before_admission(self, clock, make_limiter):
        """A low remaining-capacity header should delay the next call."""
        limiter = make_limiter(max_requests_per_window=50)

        limiter.update_from_headers(
            {
                "x-ratelimit-limit-requests": "100",
                "x-ratelimit-remaining-requests": "5",
                "x-ratelimit-reset-requests": "2s",
            }
        )
        await limiter.enforce()

        assert clock.sleeps == [2.0]

    def test_rejects_empty_budget(self):
        with pytest.raises(ValueError):
            AdaptiveRateLimiter(max_requests_per_window=0)


class TestBackoff:
    """Tests for error backoff computation."""

    def test_backoff_grows_multiplicatively(self, make_limiter):
        limiter = make_limiter(min_backoff=1.0, max_backoff=60.0)

        assert limiter.on_error(ModelCallError("boom")) == 2.0
        assert limiter.on_error(ModelCallError("boom")) == 4.0
        assert limiter.on_error(ModelCallError("boom")) == 8.0
        assert limiter.consecutive_errors == 3

    def test_backoff_clamped_to_maximum(self, make_limiter):
        limiter = make_limiter(min_backoff=1.0, max_backoff=5.0)

        delays = [limiter.on_error(ModelCallError("boom")) for _ in range(4)]

        assert delays == [2.0, 4.0, 5.0, 5.0]
        assert limiter.current_backoff == 5.0

    def test_jitter_stays_within_bounds(self):
        limiter = AdaptiveRateLimiter(min_backoff=1.0, jitter=0.1, rng=random.Random(42))

        delay = limiter.on_error(ModelCallError("boom"))

        assert 1.8 <= delay <= 2.2

    def test_delay_never_below_minimum(self, make_limiter):
        limiter = make_limiter(min_backoff=3.0, backoff_multiplier=0.5)

        assert limiter.on_error(ModelCallError("boom")) == 3.0

    def test_rate_limit_error_applies_floor(self, make_limiter):
        """A 429 should never back off less than the rate limit floor."""
        limiter = make_limiter(min_backoff=1.0, rate_limit_min_backoff=10.0)

        assert limiter.on_error(RateLimitError()) == 10.0
        assert limiter.on_error(RateLimitError()) == 20.0

    def test_status_code_429_counts_as_rate_limit(self, make_limiter):
        limiter = make_limiter(rate_limit_min_backoff=10.0)

        assert limiter.on_error(ModelCallError("slow down", status_code=429)) == 10.0

    def test_retry_after_is_honored(self, make_limiter):
        limiter = make_limiter(rate_limit_min_backoff=10.0, max_backoff=60.0)

        assert limiter.on_error(RateLimitError(retry_after=30)) == 30.0

    def test_retry_after_capped_by_maximum(self, make_limiter):
        limiter = make_limiter(max_backoff=60.0)

        assert limiter.on_error(RateLimitError(retry_after=120)) == 60.0

    def test_error_without_exception(self, make_limiter):
        limiter = make_limiter()

        assert limiter.on_error() == 2.0
        assert limiter.last_error_time is not None


class TestRecovery:
    """Tests for backoff reset after a quiet period."""

    def test_success_within_window_keeps_backoff(self, clock, make_limiter):
        limiter = make_limiter()
        limiter.on_error(ModelCallError("boom"))

        clock.advance(30)
        limiter.on_success()

        assert limiter.consecutive_errors == 1
        assert limiter.current_backoff == 2.0

    def test_success_after_quiet_window_resets(self, clock, make_limiter):
        limiter = make_limiter(min_backoff=1.0)
        limiter.on_error(ModelCallError("boom"))
        limiter.on_error(ModelCallError("boom"))

        clock.advance(61)
        limiter.on_success()

        assert limiter.consecutive_errors == 0
        assert limiter.current_backoff == 1.0
        assert limiter.last_error_time is None

    def test_success_without_errors_is_noop(self, make_limiter):
        limiter = make_limiter()

        limiter.on_success()

        assert limiter.consecutive_errors == 0
        assert limiter.current_backoff == 1.0


class TestEarlyTermination:
    """Tests for the consecutive rate limit error threshold."""

    def test_advises_termination_after_threshold(self, make_limiter):
        limiter = make_limiter(max_rate_limit_errors=5)

        for _ in range(4):
            limiter.on_error(RateLimitError())
        assert not limiter.should_terminate_early

        limiter.on_error(RateLimitError())
        assert limiter.should_terminate_early

    def test_success_clears_rate_limit_streak(self, make_limiter):
        limiter = make_limiter(max_rate_limit_errors=2)
        limiter.on_error(RateLimitError())
        limiter.on_error(RateLimitError())

        limiter.on_success()

        assert not limiter.should_terminate_early

    def test_other_errors_do_not_count(self, make_limiter):
        limiter = make_limiter(max_rate_limit_errors=2)

        for _ in range(5):
            limiter.on_error(ModelCallError("server error", status_code=500))

        assert not limiter.should_terminate_early


class TestHeaderRefinement:
    """Tests for budget refinement from x-ratelimit-* headers."""

    def test_lower_limit_tightens_budget(self, make_limiter):
        limiter = make_limiter(max_requests_per_window=3)

        limiter.update_from_headers({"x-ratelimit-limit-requests": "2"})

        assert limiter.max_requests_per_window == 2

    def test_higher_limit_never_loosens_budget(self, make_limiter):
        limiter = make_limiter(max_requests_per_window=3)

        limiter.update_from_headers({"X-RateLimit-Limit-Requests": "500"})

        assert limiter.max_requests_per_window == 3

    def test_headers_matched_case_insensitively(self, make_limiter):
        limiter = make_limiter(max_requests_per_window=10)

        limiter.update_from_headers({"X-RATELIMIT-LIMIT-REQUESTS": "4"})

        assert limiter.max_requests_per_window == 4

    def test_missing_headers_change_nothing(self, make_limiter):
        limiter = make_limiter(max_requests_per_window=3)

        limiter.update_from_headers({"content-type": "application/json"})

        assert limiter.max_requests_per_window == 3
        assert limiter.get_status()["header_limits"]["limit_requests"] is None

    def test_safe_parallelism_after_repeated_observations(self, make_limiter):
        limiter = make_limiter()
        headers = {
            "x-ratelimit-limit-requests": "100",
            "x-ratelimit-remaining-requests": "90",
        }

        limiter.update_from_headers(headers)
        limiter.update_from_headers(headers)
        assert limiter.safe_parallelism is None

        limiter.update_from_headers(headers)
        assert limiter.safe_parallelism == 10

    def test_safe_parallelism_at_least_one(self, make_limiter):
        limiter = make_limiter()
        headers = {
            "x-ratelimit-limit-requests": "3",
            "x-ratelimit-remaining-requests": "3",
        }

        for _ in range(3):
            limiter.update_from_headers(headers)

        assert limiter.safe_parallelism == 1

    def test_low_capacity_raises_backoff(self, make_limiter):
        limiter = make_limiter(min_backoff=1.0)

        limiter.update_from_headers(
            {
                "x-ratelimit-limit-requests": "100",
                "x-ratelimit-remaining-requests": "9",
            }
        )

        assert limiter.current_backoff == 2.0

    def test_reset_clears_learned_state(self, make_limiter):
        limiter = make_limiter()
        headers = {
            "x-ratelimit-limit-requests": "50",
            "x-ratelimit-remaining-requests": "50",
        }
        for _ in range(3):
            limiter.update_from_headers(headers)
        limiter.on_error(RateLimitError())

        limiter.reset()

        status = limiter.get_status()
        assert status["safe_parallelism"] is None
        assert status["consecutive_errors"] == 0
        assert status["current_backoff"] == 1.0


class TestParseResetDuration:
    """Tests for reset header duration parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1s", 1.0),
            ("6m0s", 360.0),
            ("20ms", 0.02),
            ("1h2m3.5s", 3723.5),
            ("1.5", 1.5),
            ("30", 30.0),
        ],
    )
    def test_parses_durations(self, value, expected):
        assert parse_reset_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, "", "soon"])
    def test_unparseable_returns_none(self, value):
        assert parse_reset_duration(value) is None
