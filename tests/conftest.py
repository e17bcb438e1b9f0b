"""Shared fixtures for report extractor tests."""

import asyncio

import pytest

from report_extractor.extraction.engine import ExtractionTask
from report_extractor.orchestration.rate_limiter import AdaptiveRateLimiter
from report_extractor.types.reports import Report


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting.

    Sleeping still yields to the event loop once, so concurrent sleepers
    interleave the way they would with real time.
    """

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        target = self.now + delay
        await asyncio.sleep(0)
        self.now = max(self.now, target)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_limiter(clock):
    """Factory for limiters driven by the fake clock, without jitter."""

    def _make(**kwargs) -> AdaptiveRateLimiter:
        kwargs.setdefault("jitter", 0.0)
        return AdaptiveRateLimiter(clock=clock, sleep=clock.sleep, **kwargs)

    return _make


@pytest.fixture
def sample_report():
    return Report(id="r1", name="report1.txt", content="Patient is 42 years old.")


@pytest.fixture
def sample_schema():
    return {
        "title": "Demographics",
        "type": "object",
        "properties": {"age": {"type": "integer"}, "sex": {"type": "string"}},
    }


@pytest.fixture
def sample_task(sample_report, sample_schema):
    return ExtractionTask(
        report=sample_report,
        schema=sample_schema,
        schema_id=0,
        system_prompt="Extract the fields.",
        model="test-model",
    )
