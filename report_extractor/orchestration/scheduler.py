"""Adaptive concurrency scheduler for extraction tasks.

Runs tasks in strictly sequential batches whose width adapts to observed
outcomes: doubling after a streak of successes, halving on any failure.
Pacing of individual calls is delegated to the AdaptiveRateLimiter and the
actual work to an injected execution function.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from ..core.errors import TaskTimeoutError
from .rate_limiter import AdaptiveRateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SUCCESS_THRESHOLD = 5

ExecuteFn = Callable[[T], Awaitable[Any]]
TaskDoneCallback = Callable[[T, Any, Optional[BaseException]], Any]
BatchCompleteCallback = Callable[[], Any]


class TerminationReason(str, Enum):
    """Why a run was stopped before all tasks were dispatched."""

    USER = "user"
    AUTH_ERROR = "auth_error"
    RATE_LIMITED = "rate_limited"


@dataclass
class SchedulerStats:
    """Counters for a single run."""

    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    tasks_dispatched: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    batches: int = 0
    batch_widths: list[int] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get run duration."""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ConcurrencyScheduler(Generic[T]):
    """Drives tasks through adaptively sized concurrent batches.

    Features:
    - Strictly sequential batches, never more tasks in flight than the
      current concurrency
    - Concurrency doubles after a success streak, halves on any failure
    - Cooperative termination: in-flight calls finish, no new batch starts
    - Every outcome reported through ``on_task_done``; ``run()`` never raises
    """

    def __init__(
        self,
        execute_fn: ExecuteFn,
        initial_concurrency: int = 1,
        max_concurrency: int = 50,
        rate_limiter: Optional[AdaptiveRateLimiter] = None,
        success_threshold: int = DEFAULT_SUCCESS_THRESHOLD,
        task_timeout: Optional[float] = None,
    ):
        """Initialize the scheduler.

        Args:
            execute_fn: Async function performing one task; may raise.
            initial_concurrency: Batch width for the first batch.
            max_concurrency: Upper bound on batch width.
            rate_limiter: Limiter pacing each call. A default one is created
                if None.
            success_threshold: Consecutive successes needed to double
                concurrency. A batch narrower than this that completes
                without failures also doubles it.
            task_timeout: Seconds before a call is abandoned with a
                TaskTimeoutError; None waits forever.
        """
        if initial_concurrency < 1:
            raise ValueError("initial_concurrency must be at least 1")
        if max_concurrency < initial_concurrency:
            raise ValueError("max_concurrency must be at least initial_concurrency")

        self._execute_fn = execute_fn
        self._max_concurrency = max_concurrency
        self._concurrency = initial_concurrency
        self._success_threshold = success_threshold
        self._task_timeout = task_timeout
        self.rate_limiter = rate_limiter or AdaptiveRateLimiter()

        self._consecutive_successes = 0
        self._increases = 0
        self._terminated = False
        self._termination_reason: Optional[TerminationReason] = None
        self.stats = SchedulerStats()

    @property
    def concurrency(self) -> int:
        """Current batch width."""
        return self._concurrency

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    @property
    def termination_reason(self) -> Optional[TerminationReason]:
        return self._termination_reason

    def terminate(self, reason: TerminationReason = TerminationReason.USER) -> None:
        """Stop dispatching new batches.

        Idempotent; the first reason given is kept.
        """
        if self._terminated:
            return
        self._terminated = True
        self._termination_reason = reason
        logger.info(f"Termination requested ({reason.value})")

    def _ceiling(self) -> int:
        """Effective maximum, honoring the limiter's safe parallelism hint."""
        hint = self.rate_limiter.safe_parallelism
        if hint is not None:
            return max(1, min(self._max_concurrency, hint))
        return self._max_concurrency

    def _grow(self) -> None:
        ceiling = self._ceiling()
        if self._concurrency >= ceiling:
            return
        previous = self._concurrency
        self._concurrency = min(self._concurrency * 2, ceiling)
        self._consecutive_successes = 0
        self._increases += 1
        logger.info(f"Increasing concurrency {previous} -> {self._concurrency}")

    def _clamp(self) -> None:
        ceiling = self._ceiling()
        if self._concurrency > ceiling:
            logger.info(
                f"Reducing concurrency {self._concurrency} -> {ceiling} "
                "to respect the rate limit"
            )
            self._concurrency = ceiling

    def _record_success(self) -> None:
        self._consecutive_successes += 1
        if self._consecutive_successes >= self._success_threshold:
            self._grow()

    def _record_failure(self) -> None:
        self._consecutive_successes = 0
        if self._concurrency > 1:
            previous = self._concurrency
            self._concurrency = max(1, self._concurrency // 2)
            logger.info(f"Reducing concurrency {previous} -> {self._concurrency}")

    async def _execute(self, task: T) -> Any:
        if self._task_timeout is None:
            return await self._execute_fn(task)
        try:
            return await asyncio.wait_for(self._execute_fn(task), self._task_timeout)
        except asyncio.TimeoutError as e:
            raise TaskTimeoutError(
                f"Task did not complete within {self._task_timeout}s"
            ) from e

    async def run_task(self, task: T, on_task_done: TaskDoneCallback) -> None:
        """Execute a single task and report its outcome.

        ``on_task_done`` fires only after any backoff delay has elapsed.
        """
        result: Any = None
        error: Optional[BaseException] = None

        await self.rate_limiter.enforce()

        try:
            result = await self._execute(task)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if error is None:
            self.rate_limiter.on_success()
            self.stats.tasks_succeeded += 1
            self._record_success()
        else:
            delay = self.rate_limiter.on_error(error)
            self.stats.tasks_failed += 1
            self._record_failure()
            logger.warning(f"Task failed: {error!r}; backing off {delay:.2f}s")
            await self.rate_limiter.wait(delay)

        try:
            await _maybe_await(on_task_done(task, result, error))
        except Exception:
            logger.exception("on_task_done callback failed")

    async def run(
        self,
        tasks: Sequence[T],
        on_task_done: TaskDoneCallback,
        on_batch_complete: Optional[BatchCompleteCallback] = None,
    ) -> None:
        """Run all tasks in adaptively sized batches.

        Returns when every task has been processed or termination was
        requested. Outcomes are delivered through ``on_task_done``.

        Args:
            tasks: Tasks to run, in dispatch order.
            on_task_done: Called as ``(task, result, error)`` once per
                dispatched task, in completion order. May be async.
            on_batch_complete: Called after each batch fully resolves.
                May be async.
        """
        pending = list(tasks)
        index = 0
        self.stats = SchedulerStats()

        logger.info(
            f"Running {len(pending)} tasks (concurrency {self._concurrency}, "
            f"max {self._max_concurrency})"
        )

        while index < len(pending) and not self._terminated:
            self._clamp()
            width = self._concurrency
            batch = pending[index : index + width]
            index += len(batch)

            self.stats.batches += 1
            self.stats.batch_widths.append(len(batch))
            self.stats.tasks_dispatched += len(batch)
            logger.debug(f"Batch {self.stats.batches}: dispatching {len(batch)} tasks")

            failures_before = self.stats.tasks_failed
            increases_before = self._increases

            await asyncio.gather(*(self.run_task(task, on_task_done) for task in batch))

            # A clean batch too narrow to reach the streak threshold still counts
            if (
                self.stats.tasks_failed == failures_before
                and self._increases == increases_before
                and not self._terminated
            ):
                self._grow()

            if on_batch_complete is not None:
                try:
                    await _maybe_await(on_batch_complete())
                except Exception:
                    logger.exception("on_batch_complete callback failed")

        self.stats.completed_at = datetime.now()

        if self._terminated:
            logger.info(
                f"Run terminated after {self.stats.tasks_dispatched}/{len(pending)} "
                f"tasks ({self._termination_reason.value})"
            )
        else:
            logger.info(
                f"Run completed: {self.stats.tasks_succeeded} succeeded, "
                f"{self.stats.tasks_failed} failed in {self.stats.batches} batches"
            )

    def run_sync(
        self,
        tasks: Sequence[T],
        on_task_done: TaskDoneCallback,
        on_batch_complete: Optional[BatchCompleteCallback] = None,
    ) -> None:
        """Synchronous wrapper for run()."""
        asyncio.run(self.run(tasks, on_task_done, on_batch_complete))
