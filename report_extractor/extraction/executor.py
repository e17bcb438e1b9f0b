"""Per-task execution with output-parsing retries.

Wraps a ModelCaller into the execution function consumed by the
ConcurrencyScheduler. Only unparseable model output is retried here;
endpoint errors propagate so the scheduler's backoff governs them.
"""

import logging
from typing import Any, Callable

from ..clients.base import ModelCaller
from ..core.errors import AuthError, is_auth_error
from .engine import ExtractionTask
from .parser import extract_and_parse_json

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
DEFAULT_SEED = 1234


class ExtractionExecutor:
    """Execution function turning a task into an extracted-fields dict.

    Contract:
    - Up to ``max_attempts`` calls, seed varied per attempt, until the
      response carries a parseable ```json block holding an object
    - ``{}`` when attempts are exhausted or the run was terminated
    - AuthError on 401/403, any other endpoint error re-raised untouched
    """

    def __init__(
        self,
        caller: ModelCaller,
        max_attempts: int = MAX_ATTEMPTS,
        base_seed: int = DEFAULT_SEED,
        is_terminated: Callable[[], bool] = lambda: False,
    ):
        """Initialize the executor.

        Args:
            caller: Provider implementation performing the remote call.
            max_attempts: Calls allowed per task before giving up.
            base_seed: Seed for the first attempt; incremented per retry.
            is_terminated: Checked before each attempt.
        """
        self._caller = caller
        self._max_attempts = max_attempts
        self._base_seed = base_seed
        self._is_terminated = is_terminated

    async def __call__(self, task: ExtractionTask) -> dict[str, Any]:
        for attempt in range(self._max_attempts):
            if self._is_terminated():
                logger.debug(f"Run terminated, skipping {task.label}")
                break

            try:
                text = await self._caller.complete(task, seed=self._base_seed + attempt)
            except AuthError:
                raise
            except Exception as e:
                if is_auth_error(e):
                    raise AuthError(status_code=getattr(e, "status_code", None)) from e
                raise

            extracted = extract_and_parse_json(text)
            if isinstance(extracted, dict):
                return extracted

            logger.warning(
                f"Attempt {attempt + 1}/{self._max_attempts}: no valid JSON found "
                f"in {self._caller.name} response for {task.label}"
            )

        return {}
