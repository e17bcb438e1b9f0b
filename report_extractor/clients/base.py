"""Base class for LLM provider clients.

A ModelCaller turns an extraction task into raw model text. Providers are
selected once at setup and injected into the ExtractionExecutor, so the
retry and JSON-extraction logic is shared across providers.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

import httpx

from ..core.errors import AuthError, ModelCallError, RateLimitError

if TYPE_CHECKING:
    from ..extraction.engine import ExtractionTask

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

HeaderObserver = Callable[[Mapping[str, str]], None]


@dataclass
class ModelInfo:
    """A model offered by a provider."""

    id: str
    display_name: str


class ModelCaller(ABC):
    """Abstract provider client.

    Subclasses implement the provider wire format; this base class owns the
    HTTP plumbing and maps failures onto the error taxonomy:
    401/403 -> AuthError, 429 -> RateLimitError, anything else that fails
    -> ModelCallError.
    """

    name: str = "base"
    display_name: str = "Base"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        debug: bool = False,
        on_headers: Optional[HeaderObserver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the caller.

        Args:
            api_key: Provider API key.
            base_url: API base URL.
            timeout: HTTP timeout per request in seconds.
            debug: Log request and response details.
            on_headers: Called with the headers of every response, e.g. to
                feed AdaptiveRateLimiter.update_from_headers.
            transport: Custom httpx transport (used in tests).
        """
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._debug = debug
        self.on_headers = on_headers
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    @abstractmethod
    async def complete(self, task: "ExtractionTask", seed: int) -> str:
        """Run one model call for a task and return the raw response text."""

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """List models available to these credentials."""

    def preferred_models(self) -> list[str]:
        """Models to pick by default, best first."""
        return []

    async def validate_credentials(self) -> bool:
        """Check the API key by listing models."""
        if not self._api_key:
            return False
        try:
            await self.list_models()
            return True
        except AuthError:
            logger.error(f"Invalid {self.display_name} API key")
            return False
        except ModelCallError as e:
            logger.error(f"Error checking {self.display_name} API key: {e}")
            return False

    def _build_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _log_request(self, method: str, url: str, **kwargs: Any) -> None:
        """Log request details if debug is enabled."""
        if self._debug:
            logger.debug(f"{self.display_name} {method} {url}")
            if "json" in kwargs:
                logger.debug(f"Request body: {kwargs['json']}")

    def _log_response(self, response: httpx.Response) -> None:
        """Log response details if debug is enabled."""
        if self._debug:
            logger.debug(f"Response status: {response.status_code}")
            logger.debug(f"Response body: {response.text[:1000]}")

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map unsuccessful responses onto the error taxonomy."""
        if response.is_success:
            return

        status = response.status_code
        detail = response.text[:500]

        if status in (401, 403):
            raise AuthError(status_code=status)

        if status == 429:
            retry_after: Optional[float] = None
            header = response.headers.get("Retry-After")
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    pass
            raise RateLimitError(
                f"{self.display_name} rate limit exceeded: {detail}",
                retry_after=retry_after,
            )

        raise ModelCallError(
            f"{self.display_name} API error {status}: {detail}", status_code=status
        )

    async def _request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make one HTTP request and return the decoded JSON body.

        No retries happen here; retrying is the scheduler's decision.
        """
        self._log_request(method, url, **kwargs)

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self._build_headers(),
                    **kwargs,
                )
        except httpx.TimeoutException as e:
            raise ModelCallError(f"{self.display_name} request timed out") from e
        except httpx.RequestError as e:
            raise ModelCallError(f"{self.display_name} request error: {e}") from e

        self._log_response(response)

        if self.on_headers is not None:
            self.on_headers(response.headers)

        self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as e:
            raise ModelCallError(
                f"{self.display_name} returned a non-JSON body",
                status_code=response.status_code,
            ) from e
