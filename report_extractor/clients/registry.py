"""Provider registry and factory for model callers."""

from typing import Any, Optional

from ..core.config import PROVIDER_GEMINI, PROVIDER_OPENAI, ExtractorConfig
from .base import HeaderObserver, ModelCaller
from .gemini_client import GeminiCaller
from .openai_client import OpenAICaller

PROVIDERS: dict[str, type[ModelCaller]] = {
    PROVIDER_OPENAI: OpenAICaller,
    PROVIDER_GEMINI: GeminiCaller,
}

PROVIDER_DESCRIPTIONS = {
    PROVIDER_OPENAI: "OpenAI API and compatible endpoints (Azure OpenAI, vLLM, Ollama, etc.)",
    PROVIDER_GEMINI: "Google Gemini API",
}


def create_caller(
    config: ExtractorConfig,
    on_headers: Optional[HeaderObserver] = None,
    **kwargs: Any,
) -> ModelCaller:
    """Create the model caller for the configured provider.

    Args:
        config: Extractor configuration.
        on_headers: Response header observer passed to the caller.
        **kwargs: Extra arguments for the caller (e.g. transport).

    Raises:
        ValueError: If the provider is unknown.
    """
    caller_class = PROVIDERS.get(config.provider)
    if caller_class is None:
        raise ValueError(
            f"Unknown provider: {config.provider}. Available: {list(PROVIDERS.keys())}"
        )
    return caller_class(
        api_key=config.api_key,
        base_url=config.base_url,
        debug=config.http_debug,
        on_headers=on_headers,
        **kwargs,
    )


def get_available_providers() -> list[dict[str, str]]:
    """List providers with display names and descriptions."""
    return [
        {
            "id": provider_id,
            "name": caller_class.display_name,
            "description": PROVIDER_DESCRIPTIONS[provider_id],
        }
        for provider_id, caller_class in PROVIDERS.items()
    ]


def get_provider_display_name(provider_id: str) -> str:
    caller_class = PROVIDERS.get(provider_id)
    return caller_class.display_name if caller_class else provider_id


def detect_provider_from_url(base_url: Optional[str]) -> str:
    """Guess the provider from an API base URL.

    An empty URL means Gemini, which needs no base URL.
    """
    if not base_url:
        return PROVIDER_GEMINI

    url = base_url.lower()
    if "generativelanguage.googleapis.com" in url or "gemini" in url or "google" in url:
        return PROVIDER_GEMINI
    return PROVIDER_OPENAI


def is_valid_provider(provider_id: str) -> bool:
    return provider_id in PROVIDERS
