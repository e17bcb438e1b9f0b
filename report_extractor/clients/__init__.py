"""LLM provider clients."""

from .base import ModelCaller, ModelInfo
from .gemini_client import GeminiCaller
from .openai_client import OpenAICaller
from .registry import (
    create_caller,
    detect_provider_from_url,
    get_available_providers,
    get_provider_display_name,
    is_valid_provider,
)

__all__ = [
    "ModelCaller",
    "ModelInfo",
    "GeminiCaller",
    "OpenAICaller",
    "create_caller",
    "detect_provider_from_url",
    "get_available_providers",
    "get_provider_display_name",
    "is_valid_provider",
]
