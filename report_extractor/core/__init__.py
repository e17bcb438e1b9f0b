"""Core infrastructure for Report Extractor."""

from .config import ExtractorConfig, get_config, load_app_config
from .errors import (
    AuthError,
    ConfigError,
    ExtractorError,
    ModelCallError,
    RateLimitError,
    TaskTimeoutError,
    format_api_error,
    get_error_status,
    is_auth_error,
    is_rate_limit_error,
)

__all__ = [
    # Config
    "ExtractorConfig",
    "get_config",
    "load_app_config",
    # Errors
    "AuthError",
    "ConfigError",
    "ExtractorError",
    "ModelCallError",
    "RateLimitError",
    "TaskTimeoutError",
    "format_api_error",
    "get_error_status",
    "is_auth_error",
    "is_rate_limit_error",
]
