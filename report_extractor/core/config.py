"""Configuration management for Report Extractor.

Loads provider and scheduling settings from environment variables with .env
file support, and the prompt/schema application config from a JSON file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import orjson
from dotenv import load_dotenv
from pydantic import ValidationError

from ..types.reports import AppConfig
from .errors import ConfigError

# Load .env file from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)

PROVIDER_OPENAI = "openai"
PROVIDER_GEMINI = "gemini"

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


@dataclass
class ExtractorConfig:
    """LLM endpoint and scheduler configuration."""

    provider: str
    api_key: str
    base_url: str = DEFAULT_OPENAI_BASE_URL
    model: str = ""

    # Scheduler
    initial_concurrency: int = 1
    max_concurrency: int = 50
    task_timeout: Optional[float] = None  # Seconds; None waits forever

    # Rate limiter
    max_requests_per_minute: int = 3  # OpenAI free tier
    min_backoff: float = 1.0
    max_backoff: float = 60.0
    rate_limit_min_backoff: float = 10.0
    max_rate_limit_errors: int = 5

    http_debug: bool = False

    def validate(self) -> list[str]:
        """Validate required configuration fields.

        Returns:
            List of validation error messages, empty if valid.
        """
        errors = []
        if self.provider not in (PROVIDER_OPENAI, PROVIDER_GEMINI):
            errors.append(f"Unknown provider: {self.provider}")
        if not self.api_key:
            errors.append("EXTRACTOR_API_KEY is required")
        if self.provider == PROVIDER_OPENAI and not self.base_url:
            errors.append("EXTRACTOR_BASE_URL is required for OpenAI-compatible APIs")
        if self.initial_concurrency < 1:
            errors.append("EXTRACTOR_INITIAL_CONCURRENCY must be at least 1")
        if self.max_concurrency < self.initial_concurrency:
            errors.append(
                "EXTRACTOR_MAX_CONCURRENCY must be at least EXTRACTOR_INITIAL_CONCURRENCY"
            )
        if self.max_requests_per_minute < 1:
            errors.append("EXTRACTOR_MAX_REQUESTS_PER_MINUTE must be at least 1")
        if self.max_rate_limit_errors < 1:
            errors.append("EXTRACTOR_MAX_RATE_LIMIT_ERRORS must be at least 1")
        return errors


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def _env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def get_config(provider: Optional[str] = None) -> ExtractorConfig:
    """Load configuration from environment variables.

    Args:
        provider: Provider override; takes precedence over EXTRACTOR_PROVIDER.

    Returns:
        ExtractorConfig instance populated from environment.

    Raises:
        ConfigError: If a numeric variable cannot be parsed.
    """
    # Import here to avoid circular import
    from ..clients.registry import detect_provider_from_url

    base_url = os.environ.get("EXTRACTOR_BASE_URL", "")
    provider = (provider or os.environ.get("EXTRACTOR_PROVIDER", "")).lower()
    if not provider:
        if base_url:
            provider = detect_provider_from_url(base_url)
        elif os.environ.get("GEMINI_API_KEY") and not os.environ.get("OPENAI_API_KEY"):
            provider = PROVIDER_GEMINI
        else:
            provider = PROVIDER_OPENAI

    if provider == PROVIDER_GEMINI:
        fallback_key = os.environ.get("GEMINI_API_KEY", "")
        base_url = base_url or GEMINI_BASE_URL
    else:
        fallback_key = os.environ.get("OPENAI_API_KEY", "")
        base_url = base_url or DEFAULT_OPENAI_BASE_URL

    return ExtractorConfig(
        provider=provider,
        api_key=os.environ.get("EXTRACTOR_API_KEY", "") or fallback_key,
        base_url=base_url,
        model=os.environ.get("EXTRACTOR_MODEL", ""),
        initial_concurrency=_env_int("EXTRACTOR_INITIAL_CONCURRENCY", 1),
        max_concurrency=_env_int("EXTRACTOR_MAX_CONCURRENCY", 50),
        task_timeout=_env_float("EXTRACTOR_TASK_TIMEOUT"),
        max_requests_per_minute=_env_int("EXTRACTOR_MAX_REQUESTS_PER_MINUTE", 3),
        min_backoff=_env_float("EXTRACTOR_MIN_BACKOFF", 1.0),
        max_backoff=_env_float("EXTRACTOR_MAX_BACKOFF", 60.0),
        rate_limit_min_backoff=_env_float("EXTRACTOR_RATE_LIMIT_MIN_BACKOFF", 10.0),
        max_rate_limit_errors=_env_int("EXTRACTOR_MAX_RATE_LIMIT_ERRORS", 5),
        http_debug=os.environ.get("EXTRACTOR_HTTP_DEBUG", "").lower() == "true",
    )


def load_app_config(path: Path) -> AppConfig:
    """Load the prompt/schema application config file.

    ``schemaFiles`` entries may be inline JSON schema objects or paths to
    schema files, resolved relative to the config file.

    Args:
        path: Path to the JSON config file.

    Returns:
        Parsed AppConfig with all schemas loaded.

    Raises:
        ConfigError: If the file or a referenced schema cannot be read.
    """
    try:
        raw: dict[str, Any] = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        raise ConfigError(f"Failed to load config file {path}: {e}") from e

    schemas: list[dict[str, Any]] = []
    schema_paths: list[str] = []
    for entry in raw.get("schemaFiles", []):
        if isinstance(entry, dict):
            schemas.append(entry)
            continue

        schema_path = (path.parent / str(entry)).resolve()
        try:
            schemas.append(orjson.loads(schema_path.read_bytes()))
        except (OSError, orjson.JSONDecodeError) as e:
            raise ConfigError(f"Failed to load schema {schema_path}: {e}") from e
        schema_paths.append(str(entry))

    raw["schemaFiles"] = schemas
    raw.setdefault("schemaFileUrls", schema_paths)

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
