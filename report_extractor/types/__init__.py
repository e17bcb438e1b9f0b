"""Type definitions and Pydantic models."""

from .reports import (
    AppConfig,
    Extraction,
    Report,
    ResultSnapshot,
    RunMetadata,
)

__all__ = [
    "AppConfig",
    "Extraction",
    "Report",
    "ResultSnapshot",
    "RunMetadata",
]
