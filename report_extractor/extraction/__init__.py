"""Extraction tasks, prompts, response parsing and per-task execution."""

from .prompts import build_combined_prompt, build_developer_prompt, build_user_query
from .parser import (
    extract_and_parse_json,
    extract_json_from_response,
    has_schema_properties,
    parse_extracted_json,
)
from .engine import (
    ExtractionProgress,
    ExtractionTask,
    build_extraction_tasks,
    count_extraction_progress,
    get_missing_info,
    update_report_with_extraction,
)
from .executor import ExtractionExecutor

__all__ = [
    # Prompts
    "build_combined_prompt",
    "build_developer_prompt",
    "build_user_query",
    # Parser
    "extract_and_parse_json",
    "extract_json_from_response",
    "has_schema_properties",
    "parse_extracted_json",
    # Engine
    "ExtractionProgress",
    "ExtractionTask",
    "build_extraction_tasks",
    "count_extraction_progress",
    "get_missing_info",
    "update_report_with_extraction",
    # Executor
    "ExtractionExecutor",
]
