"""Extraction task building and result bookkeeping.

A task is one (report, schema) pair that has no extracted data yet. Reports
already carrying a non-empty extraction for a schema are skipped, so an
interrupted run can be resumed.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.config import PROVIDER_OPENAI, ExtractorConfig
from ..types.reports import AppConfig, Extraction, Report


@dataclass(frozen=True)
class ExtractionTask:
    """One report to extract against one schema."""

    report: Report
    schema: dict[str, Any]
    schema_id: int
    system_prompt: str
    model: str

    @property
    def label(self) -> str:
        """Short description for logs and progress output."""
        title = self.schema.get("title") or f"schema {self.schema_id}"
        return f"{self.report.name} / {title}"


@dataclass
class ExtractionProgress:
    """Counts of work already done before a run starts."""

    report_task_counts: dict[str, int] = field(default_factory=dict)
    completed_reports: int = 0
    completed_tasks: int = 0


def build_extraction_tasks(
    reports: list[Report],
    schemas: list[dict[str, Any]],
    system_prompt: str,
    model: str,
) -> list[ExtractionTask]:
    """Build tasks for every report/schema pair not yet extracted.

    Args:
        reports: Reports to process.
        schemas: JSON schemas, indexed by position.
        system_prompt: Instruction text shared by all tasks.
        model: Model identifier shared by all tasks.

    Returns:
        Tasks in report-major order.
    """
    tasks: list[ExtractionTask] = []

    for report in reports:
        extracted = {e.schema_id for e in report.extractions if e.has_data}

        for schema_id, schema in enumerate(schemas):
            if schema_id in extracted:
                continue
            tasks.append(
                ExtractionTask(
                    report=report,
                    schema=schema,
                    schema_id=schema_id,
                    system_prompt=system_prompt,
                    model=model,
                )
            )

    return tasks


def count_extraction_progress(reports: list[Report], schema_count: int) -> ExtractionProgress:
    """Count schemas already extracted per report."""
    progress = ExtractionProgress()

    for report in reports:
        count = report.extracted_count
        progress.report_task_counts[report.id] = count
        progress.completed_tasks += count
        if count == schema_count:
            progress.completed_reports += 1

    return progress


def update_report_with_extraction(
    report: Report,
    schema_id: int,
    result: Optional[dict[str, Any]],
    error: Optional[BaseException] = None,
) -> Report:
    """Record a task outcome on its report.

    A failed task leaves any previous data for the schema untouched.
    """
    existing = report.get_extraction(schema_id)
    if existing is None:
        existing = Extraction(schema_id=schema_id)
        report.extractions.append(existing)

    if error is None:
        existing.data = result or {}

    return report


def get_missing_info(
    config: ExtractorConfig,
    app_config: Optional[AppConfig],
    reports: list[Report],
) -> list[str]:
    """List the inputs still missing before a run can start."""
    missing: list[str] = []

    if app_config is None:
        missing.append("Application configuration file (config.json)")
    else:
        if not app_config.system_prompt:
            missing.append("System prompt in configuration file")
        if not app_config.schema_files:
            missing.append("At least one JSON Schema in configuration file")

    if not config.api_key:
        missing.append("LLM API key")
    elif config.provider == PROVIDER_OPENAI and not config.base_url:
        missing.append("LLM API Base URL (required for OpenAI-compatible APIs)")

    if not config.model:
        missing.append("LLM model selection")

    if not reports:
        missing.append("At least one uploaded report")

    return missing
