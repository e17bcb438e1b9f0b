"""Report, extraction and run metadata models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class Extraction(BaseModel):
    """Fields extracted from one report against one schema."""

    schema_id: int = Field(description="Index of the schema in the app config")
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        """True if at least one field was extracted."""
        return bool(self.data)


class Report(BaseModel):
    """An uploaded text document."""

    id: str = Field(description="Stable report identifier")
    name: str = Field(description="Original file name")
    content: str = Field(description="Full report text")
    extractions: list[Extraction] = Field(default_factory=list)

    def get_extraction(self, schema_id: int) -> Optional[Extraction]:
        """Get the extraction recorded for a schema, if any."""
        for extraction in self.extractions:
            if extraction.schema_id == schema_id:
                return extraction
        return None

    @property
    def extracted_count(self) -> int:
        """Number of schemas with non-empty extraction data."""
        return sum(1 for e in self.extractions if e.has_data)


class AppConfig(BaseModel):
    """Prompt and schemas driving an extraction run."""

    system_prompt: str = Field(default="", alias="systemPrompt")
    schema_files: list[dict[str, Any]] = Field(default_factory=list, alias="schemaFiles")
    schema_file_urls: list[str] = Field(default_factory=list, alias="schemaFileUrls")

    model_config = {"populate_by_name": True}


class RunMetadata(BaseModel):
    """Provenance of a stored set of results."""

    tool_version: str = Field(description="report-extractor version")
    provider: str = Field(default="")
    model_name: str = Field(default="")
    started_at: datetime = Field(default_factory=datetime.now)
    ended_at: Optional[datetime] = Field(default=None)
    termination_reason: Optional[str] = Field(default=None)
    tasks_total: int = Field(default=0)
    tasks_failed: int = Field(default=0)


class ResultSnapshot(BaseModel):
    """On-disk representation of a result store."""

    metadata: RunMetadata
    reports: list[Report] = Field(default_factory=list)
