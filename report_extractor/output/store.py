"""On-disk result store.

Keeps reports, their extractions and run provenance in ``results.json``
inside the output directory. Stored extractions are reused on the next run,
so only unsatisfied report/schema pairs are sent to the model again.
"""

import hashlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import orjson

from .. import __version__
from ..types.reports import Report, ResultSnapshot, RunMetadata
from .results import combine_extracted_data, export_csv

logger = logging.getLogger(__name__)

RESULTS_FILE = "results.json"
CSV_FILE = "results.csv"


def json_dumps(obj: Any) -> bytes:
    """Serialize object to JSON bytes using orjson."""
    return orjson.dumps(obj, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS)


def report_id_for(name: str, content: str) -> str:
    """Stable report identifier derived from its file name and content.

    Two files with identical text but different names stay separate reports.
    """
    digest = hashlib.sha256()
    digest.update(name.encode("utf-8"))
    digest.update(b"\0")
    digest.update(content.encode("utf-8"))
    return digest.hexdigest()[:16]


def load_report_file(path: Path) -> Report:
    """Read a text report from disk."""
    content = path.read_text(encoding="utf-8", errors="replace")
    return Report(id=report_id_for(path.name, content), name=path.name, content=content)


class ResultStore:
    """Reports and extraction results persisted in an output directory."""

    def __init__(self, output_dir: Path):
        """Initialize the store and load any previous results.

        Args:
            output_dir: Directory holding results.json.
        """
        self._output_dir = output_dir
        self._reports: dict[str, Report] = {}
        self.metadata: Optional[RunMetadata] = None
        self._load()

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def results_path(self) -> Path:
        return self._output_dir / RESULTS_FILE

    @property
    def reports(self) -> list[Report]:
        return list(self._reports.values())

    def _load(self) -> None:
        if not self.results_path.exists():
            return

        try:
            snapshot = ResultSnapshot.model_validate(
                orjson.loads(self.results_path.read_bytes())
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable results file {self.results_path}: {e}")
            return

        self.metadata = snapshot.metadata
        self._reports = {report.id: report for report in snapshot.reports}
        logger.debug(f"Loaded {len(self._reports)} reports from {self.results_path}")

    @property
    def has_extractions(self) -> bool:
        """True if any stored report has non-empty extraction data."""
        return any(report.extracted_count for report in self._reports.values())

    @property
    def last_model(self) -> Optional[str]:
        """Model that produced the stored results, if known."""
        return self.metadata.model_name if self.metadata else None

    def add_reports(self, reports: list[Report]) -> list[Report]:
        """Add reports, keeping stored extractions for unchanged content.

        Reports repeated within ``reports`` are added once.

        Returns:
            The stored instance for each distinct report, in the given order.
        """
        stored: list[Report] = []
        seen: set[str] = set()
        for report in reports:
            if report.id in seen:
                logger.info(f"Skipping duplicate report {report.name}")
                continue
            seen.add(report.id)
            existing = self._reports.get(report.id)
            if existing is None:
                self._reports[report.id] = report
                existing = report
            stored.append(existing)
        return stored

    def clear_extractions(self) -> None:
        """Drop all stored extraction data."""
        for report in self._reports.values():
            report.extractions = []

    def start_run(self, provider: str, model_name: str) -> RunMetadata:
        """Begin provenance tracking for a new run."""
        self.metadata = RunMetadata(
            tool_version=__version__,
            provider=provider,
            model_name=model_name,
        )
        return self.metadata

    def finish_run(
        self,
        termination_reason: Optional[str] = None,
        tasks_total: int = 0,
        tasks_failed: int = 0,
    ) -> None:
        """Record the end of the current run."""
        if self.metadata is None:
            return
        self.metadata.ended_at = datetime.now()
        self.metadata.termination_reason = termination_reason
        self.metadata.tasks_total = tasks_total
        self.metadata.tasks_failed = tasks_failed

    def save(self) -> Path:
        """Write results.json."""
        self._output_dir.mkdir(parents=True, exist_ok=True)
        snapshot = ResultSnapshot(
            metadata=self.metadata or RunMetadata(tool_version=__version__),
            reports=self.reports,
        )
        tmp_path = self.results_path.with_suffix(".json.tmp")
        with open(tmp_path, "wb") as f:
            f.write(json_dumps(snapshot.model_dump(mode="json")))
        tmp_path.replace(self.results_path)
        return self.results_path

    def export_csv(self) -> Path:
        """Write the combined per-report table as CSV."""
        return export_csv(combine_extracted_data(self.reports), self._output_dir / CSV_FILE)
