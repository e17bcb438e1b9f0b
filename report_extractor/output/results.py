"""Result combination and CSV export.

Flattens per-schema extractions into one row per report, with the report's
file name as the first column.
"""

import csv
import json
import logging
from io import StringIO
from pathlib import Path
from typing import Any

from ..types.reports import Report

logger = logging.getLogger(__name__)

FILE_NAME_COLUMN = "fileName"


def combine_extracted_data(reports: list[Report]) -> list[dict[str, Any]]:
    """Merge every report's extractions into a single row.

    Reports without extractions are skipped. When schemas share a key, the
    later schema wins.
    """
    rows: list[dict[str, Any]] = []

    for report in reports:
        if not report.extractions:
            continue

        merged: dict[str, Any] = {}
        for extraction in report.extractions:
            merged.update(extraction.data)

        rows.append({FILE_NAME_COLUMN: report.name, **merged})

    return rows


def get_data_headers(data: list[dict[str, Any]]) -> list[str]:
    """Get all unique keys in first-seen order."""
    headers: dict[str, None] = {}
    for row in data:
        for key in row:
            headers.setdefault(key, None)
    return list(headers)


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def convert_json_to_csv(data: list[dict[str, Any]]) -> str:
    """Convert rows to CSV text with every field quoted.

    Nested values are JSON-encoded; missing values become empty strings.
    """
    if not data:
        return ""

    headers = get_data_headers(data)
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in data:
        writer.writerow([_format_value(row.get(header)) for header in headers])

    return output.getvalue().rstrip("\n")


def export_csv(data: list[dict[str, Any]], path: Path) -> Path:
    """Write rows to a CSV file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        f.write(convert_json_to_csv(data))
    logger.info(f"Exported {len(data)} rows to {path}")
    return path
