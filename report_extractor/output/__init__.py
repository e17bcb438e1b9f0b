"""Result combination, export and storage."""

from .results import (
    combine_extracted_data,
    convert_json_to_csv,
    export_csv,
    get_data_headers,
)
from .store import ResultStore, load_report_file, report_id_for

__all__ = [
    "combine_extracted_data",
    "convert_json_to_csv",
    "export_csv",
    "get_data_headers",
    "ResultStore",
    "load_report_file",
    "report_id_for",
]
