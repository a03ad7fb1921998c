from __future__ import annotations

from pathlib import Path

from loadmon.storage.duckdb_store import Storage
from loadmon.storage.report import list_reports, load_report, report_to_dict, write_report


def default_storage() -> Storage:
    return Storage(Path(".loadmon/loadmon.duckdb"))


__all__ = [
    "Storage",
    "default_storage",
    "list_reports",
    "load_report",
    "report_to_dict",
    "write_report",
]
