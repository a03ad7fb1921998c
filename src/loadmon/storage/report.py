from __future__ import annotations

import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any

from loadmon.metrics import PerfReport

REPORT_PREFIX = "performance-report-"


def report_to_dict(report: PerfReport) -> dict[str, Any]:
    return {
        "summary": asdict(report.summary),
        "results": [asdict(r) for r in report.results],
    }


def write_report(
    report: PerfReport,
    directory: Path,
    timestamp_ms: int | None = None,
) -> Path:
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{REPORT_PREFIX}{stamp}.json"
    path.write_text(json.dumps(report_to_dict(report), indent=2) + "\n", encoding="utf-8")
    return path


def load_report(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def list_reports(directory: Path) -> list[Path]:
    return sorted(directory.glob(f"{REPORT_PREFIX}*.json"), reverse=True)
