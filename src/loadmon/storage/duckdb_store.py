from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import duckdb
import pandas as pd

from loadmon.analysis import ComparisonResult, latency_profile, outcomes_frame
from loadmon.config import HarnessConfig
from loadmon.metrics import RunReport


@dataclass(slots=True)
class Storage:
    db_path: Path

    def __post_init__(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.db_path))

    def _init_schema(self) -> None:
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS run_meta (
                    run_id TEXT PRIMARY KEY,
                    created_at TIMESTAMP,
                    config_json TEXT,
                    memory_verdict TEXT,
                    latency_verdict TEXT,
                    latency_delta_pct DOUBLE,
                    notes TEXT
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS run_summary (
                    run_id TEXT,
                    phase TEXT,
                    requests INTEGER,
                    succeeded INTEGER,
                    failed INTEGER,
                    batch_count INTEGER,
                    total_ms DOUBLE,
                    avg_latency_ms DOUBLE,
                    p50_ms DOUBLE,
                    p95_ms DOUBLE,
                    p99_ms DOUBLE,
                    initial_rss_mb DOUBLE,
                    final_rss_mb DOUBLE,
                    initial_heap_total_mb DOUBLE,
                    final_heap_total_mb DOUBLE,
                    memory_delta_mb DOUBLE,
                    cpu_scope TEXT
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS request_outcomes (
                    run_id TEXT,
                    phase TEXT,
                    seq INTEGER,
                    batch INTEGER,
                    url TEXT,
                    status_code INTEGER,
                    latency_ms DOUBLE,
                    bytes_received INTEGER,
                    error_type TEXT,
                    error TEXT
                );
                """
            )

    def run_exists(self, run_id: str) -> bool:
        with self._connect() as con:
            result = con.execute(
                "SELECT COUNT(*) FROM run_meta WHERE run_id = ?",
                [run_id],
            ).fetchone()
            return bool(result and result[0] > 0)

    def save_comparison(
        self,
        config: HarnessConfig,
        run_id: str,
        result: ComparisonResult,
    ) -> None:
        if self.run_exists(run_id):
            msg = f"Run {run_id} already exists"
            raise ValueError(msg)
        config_json = json.dumps(config.to_metadata())
        summary_df = pd.DataFrame(
            [_summary_row(run_id, r) for r in (result.cold, result.warm)]
        )
        outcomes_df = pd.concat(
            [
                outcomes_frame(run_id, result.cold, config.parallelism),
                outcomes_frame(run_id, result.warm, config.parallelism),
            ],
            ignore_index=True,
        )
        with self._connect() as con:
            con.execute(
                "INSERT INTO run_meta VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    run_id,
                    config.created_at,
                    config_json,
                    result.memory_verdict.value,
                    result.latency_verdict.value,
                    result.latency_delta_pct,
                    config.notes,
                ],
            )
            con.execute("INSERT INTO run_summary SELECT * FROM summary_df")
            if not outcomes_df.empty:
                con.execute("INSERT INTO request_outcomes SELECT * FROM outcomes_df")

    def list_runs(self) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                """
                SELECT run_id, created_at, memory_verdict, latency_verdict, notes
                FROM run_meta ORDER BY created_at DESC
                """
            ).fetchdf()

    def load_run_meta(self, run_id: str) -> dict[str, object] | None:
        with self._connect() as con:
            row = con.execute(
                "SELECT config_json FROM run_meta WHERE run_id = ?",
                [run_id],
            ).fetchone()
            if not row:
                return None
            return json.loads(row[0])

    def load_summary(self, run_id: str) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT * FROM run_summary WHERE run_id = ? ORDER BY phase",
                [run_id],
            ).fetchdf()

    def load_outcomes(self, run_id: str) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT * FROM request_outcomes WHERE run_id = ? ORDER BY phase, seq",
                [run_id],
            ).fetchdf()


def _summary_row(run_id: str, report: RunReport) -> dict[str, object]:
    profile = latency_profile(report.outcomes)
    return {
        "run_id": run_id,
        "phase": report.name,
        "requests": len(report.outcomes),
        "succeeded": report.succeeded,
        "failed": report.failed,
        "batch_count": report.batch_count,
        "total_ms": report.total_ms,
        "avg_latency_ms": report.avg_latency_ms,
        "p50_ms": profile.p50_ms,
        "p95_ms": profile.p95_ms,
        "p99_ms": profile.p99_ms,
        "initial_rss_mb": report.initial.rss_mb,
        "final_rss_mb": report.final.rss_mb,
        "initial_heap_total_mb": report.initial.heap_total_mb,
        "final_heap_total_mb": report.final.heap_total_mb,
        "memory_delta_mb": report.memory_delta_mb,
        "cpu_scope": report.final.cpu_scope.value,
    }
