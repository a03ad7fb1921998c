from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from loadmon.metrics import RequestOutcome, RunReport


@dataclass(frozen=True, slots=True)
class LatencyProfile:
    count: int
    p50_ms: float
    p95_ms: float
    p99_ms: float
    max_ms: float


def latency_profile(outcomes: Sequence[RequestOutcome]) -> LatencyProfile:
    latencies = [o.latency_ms for o in outcomes if o.ok]
    if not latencies:
        return LatencyProfile(count=0, p50_ms=0.0, p95_ms=0.0, p99_ms=0.0, max_ms=0.0)
    return LatencyProfile(
        count=len(latencies),
        p50_ms=float(np.percentile(latencies, 50)),
        p95_ms=float(np.percentile(latencies, 95)),
        p99_ms=float(np.percentile(latencies, 99)),
        max_ms=float(np.max(latencies)),
    )


def outcomes_frame(run_id: str, report: RunReport, width: int) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "run_id": run_id,
                "phase": report.name,
                "seq": seq,
                "batch": seq // width,
                "url": o.url,
                "status_code": o.status_code,
                "latency_ms": o.latency_ms,
                "bytes_received": o.bytes_received,
                "error_type": o.error_type.value if o.error_type else None,
                "error": o.error,
            }
            for seq, o in enumerate(report.outcomes)
        ],
        columns=[
            "run_id",
            "phase",
            "seq",
            "batch",
            "url",
            "status_code",
            "latency_ms",
            "bytes_received",
            "error_type",
            "error",
        ],
    ).astype({"status_code": "Int64"})


def per_batch(outcomes: pd.DataFrame) -> pd.DataFrame:
    if outcomes.empty:
        return pd.DataFrame(columns=["phase", "batch", "requests", "failed", "mean_ms", "p95_ms"])
    frame = outcomes.assign(failed=outcomes["error_type"].notna())
    ok = frame[~frame["failed"]]
    counts = frame.groupby(["phase", "batch"]).agg(
        requests=("seq", "size"),
        failed=("failed", "sum"),
    )
    latency = ok.groupby(["phase", "batch"])["latency_ms"].agg(
        mean_ms="mean",
        p95_ms=lambda s: float(np.percentile(s, 95)),
    )
    return counts.join(latency).reset_index()
