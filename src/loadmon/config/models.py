from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence


@dataclass(frozen=True, slots=True)
class TargetConfig:
    base_url: str = "http://localhost:3000"
    resource_path: str = "ad-use-cache"
    port: int = 3000
    timeout_sec: float = 30.0
    max_id: int = 10000

    def url_for(self, item_id: int) -> str:
        return f"{self.base_url.rstrip('/')}/{self.resource_path.strip('/')}/{item_id}"


@dataclass(frozen=True, slots=True)
class ServerConfig:
    command: Sequence[str] = ()
    grace_sec: float = 5.0
    startup_timeout_sec: float = 30.0
    cwd: str | None = None


@dataclass(frozen=True, slots=True)
class ComparisonThresholds:
    leak_ratio: float = 1.5
    caching_ratio: float = 0.5
    latency_pct: float = 10.0


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    target: TargetConfig = field(default_factory=TargetConfig)
    total_requests: int = 10000
    parallelism: int = 100
    inter_batch_delay_sec: float = 0.1
    inter_run_settle_sec: float = 5.0
    collect_garbage: bool = True
    thresholds: ComparisonThresholds = field(default_factory=ComparisonThresholds)
    server: ServerConfig = field(default_factory=ServerConfig)
    unique_item_count: int = 10
    inter_item_delay_sec: float = 2.0
    post_request_settle_sec: float = 0.5
    high_memory_threshold_mb: float = 50.0
    report_dir: str = "."
    seed: int | None = None
    run_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notes: str = ""

    def to_metadata(self) -> Mapping[str, Any]:
        return {
            "run_id": self.run_id or "",
            "created_at": self.created_at.isoformat(),
            "total_requests": self.total_requests,
            "parallelism": self.parallelism,
            "inter_batch_delay_sec": self.inter_batch_delay_sec,
            "inter_run_settle_sec": self.inter_run_settle_sec,
            "collect_garbage": self.collect_garbage,
            "unique_item_count": self.unique_item_count,
            "inter_item_delay_sec": self.inter_item_delay_sec,
            "post_request_settle_sec": self.post_request_settle_sec,
            "high_memory_threshold_mb": self.high_memory_threshold_mb,
            "seed": self.seed,
            "notes": self.notes,
            "target": {
                "base_url": self.target.base_url,
                "resource_path": self.target.resource_path,
                "port": self.target.port,
                "timeout_sec": self.target.timeout_sec,
                "max_id": self.target.max_id,
            },
            "thresholds": {
                "leak_ratio": self.thresholds.leak_ratio,
                "caching_ratio": self.thresholds.caching_ratio,
                "latency_pct": self.thresholds.latency_pct,
            },
            "server": {
                "command": list(self.server.command),
                "grace_sec": self.server.grace_sec,
                "startup_timeout_sec": self.server.startup_timeout_sec,
                "cwd": self.server.cwd,
            },
        }
