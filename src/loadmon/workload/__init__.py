from __future__ import annotations

from loadmon.workload.generator import WorkloadGenerator, unique_ids

__all__ = ["WorkloadGenerator", "unique_ids"]
