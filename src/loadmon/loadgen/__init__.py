from __future__ import annotations

from loadmon.loadgen.batches import plan_batches, run_batch, run_batches
from loadmon.loadgen.client import execute_request

__all__ = ["execute_request", "plan_batches", "run_batch", "run_batches"]
