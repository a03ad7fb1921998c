from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import sys
import time
import uuid
from functools import partial
from pathlib import Path
from random import Random
from typing import Sequence

import httpx

from loadmon.analysis import ComparisonResult, run_comparison
from loadmon.config import ComparisonThresholds, HarnessConfig, ServerConfig, TargetConfig
from loadmon.inspect import OsProcessInspector, ProcessInspector, ResourceSampler
from loadmon.loadgen import execute_request, run_batches
from loadmon.metrics import PerfReport, RunReport
from loadmon.monitor import PerformanceMonitor, ServerProcess
from loadmon.storage import Storage, write_report
from loadmon.workload import WorkloadGenerator

logger = logging.getLogger("loadmon")


async def run_compare(
    config: HarnessConfig,
    inspector: ProcessInspector,
    rng: Random,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ComparisonResult:
    urls = WorkloadGenerator(config.target, rng).generate(config.total_requests)
    logger.info("Generated %d random URLs (sample: %s)", len(urls), urls[0] if urls else "-")
    sampler = ResourceSampler(inspector, config.target.port)
    limits = httpx.Limits(max_connections=config.parallelism)
    async with httpx.AsyncClient(transport=transport, limits=limits) as client:
        execute = partial(execute_request, client, timeout_sec=config.target.timeout_sec)

        async def run(name: str, run_urls: Sequence[str]) -> RunReport:
            return await run_batches(
                name,
                run_urls,
                config.parallelism,
                execute,
                sampler.snapshot,
                inter_batch_delay_sec=config.inter_batch_delay_sec,
            )

        return await run_comparison(
            urls,
            run,
            settle_sec=config.inter_run_settle_sec,
            collect_garbage=config.collect_garbage,
            thresholds=config.thresholds,
        )


async def run_monitor(
    config: HarnessConfig,
    inspector: ProcessInspector,
    rng: Random,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PerfReport:
    server = None
    if config.server.command:
        server = ServerProcess(
            config.server.command,
            grace_sec=config.server.grace_sec,
            cwd=config.server.cwd,
        )
    async with httpx.AsyncClient(
        transport=transport,
        headers={"User-Agent": "loadmon-performance-monitor/1.0"},
    ) as client:
        execute = partial(execute_request, client, timeout_sec=config.target.timeout_sec)
        monitor = PerformanceMonitor(config, inspector, execute, server=server, rng=rng)
        return await monitor.run()


def _add_common(parser: argparse.ArgumentParser, default_port: int) -> None:
    parser.add_argument("--base-url", default=None, help="Defaults to http://localhost:<port>")
    parser.add_argument("--path", default="ad-use-cache", help="Resource path before the id")
    parser.add_argument("--port", type=int, default=default_port, help="Port the service listens on")
    parser.add_argument("--timeout-ms", type=int, default=30000)
    parser.add_argument("--max-id", type=int, default=10000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--notes", default="")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="loadmon", description="Load & performance harness")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    compare = sub.add_parser("compare", help="Cold vs warm batched load run")
    _add_common(compare, default_port=3000)
    compare.add_argument("--requests", type=int, default=10000)
    compare.add_argument("--parallel", type=int, default=100)
    compare.add_argument("--batch-delay-ms", type=int, default=100)
    compare.add_argument("--settle-ms", type=int, default=5000)
    compare.add_argument("--no-gc", action="store_true", help="Skip garbage collection between runs")
    compare.add_argument("--leak-ratio", type=float, default=1.5)
    compare.add_argument("--caching-ratio", type=float, default=0.5)
    compare.add_argument("--latency-pct", type=float, default=10.0)
    compare.add_argument("--db", type=Path, default=Path(".loadmon/loadmon.duckdb"))
    compare.add_argument("--no-store", action="store_true", help="Do not persist the run to DuckDB")

    monitor = sub.add_parser("monitor", help="Sequential per-item resource monitor")
    _add_common(monitor, default_port=3001)
    monitor.add_argument("--items", type=int, default=10)
    monitor.add_argument("--item-delay-ms", type=int, default=2000)
    monitor.add_argument("--settle-ms", type=int, default=500)
    monitor.add_argument("--high-memory-mb", type=float, default=50.0)
    monitor.add_argument("--server-cmd", default="", help="Command that starts the service")
    monitor.add_argument("--server-cwd", default=None)
    monitor.add_argument("--grace-ms", type=int, default=5000)
    monitor.add_argument("--startup-timeout-ms", type=int, default=30000)
    monitor.add_argument("--report-dir", type=Path, default=Path("."))
    return parser


def config_from_args(args: argparse.Namespace) -> HarnessConfig:
    target = TargetConfig(
        base_url=args.base_url or f"http://localhost:{args.port}",
        resource_path=args.path,
        port=args.port,
        timeout_sec=args.timeout_ms / 1000,
        max_id=args.max_id,
    )
    seed = args.seed if args.seed is not None else time.time_ns()
    if args.command == "compare":
        return HarnessConfig(
            target=target,
            total_requests=args.requests,
            parallelism=args.parallel,
            inter_batch_delay_sec=args.batch_delay_ms / 1000,
            inter_run_settle_sec=args.settle_ms / 1000,
            collect_garbage=not args.no_gc,
            thresholds=ComparisonThresholds(
                leak_ratio=args.leak_ratio,
                caching_ratio=args.caching_ratio,
                latency_pct=args.latency_pct,
            ),
            seed=seed,
            run_id=uuid.uuid4().hex,
            notes=args.notes,
        )
    return HarnessConfig(
        target=target,
        unique_item_count=args.items,
        inter_item_delay_sec=args.item_delay_ms / 1000,
        post_request_settle_sec=args.settle_ms / 1000,
        high_memory_threshold_mb=args.high_memory_mb,
        server=ServerConfig(
            command=tuple(shlex.split(args.server_cmd)),
            grace_sec=args.grace_ms / 1000,
            startup_timeout_sec=args.startup_timeout_ms / 1000,
            cwd=args.server_cwd,
        ),
        report_dir=str(args.report_dir),
        seed=seed,
        notes=args.notes,
    )


def _execute(args: argparse.Namespace) -> None:
    config = config_from_args(args)
    rng = Random(config.seed)
    inspector = OsProcessInspector()
    if args.command == "compare":
        result = asyncio.run(run_compare(config, inspector, rng))
        if not args.no_store:
            Storage(args.db).save_comparison(config, config.run_id or uuid.uuid4().hex, result)
            logger.info("Run stored as %s in %s", config.run_id, args.db)
        logger.info("Load test completed")
        return
    report = asyncio.run(run_monitor(config, inspector, rng))
    path = write_report(report, Path(config.report_dir))
    logger.info("Results saved to %s", path)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        _execute(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception:
        logger.exception("Harness failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
