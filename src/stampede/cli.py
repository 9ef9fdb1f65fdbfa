#!/usr/bin/env python3
# cli.py: command-line entry point for stampede

import argparse
import asyncio
import logging
import random
import sys

from pydantic import ValidationError

from stampede.executor import HttpExecutor
from stampede.logging_config import setup_logging
from stampede.models import RunConfig
from stampede.rendering import Dashboard, LogSink, render_summary
from stampede.metrics import MetricsStore
from stampede.runner import run_stampede
from stampede.supervisor import Supervisor
from stampede.utils import GracefulKiller

logger = logging.getLogger("stampede.cli")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Stampede: concurrent load workers with a live progress dashboard",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("target_url", help="Endpoint every worker requests")

    # Workload
    parser.add_argument("-w", "--workers", type=int, default=5, help="Number of concurrent workers")
    parser.add_argument(
        "-n",
        "--operations-per-worker",
        type=int,
        default=10,
        help="Sequential operations each worker performs",
    )
    parser.add_argument("--min-delay", type=float, default=2.0, help="Minimum delay between operations (s)")
    parser.add_argument("--max-delay", type=float, default=8.0, help="Maximum delay between operations (s)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for delay sampling")

    # Target counter
    parser.add_argument(
        "--counter-url",
        default=None,
        help="JSON endpoint exposing the server-side hit counter",
    )
    parser.add_argument(
        "--counter-field",
        default="count",
        help="Dotted path of the counter inside the JSON response",
    )

    # Transport
    parser.add_argument("--proxy-url", default=None, help="Outbound HTTP proxy")
    parser.add_argument("--timeout", type=float, default=15.0, help="Request timeout (s)")
    parser.add_argument("--rate", type=float, default=5.0, help="Shared request rate limit (requests per second)")
    parser.add_argument("--burst", type=int, default=2, help="Token bucket burst size")
    parser.add_argument("--poll-interval", type=float, default=3.0, help="Dashboard refresh interval (s)")

    # Logging & Display
    parser.add_argument(
        "--no-dashboard",
        action="store_true",
        help="Log one progress line per tick instead of the full-screen dashboard",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug-level logging")
    parser.add_argument("--log-file", type=str, default=None, help="Optional file to write logs to")

    return parser.parse_args(argv)


def build_config(args) -> RunConfig:
    return RunConfig(
        target_url=args.target_url,
        workers=args.workers,
        operations_per_worker=args.operations_per_worker,
        min_delay=args.min_delay,
        max_delay=args.max_delay,
        counter_url=args.counter_url,
        counter_field=args.counter_field,
        proxy_url=args.proxy_url,
        request_timeout_s=args.timeout,
        rate_per_sec=args.rate,
        burst=args.burst,
        poll_interval=args.poll_interval,
        seed=args.seed,
    )


async def run(config: RunConfig, dashboard: bool = True):
    executor = HttpExecutor(
        target_url=config.target_url,
        counter_url=config.counter_url,
        counter_field=config.counter_field,
        proxy_url=config.proxy_url,
        request_timeout_s=config.request_timeout_s,
        rate_per_sec=config.rate_per_sec,
        burst=config.burst,
        max_retries=config.max_retries,
    )
    sink = Dashboard(config.target_url) if dashboard else LogSink(config.target_url)

    async with executor:
        store = MetricsStore()
        supervisor = Supervisor(
            config.workers,
            config.operations_per_worker,
            executor,
            store,
            delay=config.delay_range,
            stagger_s=config.stagger_s,
            rng=random.Random(config.seed),
        )
        killer = GracefulKiller(supervisor.cancel, asyncio.get_running_loop())
        try:
            return await run_stampede(config, executor, sink, store=store, supervisor=supervisor)
        finally:
            killer.restore()


def main(argv=None) -> int:
    args = parse_args(argv)

    log_level = "DEBUG" if args.debug else "INFO"
    dashboard = not args.no_dashboard
    # The dashboard owns stdout; keep log records off it
    stream = sys.stdout if not dashboard else (None if args.log_file else sys.stderr)
    setup_logging(level=log_level, log_file=args.log_file, stream=stream)

    try:
        config = build_config(args)
    except ValidationError as e:
        logger.error(f"Invalid configuration:\n{e}")
        return 2

    logger.info(
        f"Starting stampede against {config.target_url} | "
        f"workers={config.workers} ops/worker={config.operations_per_worker} | "
        f"delay={config.min_delay}-{config.max_delay}s | rate={config.rate_per_sec} RPS"
    )

    final = asyncio.run(run(config, dashboard=dashboard))
    logger.info(render_summary(final))
    return 0


if __name__ == "__main__":
    sys.exit(main())
