#!/usr/bin/env python3
import argparse
import logging
import sys

from sitecrawl.config import DEFAULT_USER_AGENT, CrawlConfig
from sitecrawl.errors import ConfigValidationError
from sitecrawl.prometheus_exporter import PrometheusExporter
from sitecrawl.service import CrawlService
from sitecrawl.session import SessionStatus
from sitecrawl.storage import InMemorySessionStore, SqliteSessionStore


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Breadth-first site crawler with session statistics.")
    parser.add_argument("--seed", required=True, help="Starting URL.")
    parser.add_argument("--max-depth", type=int, default=2, help="Maximum link depth from the seed.")
    parser.add_argument("--max-pages", type=int, default=200, help="Maximum number of pages to fetch.")
    parser.add_argument("--concurrency", type=int, default=8, help="Maximum fetches in flight.")
    parser.add_argument("--delay-ms", type=float, default=500.0, help="Politeness delay between dispatches.")
    parser.add_argument("--timeout", type=float, default=15.0, help="Per-fetch timeout in seconds.")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header to send.")
    parser.add_argument("--follow-external", action="store_true", help="Follow links to other origins.")
    parser.add_argument("--ignore-robots", action="store_true", help="Ignore robots.txt (not recommended).")
    parser.add_argument(
        "--file-type", dest="file_types", action="append", default=[], help="Allowed extension (repeatable)."
    )
    parser.add_argument("--include", dest="include_pattern", default=None, help="Only follow URLs matching this regex.")
    parser.add_argument("--exclude", dest="exclude_pattern", default=None, help="Skip URLs matching this regex.")
    parser.add_argument("--per-host-delay", action="store_true", help="Apply the delay per host instead of globally.")
    parser.add_argument("--sqlite", dest="sqlite_path", default=None, help="Path to SQLite DB for sessions.")
    parser.add_argument("--metrics-interval", type=float, default=10.0, help="Seconds between perf logs (0 to disable).")
    parser.add_argument("--prometheus-port", type=int, default=0, help="Port for Prometheus metrics (0 disables).")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging verbosity.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    log_level = logging.WARNING
    if args.verbose == 1:
        log_level = logging.INFO
    elif args.verbose >= 2:
        log_level = logging.DEBUG
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(threadName)s %(message)s",
    )

    config = CrawlConfig(
        seed_url=args.seed,
        max_depth=args.max_depth,
        max_pages=args.max_pages,
        concurrency=args.concurrency,
        delay_ms=args.delay_ms,
        follow_external=args.follow_external,
        respect_robots=not args.ignore_robots,
        user_agent=args.user_agent,
        timeout_seconds=args.timeout,
        file_types=frozenset(args.file_types),
        include_pattern=args.include_pattern,
        exclude_pattern=args.exclude_pattern,
        per_host_delay=args.per_host_delay,
        metrics_interval=args.metrics_interval,
    )
    store = SqliteSessionStore(args.sqlite_path) if args.sqlite_path else InMemorySessionStore()
    service = CrawlService(store=store)

    exporters = []

    def attach_exporter(session):
        exporter = PrometheusExporter(session.stats_aggregator, port=args.prometheus_port)
        exporter.start()
        exporters.append(exporter)
        logging.info("Prometheus metrics available at http://0.0.0.0:%d/metrics", args.prometheus_port)

    try:
        session_id = service.start_crawl(config, on_start=attach_exporter if args.prometheus_port else None)
    except ConfigValidationError as exc:
        for field, message in exc.errors:
            print(f"error: {field}: {message}", file=sys.stderr)
        return 2

    try:
        snapshot = service.join(session_id)
    except KeyboardInterrupt:
        service.request_stop(session_id)
        snapshot = service.join(session_id)
    finally:
        for exporter in exporters:
            exporter.stop()

    stats = snapshot.stats
    print(f"session:        {snapshot.session_id}")
    print(f"status:         {snapshot.status.value}")
    print(f"pages:          {stats.total_pages}")
    print(f"links:          {stats.total_links}")
    print(f"errors:         {stats.error_count}")
    print(f"success rate:   {stats.success_rate:.1f}%")
    print(f"avg response:   {stats.avg_response_time_ms:.1f} ms")
    print(f"total time:     {stats.total_time_ms / 1000.0:.2f} s")
    if snapshot.fault:
        print(f"fault:          {snapshot.fault}", file=sys.stderr)
    return 1 if snapshot.status is SessionStatus.ERROR else 0


if __name__ == "__main__":
    sys.exit(main())
