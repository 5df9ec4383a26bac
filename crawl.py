#!/usr/bin/env python3
import argparse
import logging
import sys
from typing import List, Optional
from urllib.parse import urlparse

from spiderlib.config import ConfigurationError, CrawlConfig, DEFAULT_USER_AGENT
from spiderlib.engine import Spider
from spiderlib.frontier import MemoryFrontier
from spiderlib.middleware import randomise_user_agent
from spiderlib.net import HttpFetcher
from spiderlib.parsing import LinkExtractor
from spiderlib.prometheus_exporter import PrometheusExporter


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Round-based web spider with admission control and Prometheus metrics.")
    parser.add_argument("--name", default="spider", help="Name of the crawl job, used in log lines.")
    parser.add_argument("--start", nargs="+", required=True, help="One or more starting URLs.")
    parser.add_argument(
        "--allowed-domain",
        dest="allowed_domains",
        nargs="+",
        default=None,
        help="Exact hosts to allow (e.g., www.example.com). Defaults to hosts of --start.",
    )
    parser.add_argument(
        "--disallow",
        dest="disallowed_patterns",
        nargs="+",
        default=[],
        help="Regular expressions that reject any URL they match anywhere in.",
    )
    parser.add_argument("--max-pages", type=int, default=0, help="Maximum pages to dispatch (0 for unlimited).")
    parser.add_argument("--concurrency", type=int, default=4, help="Maximum concurrent requests per round.")
    parser.add_argument("--timeout", type=float, default=15.0, help="HTTP read timeout in seconds.")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header to send.")
    parser.add_argument("--random-user-agent", action="store_true", help="Send a random browser User-Agent.")
    parser.add_argument("--no-parse", action="store_true", help="Fetch the start URLs only, follow no links.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging verbosity.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not log every spidered page.")
    parser.add_argument("--metrics-interval", type=float, default=0.0, help="Seconds between perf logs (0 to disable).")
    parser.add_argument(
        "--prometheus-port", type=int, default=0, help="Port for Prometheus metrics endpoint (0 to disable)."
    )
    return parser.parse_args(argv)


def infer_allowed_domains(start_urls: List[str]) -> List[str]:
    hosts = []
    for u in start_urls:
        host = urlparse(u).netloc
        if host:
            hosts.append(host.lower())
    return sorted(set(hosts))


def build_config(args: argparse.Namespace) -> CrawlConfig:
    if args.allowed_domains is None:
        allowed_domains = infer_allowed_domains(args.start)
    else:
        allowed_domains = [d.lower() for d in args.allowed_domains]
    return CrawlConfig(
        name=args.name,
        start_urls=list(args.start),
        allowed_domains=frozenset(allowed_domains),
        disallowed_patterns=list(args.disallowed_patterns),
        max_pages=args.max_pages,
        max_concurrent_requests=args.concurrency,
        verbose=args.verbose > 0,
        quiet=args.quiet,
        request_timeout=max(1.0, args.timeout),
        user_agent=args.user_agent,
        metrics_interval=max(0.0, args.metrics_interval),
    )


def build_spider(args: argparse.Namespace) -> Spider:
    config = build_config(args)
    middleware = [randomise_user_agent] if args.random_user_agent else []
    return Spider(
        config,
        frontier=MemoryFrontier(),
        fetcher=HttpFetcher(config.user_agent, config.request_timeout, config.effective_concurrency),
        parser=None if args.no_parse else LinkExtractor(),
        middleware=middleware,
    )


def main(argv: Optional[List[str]] = None) -> int:
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
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    spider = build_spider(args)
    validation = spider.validate()
    if not validation.ok:
        for problem in validation.problems:
            logging.error("[spiderlib] %s", problem)
        return 2

    exporter: Optional[PrometheusExporter] = None
    if args.prometheus_port > 0:
        exporter = PrometheusExporter(spider.metrics, port=args.prometheus_port)
        exporter.start()
        logging.info("Prometheus metrics available at http://0.0.0.0:%d/metrics", args.prometheus_port)

    try:
        spider.start()
    except ConfigurationError as err:
        logging.error("[spiderlib] %s", err)
        return 2
    finally:
        if exporter:
            exporter.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
