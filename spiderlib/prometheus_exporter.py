import logging
import threading
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, REGISTRY, start_http_server

from .metrics import Metrics


logger = logging.getLogger(__name__)


class PrometheusExporter:
    def __init__(
        self,
        metrics: Metrics,
        port: int = 8000,
        registry: Optional[CollectorRegistry] = None,
        interval_s: float = 5.0,
    ) -> None:
        self.metrics = metrics
        self.port = port
        self.registry = registry if registry is not None else REGISTRY
        self.interval_s = interval_s
        self._server_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self.dispatched_total = Counter(
            "spider_dispatched_total", "Pages dispatched against the page budget", registry=self.registry
        )
        self.fetched_total = Counter("spider_fetched_total", "Pages fetched successfully", registry=self.registry)
        self.errors_total = Counter("spider_fetch_errors_total", "Fetches that yielded nothing", registry=self.registry)
        self.rejected_total = Counter(
            "spider_rejected_total", "URLs refused by admission control", registry=self.registry
        )
        self.links_added_total = Counter(
            "spider_links_added_total", "Discovered links queued on the frontier", registry=self.registry
        )
        self.bytes_total = Counter("spider_bytes_total", "Total number of bytes downloaded", registry=self.registry)
        self.pages_per_second = Gauge(
            "spider_pages_per_second", "Current dispatch rate in pages per second", registry=self.registry
        )
        self.avg_fetch_duration_seconds = Gauge(
            "spider_avg_fetch_duration_seconds", "Average fetch duration in seconds", registry=self.registry
        )

        self._last = {
            "dispatched": 0,
            "fetched": 0,
            "errors": 0,
            "rejected": 0,
            "links_added": 0,
            "bytes": 0,
        }

    def start(self) -> None:
        start_http_server(self.port, registry=self.registry)
        logger.info("Prometheus metrics server started on port %d", self.port)

        self._server_thread = threading.Thread(
            target=self._update_metrics_loop,
            name="prometheus-updater",
            daemon=True,
        )
        self._server_thread.start()

    def _update_metrics_loop(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            self._stop_event.wait(self.interval_s)

    def update(self) -> None:
        totals, elapsed = self.metrics.snapshot()
        counters = {
            "dispatched": self.dispatched_total,
            "fetched": self.fetched_total,
            "errors": self.errors_total,
            "rejected": self.rejected_total,
            "links_added": self.links_added_total,
            "bytes": self.bytes_total,
        }
        for field, counter in counters.items():
            current = getattr(totals, field)
            delta = current - self._last[field]
            if delta > 0:
                counter.inc(delta)
            self._last[field] = current

        self.pages_per_second.set(totals.dispatched / elapsed)
        attempts = totals.fetched + totals.errors
        if attempts > 0:
            self.avg_fetch_duration_seconds.set(totals.fetch_ms_sum / attempts / 1000.0)

    def stop(self) -> None:
        self._stop_event.set()
        if self._server_thread:
            self._server_thread.join(timeout=2.0)
        self.update()
