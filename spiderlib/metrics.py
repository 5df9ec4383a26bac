import threading
import time
from dataclasses import dataclass, replace


@dataclass
class Totals:
    dispatched: int = 0
    fetched: int = 0
    errors: int = 0
    rejected: int = 0
    links_added: int = 0
    bytes: int = 0
    fetch_ms_sum: float = 0.0


class Metrics:
    def __init__(self):
        self._totals = Totals()
        self._lock = threading.Lock()
        self._start = time.time()

    def record_dispatch(self) -> None:
        with self._lock:
            self._totals.dispatched += 1

    def record_fetch(self, ok: bool, bytes_read: int, fetch_ms: float) -> None:
        with self._lock:
            if ok:
                self._totals.fetched += 1
                self._totals.bytes += max(0, bytes_read)
            else:
                self._totals.errors += 1
            self._totals.fetch_ms_sum += fetch_ms

    def record_rejected(self) -> None:
        with self._lock:
            self._totals.rejected += 1

    def record_links_added(self, count: int) -> None:
        with self._lock:
            self._totals.links_added += max(0, count)

    def snapshot(self) -> tuple[Totals, float]:
        with self._lock:
            t = replace(self._totals)
        elapsed = max(1e-6, time.time() - self._start)
        return t, elapsed


class StatsLogger(threading.Thread):
    def __init__(self, metrics: Metrics, interval_s: float, log_fn):
        super().__init__(name="stats-logger", daemon=True)
        self._metrics = metrics
        self._interval = max(0.5, interval_s)
        self._log = log_fn
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            self._stop_event.wait(self._interval)
            if self._stop_event.is_set():
                break
            totals, elapsed = self._metrics.snapshot()
            attempts = totals.fetched + totals.errors
            self._log(
                "Perf: dispatched=%d, fetched=%d, errors=%d, queued=%d, MB=%.2f, avg_fetch_ms=%.1f, pages/sec=%.2f",
                totals.dispatched,
                totals.fetched,
                totals.errors,
                totals.links_added,
                totals.bytes / (1024 * 1024),
                totals.fetch_ms_sum / max(1, attempts),
                totals.dispatched / elapsed,
            )

    def stop(self) -> None:
        self._stop_event.set()
