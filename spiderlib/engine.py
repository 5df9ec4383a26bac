import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .admission import Admission, UrlRejected
from .config import ConfigurationError, CrawlConfig, ValidationResult
from .frontier import Frontier
from .metrics import Metrics, StatsLogger
from .middleware import MiddlewarePipeline
from .types import FetchError, Fetcher, Middleware, Parser, Request


logger = logging.getLogger(__name__)


class CrawlState:
    """Pages spent against the budget, counted at dispatch time."""

    def __init__(self) -> None:
        self._dispatched = 0
        self.rounds = 0
        self._lock = threading.Lock()

    @property
    def dispatched(self) -> int:
        with self._lock:
            return self._dispatched

    def spend(self) -> int:
        with self._lock:
            self._dispatched += 1
            return self._dispatched

    def remaining(self, config: CrawlConfig) -> int:
        if not config.bounded:
            return config.effective_concurrency
        with self._lock:
            return max(0, config.max_pages - self._dispatched)

    def budget_exhausted(self, config: CrawlConfig) -> bool:
        return config.bounded and self.remaining(config) == 0


@dataclass(frozen=True)
class CrawlResult:
    name: str
    dispatched: int
    fetched: int
    failed: int
    rounds: int
    elapsed: float


class Spider:
    """A single crawl job.

    Each round draws up to ``max_concurrent_requests`` pending URLs, marks
    them visited and charges them to the page budget, fetches them in
    parallel and waits for every fetch to finish before drawing again.
    A URL is charged and marked visited whether or not its fetch succeeds,
    so failures are never retried.
    """

    def __init__(
        self,
        config: CrawlConfig,
        frontier: Optional[Frontier] = None,
        fetcher: Optional[Fetcher] = None,
        parser: Optional[Parser] = None,
        middleware: Iterable[Middleware] = (),
        metrics: Optional[Metrics] = None,
    ):
        self.config = config
        self.frontier = frontier
        self.fetcher = fetcher
        self.parser = parser
        self.middleware = MiddlewarePipeline(middleware)
        self.admission: Optional[Admission] = None
        self.metrics = metrics or Metrics()
        self.state = CrawlState()
        self._started = False

    def add_middleware(self, *funcs: Middleware) -> None:
        if self._started:
            raise ConfigurationError(["Middleware must be registered before the spider starts."])
        self.middleware.add(*funcs)

    def validate(self) -> ValidationResult:
        problems = self.config.problems()
        if self.frontier is None:
            problems.append("Spider must have a frontier.")
        if self.fetcher is None:
            problems.append("Spider must have a fetcher.")
        return ValidationResult(tuple(problems))

    def start(self) -> CrawlResult:
        if self._started:
            raise ConfigurationError(["Spider has already been started."])
        self.validate().raise_for_problems()
        self._started = True
        self.admission = Admission.from_config(self.config)

        t0 = time.perf_counter()
        for url in self.config.start_urls:
            self.frontier.add(url)
        logger.info("[%s] Starting spider", self.config.name)

        stats_thread: Optional[StatsLogger] = None
        if self.config.metrics_interval > 0:
            stats_thread = StatsLogger(self.metrics, self.config.metrics_interval, logger.info)
            stats_thread.start()
        try:
            with ThreadPoolExecutor(
                max_workers=self.config.effective_concurrency,
                thread_name_prefix=f"spider-{self.config.name}",
            ) as executor:
                self._crawl_loop(executor)
        finally:
            if stats_thread:
                stats_thread.stop()

        totals, _ = self.metrics.snapshot()
        result = CrawlResult(
            name=self.config.name,
            dispatched=self.state.dispatched,
            fetched=totals.fetched,
            failed=totals.errors,
            rounds=self.state.rounds,
            elapsed=time.perf_counter() - t0,
        )
        logger.info(
            "[%s] has completed. dispatched=%d fetched=%d failed=%d rounds=%d",
            result.name,
            result.dispatched,
            result.fetched,
            result.failed,
            result.rounds,
        )
        return result

    def done(self) -> bool:
        return self.state.budget_exhausted(self.config) or not self.frontier.has_pending()

    def _batch_size(self) -> int:
        return min(self.config.effective_concurrency, self.state.remaining(self.config))

    def _crawl_loop(self, executor: ThreadPoolExecutor) -> None:
        while not self.done():
            batch = self.frontier.peek_batch(self._batch_size())
            if not batch:
                break
            futures = []
            for url in batch:
                self.frontier.mark_visited(url)
                self.state.spend()
                self.metrics.record_dispatch()
                futures.append(executor.submit(self._get_page, url))
            wait(futures)
            self.state.rounds += 1
            for future in futures:
                # Re-raises anything the task did not handle itself.
                future.result()

    def _log_rejection(self, err: UrlRejected) -> None:
        self.metrics.record_rejected()
        level = logging.INFO if self.config.verbose else logging.DEBUG
        logger.log(level, "[%s] %s", self.config.name, err)

    def _get_page(self, url: str) -> None:
        try:
            self.admission.check(url)
        except UrlRejected as err:
            self._log_rejection(err)
            return

        request = Request(url=url)
        try:
            self.middleware.apply(request)
        except Exception:
            logger.exception("[%s] middleware failed for %s", self.config.name, url)
            return

        t0 = time.perf_counter()
        try:
            response = self.fetcher.fetch(request)
        except FetchError as err:
            self.metrics.record_fetch(False, 0, (time.perf_counter() - t0) * 1000.0)
            level = logging.INFO if self.config.verbose else logging.DEBUG
            logger.log(level, "[%s] %s", self.config.name, err)
            return
        except Exception:
            self.metrics.record_fetch(False, 0, (time.perf_counter() - t0) * 1000.0)
            logger.exception("[%s] fetch failed for %s", self.config.name, url)
            return
        self.metrics.record_fetch(True, response.size_bytes, (time.perf_counter() - t0) * 1000.0)
        logger.log(
            logging.DEBUG if self.config.quiet else logging.INFO,
            "[%s] Spidered %s",
            self.config.name,
            url,
        )

        if self.parser is None:
            return
        try:
            links = self.parser.parse(response)
        except Exception:
            logger.exception("[%s] parse failed for %s", self.config.name, url)
            return
        self._enqueue_links(links)

    def _enqueue_links(self, links: List[str]) -> None:
        added = 0
        for link in links:
            try:
                self.admission.check(link)
            except UrlRejected as err:
                self._log_rejection(err)
                continue
            if self.frontier.add(link):
                added += 1
        self.metrics.record_links_added(added)
