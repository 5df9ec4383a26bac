import logging
import threading
import time
from typing import Dict, List

import pytest

from spiderlib.config import ConfigurationError, CrawlConfig
from spiderlib.engine import Spider
from spiderlib.frontier import MemoryFrontier
from spiderlib.types import FetchError, Request, Response


def page(url: str, text: str = "") -> Response:
    return Response(url=url, status=200, content_type="text/html", text=text, size_bytes=len(text.encode()))


class StubFetcher:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.requests: List[Request] = []
        self._lock = threading.Lock()

    def fetch(self, request: Request) -> Response:
        with self._lock:
            self.requests.append(request)
        if request.url in self.failing:
            raise FetchError(request.url, "returned non-okay status code 500")
        return page(request.url)

    def urls(self) -> List[str]:
        return [r.url for r in self.requests]


class GraphParser:
    def __init__(self, graph: Dict[str, List[str]]):
        self.graph = graph

    def parse(self, response: Response) -> List[str]:
        return list(self.graph.get(response.url, []))


class ConstantParser:
    def __init__(self, links: List[str]):
        self.links = links

    def parse(self, response: Response) -> List[str]:
        return list(self.links)


def make_config(**kwargs) -> CrawlConfig:
    defaults = dict(name="test", start_urls=["http://x/a"], allowed_domains=frozenset({"x"}))
    defaults.update(kwargs)
    return CrawlConfig(**defaults)


def test_budget_of_two_dispatches_seed_then_discovered_link():
    frontier = MemoryFrontier()
    fetcher = StubFetcher()
    spider = Spider(
        make_config(max_pages=2, max_concurrent_requests=1),
        frontier=frontier,
        fetcher=fetcher,
        parser=ConstantParser(["http://x/b"]),
    )
    result = spider.start()
    assert result.dispatched == 2
    assert fetcher.urls() == ["http://x/a", "http://x/b"]
    assert frontier.visited_urls() == frozenset({"http://x/a", "http://x/b"})
    assert not frontier.has_pending()
    assert result.rounds == 2


def test_links_to_disallowed_hosts_never_enter_frontier():
    frontier = MemoryFrontier()
    spider = Spider(
        make_config(),
        frontier=frontier,
        fetcher=StubFetcher(),
        parser=ConstantParser(["http://other/y"]),
    )
    spider.start()
    assert frontier.state_of("http://other/y") is None
    assert frontier.visited_urls() == frozenset({"http://x/a"})
    totals, _ = spider.metrics.snapshot()
    assert totals.rejected == 1


def test_disallowed_pattern_rejects_substring_match():
    frontier = MemoryFrontier()
    spider = Spider(
        make_config(disallowed_patterns=["/about"]),
        frontier=frontier,
        fetcher=StubFetcher(),
        parser=ConstantParser(["http://x/team/about-us", "http://x/team"]),
    )
    spider.start()
    assert frontier.state_of("http://x/team/about-us") is None
    assert "http://x/team" in frontier.visited_urls()


def test_failed_fetch_is_consumed_and_never_retried():
    frontier = MemoryFrontier()
    fetcher = StubFetcher(failing={"http://x/a"})
    graph = {"http://x/b": ["http://x/a", "http://x/c"], "http://x/c": ["http://x/a"]}
    spider = Spider(
        make_config(start_urls=["http://x/a", "http://x/b"], max_concurrent_requests=2),
        frontier=frontier,
        fetcher=fetcher,
        parser=GraphParser(graph),
    )
    result = spider.start()
    assert fetcher.urls().count("http://x/a") == 1
    assert "http://x/a" in frontier.visited_urls()
    assert result.dispatched == 3
    assert result.failed == 1
    assert result.fetched == 2


def test_cyclic_graph_terminates_with_every_page_visited_once():
    graph = {
        "http://x/a": ["http://x/b", "http://x/c"],
        "http://x/b": ["http://x/a", "http://x/c"],
        "http://x/c": ["http://x/a", "http://x/b", "http://x/c"],
    }
    fetcher = StubFetcher()
    spider = Spider(make_config(max_concurrent_requests=3), frontier=MemoryFrontier(), fetcher=fetcher, parser=GraphParser(graph))
    result = spider.start()
    assert sorted(fetcher.urls()) == ["http://x/a", "http://x/b", "http://x/c"]
    assert result.dispatched == 3


def test_budget_is_never_exceeded_with_wide_rounds():
    links = [f"http://x/{i}" for i in range(50)]
    fetcher = StubFetcher()
    spider = Spider(
        make_config(max_pages=7, max_concurrent_requests=4),
        frontier=MemoryFrontier(),
        fetcher=fetcher,
        parser=ConstantParser(links),
    )
    result = spider.start()
    assert result.dispatched == 7
    assert len(fetcher.requests) == 7
    # rounds of 1 (seed), 4, then the remaining 2
    assert result.rounds == 3


def test_unbounded_crawl_stops_when_frontier_empties():
    graph = {"http://x/a": ["http://x/b"], "http://x/b": ["http://x/c"]}
    spider = Spider(make_config(max_pages=0), frontier=MemoryFrontier(), fetcher=StubFetcher(), parser=GraphParser(graph))
    assert spider.start().dispatched == 3
    assert spider.done()


def test_without_parser_only_seeds_are_fetched():
    fetcher = StubFetcher()
    spider = Spider(
        make_config(start_urls=["http://x/a", "http://x/b"]),
        frontier=MemoryFrontier(),
        fetcher=fetcher,
    )
    spider.start()
    assert fetcher.urls() == ["http://x/a", "http://x/b"]


def test_unfetchable_seed_consumes_budget_without_fetch():
    fetcher = StubFetcher()
    frontier = MemoryFrontier()
    spider = Spider(
        make_config(start_urls=["http://elsewhere/a", "/relative"]),
        frontier=frontier,
        fetcher=fetcher,
    )
    result = spider.start()
    assert fetcher.requests == []
    assert result.dispatched == 2
    assert frontier.visited_urls() == frozenset({"http://elsewhere/a", "/relative"})


def test_middleware_is_applied_before_each_fetch():
    seen = []

    def tag(request):
        seen.append(request.url)
        request.headers["X-Job"] = "test"

    fetcher = StubFetcher()
    spider = Spider(
        make_config(start_urls=["http://x/a", "http://x/b"]),
        frontier=MemoryFrontier(),
        fetcher=fetcher,
        middleware=[tag],
    )
    spider.start()
    assert sorted(seen) == ["http://x/a", "http://x/b"]
    assert all(r.headers == {"X-Job": "test"} and r.method == "GET" for r in fetcher.requests)


def test_rounds_do_not_overlap_and_respect_concurrency():
    events = []
    lock = threading.Lock()
    in_flight = [0, 0]

    class SlowFetcher:
        def fetch(self, request):
            with lock:
                events.append(("start", request.url))
                in_flight[0] += 1
                in_flight[1] = max(in_flight[1], in_flight[0])
            if request.url.endswith("/a"):
                time.sleep(0.05)
            with lock:
                events.append(("end", request.url))
                in_flight[0] -= 1
            return page(request.url)

    spider = Spider(
        make_config(start_urls=["http://x/a", "http://x/b", "http://x/c"], max_concurrent_requests=2),
        frontier=MemoryFrontier(),
        fetcher=SlowFetcher(),
    )
    result = spider.start()
    assert result.rounds == 2
    assert in_flight[1] <= 2
    start_c = events.index(("start", "http://x/c"))
    assert events.index(("end", "http://x/a")) < start_c
    assert events.index(("end", "http://x/b")) < start_c


def test_parser_exception_is_logged_and_crawl_continues(caplog):
    class BrokenParser:
        def parse(self, response):
            raise RuntimeError("boom")

    spider = Spider(
        make_config(start_urls=["http://x/a", "http://x/b"]),
        frontier=MemoryFrontier(),
        fetcher=StubFetcher(),
        parser=BrokenParser(),
    )
    with caplog.at_level(logging.ERROR, logger="spiderlib.engine"):
        result = spider.start()
    assert result.dispatched == 2
    assert "parse failed" in caplog.text


def test_verbose_logs_rejections_at_info(caplog):
    spider = Spider(
        make_config(verbose=True),
        frontier=MemoryFrontier(),
        fetcher=StubFetcher(),
        parser=ConstantParser(["http://other/y"]),
    )
    with caplog.at_level(logging.INFO, logger="spiderlib.engine"):
        spider.start()
    assert "not listed as allowed" in caplog.text
    assert "Spidered http://x/a" in caplog.text


def test_quiet_hides_spidered_lines(caplog):
    spider = Spider(make_config(quiet=True), frontier=MemoryFrontier(), fetcher=StubFetcher())
    with caplog.at_level(logging.INFO, logger="spiderlib.engine"):
        spider.start()
    assert "Spidered" not in caplog.text
    assert "has completed" in caplog.text


def test_validate_reports_every_problem():
    spider = Spider(CrawlConfig(name="", start_urls=[]))
    result = spider.validate()
    assert not result.ok
    assert len(result.problems) == 4


def test_start_refuses_invalid_configuration():
    fetcher = StubFetcher()
    spider = Spider(make_config(start_urls=[]), frontier=MemoryFrontier(), fetcher=fetcher)
    with pytest.raises(ConfigurationError) as exc:
        spider.start()
    assert "starting URLs" in str(exc.value)
    assert fetcher.requests == []


def test_missing_frontier_is_a_configuration_error():
    spider = Spider(make_config(), fetcher=StubFetcher())
    with pytest.raises(ConfigurationError):
        spider.start()


def test_spider_cannot_be_started_twice():
    spider = Spider(make_config(), frontier=MemoryFrontier(), fetcher=StubFetcher())
    spider.start()
    with pytest.raises(ConfigurationError):
        spider.start()
    with pytest.raises(ConfigurationError):
        spider.add_middleware(lambda request: None)


def test_non_positive_concurrency_is_coerced_to_one():
    spider = Spider(
        make_config(start_urls=["http://x/a", "http://x/b"], max_concurrent_requests=0),
        frontier=MemoryFrontier(),
        fetcher=StubFetcher(),
    )
    assert spider.start().rounds == 2


def test_unexpected_fetcher_exception_only_loses_that_url(caplog):
    class RaisingFetcher(StubFetcher):
        def fetch(self, request):
            if request.url == "http://x/a":
                with self._lock:
                    self.requests.append(request)
                raise ConnectionError("socket reset")
            return super().fetch(request)

    fetcher = RaisingFetcher()
    frontier = MemoryFrontier()
    spider = Spider(
        make_config(start_urls=["http://x/a", "http://x/b"], max_concurrent_requests=1),
        frontier=frontier,
        fetcher=fetcher,
    )
    with caplog.at_level(logging.ERROR, logger="spiderlib.engine"):
        result = spider.start()
    assert fetcher.urls() == ["http://x/a", "http://x/b"]
    assert result.dispatched == 2
    assert result.failed == 1
    assert result.fetched == 1
    assert frontier.visited_urls() == frozenset({"http://x/a", "http://x/b"})
    assert "fetch failed for http://x/a" in caplog.text


def test_invalid_disallowed_pattern_is_a_validation_problem():
    fetcher = StubFetcher()
    spider = Spider(make_config(disallowed_patterns=["["]), frontier=MemoryFrontier(), fetcher=fetcher)
    result = spider.validate()
    assert not result.ok
    assert any("Invalid disallowed pattern '['" in p for p in result.problems)
    with pytest.raises(ConfigurationError):
        spider.start()
    assert fetcher.requests == []
