import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Tuple


DEFAULT_USER_AGENT = "spiderlib/1.0 (+https://example.com; contact: crawler@example.com)"


class SpiderError(Exception):
    """Base class for errors raised by spiderlib."""


class ConfigurationError(SpiderError):
    """Raised when a spider is started with settings it cannot run with."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "invalid configuration")


@dataclass(frozen=True)
class ValidationResult:
    problems: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.problems

    def raise_for_problems(self) -> None:
        if self.problems:
            raise ConfigurationError(list(self.problems))


@dataclass(frozen=True)
class CrawlConfig:
    name: str
    start_urls: List[str]
    allowed_domains: FrozenSet[str] = field(default_factory=frozenset)
    disallowed_patterns: List[str] = field(default_factory=list)
    max_pages: int = 0
    max_concurrent_requests: int = 1
    verbose: bool = False
    quiet: bool = False
    request_timeout: float = 15.0
    user_agent: str = DEFAULT_USER_AGENT
    metrics_interval: float = 0.0

    @property
    def bounded(self) -> bool:
        return self.max_pages > 0

    @property
    def effective_concurrency(self) -> int:
        return max(1, self.max_concurrent_requests)

    def problems(self) -> List[str]:
        problems: List[str] = []
        if not self.name:
            problems.append("Crawls must have a name.")
        if not self.start_urls:
            problems.append("Crawl must have starting URLs.")
        for pattern in self.disallowed_patterns:
            if isinstance(pattern, re.Pattern):
                continue
            try:
                re.compile(pattern)
            except re.error as exc:
                problems.append(f"Invalid disallowed pattern '{pattern}': {exc}")
        return problems
