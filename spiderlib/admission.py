import re
from typing import Iterable, List, Pattern, Union
from urllib.parse import urlparse

from .config import CrawlConfig, SpiderError


class UrlRejected(SpiderError):
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{url} {reason}")


class Admission:
    """Decides whether a URL may be fetched or queued.

    Allowed domains are matched exactly against the URL's host (port included
    when present); an empty set allows every host. Disallowed patterns are
    regular expressions searched for anywhere in the URL, so ``/about`` also
    rejects ``/team/about-us`` while a literal ``?`` must be escaped.
    """

    def __init__(
        self,
        allowed_domains: Iterable[str] = (),
        disallowed_patterns: Iterable[Union[str, Pattern[str]]] = (),
    ):
        self.allowed_domains = frozenset(d.lower() for d in allowed_domains)
        self.disallowed: List[Pattern[str]] = [
            p if isinstance(p, re.Pattern) else re.compile(p) for p in disallowed_patterns
        ]

    @classmethod
    def from_config(cls, config: CrawlConfig) -> "Admission":
        return cls(config.allowed_domains, config.disallowed_patterns)

    def verify_url(self, url: str) -> None:
        try:
            parsed = urlparse(url)
            # Accessing port validates it.
            parsed.port
        except ValueError as exc:
            raise UrlRejected(url, f"could not be parsed: {exc}") from exc
        if not parsed.scheme or not parsed.netloc:
            raise UrlRejected(url, "not an absolute URL.")
        if self.allowed_domains:
            host = parsed.netloc.rsplit("@", 1)[-1].lower()
            if host not in self.allowed_domains:
                raise UrlRejected(url, "not listed as allowed in spider settings.")

    def verify_allowed(self, url: str) -> None:
        for pattern in self.disallowed:
            if pattern.search(url):
                raise UrlRejected(url, "is disallowed.")

    def check(self, url: str) -> None:
        self.verify_url(url)
        self.verify_allowed(url)

    def is_fetchable(self, url: str) -> bool:
        try:
            self.verify_url(url)
        except UrlRejected:
            return False
        return True

    def is_disallowed(self, url: str) -> bool:
        try:
            self.verify_allowed(url)
        except UrlRejected:
            return True
        return False
