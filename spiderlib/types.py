from dataclasses import dataclass, field
from typing import Dict, List, Protocol

from .config import SpiderError


@dataclass
class Request:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Response:
    url: str
    status: int
    content_type: str
    text: str
    size_bytes: int
    headers: Dict[str, str] = field(default_factory=dict)


class FetchError(SpiderError):
    """Raised by a fetcher when a request yields no usable response."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")


class Fetcher(Protocol):
    def fetch(self, request: Request) -> Response: ...


class Parser(Protocol):
    def parse(self, response: Response) -> List[str]: ...


class Middleware(Protocol):
    def __call__(self, request: Request) -> None: ...
