import random
from typing import Iterable, List

from .types import Middleware, Request


USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (X11; Linux x86_64; rv:124.0) Gecko/20100101 Firefox/124.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0",
]


def randomise_user_agent(request: Request) -> None:
    request.headers["User-Agent"] = random.choice(USER_AGENTS)


class MiddlewarePipeline:
    """Request hooks applied in registration order before every fetch."""

    def __init__(self, funcs: Iterable[Middleware] = ()):
        self._funcs: List[Middleware] = list(funcs)

    def add(self, *funcs: Middleware) -> None:
        self._funcs.extend(funcs)

    def apply(self, request: Request) -> None:
        for func in self._funcs:
            func(request)

    def __len__(self) -> int:
        return len(self._funcs)
