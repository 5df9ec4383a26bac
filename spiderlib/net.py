from typing import Dict

import urllib3
from urllib3.util.retry import Retry
from urllib3 import exceptions as urllib3_exc

from .types import FetchError, Request, Response


class HttpFetcher:
    """Fetch boundary backed by a urllib3 pool.

    A HEAD request first checks that the target answers 2xx/3xx with an HTML
    content type; only then is the real request issued. Failed requests are
    never retried.
    """

    def __init__(self, user_agent: str, request_timeout: float, concurrency: int, max_connections: int = 16):
        self.timeout = urllib3.Timeout(connect=5.0, read=request_timeout)
        self.http = urllib3.PoolManager(
            num_pools=max(8, concurrency),
            maxsize=max(max_connections, concurrency),
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,*/*;q=0.8",
                "Accept-Encoding": "gzip, deflate",
            },
            retries=Retry(total=None, connect=0, read=0, status=0, other=0, redirect=5, raise_on_status=False),
        )

    def _send(self, method: str, request: Request):
        try:
            return self.http.request(
                method,
                request.url,
                timeout=self.timeout,
                preload_content=True,
                headers={**self.http.headers, **request.headers},
            )
        except urllib3_exc.HTTPError as exc:
            raise FetchError(request.url, str(exc)) from exc

    @staticmethod
    def _check_head(request: Request, status: int, content_type: str) -> None:
        if status // 100 not in (2, 3):
            raise FetchError(request.url, f"returned non-okay status code {status}")
        if "html" not in content_type:
            raise FetchError(request.url, "not a HTML page.")

    def fetch(self, request: Request) -> Response:
        head = self._send("HEAD", request)
        self._check_head(request, head.status, head.headers.get("Content-Type", ""))
        resp = self._send(request.method, request)
        body = resp.data or b""
        content_type = resp.headers.get("Content-Type", "") or ""
        headers: Dict[str, str] = dict(resp.headers.items())
        return Response(
            url=request.url,
            status=resp.status,
            content_type=content_type,
            text=body.decode("utf-8", errors="ignore"),
            size_bytes=len(body),
            headers=headers,
        )
