from typing import List, Optional
from urllib.parse import urljoin, urldefrag

from bs4 import BeautifulSoup

from .types import Response


SKIPPED_PREFIXES = ("mailto:", "javascript:", "tel:", "#")


def normalize_link(base_url: str, href: str) -> Optional[str]:
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(SKIPPED_PREFIXES):
        return None
    absolute = urljoin(base_url, href)
    absolute, _ = urldefrag(absolute)
    return absolute


class LinkExtractor:
    """Parse boundary returning every followable ``<a href>`` in a page."""

    def parse(self, response: Response) -> List[str]:
        if not response.text:
            return []
        soup = BeautifulSoup(response.text, "html.parser")
        links: List[str] = []
        for a in soup.find_all("a", href=True):
            normalized = normalize_link(response.url, a["href"])
            if normalized:
                links.append(normalized)
        return links
