from __future__ import annotations

import urllib.parse
from typing import Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from invite_crawler.errors import SearchError
from ..base import DEFAULT_USER_AGENT, SearchSource, unique


_GOOGLE_SEARCH_URL = "https://www.google.com/search"
DEFAULT_QUERY = '"discord.gg" server invite'
RESULTS_PER_PAGE = 10


class GoogleSearchSource(SearchSource):
    """Scrapes Google's HTML result pages for pages that advertise invites."""

    name = "google"

    def __init__(
        self,
        *,
        query: str = DEFAULT_QUERY,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.query = query
        self.timeout = float(timeout)
        self.headers = headers or {"User-Agent": DEFAULT_USER_AGENT, "Accept-Language": "en"}
        self._client = client

    def _get(self, params: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.get(_GOOGLE_SEARCH_URL, params=params)
        with httpx.Client(timeout=self.timeout, headers=self.headers, follow_redirects=True) as client:
            return client.get(_GOOGLE_SEARCH_URL, params=params)

    def search(self, page: int) -> List[str]:
        params = {"q": self.query, "start": str(page * RESULTS_PER_PAGE), "hl": "en"}
        try:
            resp = self._get(params)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise SearchError(f"page {page}: {exc}") from exc
        return self.parse_html(resp.text)

    @staticmethod
    def parse_html(html: str) -> List[str]:
        """Pull result URLs out of a result page, dropping Google's own links."""
        soup = BeautifulSoup(html, "html.parser")
        out: List[str] = []
        for a in soup.select("a[href]"):
            url = _result_url(a.get("href") or "")
            if url:
                out.append(url)
        return unique(out)


def _result_url(href: str) -> Optional[str]:
    # Without javascript Google wraps results as /url?q=<target>&sa=...
    if href.startswith("/url?"):
        qs = urllib.parse.parse_qs(urllib.parse.urlparse(href).query)
        href = (qs.get("q") or qs.get("url") or [""])[0]
    if not href.startswith(("http://", "https://")):
        return None
    if any(ord(c) < 0x20 or ord(c) == 0x7f for c in href):
        return None
    host = (urllib.parse.urlparse(href).hostname or "").lower()
    if not host or host == "google.com" or host.endswith(".google.com") or host.endswith(".googleusercontent.com"):
        return None
    return href
