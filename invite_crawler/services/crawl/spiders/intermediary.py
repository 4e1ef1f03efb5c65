from __future__ import annotations

from typing import Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from invite_crawler.errors import ResolveError
from ..base import DEFAULT_USER_AGENT, LinkResolver, extract_invite_links, normalize_invite_link, unique


class IntermediaryResolver(LinkResolver):
    """Follows a page that advertises invites and collects the raw invite links.

    A link that already is an invite is returned directly without a request.
    Invites are looked for in anchor targets first, then in the visible text
    and any remaining markup.
    """

    name = "intermediary"

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.timeout = float(timeout)
        self.headers = headers or {"User-Agent": DEFAULT_USER_AGENT}
        self._client = client

    def resolve(self, link: str) -> List[str]:
        direct = normalize_invite_link(link)
        if direct:
            return [direct]
        try:
            resp = self._get(link)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ResolveError(f"{link}: {exc}") from exc
        # An intermediary may redirect straight onto the invite
        final = normalize_invite_link(str(resp.url))
        if final:
            return [final]
        return self.parse_html(resp.text)

    def _get(self, link: str) -> httpx.Response:
        if self._client is not None:
            return self._client.get(link)
        with httpx.Client(timeout=self.timeout, headers=self.headers, follow_redirects=True) as client:
            return client.get(link)

    @staticmethod
    def parse_html(html: str) -> List[str]:
        soup = BeautifulSoup(html, "html.parser")
        out: List[str] = []
        for a in soup.select("a[href]"):
            link = normalize_invite_link(a.get("href") or "")
            if link:
                out.append(link)
        out.extend(extract_invite_links(soup.get_text(" ")))
        out.extend(extract_invite_links(html))
        return unique(out)
