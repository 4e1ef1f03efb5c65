from __future__ import annotations

import json
import re
import time
from typing import Any, Callable, Iterable, List, Optional

from invite_crawler.models.entry import INVITE_URL_PREFIX, Invite


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; invite-crawler/0.3; +https://github.com/)"

_INVITE_RE = re.compile(
    r"(?:https?://)?(?:www\.)?(?:discord\.gg|discord(?:app)?\.com/invite)/([A-Za-z0-9-]{2,32})",
    re.IGNORECASE,
)


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def invite_code(link: str) -> Optional[str]:
    """Return the invite code of a raw invite link, or None if it is not one."""
    m = _INVITE_RE.search(link or "")
    return m.group(1) if m else None


def normalize_invite_link(link: str) -> Optional[str]:
    code = invite_code(link)
    return INVITE_URL_PREFIX + code if code else None


def extract_invite_links(text: str) -> List[str]:
    """Find every invite link in a blob of text, normalized, first-seen order."""
    out: List[str] = []
    seen: set = set()
    for m in _INVITE_RE.finditer(text or ""):
        link = INVITE_URL_PREFIX + m.group(1)
        if link in seen:
            continue
        seen.add(link)
        out.append(link)
    return out


class RateLimiter:
    """Pacing contract between two calls to the same external service."""

    def wait_before_next_call(self) -> None:
        raise NotImplementedError


class FixedDelayLimiter(RateLimiter):
    """Blocking pause of a fixed number of seconds before every call."""

    def __init__(self, delay: float, *, sleep: Callable[[float], None] = time.sleep) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = float(delay)
        self._sleep = sleep

    def wait_before_next_call(self) -> None:
        if self.delay > 0:
            self._sleep(self.delay)


class SearchSource:
    """Loads one page of web search results.

    Subclasses implement search() and raise SearchError on failure. An empty
    list means the engine has no more results.
    """

    name: str = "search"

    def search(self, page: int) -> List[str]:
        raise NotImplementedError


class LinkResolver:
    """Follows a discovered link and returns the raw invite links behind it."""

    name: str = "resolver"

    def resolve(self, link: str) -> List[str]:
        raise NotImplementedError


class InviteVerifier:
    """Looks an invite link up on the issuing platform."""

    name: str = "verifier"

    def fetch(self, link: str) -> Invite:
        raise NotImplementedError


def unique(items: Iterable[str]) -> List[str]:
    out: List[str] = []
    seen: set = set()
    for x in items:
        if x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out
