from __future__ import annotations

import logging
import time
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional

from invite_crawler.errors import InviteCrawlerError
from invite_crawler.models.entry import Entry
from .base import (
    FixedDelayLimiter,
    InviteVerifier,
    LinkResolver,
    RateLimiter,
    SearchSource,
    normalize_invite_link,
)

logger = logging.getLogger(__name__)


DEFAULT_MAX_PAGES = 20
DEFAULT_SEARCH_DELAY = 10.0
DEFAULT_LINK_DELAY = 6.0


@dataclass
class CrawlStats:
    pages_searched: int = 0
    pages_failed: int = 0
    links_discovered: int = 0
    links_resolved: int = 0
    resolve_failures: int = 0
    invite_links_seen: int = 0
    invites_verified: int = 0
    verify_failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class CrawlObserver:
    """Reporting sink for crawl progress. Never affects control flow."""

    def on_page(self, page: int, count: int) -> None:
        pass

    def on_page_failed(self, page: int, error: Exception) -> None:
        pass

    def on_link_started(self, index: int, total: int) -> None:
        pass

    def on_found(self, entry: Entry) -> None:
        pass

    def on_finished(self, stats: CrawlStats) -> None:
        pass


class LoggingObserver(CrawlObserver):
    def on_page(self, page: int, count: int) -> None:
        logger.info("search page %d: %d results", page, count)

    def on_page_failed(self, page: int, error: Exception) -> None:
        logger.error("ERROR: Failed to load links of search page %d: %s", page, error)

    def on_link_started(self, index: int, total: int) -> None:
        logger.debug("loading link %d/%d", index + 1, total)

    def on_found(self, entry: Entry) -> None:
        guild = entry.payload.get("guild") or {}
        logger.info("Found invite to %s: https://discord.gg/%s", guild.get("name") or "Unknown", entry.id)

    def on_finished(self, stats: CrawlStats) -> None:
        logger.info("crawl finished: %s", stats.to_dict())


class CrawlPipeline:
    """Drives search -> resolve -> verify for one cycle.

    Single-threaded and strictly sequential. Every external call is preceded by
    its rate limiter; a failing page, link or invite is dropped and the sweep
    goes on with the next one.
    """

    def __init__(
        self,
        search: SearchSource,
        resolver: LinkResolver,
        verifier: InviteVerifier,
        *,
        max_pages: int = DEFAULT_MAX_PAGES,
        search_limiter: Optional[RateLimiter] = None,
        link_limiter: Optional[RateLimiter] = None,
        observer: Optional[CrawlObserver] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self.search = search
        self.resolver = resolver
        self.verifier = verifier
        self.max_pages = int(max_pages)
        self.search_limiter = search_limiter or FixedDelayLimiter(DEFAULT_SEARCH_DELAY)
        self.link_limiter = link_limiter or FixedDelayLimiter(DEFAULT_LINK_DELAY)
        self.observer = observer or LoggingObserver()
        self.clock = clock

    def run(self) -> List[Entry]:
        """Run one full sweep and return the entries verified during it."""
        stats = CrawlStats()
        links = self.discover(stats)
        entries = self.verify_links(links, stats)
        self.observer.on_finished(stats)
        return entries

    def discover(self, stats: Optional[CrawlStats] = None) -> List[str]:
        stats = stats if stats is not None else CrawlStats()
        links: List[str] = []
        for page in range(self.max_pages):
            self.search_limiter.wait_before_next_call()
            try:
                found = self.search.search(page)
            except InviteCrawlerError as exc:
                stats.pages_failed += 1
                self.observer.on_page_failed(page, exc)
                continue
            except Exception as exc:
                logger.exception("unexpected error on search page %d", page)
                stats.pages_failed += 1
                self.observer.on_page_failed(page, exc)
                continue
            stats.pages_searched += 1
            if not found:
                logger.info("search page %d is empty, no more results", page)
                break
            self.observer.on_page(page, len(found))
            links.extend(found)
        stats.links_discovered = len(links)
        return links

    def verify_links(self, links: List[str], stats: Optional[CrawlStats] = None) -> List[Entry]:
        stats = stats if stats is not None else CrawlStats()
        seen: set = set()
        entries: List[Entry] = []
        total = len(links)
        for index, link in enumerate(links):
            self.observer.on_link_started(index, total)
            self.link_limiter.wait_before_next_call()
            try:
                invite_links = self.resolver.resolve(link)
            except InviteCrawlerError as exc:
                stats.resolve_failures += 1
                logger.debug("dropping %s: %s", link, exc)
                continue
            except Exception:
                stats.resolve_failures += 1
                logger.exception("unexpected error resolving %s", link)
                continue
            stats.links_resolved += 1

            requires_cooldown = False
            for raw in invite_links:
                key = normalize_invite_link(raw) or raw
                if key in seen:
                    continue
                seen.add(key)
                stats.invite_links_seen += 1
                if requires_cooldown:
                    self.link_limiter.wait_before_next_call()
                requires_cooldown = True

                entry = self._verify(key, stats)
                if entry is not None:
                    entries.append(entry)
                    self.observer.on_found(entry)
        return entries

    def _verify(self, link: str, stats: CrawlStats) -> Optional[Entry]:
        try:
            invite = self.verifier.fetch(link)
        except InviteCrawlerError as exc:
            stats.verify_failures += 1
            logger.debug("invite %s rejected: %s", link, exc)
            return None
        except Exception:
            stats.verify_failures += 1
            logger.exception("unexpected error verifying %s", link)
            return None
        stats.invites_verified += 1
        return Entry.from_invite(invite, observed_at=int(self.clock()))
