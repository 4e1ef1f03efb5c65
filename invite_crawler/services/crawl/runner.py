from __future__ import annotations

import argparse
import logging
from typing import Optional

from pydantic import ValidationError

from invite_crawler import __version__
from invite_crawler.config import Settings, load_env_file, load_settings
from invite_crawler.db.catalog_store import CatalogStore
from invite_crawler.errors import EXIT_DATA_INTEGRITY, CatalogAbort, CatalogSaveError
from invite_crawler.services.cycle import CycleRunner, CycleScheduler
from invite_crawler.services.index_publisher import MeiliSearchPublisher
from invite_crawler.services.recovery import CORRUPTION_POLICIES, SAVE_RETRY_POLICIES
from .base import FixedDelayLimiter
from .pipeline import CrawlPipeline, LoggingObserver
from .spiders.discord_invite import DiscordInviteVerifier
from .spiders.google_search import GoogleSearchSource
from .spiders.intermediary import IntermediaryResolver

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invite-crawler",
        description="Crawler for Discord's guild invite links.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-H", "--host", help="MeiliSearch server root url")
    parser.add_argument("-i", "--index", help="MeiliSearch index name")
    parser.add_argument("-k", "--key", help="MeiliSearch server key (requires write access)")
    parser.add_argument("--catalog", dest="catalog_path", help="Path of the catalog file")
    parser.add_argument("--cadence", type=float, help="Seconds between the start of two cycles")
    parser.add_argument("--pages", dest="max_pages", type=int, help="Search result pages per cycle")
    parser.add_argument("--search-delay", type=float, help="Pause before each search page, seconds")
    parser.add_argument("--link-delay", type=float, help="Pause before each link resolve/verify, seconds")
    parser.add_argument("--timeout", dest="http_timeout", type=float, help="HTTP timeout, seconds")
    parser.add_argument("--on-corruption", choices=sorted(CORRUPTION_POLICIES), help="What to do with an unreadable catalog")
    parser.add_argument("--save-retry", choices=sorted(SAVE_RETRY_POLICIES), help="How to retry a failed catalog save")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def build_runner(settings: Settings) -> CycleRunner:
    store = CatalogStore(settings.catalog_path, retry=SAVE_RETRY_POLICIES[settings.save_retry]())
    pipeline = CrawlPipeline(
        GoogleSearchSource(timeout=settings.http_timeout),
        IntermediaryResolver(timeout=settings.http_timeout),
        DiscordInviteVerifier(timeout=settings.http_timeout),
        max_pages=settings.max_pages,
        search_limiter=FixedDelayLimiter(settings.search_delay),
        link_limiter=FixedDelayLimiter(settings.link_delay),
        observer=LoggingObserver(),
    )
    publisher = MeiliSearchPublisher(settings.host, settings.key, timeout=settings.http_timeout)
    return CycleRunner(store, pipeline, publisher, settings.index, CORRUPTION_POLICIES[settings.on_corruption]())


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    load_env_file()
    overrides = {
        k: getattr(args, k)
        for k in (
            "host", "index", "key", "catalog_path", "cadence", "max_pages",
            "search_delay", "link_delay", "http_timeout", "on_corruption", "save_retry",
        )
    }
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    try:
        settings = load_settings(overrides)
    except ValidationError as exc:
        parser.error(f"invalid configuration:\n{exc}")

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("invite-crawler %s: index %s at %s, catalog %s", __version__, settings.index, settings.host, settings.catalog_path)

    runner = build_runner(settings)
    try:
        if args.once:
            runner.run_once()
        else:
            CycleScheduler(runner, cadence=settings.cadence).run_forever()
    except CatalogAbort as exc:
        logger.error("%s", exc)
        return exc.exit_status
    except CatalogSaveError as exc:
        logger.error("ERROR: %s. STATUS: This cycle's discoveries were not saved.", exc)
        return EXIT_DATA_INTEGRITY
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
