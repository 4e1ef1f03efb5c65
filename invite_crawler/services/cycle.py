from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from invite_crawler.db.catalog_store import CatalogStore
from invite_crawler.errors import CatalogAbort, CatalogCorruptionError
from invite_crawler.models.entry import Entry
from invite_crawler.services.crawl.pipeline import CrawlPipeline
from invite_crawler.services.index_publisher import MeiliSearchPublisher, PublishOutcome, publish_catalog
from invite_crawler.services.merge import merge
from invite_crawler.services.recovery import CorruptionPolicy

logger = logging.getLogger(__name__)


DEFAULT_CADENCE = 3600.0


@dataclass(frozen=True)
class CatalogState:
    """Catalog as threaded through one cycle: load -> merge -> save."""

    entries: Tuple[Entry, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def merged_with(self, fresh) -> "CatalogState":
        return CatalogState(tuple(merge(self.entries, fresh)))


@dataclass
class CycleReport:
    prior: int = 0
    fresh: int = 0
    merged: int = 0
    elapsed: float = 0.0
    publish: Optional[PublishOutcome] = None
    recovered_from_corruption: bool = False
    state: CatalogState = field(default_factory=CatalogState)


def load_state(store: CatalogStore, policy: CorruptionPolicy) -> Tuple[CatalogState, bool]:
    """Load the stored catalog, sending an unreadable file through the policy.

    Returns (state, recovered). Raises CatalogAbort if the policy says no; the
    file is left untouched in that case.
    """
    try:
        return CatalogState(tuple(store.load())), False
    except CatalogCorruptionError as exc:
        logger.error("ERROR: %s. STATUS: Corrupted data may be lost.", exc)
        if not policy.should_continue(exc):
            raise CatalogAbort(exc) from exc
        logger.warning("Ignoring saved data; starting from an empty catalog.")
        return CatalogState(), True


class CycleRunner:
    """One full pass: load -> crawl -> merge -> save -> publish."""

    def __init__(
        self,
        store: CatalogStore,
        pipeline: CrawlPipeline,
        publisher: MeiliSearchPublisher,
        index_name: str,
        corruption_policy: CorruptionPolicy,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.pipeline = pipeline
        self.publisher = publisher
        self.index_name = index_name
        self.corruption_policy = corruption_policy
        self.clock = clock

    def run_once(self) -> CycleReport:
        started = self.clock()
        prior, recovered = load_state(self.store, self.corruption_policy)
        logger.info("Loaded %d entries from %s", len(prior), self.store.path)

        fresh = self.pipeline.run()
        state = prior.merged_with(fresh)
        self.store.save(state.entries)
        outcome = publish_catalog(self.publisher, self.index_name, state.entries)

        report = CycleReport(
            prior=len(prior),
            fresh=len(fresh),
            merged=len(state),
            elapsed=self.clock() - started,
            publish=outcome,
            recovered_from_corruption=recovered,
            state=state,
        )
        logger.info(
            "Cycle done in %.1fs: %d stored, %d verified, %d in catalog",
            report.elapsed, report.prior, report.fresh, report.merged,
        )
        return report


def sleep_for(cadence: float, elapsed: float) -> float:
    return max(0.0, cadence - elapsed)


class CycleScheduler:
    """Runs cycles back to back on a fixed cadence measured from each cycle's start."""

    def __init__(
        self,
        runner: CycleRunner,
        *,
        cadence: float = DEFAULT_CADENCE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if cadence <= 0:
            raise ValueError("cadence must be > 0")
        self.runner = runner
        self.cadence = float(cadence)
        self.clock = clock
        self._sleep = sleep

    def tick(self) -> float:
        """Run one cycle and wait out the rest of the cadence. Returns the sleep."""
        started = self.clock()
        self.runner.run_once()
        remaining = sleep_for(self.cadence, self.clock() - started)
        if remaining > 0:
            logger.info("Next cycle in %.0fs", remaining)
            self._sleep(remaining)
        else:
            logger.warning("Cycle overran the %.0fs cadence; starting the next one now", self.cadence)
        return remaining

    def run_forever(self, *, max_cycles: Optional[int] = None) -> int:
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            self.tick()
            cycles += 1
        return cycles
