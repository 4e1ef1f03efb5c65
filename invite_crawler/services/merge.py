"""Reconcile a crawl's fresh entries with the stored catalog.

Survival of an id depends only on the entries sharing it: the largest
observed_at wins and, on a timestamp tie, the entry whose canonical payload
sorts last. The result is independent of the order and origin of the inputs,
and is returned sorted ascending by id.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from invite_crawler.models.entry import Entry
from invite_crawler.services.crawl.base import canonical_json


def _freshness(entry: Entry) -> Tuple[int, str]:
    return entry.observed_at, canonical_json(entry.payload)


def dedupe(entries: Iterable[Entry]) -> Dict[str, Entry]:
    best: Dict[str, Entry] = {}
    for entry in entries:
        current = best.get(entry.id)
        if current is None or _freshness(entry) > _freshness(current):
            best[entry.id] = entry
    return best


def merge(prior: Iterable[Entry], fresh: Iterable[Entry]) -> List[Entry]:
    best = dedupe([*prior, *fresh])
    return [best[k] for k in sorted(best)]
