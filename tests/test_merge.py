import random

from invite_crawler.models.entry import Entry
from invite_crawler.services.merge import dedupe, merge


def E(id_, ts, **payload):
    return Entry(id=id_, observed_at=ts, payload=payload or {"code": id_})


def test_merge_with_nothing_only_reorders():
    catalog = [E("c", 3), E("a", 1), E("b", 2)]
    out = merge(catalog, [])
    assert [e.id for e in out] == ["a", "b", "c"]
    assert sorted(out, key=lambda e: e.id) == sorted(catalog, key=lambda e: e.id)


def test_merge_is_idempotent():
    merged = merge([E("b", 1), E("a", 2)], [E("a", 5), E("c", 1)])
    assert merge(merged, []) == merged
    assert merge([], merged) == merged


def test_merge_keeps_one_entry_per_id():
    prior = [E("a", 1), E("b", 1), E("a", 3)]
    fresh = [E("a", 2), E("b", 7), E("c", 1), E("c", 1)]
    out = merge(prior, fresh)
    ids = [e.id for e in out]
    assert ids == sorted(set(ids))
    assert len(ids) == 3


def test_freshest_entry_wins_whichever_side_it_comes_from():
    old = E("a", 100, name="old")
    new = E("a", 200, name="new")
    assert merge([old], [new])[0].payload["name"] == "new"
    assert merge([new], [old])[0].payload["name"] == "new"


def test_timestamp_tie_is_deterministic():
    x = E("a", 100, name="x")
    y = E("a", 100, name="y")
    assert merge([x], [y]) == merge([y], [x])
    assert merge([x, y], []) == merge([], [y, x])


def test_merge_does_not_depend_on_input_order():
    rng = random.Random(7)
    entries = [E(f"id{rng.randint(0, 9)}", rng.randint(0, 5), n=str(rng.randint(0, 3))) for _ in range(60)]
    expected = merge(entries, [])
    for _ in range(5):
        rng.shuffle(entries)
        cut = rng.randint(0, len(entries))
        assert merge(entries[:cut], entries[cut:]) == expected


def test_dedupe_returns_mapping_by_id():
    best = dedupe([E("a", 1), E("a", 4), E("b", 2)])
    assert set(best) == {"a", "b"}
    assert best["a"].observed_at == 4
