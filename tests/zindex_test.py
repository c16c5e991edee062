from __future__ import annotations

import math

import pytest

from zrank.zindex import ZIndex
from zrank.zmodel import Entry

NOW = 1_700_000_000

ENTRIES = [
    Entry("/home/user/obiwan", 10.0, NOW - 100),
    Entry("/home/user/luke", 2.0, NOW - 5000),
    Entry("/deleted/path", 3.0, NOW - 10),
]


@pytest.fixture
def index() -> ZIndex:
    return ZIndex(ENTRIES)


def test_index_totals_entries(index: ZIndex) -> None:
    assert len(index) == 3
    assert index.total_rank == 15.0
    assert "/home/user/luke" in index
    assert index.entries == ENTRIES


def test_index_folds_duplicate_paths() -> None:
    index = ZIndex([Entry("/foo", 1.0, 10), Entry("/bar", 1.0, 5), Entry("/foo", 2.0, 5)])

    assert len(index) == 2
    assert index.get("/foo") == Entry("/foo", 3.0, 10)
    assert index.total_rank == 4.0


def test_record_visit_creates_entry() -> None:
    index = ZIndex()

    entry = index.record_visit("/foo", NOW)

    assert entry == Entry("/foo", 1.0, NOW)
    assert index.total_rank == 1.0


def test_record_visit_increments_entry(index: ZIndex) -> None:
    entry = index.record_visit("/home/user/luke", NOW)

    assert entry == Entry("/home/user/luke", 3.0, NOW)
    assert index.total_rank == 16.0


def test_record_visit_is_not_idempotent() -> None:
    index = ZIndex()

    index.record_visit("/foo", NOW)
    index.record_visit("/foo", NOW)

    assert index.get("/foo") == Entry("/foo", 2.0, NOW)


def test_record_visit_ages_over_ceiling() -> None:
    index = ZIndex([Entry("/foo", 10.0, NOW)], ceiling=10.0, decay=0.5)

    index.record_visit("/bar", NOW)

    assert index.get("/foo") == Entry("/foo", 5.0, NOW)
    assert index.get("/bar") == Entry("/bar", 0.5, NOW)
    assert index.total_rank == pytest.approx(5.5)


def test_aging_strictly_decreases_total(index: ZIndex) -> None:
    before = index.total_rank
    aged = ZIndex(index.entries, ceiling=1.0, decay=0.99)

    assert aged.age() is True
    assert aged.total_rank < before
    assert aged.check_total() is True


def test_aging_empty_index_does_nothing() -> None:
    index = ZIndex(ceiling=-1.0)

    index.age()

    assert index.total_rank == 0.0
    assert len(index) == 0


def test_aging_keeps_tiny_entries_in_memory() -> None:
    index = ZIndex([Entry("/foo", 0.001, NOW)], ceiling=0.0, decay=0.5)

    index.age()

    assert "/foo" in index


def test_remove(index: ZIndex) -> None:
    removed = index.remove("/deleted/path")

    assert removed == Entry("/deleted/path", 3.0, NOW - 10)
    assert "/deleted/path" not in index
    assert index.total_rank == 12.0


def test_remove_missing_path(index: ZIndex) -> None:
    assert index.remove("/nope") is None
    assert index.total_rank == 15.0


def test_clean_removes_only_failing_paths(index: ZIndex) -> None:
    removed = index.clean(lambda path: path != "/deleted/path")

    assert removed == ["/deleted/path"]
    assert [entry.path for entry in index] == ["/home/user/obiwan", "/home/user/luke"]
    assert index.total_rank == 12.0


def test_clean_nothing_to_remove(index: ZIndex) -> None:
    assert index.clean(lambda path: True) == []
    assert len(index) == 3


def test_prune_drops_low_ranks() -> None:
    index = ZIndex([Entry("/foo", 0.2, NOW), Entry("/bar", 1.0, NOW)])

    removed = index.prune(0.5)

    assert removed == ["/foo"]
    assert index.total_rank == 1.0


def test_merge_sums_ranks_and_keeps_latest_access() -> None:
    left = ZIndex([Entry("/foo", 2.0, 100), Entry("/bar", 1.0, 50)])
    right = ZIndex([Entry("/foo", 1.0, 90), Entry("/baz", 4.0, 70)])

    merged = left.merge(right)

    assert merged.entries == [
        Entry("/foo", 3.0, 100),
        Entry("/bar", 1.0, 50),
        Entry("/baz", 4.0, 70),
    ]
    assert merged.total_rank == 8.0


def test_merge_does_not_modify_inputs() -> None:
    left = ZIndex([Entry("/foo", 2.0, 100)])
    right = ZIndex([Entry("/foo", 1.0, 90)])

    left.merge(right)

    assert left.get("/foo") == Entry("/foo", 2.0, 100)
    assert right.get("/foo") == Entry("/foo", 1.0, 90)


def test_merge_is_commutative() -> None:
    left = ZIndex([Entry("/foo", 2.5, 100), Entry("/bar", 1.0, 50)])
    right = ZIndex([Entry("/foo", 1.25, 190), Entry("/baz", 4.0, 70)])

    one = {entry.path: entry for entry in left.merge(right)}
    two = {entry.path: entry for entry in right.merge(left)}

    assert one == two


def test_merge_is_associative() -> None:
    a = ZIndex([Entry("/foo", 1.0, 1)])
    b = ZIndex([Entry("/foo", 2.0, 3), Entry("/bar", 1.0, 2)])
    c = ZIndex([Entry("/bar", 4.0, 1)])

    one = {entry.path: entry for entry in a.merge(b).merge(c)}
    two = {entry.path: entry for entry in a.merge(b.merge(c))}

    assert one == two


def test_check_total_corrects_drift(index: ZIndex) -> None:
    index._total_rank = 99.0

    assert index.check_total() is False
    assert math.isclose(index.total_rank, 15.0)
