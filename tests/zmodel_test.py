from __future__ import annotations

import math
from unittest.mock import MagicMock

import pytest

from zrank.zmodel import DAY
from zrank.zmodel import HOUR
from zrank.zmodel import WEEK
from zrank.zmodel import Entry
from zrank.zmodel import ScoreMode
from zrank.zmodel import age
from zrank.zmodel import frecency
from zrank.zmodel import score
from zrank.zmodel import time_delta

NOW = 1_700_000_000


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (0, 40.0),
        (HOUR - 1, 40.0),
        (HOUR, 20.0),
        (DAY - 1, 20.0),
        (DAY, 5.0),
        (WEEK - 1, 5.0),
        (WEEK, 2.5),
        (WEEK * 52, 2.5),
    ],
)
def test_frecency_tiers(elapsed: int, expected: float) -> None:
    entry = Entry("/foo", 10.0, NOW - elapsed)

    assert frecency(entry, NOW) == expected


def test_frecency_clamps_future_access() -> None:
    entry = Entry("/foo", 3.0, NOW + 500)

    assert frecency(entry, NOW) == 12.0


def test_frecency_is_stable_within_a_tier() -> None:
    entry = Entry("/foo", 7.0, NOW)

    results = {frecency(entry, NOW + offset) for offset in (HOUR, HOUR + 60, DAY - 1)}

    assert results == {14.0}
    assert frecency(entry, NOW) == frecency(entry, NOW)


def test_frecency_with_custom_tiers() -> None:
    entry = Entry("/foo", 2.0, NOW - 10)

    assert frecency(entry, NOW, tiers=((5, 10.0),), stale_multiplier=1.0) == 2.0
    assert frecency(entry, NOW, tiers=((60, 10.0),)) == 20.0


def test_time_delta_never_negative() -> None:
    assert time_delta(10, 20) == 0
    assert time_delta(20, 10) == 10


@pytest.mark.parametrize(
    "mode, expected",
    [
        (ScoreMode.RANK, 6.0),
        (ScoreMode.RECENT, -7200.0),
        (ScoreMode.FRECENT, 12.0),
    ],
)
def test_score_modes(mode: ScoreMode, expected: float) -> None:
    entry = Entry("/foo", 6.0, NOW - 2 * HOUR)

    assert score(entry, NOW, mode) == expected


def test_score_rejects_non_finite() -> None:
    entry = Entry("/foo", math.inf, NOW)

    with pytest.raises(ValueError):
        score(entry, NOW)


def test_entry_visited_and_scaled_return_copies() -> None:
    entry = Entry("/foo", 1.0, NOW)

    visited = entry.visited(NOW + 5)
    scaled = entry.scaled(0.5)

    assert visited == Entry("/foo", 2.0, NOW + 5)
    assert scaled == Entry("/foo", 0.5, NOW)
    assert entry == Entry("/foo", 1.0, NOW)


def test_age_below_ceiling_does_nothing() -> None:
    index = MagicMock(total_rank=100.0)

    assert age(index, ceiling=100.0) is False
    index.scale.assert_not_called()


def test_age_over_ceiling_scales() -> None:
    index = MagicMock(total_rank=100.5)

    assert age(index, ceiling=100.0, decay=0.5) is True
    index.scale.assert_called_once_with(0.5)


@pytest.mark.parametrize("decay", [0.0, 1.0, 1.5, -0.1])
def test_age_rejects_invalid_decay(decay: float) -> None:
    index = MagicMock(total_rank=1.0)

    with pytest.raises(ValueError):
        age(index, ceiling=0.0, decay=decay)
