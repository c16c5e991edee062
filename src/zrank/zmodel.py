from __future__ import annotations

import dataclasses
import enum
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Protocol

    class _Ageable(Protocol):
        @property
        def total_rank(self) -> float:
            ...

        def scale(self, factor: float) -> None:
            ...


HOUR = 3600
DAY = HOUR * 24
WEEK = DAY * 7

# (upper bound of elapsed seconds, multiplier), most recent first
RECENCY_TIERS: tuple[tuple[int, float], ...] = (
    (HOUR, 4.0),
    (DAY, 2.0),
    (WEEK, 0.5),
)
STALE_MULTIPLIER = 0.25

DEFAULT_CEILING = 9000.0
DEFAULT_DECAY = 0.99
DEFAULT_MIN_RANK = 0.01
DEFAULT_MAX_TEMP_FILE_AGE = 600


class ScoreMode(enum.Enum):
    """How a matched entry is scored."""

    FRECENT = "frecent"
    RANK = "rank"
    RECENT = "recent"


@dataclasses.dataclass(frozen=True)
class Entry:
    """A tracked directory."""

    path: str
    rank: float
    last_access: int

    def visited(self, now: int) -> Entry:
        """Return a copy of the entry with one more visit at `now`."""
        return dataclasses.replace(self, rank=self.rank + 1.0, last_access=now)

    def scaled(self, factor: float) -> Entry:
        """Return a copy of the entry with its rank multiplied by `factor`."""
        return dataclasses.replace(self, rank=self.rank * factor)


@dataclasses.dataclass(frozen=True)
class ScoredEntry:
    """A query result."""

    path: str
    score: float


def time_delta(now: int, then: int) -> int:
    """Seconds elapsed from `then` to `now`, never negative."""
    return max(now - then, 0)


def frecency(
    entry: Entry,
    now: int,
    tiers: tuple[tuple[int, float], ...] = RECENCY_TIERS,
    stale_multiplier: float = STALE_MULTIPLIER,
) -> float:
    """
    Relate frequency and time of visits into a single score.

    The elapsed time since the last visit selects a multiplier from `tiers`,
    the first tier whose bound is greater than the elapsed time wins. Entries
    older than every tier use `stale_multiplier`.

    Args:
        entry: The entry to score.
        now: The current time in seconds since the epoch.
        tiers: Ordered (bound seconds, multiplier) pairs.
        stale_multiplier: Multiplier past the last tier bound.

    Returns:
        The entry rank multiplied by its recency multiplier.
    """
    dx = time_delta(now, entry.last_access)

    for bound, multiplier in tiers:
        if dx < bound:
            return entry.rank * multiplier

    return entry.rank * stale_multiplier


def score(entry: Entry, now: int, mode: ScoreMode = ScoreMode.FRECENT) -> float:
    """
    Score an entry according to the given mode.

    Raises:
        ValueError: If the computed score is not finite.
    """
    if mode is ScoreMode.RANK:
        value = entry.rank
    elif mode is ScoreMode.RECENT:
        value = -float(time_delta(now, entry.last_access))
    else:
        value = frecency(entry, now)

    if not math.isfinite(value):
        raise ValueError(f"Computed non-finite score from {entry!r}")

    return value


def age(
    index: _Ageable,
    ceiling: float = DEFAULT_CEILING,
    decay: float = DEFAULT_DECAY,
) -> bool:
    """
    Decay every rank in the index once its total rank exceeds the ceiling.

    Entries that fall below the minimal rank are left in place, they are
    dropped on the next write.

    Returns:
        True if the index was aged.
    """
    if not 0.0 < decay < 1.0:
        raise ValueError(f"Decay must be between 0 and 1, got {decay}")

    if index.total_rank <= ceiling:
        return False

    index.scale(decay)
    return True
