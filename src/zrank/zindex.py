from __future__ import annotations

import logging
import math
from typing import Callable
from typing import Iterable
from typing import Iterator

from .zmodel import DEFAULT_CEILING
from .zmodel import DEFAULT_DECAY
from .zmodel import Entry
from .zmodel import age


class ZIndex:
    """In-memory ranking of visited directories keyed by path."""

    logger = logging.getLogger(__name__)

    def __init__(
        self,
        entries: Iterable[Entry] = (),
        *,
        ceiling: float = DEFAULT_CEILING,
        decay: float = DEFAULT_DECAY,
    ) -> None:
        """
        Build an index from the given entries.

        Entries sharing a path are folded together: ranks are summed and the
        latest access time is kept.

        Args:
            entries: Entries to load, in the order they should be kept.

        Keyword Args:
            ceiling: Total rank above which every rank is decayed.
            decay: Factor applied to every rank when aging.
        """
        self._entries: dict[str, Entry] = {}
        self._total_rank = 0.0
        self._ceiling = ceiling
        self._decay = decay

        for entry in entries:
            self._fold(entry)

        self.check_total()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries.values()))

    def __repr__(self) -> str:
        return f"ZIndex({len(self)} entries, total_rank={self._total_rank})"

    @property
    def total_rank(self) -> float:
        """Sum of every entry rank."""
        return self._total_rank

    @property
    def entries(self) -> list[Entry]:
        """All entries in insertion order."""
        return list(self._entries.values())

    @property
    def ceiling(self) -> float:
        return self._ceiling

    @property
    def decay(self) -> float:
        return self._decay

    def get(self, path: str) -> Entry | None:
        """Return the entry for the path, if tracked."""
        return self._entries.get(path)

    def check_total(self) -> bool:
        """
        Recompute the total rank from the entries.

        Returns:
            True if the running total was consistent with the entries.
        """
        actual = math.fsum(entry.rank for entry in self._entries.values())
        consistent = math.isclose(actual, self._total_rank, abs_tol=1e-6)
        if not consistent:
            self.logger.warning(
                "Total rank drifted from %s to %s, correcting",
                self._total_rank,
                actual,
            )
        self._total_rank = actual
        return consistent

    def record_visit(self, path: str, now: int) -> Entry:
        """Count one visit to the path at `now`, creating the entry if needed."""
        existing = self._entries.get(path)
        if existing is None:
            entry = Entry(path=path, rank=1.0, last_access=now)
        else:
            entry = existing.visited(now)

        self._entries[path] = entry
        self._total_rank += 1.0

        self.age()

        return self._entries[path]

    def age(self) -> bool:
        """Decay all ranks if the total rank is over the ceiling."""
        aged = age(self, self._ceiling, self._decay)
        if aged:
            self.logger.debug("Aged %s entries by %s", len(self), self._decay)
        return aged

    def scale(self, factor: float) -> None:
        """Multiply every rank, and the total, by `factor`."""
        for path, entry in self._entries.items():
            self._entries[path] = entry.scaled(factor)
        self._total_rank *= factor

    def remove(self, path: str) -> Entry | None:
        """Stop tracking the path. Returns the removed entry, if any."""
        entry = self._entries.pop(path, None)
        if entry is not None:
            self._total_rank -= entry.rank
        return entry

    def clean(self, path_exists: Callable[[str], bool]) -> list[str]:
        """
        Remove every entry whose path fails the existence check.

        Args:
            path_exists: Called with each path, False means the entry goes.

        Returns:
            The removed paths, in index order.
        """
        removed = [path for path in list(self._entries) if not path_exists(path)]
        for path in removed:
            self.remove(path)

        self.logger.debug("Cleaned %s entries", len(removed))
        return removed

    def prune(self, min_rank: float) -> list[str]:
        """Remove entries whose rank has decayed below `min_rank`."""
        removed = [
            path for path, entry in self._entries.items() if entry.rank < min_rank
        ]
        for path in removed:
            self.remove(path)
        return removed

    def merge(self, other: ZIndex) -> ZIndex:
        """
        Combine two snapshots into a new index.

        Ranks of shared paths are summed and the latest access time wins.
        Paths only in `other` are appended after this index's entries.
        """
        merged = ZIndex(self._entries.values(), ceiling=self._ceiling, decay=self._decay)
        for entry in other:
            merged._fold(entry)
        merged.check_total()
        return merged

    def _fold(self, entry: Entry) -> None:
        """Add an entry, combining it with an existing one on the same path."""
        existing = self._entries.get(entry.path)
        if existing is None:
            self._entries[entry.path] = entry
        else:
            self._entries[entry.path] = Entry(
                path=entry.path,
                rank=existing.rank + entry.rank,
                last_access=max(existing.last_access, entry.last_access),
            )
        self._total_rank += entry.rank
