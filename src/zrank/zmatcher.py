from __future__ import annotations

import logging
import os
import re
from typing import Iterable
from typing import Sequence

from .zindex import ZIndex
from .zmodel import ScoredEntry
from .zmodel import ScoreMode
from .zmodel import score

COMMON_PREFIX_MULTIPLIER = 100.0

logger = logging.getLogger(__name__)


class InvalidQueryError(ValueError):
    """A query term is not a valid regular expression."""

    def __init__(self, term: str, reason: str) -> None:
        super().__init__(f"Invalid query term {term!r}: {reason}")
        self.term = term
        self.reason = reason


def compile_terms(terms: Iterable[str]) -> list[re.Pattern[str]]:
    """
    Compile each term as a case-insensitive regular expression.

    Raises:
        InvalidQueryError: Naming the first term which does not compile.
    """
    patterns: list[re.Pattern[str]] = []
    for term in terms:
        try:
            patterns.append(re.compile(term, re.IGNORECASE))
        except re.error as error:
            raise InvalidQueryError(term, str(error)) from error

    return patterns


def matches_in_order(path: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    """
    True if every pattern matches the path, each starting at or after the
    start of the previous pattern's match.
    """
    position = 0
    for pattern in patterns:
        match = pattern.search(path, position)
        if match is None:
            return False
        position = match.start()

    return True


def is_within(path: str, directory: str) -> bool:
    """True if the path is below the directory."""
    prefix = directory.rstrip("/") + "/"
    return path.startswith(prefix)


def common_prefix(paths: Sequence[str]) -> str | None:
    """
    Return the deepest directory every path is under, or is, if any.

    The filesystem root and single paths have no common prefix.
    """
    if len(paths) <= 1 or not all(os.path.isabs(path) for path in paths):
        return None

    prefix = os.path.commonpath(paths)
    if prefix == os.path.sep:
        return None

    return prefix


def sort_key(scored: ScoredEntry) -> tuple[float, int, str]:
    """Best score first, then shorter paths, then alphabetical."""
    return (-scored.score, len(scored.path), scored.path)


def query(
    index: ZIndex,
    terms: Sequence[str],
    now: int,
    *,
    mode: ScoreMode = ScoreMode.FRECENT,
    within: str | None = None,
    common_prefix_boost: bool = False,
) -> list[ScoredEntry]:
    """
    Rank the entries of the index matching every term.

    Args:
        index: The index to search, it is not modified.
        terms: Case-insensitive regular expressions, expected to match in
            path order. No terms matches every entry.
        now: The current time in seconds since the epoch.

    Keyword Args:
        mode: How matches are scored. Defaults to frecency.
        within: Only consider paths below this directory.
        common_prefix_boost: If every match is below a common directory which
            is itself a match, rank it far above the others.

    Returns:
        Matches, best first. Empty if nothing matched.

    Raises:
        InvalidQueryError: If a term is not a valid regular expression.
    """
    patterns = compile_terms(terms)

    candidates = [
        entry
        for entry in index
        if (within is None or is_within(entry.path, within))
        and matches_in_order(entry.path, patterns)
    ]
    logger.debug("%s of %s entries match %s", len(candidates), len(index), terms)

    scored = [ScoredEntry(entry.path, score(entry, now, mode)) for entry in candidates]

    if common_prefix_boost:
        scored = _boost_common_prefix(scored)

    return sorted(scored, key=sort_key)


def _boost_common_prefix(scored: list[ScoredEntry]) -> list[ScoredEntry]:
    """Multiply the score of the match all other matches are under."""
    prefix = common_prefix([item.path for item in scored])
    if prefix is None:
        return scored

    boosted: list[ScoredEntry] = []
    for item in scored:
        if item.path == prefix:
            # negative recency scores are lifted above zero
            item = ScoredEntry(
                item.path, item.score + abs(item.score) * (COMMON_PREFIX_MULTIPLIER - 1)
            )
        boosted.append(item)

    return boosted


def best_match(
    index: ZIndex,
    terms: Sequence[str],
    now: int,
    *,
    mode: ScoreMode = ScoreMode.FRECENT,
    within: str | None = None,
    common_prefix_boost: bool = False,
) -> str | None:
    """Return the best matching path, or None if nothing matched."""
    results = query(
        index,
        terms,
        now,
        mode=mode,
        within=within,
        common_prefix_boost=common_prefix_boost,
    )
    return results[0].path if results else None


def complete(index: ZIndex, line: str, now: int, command: str = "z") -> list[str]:
    """
    Return the paths completing a partially typed command line, best first.

    The leading command word is dropped and the rest matched literally.
    """
    words = line.split(maxsplit=1)
    if words and words[0] == command:
        line = words[1] if len(words) > 1 else ""

    terms = [re.escape(line)] if line else []
    return [item.path for item in query(index, terms, now)]
