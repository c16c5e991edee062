from __future__ import annotations

import glob
import logging
import math
import os
import tempfile
import time
from typing import IO
from typing import TYPE_CHECKING
from typing import Callable
from typing import Iterable
from typing import Iterator

from .zindex import ZIndex
from .zmodel import DEFAULT_CEILING
from .zmodel import DEFAULT_DECAY
from .zmodel import DEFAULT_MAX_TEMP_FILE_AGE
from .zmodel import DEFAULT_MIN_RANK
from .zmodel import Entry

if TYPE_CHECKING:
    from typing import Protocol

    class _ZConfig(Protocol):
        @property
        def data_path(self) -> str:
            ...

        @property
        def min_rank(self) -> float:
            ...

        @property
        def max_temp_file_age_seconds(self) -> int:
            ...

        @property
        def ceiling(self) -> float:
            ...

        @property
        def decay(self) -> float:
            ...


DELIMITER = "|"
ENCODING = "utf-8"
# Non UTF-8 paths survive a load/save cycle byte for byte.
ENCODING_ERRORS = "surrogateescape"
TEMP_SUFFIX = ".tmp"


class StoreReadError(OSError):
    """The data file exists but could not be read."""


class StoreWriteError(OSError):
    """The data file could not be replaced. The previous file is intact."""


def parse_record(line: str) -> Entry:
    """
    Parse a `path|rank|last_access` line. Trailing fields are ignored.

    Raises:
        ValueError: If the line is not a valid record.
    """
    parts = line.split(DELIMITER)
    if len(parts) < 3:
        raise ValueError("record needs a path, a rank and a time")

    path, raw_rank, raw_time = parts[:3]
    if not path:
        raise ValueError("record needs a path")

    rank = float(raw_rank)
    if not math.isfinite(rank) or rank < 0:
        raise ValueError(f"record contained invalid rank: {rank!r}")

    return Entry(path=path, rank=rank, last_access=int(raw_time))


def format_record(entry: Entry) -> str:
    """Format an entry as a `path|rank|last_access` line, without newline."""
    if entry.rank.is_integer():
        rank = str(int(entry.rank))
    else:
        rank = repr(entry.rank)
    return f"{entry.path}{DELIMITER}{rank}{DELIMITER}{entry.last_access}"


def is_encodable(path: str) -> bool:
    """True if the path can be stored without breaking the line format."""
    return DELIMITER not in path and "\n" not in path and "\r" not in path


class ZStore:
    """The ranking data file, shared by concurrently running processes."""

    logger = logging.getLogger("zrank.ZStore")

    def __init__(
        self,
        data_path: str,
        *,
        min_rank: float = DEFAULT_MIN_RANK,
        max_temp_file_age: int = DEFAULT_MAX_TEMP_FILE_AGE,
        ceiling: float = DEFAULT_CEILING,
        decay: float = DEFAULT_DECAY,
    ) -> None:
        """
        Initialize a store for the given data file.

        Nothing is read or written until load(), save() or update() is called.
        Writers never hold a lock: each write replaces the whole file atomically
        so readers only ever see a complete file. Two writers racing through
        update() may lose one of their visits.

        Args:
            data_path: The path to the data file. Its parent directory must be
                writable, temporary files are created there.

        Keyword Args:
            min_rank: Entries with a rank below this are not written.
                Defaults to 0.01.
            max_temp_file_age: Temporary files left by interrupted writes are
                removed once older than this many seconds. Defaults to 600.
            ceiling: Total rank which triggers aging of loaded indexes.
            decay: Aging factor of loaded indexes.
        """
        self.data_path = os.path.abspath(data_path)
        self.skipped_records = 0

        self._min_rank = min_rank
        self._max_temp_file_age = max_temp_file_age
        self._ceiling = ceiling
        self._decay = decay

    @classmethod
    def from_config(cls, config: _ZConfig) -> ZStore:
        """Build a ZStore from the given configuration."""
        return cls(
            config.data_path,
            min_rank=config.min_rank,
            max_temp_file_age=config.max_temp_file_age_seconds,
            ceiling=config.ceiling,
            decay=config.decay,
        )

    @property
    def _temp_prefix(self) -> str:
        name = os.path.basename(self.data_path).lstrip(".")
        return f".{name}."

    def new_index(self, entries: Iterable[Entry] = ()) -> ZIndex:
        """Build an index using this store's aging policy."""
        return ZIndex(entries, ceiling=self._ceiling, decay=self._decay)

    def load(self) -> ZIndex:
        """
        Read the data file into an index.

        A missing file gives an empty index. Records which cannot be parsed
        are skipped and counted in `skipped_records`.

        Raises:
            StoreReadError: If the file exists but cannot be opened or read.
        """
        self.skipped_records = 0

        try:
            with open(
                self.data_path,
                encoding=ENCODING,
                errors=ENCODING_ERRORS,
                newline="\n",
            ) as data_file:
                index = self.new_index(self._parse_lines(data_file))

        except FileNotFoundError:
            self.logger.debug("No data file at %s, starting empty", self.data_path)
            return self.new_index()

        except OSError as error:
            raise StoreReadError(
                f"Couldn't read {self.data_path}: {error.strerror or error}",
            ) from error

        if self.skipped_records:
            self.logger.warning(
                "Skipped %s unreadable records in %s",
                self.skipped_records,
                self.data_path,
            )

        self.logger.debug("Loaded %s entries from %s", len(index), self.data_path)
        return index

    def _parse_lines(self, lines: Iterable[str]) -> Iterator[Entry]:
        for line in lines:
            line = line.rstrip("\n")
            if not line.strip():
                continue

            try:
                yield parse_record(line)

            except ValueError as error:
                self.skipped_records += 1
                self.logger.warning("Couldn't parse %r: %s", line, error)

    def save(self, index: ZIndex) -> None:
        """
        Atomically replace the data file with the given index.

        The index is written to a temporary file next to the data file,
        flushed to disk, then renamed over the data file. A process killed at
        any point leaves either the old or the new file in place.

        Raises:
            StoreWriteError: If any step fails. The data file is untouched.
        """
        self._remove_stale_temp_files()

        directory = os.path.dirname(self.data_path)
        try:
            fd, temp_path = tempfile.mkstemp(
                prefix=self._temp_prefix,
                suffix=TEMP_SUFFIX,
                dir=directory,
            )
        except OSError as error:
            raise StoreWriteError(
                f"Couldn't create a temporary file in {directory}: {error.strerror}",
            ) from error

        try:
            with os.fdopen(
                fd,
                "w",
                encoding=ENCODING,
                errors=ENCODING_ERRORS,
                newline="\n",
            ) as temp_file:
                count = self._write_records(temp_file, index)
                temp_file.flush()
                os.fsync(temp_file.fileno())

            self._copy_ownership(temp_path)
            os.replace(temp_path, self.data_path)

        except OSError as error:
            self._discard(temp_path)
            raise StoreWriteError(
                f"Couldn't write {self.data_path}: {error.strerror or error}",
            ) from error

        self.logger.debug("Saved %s entries to %s", count, self.data_path)

    def _write_records(self, temp_file: IO[str], index: ZIndex) -> int:
        """Write each storable entry, returning how many were written."""
        count = 0
        for entry in index:
            if entry.rank < self._min_rank:
                self.logger.debug("Dropping %s, rank %s", entry.path, entry.rank)
                continue

            if not is_encodable(entry.path):
                self.logger.warning("Not storing unencodable path %r", entry.path)
                continue

            temp_file.write(format_record(entry) + "\n")
            count += 1

        return count

    def _copy_ownership(self, temp_path: str) -> None:
        """Best effort attempt to keep the owner and mode of the data file."""
        try:
            stat = os.stat(self.data_path)
        except FileNotFoundError:
            return

        try:
            os.chmod(temp_path, stat.st_mode & 0o7777)
            if hasattr(os, "chown"):
                os.chown(temp_path, stat.st_uid, stat.st_gid)

        except PermissionError as error:
            self.logger.debug("Couldn't keep ownership of %s: %s", self.data_path, error)

    def _discard(self, temp_path: str) -> None:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass

    def _remove_stale_temp_files(self) -> None:
        """Remove temporary files left behind by interrupted writes."""
        directory = os.path.dirname(self.data_path)
        pattern = os.path.join(
            glob.escape(directory), glob.escape(self._temp_prefix) + "*" + TEMP_SUFFIX
        )
        cutoff = time.time() - self._max_temp_file_age

        for temp_path in glob.glob(pattern):
            try:
                if os.path.getmtime(temp_path) < cutoff:
                    os.unlink(temp_path)
                    self.logger.info("Removed stale temporary file %s", temp_path)

            except FileNotFoundError:
                # Another writer finished or cleaned it first
                continue

            except OSError as error:
                self.logger.warning(
                    "Couldn't remove temporary file %s: %s", temp_path, error
                )

    def update(self, delta: ZIndex) -> ZIndex:
        """
        Merge the delta into the data file.

        Loads the current file, merges the delta into it, ages the result and
        saves it. Returns the saved index.
        """
        merged = self.load().merge(delta)
        merged.age()

        dropped = merged.prune(self._min_rank)
        if dropped:
            self.logger.debug("Dropping %s decayed entries", len(dropped))

        self.save(merged)
        return merged

    def clean(self, path_exists: Callable[[str], bool]) -> list[str]:
        """
        Remove entries whose path fails the existence check.

        The file is only rewritten when something was removed.

        Returns:
            The removed paths.
        """
        index = self.load()
        removed = index.clean(path_exists)

        if removed:
            self.save(index)

        self.logger.info("Cleaned %s entries from %s", len(removed), self.data_path)
        return removed
