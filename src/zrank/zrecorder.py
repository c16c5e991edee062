from __future__ import annotations

import contextlib
import logging
import os
import time

from .zindex import ZIndex
from .zstore import ZStore


class VisitRecorder:
    """Record directory changes into the store."""

    logger = logging.getLogger(__name__)

    def __init__(self, store: ZStore) -> None:
        """
        Initialize a new VisitRecorder.

        Args:
            store: The store visits are merged into.
        """
        self._store = store

    def build_delta(self, path: str, now: int) -> ZIndex:
        """Build a one entry index holding a single visit to the path."""
        delta = self._store.new_index()
        delta.record_visit(os.path.abspath(path), now)
        return delta

    def record(self, path: str, now: int | None = None) -> ZIndex:
        """
        Record a visit to the path and wait for it to be saved.

        Args:
            path: The directory visited, made absolute.
            now: Time of the visit. Defaults to the current time.

        Returns:
            The index as saved.

        Raises:
            StoreWriteError: If the data file could not be replaced.
        """
        now = int(time.time()) if now is None else now
        tic = time.perf_counter()

        index = self._store.update(self.build_delta(path, now))

        toc = time.perf_counter()
        self.logger.debug("Recorded %s in %s seconds", path, toc - tic)
        return index

    def record_detached(self, path: str, now: int | None = None) -> bool:
        """
        Record a visit without making the caller wait for the write.

        The process forks. The parent returns at once while the child, in a
        new session away from the terminal, records the visit and exits.
        Without fork support the visit is recorded before returning.

        Returns:
            True in the parent if the write was handed to a child process.
        """
        now = int(time.time()) if now is None else now

        if not hasattr(os, "fork"):
            self.record(path, now)
            return False

        # Resolve before the child moves to /
        path = os.path.abspath(path)

        pid = os.fork()
        if pid > 0:
            self.logger.debug("Recording %s in process %s", path, pid)
            return True

        self._detach()

        exit_code = 0
        try:
            self.record(path, now)
        except Exception as error:
            self.logger.error("Failed to record %s: %s", path, error)
            exit_code = 1
        finally:
            logging.shutdown()
            os._exit(exit_code)

        return False

    @staticmethod
    def _detach() -> None:
        """Release the terminal and working directory of the parent shell."""
        os.chdir("/")
        os.setsid()
        with contextlib.suppress(OSError):
            os.close(0)
