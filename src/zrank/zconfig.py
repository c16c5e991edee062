from __future__ import annotations

import logging
import os
from configparser import ConfigParser

from .zmodel import DEFAULT_CEILING
from .zmodel import DEFAULT_DECAY
from .zmodel import DEFAULT_MAX_TEMP_FILE_AGE
from .zmodel import DEFAULT_MIN_RANK

NEW_CONFIG = """\
[system]
# The ranking data file, shared by every shell session.
data_path = {data_path}
# Entries whose rank decays below this are dropped on the next write.
min_rank = 0.01
# Leftover temporary files older than this are removed on write.
max_temp_file_age_seconds = 600

[ranking]
# Once the sum of all ranks passes the ceiling, every rank is decayed.
ceiling = 9000
decay = 0.99

[matcher]
# The shell command name, stripped from lines given for completion.
command = z
# Prefer the common parent directory when every match shares one.
common_prefix_boost = false
"""


class ZConfig:
    """Configuration for zrank."""

    logger = logging.getLogger("zrank.ZConfig")

    def __init__(self, filepath: str | None = None) -> None:
        """
        Load the configuration from the given file, or use defaults.

        Raises:
            ValueError: If a filepath is given but cannot be read.
        """
        self._config = ConfigParser(interpolation=None)

        if filepath is None:
            self.logger.debug("No config file given, using defaults")
            return

        success = self._config.read(filepath)

        if not success:
            raise ValueError(f"Could not read config file at {filepath}")

        self.logger.debug("Loaded config from %s", filepath)

    @property
    def data_path(self) -> str:
        """Return the path to the data file, from config, $_Z_DATA, or ~/.z."""
        fallback = os.environ.get("_Z_DATA") or "~/.z"
        path = self._config.get("system", "data_path", fallback=fallback)
        return os.path.expanduser(path)

    @property
    def min_rank(self) -> float:
        """Return the rank below which entries are dropped on write."""
        return self._config.getfloat("system", "min_rank", fallback=DEFAULT_MIN_RANK)

    @property
    def max_temp_file_age_seconds(self) -> int:
        """Return the age after which leftover temporary files are removed."""
        return self._config.getint(
            "system", "max_temp_file_age_seconds", fallback=DEFAULT_MAX_TEMP_FILE_AGE
        )

    @property
    def ceiling(self) -> float:
        """Return the total rank which triggers aging."""
        return self._config.getfloat("ranking", "ceiling", fallback=DEFAULT_CEILING)

    @property
    def decay(self) -> float:
        """Return the factor every rank is multiplied by when aging."""
        return self._config.getfloat("ranking", "decay", fallback=DEFAULT_DECAY)

    @property
    def command(self) -> str:
        """Return the shell command name, from config, $_Z_CMD, or z."""
        fallback = os.environ.get("_Z_CMD") or "z"
        return self._config.get("matcher", "command", fallback=fallback)

    @property
    def common_prefix_boost(self) -> bool:
        """Return whether a shared parent of all matches is preferred."""
        return self._config.getboolean(
            "matcher", "common_prefix_boost", fallback=False
        )


def write_new_config(filename: str, data_path: str = "~/.z") -> None:
    """Write a new config file if one does not exist."""
    if os.path.exists(filename):
        return

    config = NEW_CONFIG.format(data_path=data_path)

    with open(filename, "w") as config_file:
        config_file.write(config)
