from __future__ import annotations

import argparse
import logging
import os
import time
from pathlib import Path

from zrank.zconfig import ZConfig
from zrank.zconfig import write_new_config
from zrank.zmatcher import InvalidQueryError
from zrank.zmatcher import complete
from zrank.zmatcher import query
from zrank.zmodel import ScoreMode
from zrank.zrecorder import VisitRecorder
from zrank.zstore import StoreReadError
from zrank.zstore import StoreWriteError
from zrank.zstore import ZStore

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_CONFIG = "zrank.ini"

# Exit codes understood by the shell function
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CHANGE_DIRECTORY = 69
EXIT_NO_OUTPUT = 70

logger = logging.getLogger("zrank")


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="zrank",
        description="Jump to frequently and recently used directories.",
    )
    parser.add_argument(
        "terms",
        nargs="*",
        help="Regular expressions to filter by, in path order.",
    )
    sort_mode = parser.add_mutually_exclusive_group()
    sort_mode.add_argument(
        "-f",
        "--frecent",
        help="Sort by a hybrid of the rank and age. (default)",
        dest="mode",
        action="store_const",
        const=ScoreMode.FRECENT,
    )
    sort_mode.add_argument(
        "-r",
        "--rank",
        help="Sort by the match's rank directly, ignoring age.",
        dest="mode",
        action="store_const",
        const=ScoreMode.RANK,
    )
    sort_mode.add_argument(
        "-t",
        "--recent",
        help="Sort by the match's age directly, ignoring rank.",
        dest="mode",
        action="store_const",
        const=ScoreMode.RECENT,
    )
    parser.add_argument(
        "-c",
        "--current-dir",
        help="Only return matches below the current directory.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "-l",
        "--list",
        help="Show all matches with their scores.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--clean",
        help="Remove entries which are not directories anymore.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--add",
        help="Record a visit to PATH in the background.",
        metavar="PATH",
    )
    parser.add_argument(
        "--add-blocking",
        help="Record a visit to PATH, waiting for the write.",
        metavar="PATH",
    )
    parser.add_argument(
        "--complete",
        help="Print completions for the partially typed command line.",
        metavar="LINE",
    )
    parser.add_argument(
        "--config",
        help="The path to a configuration file. Default: built in defaults.",
        default=None,
    )
    parser.add_argument(
        "--make-config",
        help=f"Create a default configuration file at --config or {DEFAULT_CONFIG}.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--debug",
        help="Enable debug logging.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--log-file",
        help="Enable logging to a file next to the data file.",
        default=False,
        action="store_true",
    )
    namespace = parser.parse_args(args)
    namespace.mode = namespace.mode or ScoreMode.FRECENT
    return namespace


def add_file_handler_to_logging(data_filepath: str) -> None:
    """Add a file handler to the root logger next to the data file provided."""
    filepath = Path(data_filepath).absolute()
    log_filepath = filepath.parent / f"{filepath.name.lstrip('.')}.log"
    file_handler = logging.FileHandler(log_filepath)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logging.getLogger().addHandler(file_handler)


def run_query(args: argparse.Namespace, config: ZConfig, store: ZStore) -> int:
    """Print the best match, or every match when listing."""
    within = os.getcwd() if args.current_dir else None
    # Without terms there is nothing to resolve, so list everything
    listing = args.list or not args.terms

    results = query(
        store.load(),
        args.terms,
        int(time.time()),
        mode=args.mode,
        within=within,
        common_prefix_boost=config.common_prefix_boost,
    )

    if not results:
        return EXIT_NO_OUTPUT

    if listing:
        for result in reversed(results):
            print(f"{result.score:>10.3f} {result.path}")
        return EXIT_SUCCESS

    for result in results:
        if not os.path.isdir(result.path):
            logger.warning("Not a dir (run --clean to expunge): %s", result.path)
            continue

        print(result.path)
        return EXIT_CHANGE_DIRECTORY

    return EXIT_NO_OUTPUT


def run_clean(store: ZStore) -> int:
    """Remove entries which are no longer directories."""
    removed = store.clean(os.path.isdir)

    for path in removed:
        logger.info("Removed %s", path)

    print(f"Cleaned {len(removed)} {'entry' if len(removed) == 1 else 'entries'}.")
    return EXIT_SUCCESS


def main(*, cli_args: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(cli_args)

    if args.make_config:
        write_new_config(args.config or DEFAULT_CONFIG)
        return EXIT_SUCCESS

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    try:
        config = ZConfig(args.config)
        store = ZStore.from_config(config)

        if args.log_file:
            add_file_handler_to_logging(store.data_path)

        if args.add_blocking:
            VisitRecorder(store).record(args.add_blocking)
            return EXIT_NO_OUTPUT

        if args.add:
            VisitRecorder(store).record_detached(args.add)
            return EXIT_NO_OUTPUT

        if args.complete is not None:
            now = int(time.time())
            for path in complete(store.load(), args.complete, now, config.command):
                print(path)
            return EXIT_SUCCESS

        if args.clean:
            return run_clean(store)

        return run_query(args, config, store)

    except (InvalidQueryError, StoreReadError, StoreWriteError, ValueError) as error:
        logger.error("%s", error)
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
