# ABOUTME: CLI entry point for the photo sorter using argparse.
# ABOUTME: Provides commands for sorting photos, listing a time-indexed tree and reading EXIF timestamps.

import argparse
import logging
import sys
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Optional

from photosort.cursor import DirectoryCursor
from photosort.exif import read_file_timestamp
from photosort.naming import describe_tokens
from photosort.sorter import PhotoSorter
from photosort.timeindex import MAX_MICROS, MIN_MICROS, TimeBlock, from_micros, to_micros
from photosort.utils.config import load_config

logger = logging.getLogger("photosort")


def _common_parser(suppress: bool) -> argparse.ArgumentParser:
    """Options accepted both before and after the subcommand.

    The subcommand copies use SUPPRESS defaults so they do not overwrite a
    value given before the subcommand.
    """
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=argparse.SUPPRESS if suppress else False,
        help="Enable verbose logging output.",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=argparse.SUPPRESS if suppress else None,
        help="Path to config file (default: ~/.photosort.yml).",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=argparse.SUPPRESS if suppress else None,
        help="Path to log file for persistent logging output.",
    )
    return parser


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="photosort",
        description="Sort photos into a year/month/day/hour/minute tree by EXIF timestamp.",
        parents=[_common_parser(suppress=False)],
    )
    common_parser = _common_parser(suppress=True)

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sort
    sort_parser = subparsers.add_parser(
        "sort",
        help="Copy or move photos into a timestamp-named tree.",
        parents=[common_parser],
        epilog="Naming tokens:\n" + describe_tokens(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sort_parser.add_argument("source", help="Source file or directory.")
    sort_parser.add_argument("target", help="Root directory of the sorted tree.")
    sort_parser.add_argument(
        "--move", "-m",
        action="store_true",
        default=None,
        help="Move files instead of copying them.",
    )
    sort_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without copying or moving files.",
    )
    sort_parser.add_argument(
        "--pattern", "-n",
        default=None,
        help="Naming pattern for files with a timestamp.",
    )
    sort_parser.add_argument(
        "--undated-pattern", "-u",
        default=None,
        help="Naming pattern for files without a timestamp.",
    )

    # list
    list_parser = subparsers.add_parser(
        "list", help="List the files of a time-indexed tree.", parents=[common_parser],
    )
    list_parser.add_argument("root", help="Root of the time-indexed tree.")
    list_parser.add_argument("--start", default=None, help="Only list files at or after this ISO time.")
    list_parser.add_argument("--stop", default=None, help="Only list files before this ISO time.")
    list_parser.add_argument("--from-time", default=None, help="Start listing from this ISO time.")
    list_parser.add_argument(
        "--reverse", "-r",
        action="store_true",
        help="List files in reverse order.",
    )
    list_parser.add_argument(
        "--spans",
        action="store_true",
        help="Print the time span of each file's directory.",
    )

    # timestamp
    ts_parser = subparsers.add_parser(
        "timestamp", help="Print the EXIF timestamp of files.", parents=[common_parser],
    )
    ts_parser.add_argument("files", nargs="+", help="JPEG files to inspect.")

    return parser


def _parse_time(value: Optional[str], tz: tzinfo) -> Optional[int]:
    """Parse an ISO time to micros; naive times are taken in tz."""
    if value is None:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return to_micros(dt)


def _format_span(span: TimeBlock, tz: tzinfo) -> str:
    try:
        return "%s .. %s" % (
            from_micros(span.start_micros, tz).isoformat(),
            from_micros(span.stop_micros, tz).isoformat(),
        )
    except OverflowError:
        return "*"


def _run_sort(args, config) -> int:
    source = Path(args.source)
    if not source.exists():
        logger.error("Source not found: %s", source)
        return 1

    if args.move is not None:
        config.move = args.move
    if args.pattern:
        config.name_pattern = args.pattern
    if args.undated_pattern:
        config.undated_pattern = args.undated_pattern

    try:
        sorter = PhotoSorter(config)
    except ValueError as e:
        logger.error("%s", e)
        return 1

    stats = sorter.sort(source, Path(args.target), dry_run=args.dry_run)
    logger.info("Sort complete:\n%s", stats)
    return 0 if stats.failed == 0 else 1


def _run_list(args, config) -> int:
    root = Path(args.root)
    if not root.is_dir():
        logger.error("Root directory not found: %s", root)
        return 1

    tz = config.tzinfo()
    try:
        start = _parse_time(args.start, tz)
        stop = _parse_time(args.stop, tz)
        from_time = _parse_time(args.from_time, tz)
    except ValueError as e:
        logger.error("Invalid time: %s", e)
        return 1

    cursor = DirectoryCursor(root, tz=tz)
    if start is not None or stop is not None:
        cursor.set_time_range(TimeBlock(
            start if start is not None else MIN_MICROS,
            stop if stop is not None else MAX_MICROS,
        ).normalize())

    if from_time is not None:
        cursor.goto_time(from_time)
    elif args.reverse:
        cursor.goto_end()

    count = 0
    for entry, span in cursor.iter_with_spans(forward=not args.reverse):
        count += 1
        if args.spans:
            print("%s\t%s" % (entry, _format_span(span, tz)))
        else:
            print(entry)

    logger.debug("%d files listed", count)
    return 0


def _run_timestamp(args, config) -> int:
    tz = config.tzinfo()
    failed = 0
    for name in args.files:
        try:
            micros = read_file_timestamp(Path(name), tz)
        except OSError as e:
            logger.error("Cannot read %s: %s", name, e)
            failed += 1
            continue

        if micros is None:
            print("%s\t-" % name)
        else:
            print("%s\t%s" % (name, from_micros(micros, tz).isoformat()))

    return 0 if failed == 0 else 1


COMMANDS = {
    "sort": _run_sort,
    "list": _run_list,
    "timestamp": _run_timestamp,
}


def main() -> int:
    """Main CLI entry point. Returns exit code."""
    parser = build_parser()
    args = parser.parse_args()

    # Set up logging
    level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )

    # Add file logging if requested
    log_file = getattr(args, "log_file", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
        logging.getLogger().addHandler(file_handler)

    if not args.command:
        parser.print_help()
        return 1

    # Load config
    config_path = Path(args.config) if args.config else Path.home() / ".photosort.yml"
    try:
        config = load_config(config_path)
    except ValueError as e:
        logger.error("Invalid config: %s", e)
        return 1

    try:
        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        logger.warning("Cancelled")
        return 130


if __name__ == "__main__":
    sys.exit(main())
