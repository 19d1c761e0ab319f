# ABOUTME: Time hierarchy helpers for year/month/day/hour/minute directory trees.
# ABOUTME: Maps calendar fields to directory indices, names directories and computes directory spans.

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import IntEnum
from pathlib import Path, PurePath
from typing import Optional

logger = logging.getLogger(__name__)

MIN_MICROS = -(2**63)
MAX_MICROS = 2**63 - 1

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DIR_INDEX_PATTERN = re.compile(r"^(\d+)")

DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

NUMBERED_MONTH_NAMES = (
    "01_jan", "02_feb", "03_mar",
    "04_apr", "05_may", "06_jun",
    "07_jul", "08_aug", "09_sep",
    "10_oct", "11_nov", "12_dec",
)


class TimeLevel(IntEnum):
    """Rungs of the time hierarchy, ordered from the root down."""

    ALL = 0
    YEAR = 1
    MONTH = 2
    DAY = 3
    HOUR = 4
    MINUTE = 5
    FILE = 6
    NONE = 7

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def is_timed(self) -> bool:
        """True for the levels that map onto a calendar field."""
        return TimeLevel.YEAR <= self <= TimeLevel.MINUTE


_CALENDAR_FIELDS = {
    TimeLevel.YEAR: "year",
    TimeLevel.MONTH: "month",
    TimeLevel.DAY: "day",
    TimeLevel.HOUR: "hour",
    TimeLevel.MINUTE: "minute",
}

_MIN_CALENDAR_VALUES = {
    TimeLevel.YEAR: 1970,
    TimeLevel.MONTH: 0,
    TimeLevel.DAY: 1,
    TimeLevel.HOUR: 0,
    TimeLevel.MINUTE: 0,
}


def to_micros(dt: datetime) -> int:
    """Convert an aware datetime to microseconds since the epoch."""
    return (dt - EPOCH) // timedelta(microseconds=1)


def from_micros(micros: int, tz: tzinfo = timezone.utc) -> datetime:
    """Convert microseconds since the epoch to an aware datetime in tz."""
    return (EPOCH + timedelta(microseconds=micros)).astimezone(tz)


def _format_micros(micros: int) -> str:
    try:
        return from_micros(micros).isoformat()
    except OverflowError:
        return str(micros)


@dataclass(frozen=True)
class TimeBlock:
    """Half-open interval [start_micros, stop_micros) of microsecond timestamps."""

    start_micros: int
    stop_micros: int

    @classmethod
    def from_datetimes(cls, start: datetime, stop: datetime) -> "TimeBlock":
        return cls(to_micros(start), to_micros(stop))

    @property
    def span_micros(self) -> int:
        return self.stop_micros - self.start_micros

    def contains(self, micros: int) -> bool:
        return self.start_micros <= micros < self.stop_micros

    def intersects(self, other: "TimeBlock") -> bool:
        # An empty block intersects nothing.
        return max(self.start_micros, other.start_micros) < min(self.stop_micros, other.stop_micros)

    def normalize(self) -> "TimeBlock":
        """Return a block covering the same micros with stop >= start.

        A reversed block (b, a) with a < b names the micros a+1 .. b, so the
        normalized half-open form is [a + 1, b + 1).
        """
        if self.stop_micros >= self.start_micros:
            return self
        return TimeBlock(self.stop_micros + 1, self.start_micros + 1)

    def __str__(self) -> str:
        return "TimeBlock [%s] to [%s]" % (
            _format_micros(self.start_micros),
            _format_micros(self.stop_micros),
        )


UNBOUNDED = TimeBlock(MIN_MICROS, MAX_MICROS)


def calendar_field(level: int) -> Optional[str]:
    """Return the datetime field name for a time level, or None if it has none."""
    if level not in _CALENDAR_FIELDS:
        return None
    return _CALENDAR_FIELDS[TimeLevel(level)]


def directory_index_from_calendar_value(level: int, value: int) -> int:
    # Month directories are 1-based, calendar months are 0-based.
    if level == TimeLevel.MONTH:
        return value + 1
    return value


def calendar_value_from_directory_index(level: int, index: int) -> int:
    if level == TimeLevel.MONTH:
        return index - 1
    return index


def minimum_calendar_value(level: int) -> int:
    """Floor value for a level when zeroing a calendar; 0 for untimed levels."""
    return _MIN_CALENDAR_VALUES.get(level, 0)


def zero_calendar(tz: tzinfo = timezone.utc) -> datetime:
    """The earliest calendar snapshot: every timed field at its minimum."""
    return datetime(1970, 1, 1, tzinfo=tz)


def calendar_value(dt: datetime, level: int) -> int:
    """Read the calendar value of a level from dt (months are 0-based)."""
    field_name = calendar_field(level)
    if field_name is None:
        raise ValueError("Level has no calendar field: %r" % (level,))
    value = getattr(dt, field_name)
    if level == TimeLevel.MONTH:
        return value - 1
    return value


def directory_index(dt: datetime, level: int) -> int:
    """Directory index of dt at the given level, or -1 for untimed levels."""
    if calendar_field(level) is None:
        return -1
    return directory_index_from_calendar_value(level, calendar_value(dt, level))


def timed_directory_name(dt: datetime, level: int) -> str:
    """Canonical on-disk directory name for dt at a level."""
    index = directory_index(dt, level)

    if level == TimeLevel.YEAR:
        return "%04d" % index
    if level == TimeLevel.MONTH:
        return NUMBERED_MONTH_NAMES[index - 1]
    if level == TimeLevel.DAY:
        return "%02d_%s" % (index, DAY_NAMES[dt.isoweekday() % 7])
    if level in (TimeLevel.HOUR, TimeLevel.MINUTE):
        return "%02d" % index
    return ""


def parse_directory_index(name: str) -> Optional[int]:
    """Leading decimal digits of a directory name, or None if it has none.

    A directory named "03_feb" has index 3.
    """
    m = DIR_INDEX_PATTERN.match(name)
    if not m:
        return None
    return int(m.group(1))


def filename_timestamp(dt: datetime) -> str:
    """Timestamp string for generated filenames, with a 'd' suffix during DST."""
    dst = "d" if dt.dst() else ""
    return "%04d_%02d_%02d-%02d%02d%s" % (
        dt.year, dt.month, dt.day, dt.hour, dt.minute, dst,
    )


def _shift(dt: datetime, level: int, amount: int) -> datetime:
    """Add amount units of a level to dt, rolling over like a lenient calendar."""
    if level == TimeLevel.YEAR:
        return dt.replace(year=dt.year + amount)
    if level == TimeLevel.MONTH:
        years, month = divmod(dt.month - 1 + amount, 12)
        return dt.replace(year=dt.year + years, month=month + 1)
    if level == TimeLevel.DAY:
        return dt + timedelta(days=amount)
    if level == TimeLevel.HOUR:
        return dt + timedelta(hours=amount)
    if level == TimeLevel.MINUTE:
        return dt + timedelta(minutes=amount)
    raise ValueError("Level has no calendar field: %r" % (level,))


def child_span(
    parent_span: TimeBlock,
    parent_level: int,
    index: Optional[int],
    tz: tzinfo = timezone.utc,
) -> tuple[TimeLevel, TimeBlock]:
    """Compute the level and span of a child directory.

    The parent's span start always has every field below the parent's level
    at its minimum, so the child start is the parent start advanced by the
    child's calendar value. Directories without an index, or below the
    minute level, inherit the parent span at level NONE.
    """
    if index is None or not (TimeLevel.ALL <= parent_level < TimeLevel.MINUTE):
        return TimeLevel.NONE, parent_span

    level = TimeLevel(parent_level + 1)
    if level == TimeLevel.YEAR:
        base = zero_calendar(tz)
    else:
        base = from_micros(parent_span.start_micros, tz)

    value = calendar_value_from_directory_index(level, index)
    try:
        start = _shift(base, level, value - minimum_calendar_value(level))
        stop = _shift(start, level, 1)
    except (ValueError, OverflowError):
        logger.debug("Index %d out of range at level %s", index, level.label)
        return TimeLevel.NONE, parent_span

    return level, TimeBlock.from_datetimes(start, stop)


def data_path(micros: int, tz: tzinfo = timezone.utc) -> PurePath:
    """Minute-level relative path (YYYY/NN_mon/NN_day/HH/MM) for a timestamp."""
    dt = from_micros(micros, tz)
    return PurePath(*(
        timed_directory_name(dt, level)
        for level in range(TimeLevel.YEAR, TimeLevel.FILE)
    ))


def _indexed_subdirs(root: Path, index: int) -> list[Path]:
    try:
        return sorted(
            d for d in root.iterdir()
            if d.is_dir() and parse_directory_index(d.name) == index
        )
    except OSError:
        return []


def create_data_directory(
    root: Path, micros: int, tz: tzinfo = timezone.utc, dry_run: bool = False
) -> Path:
    """Create (if needed) and return the minute directory for a timestamp.

    An existing directory carrying the same index is reused even when its
    name differs from the canonical one ("01" instead of "01_jan"). With
    dry_run, nothing is created and the would-be directory is returned.
    """
    dt = from_micros(micros, tz)

    for level in range(TimeLevel.YEAR, TimeLevel.FILE):
        index = directory_index(dt, level)
        name = timed_directory_name(dt, level)
        candidates = _indexed_subdirs(root, index)

        if not candidates:
            next_dir = root / name
        elif len(candidates) == 1:
            next_dir = candidates[0]
        else:
            exact = [d for d in candidates if d.name == name]
            next_dir = exact[0] if exact else candidates[0]

        if not next_dir.exists():
            if dry_run:
                logger.info("[DRY RUN] Would create directory: %s", next_dir)
            else:
                next_dir.mkdir()

        root = next_dir

    return root


def find_index_root(path: Path) -> Path:
    """Climb past indexed directories to the nearest non-indexed ancestor.

    For /data/photos/2006/04_apr/21_fri the index root is /data/photos.
    """
    path = Path(path)
    if not path.is_dir():
        path = path.parent

    while parse_directory_index(path.name) is not None:
        path = path.parent

    return path


def time_block_for_path(path: Path, tz: tzinfo = timezone.utc) -> Optional[TimeBlock]:
    """Best-guess span of a file or directory from its indexed ancestors.

    Returns None when no indexed directory leads to the path.
    """
    path = Path(path)
    directory = path if path.is_dir() else path.parent
    root = find_index_root(directory)

    indices = []
    while directory != root:
        index = parse_directory_index(directory.name)
        if index is not None:
            indices.append(index)
        directory = directory.parent

    if not indices:
        return None

    level = TimeLevel.ALL
    span = UNBOUNDED
    for index in reversed(indices):
        if level >= TimeLevel.MINUTE:
            break
        level, span = child_span(span, level, index, tz)
        if level == TimeLevel.NONE:
            return None

    return span
