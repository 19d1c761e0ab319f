# ABOUTME: Resumable, bidirectional cursor over a lazily listed, time-indexed directory tree.
# ABOUTME: Supports forward/backward iteration, seeks to entries, times and tree ends, and time-range pruning.

import copy
import logging
import re
from bisect import bisect_left
from dataclasses import dataclass
from datetime import timezone, tzinfo
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional

from photosort.timeindex import (
    UNBOUNDED,
    TimeBlock,
    TimeLevel,
    calendar_value,
    child_span,
    directory_index_from_calendar_value,
    from_micros,
    parse_directory_index,
)

logger = logging.getLogger(__name__)

CHANNEL_PATTERN = re.compile(r"(?:^|-)(\d+)")

JPEG_EXTENSIONS = (".jpg", ".jpeg")


class CursorInterrupted(Exception):
    """Raised when a cancellation token is set during a cursor operation."""


class Direction(Enum):
    NONE = "none"
    FORWARD = "forward"
    BACKWARD = "backward"


class CursorState(Enum):
    """Pending action resolved on the next retrieval."""

    RESET = "reset"
    GOTO_END = "goto_end"
    GOTO_CURRENT = "goto_current"
    GOTO_FILE_START = "goto_file_start"
    GOTO_FILE_END = "goto_file_end"
    GOTO_TIME = "goto_time"
    READY = "ready"


def is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def alpha_key(path: Path) -> str:
    """Case-insensitive name ordering."""
    return path.name.lower()


def _accept_file(path: Path) -> bool:
    return not is_hidden(path) and path.is_file()


def _accept_dir(path: Path) -> bool:
    return not is_hidden(path) and path.is_dir()


def _accept_indexed_dir(path: Path) -> bool:
    return _accept_dir(path) and parse_directory_index(path.name) is not None


def _accept_jpeg(path: Path) -> bool:
    return _accept_file(path) and path.suffix.lower() in JPEG_EXTENSIONS


ENTRY_FILTERS: dict[str, Callable[[Path], bool]] = {
    "files": _accept_file,
    "dirs": _accept_dir,
    "indexed_dirs": _accept_indexed_dir,
    "jpeg": _accept_jpeg,
}


def extension_filter(extensions) -> Callable[[Path], bool]:
    """Accept visible files whose suffix is in extensions (case-insensitive)."""
    wanted = {ext.lower() for ext in extensions}

    def accept(path: Path) -> bool:
        return _accept_file(path) and path.suffix.lower() in wanted

    return accept


def parse_channel(path: Path) -> Optional[int]:
    """Channel number at the start of a file name ("21_kitchen.jpg" -> 21)."""
    m = CHANNEL_PATTERN.search(path.name)
    if not m:
        return None
    return int(m.group(1))


def channel_filter(channel: int) -> Callable[[Path], bool]:
    """Accept visible files recorded on the given channel."""

    def accept(path: Path) -> bool:
        return _accept_file(path) and parse_channel(path) == channel

    return accept


def list_entries(directory: Path, predicate, key) -> list[Path]:
    """List the entries of directory accepted by predicate, sorted by key.

    An unreadable or vanished directory lists as empty.
    """
    try:
        entries = [p for p in directory.iterdir() if predicate(p)]
    except OSError as e:
        logger.debug("Cannot list %s: %s", directory, e)
        return []
    entries.sort(key=key)
    return entries


def _check_cancel(cancel) -> None:
    if cancel is not None and cancel.is_set():
        raise CursorInterrupted()


def _locate_index(keys: list[int], target: int) -> int:
    """Position of target in keys, or of the first key above it.

    Zero-padded names under alpha_key give sorted keys and a binary search;
    otherwise the keys are scanned in listing order.
    """
    if all(a <= b for a, b in zip(keys, keys[1:])):
        return bisect_left(keys, target)
    if target in keys:
        return keys.index(target)
    return next((k for k, key in enumerate(keys) if key > target), len(keys))


def _find_named(entries: list[Path], name: str) -> Optional[int]:
    for i, entry in enumerate(entries):
        if entry.name == name:
            return i
    return None


@dataclass
class DirectoryFrame:
    """One listed directory on the cursor stack.

    file_index is the gap before the next file in forward order. dir_index
    is the child directory currently entered; -1 and len(dirs) mark the two
    ends of the directory list.
    """

    path: Path
    files: list[Path]
    dirs: list[Path]
    level: TimeLevel
    span: TimeBlock
    file_index: int = 0
    dir_index: int = -1

    def seek_start(self) -> None:
        self.file_index = 0
        self.dir_index = -1

    def seek_end(self) -> None:
        self.file_index = len(self.files)
        self.dir_index = len(self.dirs)

    def seek_file(self, gap: int) -> None:
        """Point between files[gap - 1] and files[gap]."""
        self.file_index = gap
        self.dir_index = -1

    def seek_dir_gap(self, gap: int, forward: bool) -> None:
        """Point between dirs[gap - 1] and dirs[gap], past every file."""
        self.file_index = len(self.files)
        self.dir_index = gap - 1 if forward else gap

    def enter_dir(self, index: int) -> None:
        self.file_index = len(self.files)
        self.dir_index = index


class DirectoryCursor:
    """Iterates over every file below a root directory, in either direction.

    Within a directory, files are returned before subdirectories going
    forward and after them going backward. Directories whose names start
    with a number form a year/month/day/hour/minute hierarchy; the cursor
    tracks the time span of each directory it enters, can seek to a time and
    can skip subtrees that fall outside a time range.

    Seeks and resets are recorded and only carried out by the next call to
    next_entry() or previous_entry(). Those calls accept a cancellation token
    (anything with is_set(), usually a threading.Event); if it is set the call
    raises CursorInterrupted and the cursor is left exactly as it was.

    Seeking to a time expects dir_key to list indexed directories in index
    order, as alpha_key does for zero-padded names; other orders fall back to
    a linear scan of each listing.

    A cursor is not safe to share between threads.
    """

    def __init__(
        self,
        root: Path,
        file_filter=None,
        file_key=None,
        dir_filter=None,
        dir_key=None,
        tz: tzinfo = timezone.utc,
    ):
        if root is None:
            raise TypeError("root cannot be None")

        root = Path(root).absolute()
        if not root.is_dir():
            raise NotADirectoryError("root must be a directory: %s" % root)

        self.root = root
        self.tz = tz
        self._file_filter = file_filter or ENTRY_FILTERS["files"]
        self._file_key = file_key or alpha_key
        self._dir_filter = dir_filter or ENTRY_FILTERS["dirs"]
        self._dir_key = dir_key or alpha_key

        self._stack: list[DirectoryFrame] = []
        self._range: Optional[TimeBlock] = None
        self._state = CursorState.RESET
        self._forward = True

        self._current: Optional[Path] = None
        self._current_span: Optional[TimeBlock] = None
        self._current_forward = True

        self._goto_target: Optional[Path] = None
        self._goto_micros = 0

    @property
    def state(self) -> CursorState:
        return self._state

    def next_entry(self, cancel=None) -> Optional[Path]:
        """Return the next file in the tree, or None when there are no more.

        Raises:
            CursorInterrupted: cancel was set; the cursor state is unchanged.
        """
        return self._retrieve(True, cancel)

    def previous_entry(self, cancel=None) -> Optional[Path]:
        """Return the previous file in the tree, or None when there are no more.

        Raises:
            CursorInterrupted: cancel was set; the cursor state is unchanged.
        """
        return self._retrieve(False, cancel)

    def __iter__(self) -> Iterator[Path]:
        while True:
            entry = self.next_entry()
            if entry is None:
                return
            yield entry

    def iter_with_spans(self, forward: bool = True, cancel=None) -> Iterator[tuple[Path, TimeBlock]]:
        """Yield (entry, directory span) pairs until the tree is exhausted."""
        while True:
            entry = self._retrieve(forward, cancel)
            if entry is None:
                return
            yield entry, self._current_span

    def reset(self) -> None:
        """Point at the beginning of the tree. The time range is kept."""
        self._current = None
        self._state = CursorState.RESET

    def goto_end(self) -> None:
        """Point at the end of the tree. The time range is kept."""
        self._current = None
        self._state = CursorState.GOTO_END

    def goto_entry(self, target: Path, pass_target: bool = False) -> None:
        """Point just before target, or just after it when pass_target is set.

        If target is still in the tree, the next call to next_entry() (or
        previous_entry() with pass_target) returns it. A target that cannot
        be found leaves the cursor at the start of its nearest listed
        ancestor.
        """
        self._goto_target = Path(target) if target is not None else None
        self._state = CursorState.GOTO_FILE_END if pass_target else CursorState.GOTO_FILE_START
        self._current = None

    def goto_entry_end(self, target: Path) -> None:
        self.goto_entry(target, pass_target=True)

    def goto_time(self, micros: int) -> None:
        """Point at the start of the earliest minute directory that could hold micros."""
        self._goto_micros = micros
        self._state = CursorState.GOTO_TIME
        self._current = None

    def set_time_range(self, time_range: Optional[TimeBlock]) -> None:
        """Only return files whose directory span intersects time_range.

        Takes effect on the next retrieval; None clears the range.
        """
        self._range = time_range

    def set_time_range_micros(self, start_micros: int, stop_micros: int) -> None:
        self._range = TimeBlock(start_micros, stop_micros).normalize()

    def clear_time_range(self) -> None:
        self._range = None

    def get_time_range(self) -> Optional[TimeBlock]:
        return self._range

    def get_last_returned_entry(self) -> Optional[Path]:
        """Last file returned since the last seek or reset, or None."""
        return self._current

    def get_last_returned_directory(self) -> Path:
        if self._current is None:
            return self.root
        return self._current.parent

    def get_last_direction(self) -> Direction:
        if self._current is None:
            return Direction.NONE
        if self._current_forward:
            return Direction.FORWARD
        return Direction.BACKWARD

    def get_span_of_last_returned(self) -> Optional[TimeBlock]:
        """Span of the directory holding the last returned file.

        Below a directory without an index the span is unbounded.
        """
        if self._current is None:
            return None
        return self._current_span

    def _snapshot(self):
        return (
            self._state,
            self._forward,
            [copy.copy(frame) for frame in self._stack],
            self._current,
            self._current_span,
            self._current_forward,
        )

    def _restore(self, snapshot) -> None:
        (
            self._state,
            self._forward,
            self._stack,
            self._current,
            self._current_span,
            self._current_forward,
        ) = snapshot

    def _retrieve(self, forward: bool, cancel) -> Optional[Path]:
        snapshot = self._snapshot()
        try:
            if self._state != CursorState.READY:
                self._resolve(forward, cancel)
            elif forward != self._forward and self._current is not None:
                # Re-anchor on the last returned file so it is not returned again.
                self._state = CursorState.GOTO_CURRENT
                self._resolve(forward, cancel)

            self._state = CursorState.READY
            self._forward = forward

            if not self._stack:
                return None
            if forward:
                return self._search_forward(cancel)
            return self._search_backward(cancel)

        except BaseException:
            self._restore(snapshot)
            raise

    def _search_forward(self, cancel) -> Optional[Path]:
        while True:
            _check_cancel(cancel)
            frame = self._stack[-1]

            if self._range is not None and not frame.span.intersects(self._range):
                if not self._pop():
                    return None
                continue

            if frame.file_index < len(frame.files):
                entry = frame.files[frame.file_index]
                frame.file_index += 1
                self._set_current(entry, frame.span, True)
                return entry

            frame.file_index = len(frame.files)
            if self._descend_forward(frame):
                continue

            if not self._pop():
                return None

    def _search_backward(self, cancel) -> Optional[Path]:
        while True:
            _check_cancel(cancel)
            frame = self._stack[-1]

            if self._range is not None and not frame.span.intersects(self._range):
                if not self._pop():
                    return None
                continue

            if self._descend_backward(frame):
                continue

            if frame.file_index > 0:
                frame.file_index -= 1
                entry = frame.files[frame.file_index]
                self._set_current(entry, frame.span, False)
                return entry

            frame.file_index = 0
            if not self._pop():
                return None

    def _descend_forward(self, frame: DirectoryFrame) -> bool:
        # Listed directories can disappear, so check again before entering.
        for i in range(frame.dir_index + 1, len(frame.dirs)):
            if frame.dirs[i].is_dir():
                frame.dir_index = i
                self._push(frame.dirs[i])
                return True
        frame.dir_index = len(frame.dirs)
        return False

    def _descend_backward(self, frame: DirectoryFrame) -> bool:
        for i in range(frame.dir_index - 1, -1, -1):
            if frame.dirs[i].is_dir():
                frame.dir_index = i
                self._push(frame.dirs[i], reverse=True)
                return True
        frame.dir_index = -1
        return False

    def _set_current(self, entry: Path, span: TimeBlock, forward: bool) -> None:
        self._current = entry
        self._current_span = span
        self._current_forward = forward

    def _push(self, directory: Path, reverse: bool = False) -> DirectoryFrame:
        files = list_entries(directory, self._file_filter, self._file_key)
        dirs = list_entries(directory, self._dir_filter, self._dir_key)

        if self._stack:
            parent = self._stack[-1]
            index = parse_directory_index(directory.name)
            level, span = child_span(parent.span, parent.level, index, self.tz)
        else:
            level, span = TimeLevel.ALL, UNBOUNDED

        frame = DirectoryFrame(directory, files, dirs, level, span)
        if reverse:
            frame.seek_end()
        self._stack.append(frame)
        return frame

    def _pop(self) -> bool:
        if len(self._stack) <= 1:
            return False
        self._stack.pop()
        return True

    def _resolve(self, forward: bool, cancel) -> None:
        state = self._state

        if state == CursorState.RESET:
            self._stack = []
            self._push(self.root)
        elif state == CursorState.GOTO_END:
            self._stack = []
            self._push(self.root, reverse=True)
        elif state == CursorState.GOTO_CURRENT:
            self._goto_entry(self._current, forward, forward, cancel)
        elif state == CursorState.GOTO_FILE_START:
            self._goto_entry(self._goto_target, False, forward, cancel)
        elif state == CursorState.GOTO_FILE_END:
            self._goto_entry(self._goto_target, True, forward, cancel)
        elif state == CursorState.GOTO_TIME:
            self._goto_time(self._goto_micros, forward, cancel)

    def _goto_entry(self, target: Optional[Path], pass_target: bool, forward: bool, cancel) -> None:
        self._stack = []
        frame = self._push(self.root)
        if target is None:
            return

        target = Path(target).absolute()
        try:
            parts = target.relative_to(self.root).parts
        except ValueError:
            logger.warning("Seek target %s is outside %s; starting from the top", target, self.root)
            return

        if not parts:
            if pass_target:
                frame.seek_end()
            return

        for name in parts[:-1]:
            _check_cancel(cancel)
            i = _find_named(frame.dirs, name)
            if i is None:
                logger.debug("Seek target %s not found; using start of %s", target, frame.path)
                return
            frame.enter_dir(i)
            frame = self._push(frame.dirs[i])

        name = parts[-1]
        i = _find_named(frame.files, name)
        if i is not None:
            frame.seek_file(i + 1 if pass_target else i)
            return

        i = _find_named(frame.dirs, name)
        if i is not None:
            frame.seek_dir_gap(i + 1 if pass_target else i, forward)
            return

        logger.debug("Seek target %s not found; using start of %s", target, frame.path)
        frame.seek_start()

    def _goto_time(self, micros: int, forward: bool, cancel) -> None:
        # Reuse listed frames: climb until a frame's span holds the target,
        # then drop any untimed frames above the time hierarchy.
        while self._stack and not self._stack[-1].span.contains(micros):
            self._stack.pop()
        while self._stack and self._stack[-1].level > TimeLevel.MINUTE:
            self._stack.pop()

        if not self._stack:
            self._push(self.root)
        else:
            self._stack[-1].seek_start()

        try:
            target = from_micros(micros, self.tz)
        except OverflowError:
            logger.debug("Seek time %d is out of range", micros)
            if micros > 0:
                self._stack[-1].seek_end()
            return

        for level in range(self._stack[-1].level + 1, TimeLevel.MINUTE + 1):
            _check_cancel(cancel)
            frame = self._stack[-1]
            target_index = directory_index_from_calendar_value(level, calendar_value(target, level))

            indexed = [
                (index, i)
                for i, index in enumerate(parse_directory_index(d.name) for d in frame.dirs)
                if index is not None
            ]
            keys = [index for index, _ in indexed]
            k = _locate_index(keys, target_index)

            if k < len(keys) and keys[k] == target_index:
                i = indexed[k][1]
                frame.enter_dir(i)
                child = self._push(frame.dirs[i])
                if child.level != level:
                    return
                continue

            if k < len(keys):
                frame.seek_dir_gap(indexed[k][1], forward)
            else:
                frame.seek_end()
            return
