# ABOUTME: Sorts photos from a source tree into a target tree named after their EXIF timestamps.
# ABOUTME: Enumerates inputs with DirectoryCursor, skips byte-identical duplicates, copies or moves files.

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Optional

from tqdm import tqdm

from photosort.cursor import CursorInterrupted, DirectoryCursor, extension_filter
from photosort.exif import extract_timestamp
from photosort.naming import NameFormatter
from photosort.timeindex import create_data_directory, data_path
from photosort.utils.config import Config

logger = logging.getLogger(__name__)


@dataclass
class SortStats:
    """Counters for one sort run."""

    files: int = 0
    copied: int = 0
    moved: int = 0
    would_transfer: int = 0
    failed: int = 0
    duplicates: int = 0
    undated: int = 0
    cancelled: bool = False

    def __str__(self) -> str:
        lines = ["%-6d  files found" % self.files, ""]
        if self.copied > 0 or self.moved == 0:
            lines.append("%-6d  files copied" % self.copied)
        if self.moved > 0:
            lines.append("%-6d  files moved" % self.moved)
        if self.would_transfer > 0:
            lines.append("%-6d  files would be transferred" % self.would_transfer)
        lines.append("%-6d  duplicates found" % self.duplicates)
        lines.append("%-6d  missing timestamps" % self.undated)
        lines.append("%-6d  failures" % self.failed)
        if self.cancelled:
            lines.append("(cancelled)")
        return "\n".join(lines)


def _normalize_suffix(name: str) -> str:
    """Lower-case the extension and spell JPEG as .jpg."""
    path = Path(name)
    suffix = path.suffix.lower()
    if suffix == ".jpeg":
        suffix = ".jpg"
    if not suffix:
        return name
    return str(path.with_suffix(suffix))


def _same_content(path: Path, data: bytes) -> bool:
    return path.stat().st_size == len(data) and path.read_bytes() == data


class PhotoSorter:
    """Copies or moves photos into a timestamp-named target tree."""

    def __init__(self, config: Config):
        self.config = config
        self.tz = config.tzinfo()
        self.formatter = NameFormatter.compile(config.name_pattern)
        self.undated_formatter = NameFormatter.compile(config.undated_pattern)
        if self.undated_formatter.uses_time:
            raise ValueError("Undated pattern cannot use date tokens: %s" % config.undated_pattern)

    def find_input_files(self, source: Path, cancel=None) -> list[Path]:
        """List every media file below source in traversal order.

        Raises:
            CursorInterrupted: cancel was set while walking the tree.
        """
        if source.is_file():
            return [source] if self.config.is_media(source) else []
        if not source.is_dir():
            return []

        cursor = DirectoryCursor(
            source, file_filter=extension_filter(self.config.extensions), tz=self.tz
        )
        files = []
        entry = cursor.next_entry(cancel)
        while entry is not None:
            files.append(entry)
            entry = cursor.next_entry(cancel)
        return files

    def target_name(self, source: Path, micros: Optional[int]) -> str:
        """Relative target path for a source file with an optional timestamp."""
        if micros is None:
            name = self.undated_formatter.format(source, None, self.tz)
        else:
            name = self.formatter.format(source, micros, self.tz)
        return _normalize_suffix(name)

    def target_path(
        self, source: Path, micros: Optional[int], target_dir: Path, dry_run: bool = False
    ) -> Path:
        """Absolute target path for a source file.

        When the name starts with the minute-level data path, the directories
        are resolved through create_data_directory so an existing directory
        with the same index ("01" for "01_jan") is reused.
        """
        name = PurePath(self.target_name(source, micros))
        if micros is not None:
            prefix = data_path(micros, self.tz).parts
            if name.parts[:len(prefix)] == prefix:
                if not dry_run:
                    target_dir.mkdir(parents=True, exist_ok=True)
                directory = create_data_directory(target_dir, micros, self.tz, dry_run)
                return directory.joinpath(*name.parts[len(prefix):])
        return target_dir / name

    def sort(
        self, source_dir: Path, target_dir: Path, dry_run: bool = False, cancel=None
    ) -> SortStats:
        """Sort every media file below source_dir into target_dir.

        Args:
            source_dir: File or directory to read photos from.
            target_dir: Root of the sorted tree.
            dry_run: If True, only report what would be done.
            cancel: Optional threading.Event; when set the run stops after the current file.

        Returns:
            SortStats for the run.
        """
        stats = SortStats()

        try:
            inputs = self.find_input_files(source_dir, cancel)
        except CursorInterrupted:
            logger.info("Cancelled while locating files")
            stats.cancelled = True
            return stats

        stats.files = len(inputs)
        action = "Moving" if self.config.move else "Copying"
        progress = tqdm(total=len(inputs), desc=action, unit="file", disable=not inputs)

        for path in inputs:
            if cancel is not None and cancel.is_set():
                stats.cancelled = True
                break
            self._sort_file(path, target_dir, dry_run, stats)
            progress.update(1)

        progress.close()
        return stats

    def _unique_target(self, dest: Path, data: bytes) -> Optional[Path]:
        """First free name among dest, dest-1, dest-2, ...

        Returns None if a candidate already holds identical bytes.
        """
        candidate = dest
        counter = 0
        while candidate.exists():
            if _same_content(candidate, data):
                return None
            counter += 1
            candidate = dest.with_name(f"{dest.stem}-{counter}{dest.suffix}")
        return candidate

    def _sort_file(self, path: Path, target_dir: Path, dry_run: bool, stats: SortStats) -> None:
        try:
            data = path.read_bytes()
            micros = extract_timestamp(data, self.tz)
            dest = self._unique_target(self.target_path(path, micros, target_dir, dry_run), data)

            if dest is None:
                stats.duplicates += 1
                logger.info("Duplicate skipped: %s", path)
                return

            if micros is None:
                stats.undated += 1

            if dry_run:
                stats.would_transfer += 1
                logger.info("[DRY RUN] Would transfer: %s -> %s", path, dest)
                return

            dest.parent.mkdir(parents=True, exist_ok=True)
            if self.config.move:
                shutil.move(str(path), str(dest))
                stats.moved += 1
                logger.info("Moved: %s -> %s", path, dest)
            else:
                shutil.copy2(path, dest)
                stats.copied += 1
                logger.info("Copied: %s -> %s", path, dest)

        except OSError as e:
            stats.failed += 1
            logger.error("Failed to sort %s: %s", path, e)
