# ABOUTME: Extracts capture timestamps from the EXIF block embedded in JPEG files.
# ABOUTME: Walks JPEG markers, the TIFF header and nested IFDs, trying several tag chains in turn.

import logging
import struct
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import NamedTuple, Optional

from photosort.timeindex import to_micros

logger = logging.getLogger(__name__)

EXIF_HEADER = b"Exif\x00\x00"
TIFF_MAGIC = 0x002A

TAG_DATETIME = 0x0132
TAG_EXIF_IFD = 0x8769
TAG_DATETIME_ORIGINAL = 0x9003
TAG_MAKER_NOTE = 0x927C
TAG_MAKER_TIMESTAMP = 0xFDE8

EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"
EXIF_DATE_LENGTH = 19

IFD_ENTRY_SIZE = 12

# Markers that are not followed by a length field.
_STANDALONE_MARKERS = (0xFF, 0x00, 0xD8, 0xD9)
_APP1 = 0xE1


class TiffHeader(NamedTuple):
    """TIFF block of an EXIF segment; all offsets are relative to data[0]."""

    data: bytes
    endian: str
    ifd0_offset: int


def find_exif_segment(buf: bytes) -> Optional[bytes]:
    """Scan JPEG markers and return the payload of the APP1 (EXIF) segment.

    Returns None if the buffer ends before an APP1 marker is found.
    """
    size = len(buf)
    pos = 0

    while size - pos >= 4:
        b = buf[pos]
        pos += 1

        # A marker is one or more 0xFF bytes followed by its type byte.
        while b == 0xFF:
            if size - pos < 3:
                return None

            b = buf[pos]
            pos += 1
            if b in _STANDALONE_MARKERS:
                continue

            # Segment length counts its own two bytes but not the marker.
            length = struct.unpack_from(">H", buf, pos)[0] - 2
            pos += 2
            if length < 0 or length > size - pos:
                return None

            if b == _APP1:
                return bytes(buf[pos:pos + length])

            pos += length

    return None


def read_tiff_header(segment: bytes) -> Optional[TiffHeader]:
    """Validate the Exif header, byte order and magic of an APP1 payload."""
    if len(segment) < len(EXIF_HEADER) or not segment.startswith(EXIF_HEADER):
        return None

    data = segment[len(EXIF_HEADER):]
    if len(data) < 8:
        return None

    byte_order = data[0:2]
    if byte_order == b"II":
        endian = "<"
    elif byte_order == b"MM":
        endian = ">"
    else:
        return None

    if struct.unpack_from(f"{endian}H", data, 2)[0] != TIFF_MAGIC:
        return None

    ifd0_offset = struct.unpack_from(f"{endian}I", data, 4)[0]
    return TiffHeader(data, endian, ifd0_offset)


def find_ifd_tag(
    header: TiffHeader, tag: int, ifd_offset: Optional[int] = None
) -> Optional[int]:
    """Find a tag in the IFD at ifd_offset (IFD0 by default).

    Returns the raw 4-byte value field of the entry, or None if the tag is
    absent or the IFD does not fit in the buffer.
    """
    data, endian, ifd0_offset = header
    offset = ifd0_offset if ifd_offset is None else ifd_offset

    if offset < 0 or offset + 2 > len(data):
        return None

    entry_count = struct.unpack_from(f"{endian}H", data, offset)[0]
    if offset + 2 + IFD_ENTRY_SIZE * entry_count > len(data):
        return None

    for i in range(entry_count):
        entry_offset = offset + 2 + i * IFD_ENTRY_SIZE
        if struct.unpack_from(f"{endian}H", data, entry_offset)[0] == tag:
            return struct.unpack_from(f"{endian}I", data, entry_offset + 8)[0]

    return None


def _read_ascii_date(header: TiffHeader, offset: int, tz: tzinfo) -> Optional[int]:
    data = header.data
    if offset + EXIF_DATE_LENGTH > len(data):
        return None

    raw = data[offset:offset + EXIF_DATE_LENGTH]
    try:
        dt = datetime.strptime(raw.decode("ascii"), EXIF_DATE_FORMAT)
    except (UnicodeDecodeError, ValueError):
        return None

    return to_micros(dt.replace(tzinfo=tz))


def _read_maker_timestamp(header: TiffHeader, offset: int, tz: tzinfo) -> Optional[int]:
    data = header.data
    if offset + 8 > len(data):
        return None

    # Same byte order as every other field of the block, II included.
    seconds, micros = struct.unpack_from(f"{header.endian}ii", data, offset)
    return seconds * 1_000_000 + micros


# Tag chains tried in order; each tag's value is the offset of the next IFD,
# and the last one points at the timestamp itself.
DATE_CHAINS = (
    ((TAG_EXIF_IFD, TAG_DATETIME_ORIGINAL), _read_ascii_date),
    ((TAG_EXIF_IFD, TAG_MAKER_NOTE, TAG_MAKER_TIMESTAMP), _read_maker_timestamp),
    ((TAG_DATETIME,), _read_ascii_date),
)


def _resolve_chain(header: TiffHeader, tags: tuple[int, ...]) -> Optional[int]:
    offset = None
    for tag in tags:
        offset = find_ifd_tag(header, tag, offset)
        if offset is None:
            return None
    return offset


def extract_timestamp(buf: bytes, tz: tzinfo = timezone.utc) -> Optional[int]:
    """Extract the capture time of a JPEG as microseconds since the epoch.

    Args:
        buf: Complete contents of a JPEG file.
        tz: Zone in which EXIF wall-clock dates are interpreted.

    Returns:
        The timestamp in microseconds, or None if no tag chain yields one.
    """
    segment = find_exif_segment(buf)
    if segment is None:
        return None

    header = read_tiff_header(segment)
    if header is None:
        return None

    for tags, reader in DATE_CHAINS:
        try:
            offset = _resolve_chain(header, tags)
            if offset is None:
                continue
            micros = reader(header, offset, tz)
        except struct.error:
            continue

        if micros is not None:
            logger.debug("Timestamp found via tags %s", " -> ".join("0x%04X" % t for t in tags))
            return micros

    return None


def read_file_timestamp(path: Path, tz: tzinfo = timezone.utc) -> Optional[int]:
    """Read a whole file and extract its EXIF timestamp; I/O errors propagate."""
    return extract_timestamp(Path(path).read_bytes(), tz)
