# ABOUTME: Shared pytest fixtures for building synthetic JPEG files with EXIF dates.
# ABOUTME: Used by the sorter and CLI tests; the EXIF parser tests build their own byte layouts.

import struct

import pytest


def build_exif_jpeg(date: bytes, endian: str = "<") -> bytes:
    """JPEG with IFD0 -> Exif sub-IFD -> DateTimeOriginal set to date."""
    order = b"II" if endian == "<" else b"MM"
    tiff_header = order + struct.pack(endian + "H", 0x2A) + struct.pack(endian + "I", 8)

    # IFD0 at 8 (18 bytes), sub-IFD at 26 (18 bytes), date string at 44.
    ifd0 = (
        struct.pack(endian + "H", 1)
        + struct.pack(endian + "HHII", 0x8769, 4, 1, 26)
        + struct.pack(endian + "I", 0)
    )
    sub_ifd = (
        struct.pack(endian + "H", 1)
        + struct.pack(endian + "HHII", 0x9003, 2, 20, 44)
        + struct.pack(endian + "I", 0)
    )
    tiff = tiff_header + ifd0 + sub_ifd + date + b"\x00"

    app1 = b"\xff\xe1" + struct.pack(">H", len(tiff) + 8) + b"Exif\x00\x00" + tiff
    return b"\xff\xd8" + app1 + b"\xff\xd9"


@pytest.fixture
def make_jpeg():
    """Factory for JPEG bytes carrying a DateTimeOriginal string."""
    return build_exif_jpeg
