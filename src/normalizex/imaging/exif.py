"""EXIF orientation extraction by walking JPEG marker segments.

Only the IFD0 Orientation tag is read. The reader never raises: anything it
cannot make sense of is reported as orientation 1 (identity).
"""

from __future__ import annotations

import struct

from normalizex.imaging.raster import Orientation, is_valid_orientation

SOI = 0xFFD8
EOI = 0xFFD9
SOS = 0xFFDA
APP1 = 0xFFE1

EXIF_SIGNATURE = b"Exif\x00\x00"
TIFF_MAGIC = 0x002A
ORIENTATION_TAG = 0x0112
TYPE_SHORT = 3
IFD_ENTRY_SIZE = 12


def read_jpeg_orientation(data: bytes) -> int:
    """Return the EXIF orientation (1-8) of a JPEG byte stream, defaulting to 1."""
    try:
        return _scan_segments(memoryview(data))
    except (struct.error, IndexError):
        return Orientation.NORMAL


def _scan_segments(buf: memoryview) -> int:
    if len(buf) < 4 or struct.unpack_from(">H", buf, 0)[0] != SOI:
        return Orientation.NORMAL

    offset = 2
    while offset + 4 < len(buf):
        (marker,) = struct.unpack_from(">H", buf, offset)
        offset += 2
        if marker in (EOI, SOS):
            break

        (size,) = struct.unpack_from(">H", buf, offset)
        offset += 2
        if size < 2:
            break

        if marker == APP1 and bytes(buf[offset : offset + 6]) == EXIF_SIGNATURE:
            return _read_tiff_orientation(buf, offset + 6)

        # Other APP1 payloads (XMP etc.) and all other segments are skipped.
        offset += size - 2

    return Orientation.NORMAL


def _read_tiff_orientation(buf: memoryview, tiff: int) -> int:
    byte_order = "<" if bytes(buf[tiff : tiff + 2]) == b"II" else ">"

    def u16(pos: int) -> int:
        return struct.unpack_from(byte_order + "H", buf, pos)[0]

    def u32(pos: int) -> int:
        return struct.unpack_from(byte_order + "I", buf, pos)[0]

    if u16(tiff + 2) != TIFF_MAGIC:
        return Orientation.NORMAL

    ifd0 = tiff + u32(tiff + 4)
    if ifd0 + 2 > len(buf):
        return Orientation.NORMAL

    entries = u16(ifd0)
    first_entry = ifd0 + 2
    for index in range(entries):
        entry = first_entry + index * IFD_ENTRY_SIZE
        if entry + IFD_ENTRY_SIZE > len(buf):
            break
        if u16(entry) != ORIENTATION_TAG:
            continue

        if u16(entry + 2) != TYPE_SHORT or u32(entry + 4) != 1:
            return Orientation.NORMAL
        value = u16(entry + 8)
        if is_valid_orientation(value):
            return value
        return Orientation.NORMAL

    return Orientation.NORMAL
