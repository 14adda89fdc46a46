"""Container format detection.

Classifies a file from a small bounded prefix. The tests run in a fixed
order and the first match wins; anything else is UNKNOWN, which is not an
error.
"""

from __future__ import annotations

import logging
import os
import struct
from enum import Enum
from typing import BinaryIO

logger = logging.getLogger(__name__)


class ContainerFormat(str, Enum):
    """Container family, selected once per file and never re-dispatched."""

    MP4 = "mp4"
    MATROSKA = "matroska"
    MPEG_TS = "mpegts"
    MPEG_PS = "mpegps"
    UNKNOWN = "unknown"


# Bytes read from the start of the file
SNIFF_SIZE = 8 * 1024

EBML_MAGIC = b"\x1a\x45\xdf\xa3"
PACK_START = b"\x00\x00\x01\xba"
TS_SYNC = 0x47
TS_PACKET_SIZES = (188, 192)
# Packets that must carry the sync byte in a row
TS_MIN_PACKETS = 3
TS_MAX_CHECKED_PACKETS = 8

# Box types accepted as the first box of an MP4-family file
MP4_LEADING_BOXES = frozenset(
    {
        b"ftyp",
        b"moov",
        b"mdat",
        b"free",
        b"skip",
        b"wide",
        b"pnot",
        b"uuid",
        b"pdin",
        b"styp",
        b"sidx",
        b"moof",
    }
)

# Extensions whose files may start directly with a PES instead of a pack
_PS_EXTENSIONS = frozenset({".vob", ".mpg", ".mpeg", ".m2p", ".ps", ".evo"})


def is_mp4(header: bytes) -> bool:
    """A 4-byte size followed by a known box type at offset 4."""
    if len(header) < 8:
        return False
    size = struct.unpack_from(">I", header, 0)[0]
    if header[4:8] not in MP4_LEADING_BOXES:
        return False
    return size in (0, 1) or size >= 8


def is_matroska(header: bytes) -> bool:
    return header.startswith(EBML_MAGIC)


def find_ts_sync(window: bytes, packet_size: int) -> int | None:
    """Offset of the first run of aligned sync bytes, or None.

    The sync byte sits at offset 4 of a 192-byte (BDAV) packet.
    """
    lead = 4 if packet_size == 192 else 0
    for start in range(packet_size):
        count = min(TS_MAX_CHECKED_PACKETS, (len(window) - start - lead - 1) // packet_size + 1)
        if count < TS_MIN_PACKETS:
            return None
        if all(window[start + lead + k * packet_size] == TS_SYNC for k in range(count)):
            return start
    return None


def ts_packet_size(window: bytes) -> int | None:
    """Packet size (188 or 192) when the window looks like a transport stream."""
    for packet_size in TS_PACKET_SIZES:
        if find_ts_sync(window, packet_size) == 0:
            return packet_size
    for packet_size in TS_PACKET_SIZES:
        if find_ts_sync(window, packet_size) is not None:
            return packet_size
    return None


def is_mpeg_ts(header: bytes) -> bool:
    return ts_packet_size(header) is not None


def is_mpeg_ps(header: bytes, filename: str = "") -> bool:
    if header.startswith(PACK_START):
        return True
    ext = os.path.splitext(filename)[1].lower()
    if ext in _PS_EXTENSIONS and len(header) >= 4 and header[:3] == b"\x00\x00\x01":
        stream_id = header[3]
        return 0xC0 <= stream_id <= 0xEF or stream_id in (0xBB, 0xBD, 0xBE)
    return False


def sniff_bytes(header: bytes, filename: str = "") -> ContainerFormat:
    """Classify a prefix of a file."""
    if not header:
        return ContainerFormat.UNKNOWN
    if is_mp4(header):
        return ContainerFormat.MP4
    if is_matroska(header):
        return ContainerFormat.MATROSKA
    if is_mpeg_ts(header):
        return ContainerFormat.MPEG_TS
    if is_mpeg_ps(header, filename):
        return ContainerFormat.MPEG_PS
    return ContainerFormat.UNKNOWN


def sniff(fh: BinaryIO, filename: str = "") -> ContainerFormat:
    """Classify a seekable file; the handle position is restored."""
    position = fh.tell()
    try:
        fh.seek(0)
        header = fh.read(SNIFF_SIZE)
    finally:
        fh.seek(position)
    fmt = sniff_bytes(header, filename)
    logger.debug("sniffed %s as %s", filename or "<stream>", fmt.value)
    return fmt
