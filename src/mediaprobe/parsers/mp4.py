"""MP4 / QuickTime box parser.

Walks the top-level boxes of the file, reads ``ftyp`` and descends ``moov``
straight from the file with an explicit stack, reading only the leaf boxes
it interprets. Each frame carries the byte range of its parent, so a box
that claims more bytes than its parent holds is clamped (containers) or
skipped (leaves) without losing its siblings' facts gathered so far.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

from mediaprobe.models import StreamKind
from mediaprobe.parsers.base import DECODE_ERRORS, BaseParser, ContainerFormat, ContainerInfo, TrackInfo, read_at
from mediaprobe.parsers.elementary import avc_profile_name, hevc_profile_name
from mediaprobe.utils.formatting import format_aspect_ratio, mp4_time, normalize_language

logger = logging.getLogger(__name__)

# Leaf boxes other than sample tables are read up to this size
MAX_LEAF_SIZE = 16 * 1024 * 1024
MAX_FTYP_SIZE = 4096
MAX_DEPTH = 16

CONTAINER_BOXES = frozenset(
    {b"moov", b"trak", b"mdia", b"minf", b"stbl", b"udta", b"edts", b"dinf", b"meta", b"ilst", b"tref"}
)

HANDLER_KINDS = {
    b"vide": StreamKind.VIDEO,
    b"soun": StreamKind.AUDIO,
    b"text": StreamKind.TEXT,
    b"sbtl": StreamKind.TEXT,
    b"subt": StreamKind.TEXT,
    b"clcp": StreamKind.TEXT,
}

SAMPLE_ENTRY_FORMATS = {
    b"avc1": "AVC",
    b"avc3": "AVC",
    b"hvc1": "HEVC",
    b"hev1": "HEVC",
    b"mp4v": "MPEG-4 Visual",
    b"av01": "AV1",
    b"vp09": "VP9",
    b"mp4a": "AAC",
    b"ac-3": "AC-3",
    b"ec-3": "E-AC-3",
    b"alac": "ALAC",
    b"fLaC": "FLAC",
    b"Opus": "Opus",
    b".mp3": "MPEG Audio",
    b"lpcm": "PCM",
    b"sowt": "PCM",
    b"twos": "PCM",
    b"tx3g": "Timed Text",
    b"wvtt": "WebVTT",
    b"stpp": "TTML",
    b"c608": "EIA-608",
    b"jpeg": "JPEG",
    b"apcn": "ProRes",
    b"apch": "ProRes",
    b"apcs": "ProRes",
    b"apco": "ProRes",
    b"ap4h": "ProRes",
}

# MPEG-4 objectTypeIndication -> format
OBJECT_TYPE_FORMATS = {
    0x20: "MPEG-4 Visual",
    0x21: "AVC",
    0x40: "AAC",
    0x66: "AAC",
    0x67: "AAC",
    0x68: "AAC",
    0x69: "MPEG Audio",
    0x6A: "MPEG Video",
    0x6B: "MPEG Audio",
    0xA5: "AC-3",
}

AAC_OBJECT_PROFILES = {1: "Main", 2: "LC", 3: "SSR", 4: "LTP", 5: "HE-AAC", 29: "HE-AACv2"}

BRAND_PROFILES = {
    b"isom": "Base Media",
    b"iso2": "Base Media / Version 2",
    b"mp41": "Base Media / Version 1",
    b"mp42": "Base Media / Version 2",
    b"avc1": "JVT",
    b"M4A ": "Apple audio with iTunes info",
    b"M4V ": "Apple TV",
    b"M4VH": "Apple TV",
    b"3gp4": "3GPP Media Release 4",
    b"3gp5": "3GPP Media Release 5",
    b"dash": "DASH",
}

# Handler names that only echo the handler type
_GENERIC_HANDLER_NAMES = frozenset(
    {
        "",
        "VideoHandler",
        "SoundHandler",
        "TextHandler",
        "SubtitleHandler",
        "Core Media Video",
        "Core Media Audio",
        "Core Media Text",
        "Apple Video Media Handler",
        "Apple Sound Media Handler",
        "Apple Alias Data Handler",
        "ISO Media file produced by Google Inc.",
    }
)

_UNKNOWN_DURATIONS = (0xFFFFFFFF, 0xFFFFFFFFFFFFFFFF)

# udta / ilst text tags: tool, encoder software, title
_TEXT_TAGS = frozenset({b"\xa9too", b"\xa9swr", b"\xa9nam"})

# Leaf boxes read from moov; everything else stays on disk
_LEAF_BOXES = frozenset({b"mvhd", b"tkhd", b"mdhd", b"hdlr", b"stsd", b"stts", b"stsz", b"elst"})
_SAMPLE_TABLES = frozenset({b"stts", b"stsz"})


@dataclass
class Box:
    """One box located inside a buffer.

    Offsets index the buffer or file being walked. ``path`` lists the
    enclosing box types, outermost first.
    """

    type: bytes
    start: int
    payload: int
    end: int
    path: tuple[bytes, ...]
    truncated: bool = False

    @property
    def size(self) -> int:
        return self.end - self.payload


def read_box_header(data: bytes, offset: int, end: int) -> tuple[bytes, int, int] | None:
    """Read a box header at ``offset``.

    Returns:
        (box_type, header_size, total_size) or None if the header itself
        does not fit or declares an impossible size. ``size == 0`` extends
        the box to ``end``.
    """
    if offset + 8 > end:
        return None
    size, box_type = struct.unpack_from(">I4s", data, offset)
    header_size = 8
    if size == 1:
        if offset + 16 > end:
            return None
        size = struct.unpack_from(">Q", data, offset + 8)[0]
        header_size = 16
    elif size == 0:
        size = end - offset
    if size < header_size:
        return None
    return box_type, header_size, size


def parse_full_box_header(data: bytes, offset: int) -> tuple[int, int]:
    """Returns (version, flags) of the full box whose payload starts at ``offset``."""
    version_flags = struct.unpack_from(">I", data, offset)[0]
    return version_flags >> 24, version_flags & 0x00FFFFFF


def _is_container(box_type: bytes, path: tuple[bytes, ...]) -> bool:
    # iTunes metadata items hold a nested "data" box
    return box_type in CONTAINER_BOXES or (bool(path) and path[-1] == b"ilst")


class BoxWalker:
    """Depth-first walk over nested boxes using an explicit stack.

    Attributes:
        truncated: Set once any box did not fit inside its parent
    """

    def __init__(self, data: bytes, start: int = 0, end: int | None = None, path: tuple[bytes, ...] = ()):
        self.data = data
        self.start = start
        self.end = len(data) if end is None else min(end, len(data))
        self.path = path
        self.truncated = False

    def peek(self, offset: int, length: int) -> bytes:
        return self.data[offset : offset + length]

    def _header(self, cursor: int, limit: int) -> tuple[bytes, int, int] | None:
        want = min(16, limit - cursor)
        raw = self.peek(cursor, want)
        if len(raw) < want:
            return None
        return read_box_header(raw, 0, limit - cursor)

    def _children_offset(self, box: Box) -> int:
        if box.type == b"meta" and self.peek(box.payload + 4, 4) != b"hdlr":
            # ISO meta is a full box; QuickTime meta is a plain container
            return box.payload + 4
        return box.payload

    def __iter__(self) -> Iterator[Box]:
        # Frames are [cursor, limit, path]
        stack: list[list] = [[self.start, self.end, self.path]]
        while stack:
            frame = stack[-1]
            cursor, limit, path = frame
            if cursor >= limit:
                stack.pop()
                continue
            header = self._header(cursor, limit)
            if header is None:
                if limit - cursor >= 8 or any(self.peek(cursor, limit - cursor)):
                    logger.debug("malformed box header at %d inside %s", cursor, b"/".join(path))
                    self.truncated = True
                stack.pop()
                continue
            box_type, header_size, total_size = header
            box = Box(box_type, cursor, cursor + header_size, cursor + total_size, path)
            if box.end > limit:
                logger.debug("box %r at %d overruns its parent by %d bytes", box_type, cursor, box.end - limit)
                box.end = limit
                box.truncated = True
                self.truncated = True
            frame[0] = box.end
            yield box
            if _is_container(box_type, path) and len(path) < MAX_DEPTH:
                child = self._children_offset(box)
                if child < box.end:
                    stack.append([child, box.end, path + (box_type,)])


class FileBoxWalker(BoxWalker):
    """``BoxWalker`` reading headers straight from a file.

    Offsets are file offsets; payloads are left on disk for the caller to
    read as needed.
    """

    def __init__(self, fh: BinaryIO, start: int, end: int, path: tuple[bytes, ...] = ()):
        super().__init__(b"", start, None, path)
        self.fh = fh
        self.end = end

    def peek(self, offset: int, length: int) -> bytes:
        return read_at(self.fh, offset, length)



@dataclass
class _TrackState:
    """Facts collected for one ``trak`` while walking."""

    track_id: int | None = None
    handler: bytes = b""
    handler_name: str = ""
    timescale: int = 0
    media_duration: int | None = None
    tkhd_duration: int | None = None
    tkhd_width: float = 0.0
    tkhd_height: float = 0.0
    language: str = ""
    created: int = 0
    modified: int = 0
    codec_tag: bytes = b""
    format: str = ""
    format_profile: str = ""
    codec_id: str = ""
    width: int = 0
    height: int = 0
    channels: int = 0
    sample_rate: float = 0.0
    bit_depth: int = 0
    avg_bit_rate: int = 0
    max_bit_rate: int = 0
    sample_count: int | None = None
    stts_entries: int = 0
    first_delta: int = 0
    stream_size: int | None = None
    edit_duration: int = 0
    extra: dict[str, str] = field(default_factory=dict)


def _mdhd_language(code: int) -> str:
    if not code or code == 0x7FFF:
        return ""
    chars = [((code >> shift) & 0x1F) + 0x60 for shift in (10, 5, 0)]
    if not all(0x61 <= c <= 0x7A for c in chars):
        return ""
    return bytes(chars).decode("ascii")


def _read_descriptor(data: bytes, pos: int, end: int) -> tuple[int, int, int] | None:
    """Read an MPEG-4 descriptor header: (tag, payload_offset, payload_end)."""
    if pos >= end:
        return None
    tag = data[pos]
    pos += 1
    length = 0
    for _ in range(4):
        if pos >= end:
            return None
        byte = data[pos]
        pos += 1
        length = (length << 7) | (byte & 0x7F)
        if not byte & 0x80:
            break
    return tag, pos, min(pos + length, end)


def parse_esds(data: bytes, start: int, end: int) -> dict[str, int]:
    """Extract the decoder config fields of an ``esds`` payload.

    Returns a dict with any of object_type, avg_bit_rate, max_bit_rate
    and audio_object_type.
    """
    result: dict[str, int] = {}
    desc = _read_descriptor(data, start + 4, end)
    if desc is None or desc[0] != 0x03:
        return result
    _, pos, desc_end = desc
    if pos + 3 > desc_end:
        return result
    es_flags = data[pos + 2]
    pos += 3
    if es_flags & 0x80:
        pos += 2
    if es_flags & 0x40 and pos < desc_end:
        pos += 1 + data[pos]
    if es_flags & 0x20:
        pos += 2
    desc = _read_descriptor(data, pos, desc_end)
    if desc is None or desc[0] != 0x04 or desc[1] + 13 > desc[2]:
        return result
    _, pos, config_end = desc
    result["object_type"] = data[pos]
    result["max_bit_rate"], result["avg_bit_rate"] = struct.unpack_from(">II", data, pos + 5)
    desc = _read_descriptor(data, pos + 13, config_end)
    if desc is not None and desc[0] == 0x05 and desc[1] < desc[2]:
        aot = data[desc[1]] >> 3
        if aot == 31 and desc[1] + 1 < desc[2]:
            aot = 32 + (((data[desc[1]] & 0x07) << 3) | (data[desc[1] + 1] >> 5))
        result["audio_object_type"] = aot
    return result


def avc_profile(data: bytes, start: int, end: int) -> str:
    """Profile and level from an AVC decoder configuration record ("High@L4.1")."""
    if start + 4 > end:
        return ""
    return avc_profile_name(data[start + 1], data[start + 3])


def hevc_profile(data: bytes, start: int, end: int) -> str:
    if start + 13 > end:
        return ""
    return hevc_profile_name(data[start + 1] & 0x1F, data[start + 12], bool(data[start + 1] & 0x20))


class MP4Parser(BaseParser):
    """Parser for ISO base media files (MP4, MOV, M4A, 3GP)."""

    format = ContainerFormat.MP4
    name = "mp4"

    def parse(self, fh: BinaryIO, size: int) -> ContainerInfo:
        info = ContainerInfo(format=self.format, format_name="MPEG-4")
        offset = 0
        moov: tuple[int, int] | None = None
        while offset + 8 <= size:
            raw = read_at(fh, offset, 16)
            header = read_box_header(raw, 0, len(raw))
            if header is None:
                logger.debug("unreadable top-level box header at %d", offset)
                info.truncated = True
                break
            box_type, header_size, total_size = header
            if struct.unpack_from(">I", raw, 0)[0] == 0:
                total_size = size - offset
            box_end = offset + total_size
            if box_end > size:
                logger.debug("top-level box %r ends %d bytes past end of file", box_type, box_end - size)
                info.truncated = True
            if box_type == b"ftyp":
                payload = read_at(fh, offset + header_size, min(total_size - header_size, MAX_FTYP_SIZE))
                self._parse_ftyp(info, payload)
            elif box_type == b"moov" and moov is None:
                moov = (offset + header_size, min(box_end, size))
            offset = box_end
        if moov is not None:
            self._parse_moov(info, fh, *moov)
        else:
            logger.debug("no moov box found")
        return info

    def _parse_ftyp(self, info: ContainerInfo, payload: bytes) -> None:
        if len(payload) < 8:
            return
        major = payload[:4]
        compatible = [payload[i : i + 4] for i in range(8, len(payload) - 3, 4)]
        if major == b"qt  ":
            info.format_name = "QuickTime"
        else:
            info.format_profile = BRAND_PROFILES.get(major, "")
        brands = [b.decode("latin-1").strip() for b in [major] + compatible if b.strip(b"\x00 ")]
        if brands:
            info.codec_id = brands[0] if len(brands) == 1 else f"{brands[0]} ({'/'.join(brands[1:])})"

    def _parse_moov(self, info: ContainerInfo, fh: BinaryIO, start: int, end: int) -> None:
        walker = FileBoxWalker(fh, start, end, path=(b"moov",))
        tracks: list[_TrackState] = []
        timescale = 0
        current: _TrackState | None = None
        for box in walker:
            path = box.path
            if box.type == b"trak" and path == (b"moov",):
                current = _TrackState()
                tracks.append(current)
                continue
            if box.truncated or _is_container(box.type, path):
                continue
            is_text = b"trak" not in path and (box.type in _TEXT_TAGS or path[-1] in _TEXT_TAGS)
            if not is_text and box.type not in _LEAF_BOXES:
                continue
            data, box = self._read_leaf(fh, box)
            try:
                if box.type == b"mvhd":
                    timescale = self._parse_mvhd(info, data, box)
                elif is_text:
                    self._parse_text_tag(info, data, box)
                elif current is not None and b"trak" in path:
                    self._parse_track_box(current, data, box)
            except DECODE_ERRORS as e:
                logger.debug("skipping malformed %s box: %s", box.type.decode("latin-1"), e)
                info.truncated = True
        if walker.truncated:
            info.truncated = True
        for state in tracks:
            track = self._build_track(state, timescale)
            if track is not None:
                info.tracks.append(track)

    def _read_leaf(self, fh: BinaryIO, box: Box) -> tuple[bytes, Box]:
        """Read a leaf box into memory.

        Sample tables too long to be walked at the current parse speed are
        read up to their first entry only.

        Returns:
            The box bytes and the box relocated to offset 0 of them
        """
        length = box.end - box.start
        header_size = box.payload - box.start
        limit = self._table_limit()
        if box.type not in _SAMPLE_TABLES:
            length = min(length, MAX_LEAF_SIZE)
        elif limit is not None:
            head = read_at(fh, box.start, min(length, header_size + 20))
            count_at = header_size + (8 if box.type == b"stsz" else 4)
            if len(head) >= count_at + 4 and struct.unpack_from(">I", head, count_at)[0] > limit:
                length = len(head)
        data = read_at(fh, box.start, length)
        return data, Box(box.type, 0, header_size, len(data), box.path)

    def _parse_track_box(self, current: _TrackState, data: bytes, box: Box) -> None:
        if box.type == b"tkhd":
            self._parse_tkhd(current, data, box)
        elif box.type == b"mdhd":
            self._parse_mdhd(current, data, box)
        elif box.type == b"hdlr" and box.path[-1] == b"mdia":
            current.handler = data[box.payload + 8 : box.payload + 12]
            current.handler_name = self._handler_name(data[box.payload + 24 : box.end])
        elif box.type == b"stsd":
            self._parse_stsd(current, data, box)
        elif box.type == b"stts":
            self._parse_stts(current, data, box)
        elif box.type == b"stsz":
            self._parse_stsz(current, data, box)
        elif box.type == b"elst":
            self._parse_elst(current, data, box)

    def _parse_mvhd(self, info: ContainerInfo, data: bytes, box: Box) -> int:
        p = box.payload
        version, _ = parse_full_box_header(data, p)
        if version == 1:
            if box.size < 32:
                return 0
            created, modified = struct.unpack_from(">QQ", data, p + 4)
            timescale, duration = struct.unpack_from(">IQ", data, p + 20)
        else:
            if box.size < 20:
                return 0
            created, modified, timescale, duration = struct.unpack_from(">IIII", data, p + 4)
        if timescale and duration and duration not in _UNKNOWN_DURATIONS:
            info.duration = duration / timescale
        info.encoded_date = mp4_time(created)
        info.tagged_date = mp4_time(modified)
        return timescale

    def _parse_tkhd(self, state: _TrackState, data: bytes, box: Box) -> None:
        p = box.payload
        version, _ = parse_full_box_header(data, p)
        if version == 1:
            if box.size < 36:
                return
            state.track_id = struct.unpack_from(">I", data, p + 20)[0]
            state.tkhd_duration = struct.unpack_from(">Q", data, p + 28)[0]
            dims = p + 88
        else:
            if box.size < 24:
                return
            state.track_id = struct.unpack_from(">I", data, p + 12)[0]
            state.tkhd_duration = struct.unpack_from(">I", data, p + 20)[0]
            dims = p + 76
        if dims + 8 <= box.end:
            width, height = struct.unpack_from(">II", data, dims)
            state.tkhd_width = width / 65536
            state.tkhd_height = height / 65536

    def _parse_mdhd(self, state: _TrackState, data: bytes, box: Box) -> None:
        p = box.payload
        version, _ = parse_full_box_header(data, p)
        if version == 1:
            if box.size < 34:
                return
            state.created, state.modified = struct.unpack_from(">QQ", data, p + 4)
            state.timescale, state.media_duration = struct.unpack_from(">IQ", data, p + 20)
            language = struct.unpack_from(">H", data, p + 32)[0]
        else:
            if box.size < 22:
                return
            state.created, state.modified, state.timescale, state.media_duration = struct.unpack_from(
                ">IIII", data, p + 4
            )
            language = struct.unpack_from(">H", data, p + 20)[0]
        if state.media_duration in _UNKNOWN_DURATIONS:
            state.media_duration = None
        state.language = _mdhd_language(language)

    @staticmethod
    def _handler_name(raw: bytes) -> str:
        # QuickTime stores a Pascal string, ISO a C string
        if raw and raw[0] == len(raw) - 1:
            raw = raw[1:]
        return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace").strip()

    def _parse_text_tag(self, info: ContainerInfo, data: bytes, box: Box) -> None:
        if box.type == b"data":
            key = box.path[-1]
            text = data[box.payload + 8 : box.end]
        elif box.path[-1:] == (b"udta",) and box.size >= 4:
            # QuickTime text record: length, language, text
            length = struct.unpack_from(">H", data, box.payload)[0]
            key = box.type
            text = data[box.payload + 4 : min(box.payload + 4 + length, box.end)]
        else:
            return
        value = text.split(b"\x00", 1)[0].decode("utf-8", errors="replace").strip()
        if not value:
            return
        if key == b"\xa9nam":
            info.title = info.title or value
        else:
            info.writing_application = info.writing_application or value

    def _parse_stsd(self, state: _TrackState, data: bytes, box: Box) -> None:
        entry = box.payload + 8
        header = read_box_header(data, entry, box.end)
        if header is None:
            return
        tag, _, entry_size = header
        entry_end = min(entry + entry_size, box.end)
        state.codec_tag = tag
        state.format = SAMPLE_ENTRY_FORMATS.get(tag, tag.decode("latin-1").strip())
        state.codec_id = tag.decode("latin-1")
        if state.handler == b"vide":
            if entry + 36 <= entry_end:
                state.width, state.height = struct.unpack_from(">HH", data, entry + 32)
            children = entry + 86
        elif state.handler == b"soun":
            children = self._parse_audio_entry(state, data, entry, entry_end)
        else:
            return
        for child in BoxWalker(data, children, entry_end, path=(tag,)):
            if child.truncated:
                continue
            if child.type == b"avcC":
                state.format_profile = avc_profile(data, child.payload, child.end)
            elif child.type in (b"hvcC",):
                state.format_profile = hevc_profile(data, child.payload, child.end)
            elif child.type == b"esds":
                self._apply_esds(state, parse_esds(data, child.payload, child.end))
            elif child.type == b"wave":
                for inner in BoxWalker(data, child.payload, child.end, path=(tag, b"wave")):
                    if inner.type == b"esds" and not inner.truncated:
                        self._apply_esds(state, parse_esds(data, inner.payload, inner.end))

    @staticmethod
    def _parse_audio_entry(state: _TrackState, data: bytes, entry: int, entry_end: int) -> int:
        """Read an audio sample entry; returns the offset of its child boxes."""
        if entry + 36 > entry_end:
            return entry_end
        version = struct.unpack_from(">H", data, entry + 16)[0]
        state.channels, state.bit_depth = struct.unpack_from(">HH", data, entry + 24)
        state.sample_rate = struct.unpack_from(">I", data, entry + 32)[0] / 65536
        if version == 1:
            return entry + 52
        if version == 2:
            if entry + 56 <= entry_end:
                state.sample_rate = struct.unpack_from(">d", data, entry + 40)[0]
                state.channels = struct.unpack_from(">I", data, entry + 48)[0]
                state.bit_depth = struct.unpack_from(">I", data, entry + 56)[0] if entry + 60 <= entry_end else 0
            return entry + 72
        return entry + 36

    @staticmethod
    def _apply_esds(state: _TrackState, esds: dict[str, int]) -> None:
        object_type = esds.get("object_type")
        if object_type is None:
            return
        state.format = OBJECT_TYPE_FORMATS.get(object_type, state.format)
        state.avg_bit_rate = esds.get("avg_bit_rate", 0)
        state.max_bit_rate = esds.get("max_bit_rate", 0)
        aot = esds.get("audio_object_type")
        if state.codec_tag == b"mp4a":
            state.codec_id = f"mp4a-{object_type:X}" + (f"-{aot}" if aot else "")
            if state.format == "AAC" and aot:
                state.format_profile = AAC_OBJECT_PROFILES.get(aot, "")

    def _table_limit(self) -> int | None:
        """Entries a sample table may hold and still be walked; None is unbounded."""
        if self.options.exhaustive:
            return None
        if self.options.summary_only:
            return 0
        return int(2_000_000 * self.options.parse_speed)

    def _parse_stts(self, state: _TrackState, data: bytes, box: Box) -> None:
        p = box.payload
        if box.size < 8:
            return
        count = struct.unpack_from(">I", data, p + 4)[0]
        available = min(count, (box.end - p - 8) // 8)
        state.stts_entries = count
        if available:
            state.first_delta = struct.unpack_from(">I", data, p + 12)[0]
        limit = self._table_limit()
        if available < count or (limit is not None and count > limit):
            return
        pairs = struct.unpack_from(f">{2 * count}I", data, p + 8)
        state.sample_count = sum(pairs[0::2])

    def _parse_stsz(self, state: _TrackState, data: bytes, box: Box) -> None:
        p = box.payload
        if box.size < 12:
            return
        sample_size, count = struct.unpack_from(">II", data, p + 4)
        if sample_size:
            state.stream_size = sample_size * count
            return
        limit = self._table_limit()
        if (limit is not None and count > limit) or p + 12 + 4 * count > box.end:
            return
        state.stream_size = sum(struct.unpack_from(f">{count}I", data, p + 12))

    @staticmethod
    def _parse_elst(state: _TrackState, data: bytes, box: Box) -> None:
        """Sum the edit segments that map to media time (empty edits excluded)."""
        p = box.payload
        if box.size < 8:
            return
        version, _ = parse_full_box_header(data, p)
        if version > 1:
            return
        entry_format, entry_size = (">Qq", 20) if version == 1 else (">Ii", 12)
        count = struct.unpack_from(">I", data, p + 4)[0]
        total = 0
        pos = p + 8
        for _ in range(count):
            if pos + entry_size > box.end:
                break
            segment, media_time = struct.unpack_from(entry_format, data, pos)
            if media_time >= 0 and segment > 0:
                total += segment
            pos += entry_size
        state.edit_duration = total


    def _build_track(self, state: _TrackState, movie_timescale: int) -> TrackInfo | None:
        kind = HANDLER_KINDS.get(state.handler)
        if kind is None:
            return None
        track = TrackInfo(kind=kind, format=state.format, format_profile=state.format_profile)
        track.codec_id = state.codec_id
        if state.track_id is not None:
            track.id = str(state.track_id)
        media_seconds = None
        if state.timescale and state.media_duration:
            media_seconds = state.media_duration / state.timescale
        elif movie_timescale and state.tkhd_duration and state.tkhd_duration not in _UNKNOWN_DURATIONS:
            media_seconds = state.tkhd_duration / movie_timescale
        track.duration = media_seconds
        if state.edit_duration and movie_timescale and media_seconds:
            # The edit list decides the presented duration
            edit_seconds = state.edit_duration / movie_timescale
            if abs(edit_seconds - media_seconds) > 0.0005:
                track.duration = edit_seconds
        track.language = normalize_language(state.language)
        if state.handler_name not in _GENERIC_HANDLER_NAMES and not state.handler_name.endswith("Handler"):
            track.title = state.handler_name
        track.encoded_date = mp4_time(state.created)
        track.tagged_date = mp4_time(state.modified)
        track.stream_size = state.stream_size
        if state.stream_size and media_seconds:
            track.bit_rate = state.stream_size * 8 / media_seconds
        elif state.avg_bit_rate:
            track.bit_rate = float(state.avg_bit_rate)
        if state.max_bit_rate and state.avg_bit_rate:
            track.bit_rate_mode = "Constant" if state.max_bit_rate == state.avg_bit_rate else "Variable"

        if kind is StreamKind.VIDEO:
            track.width = state.width or int(state.tkhd_width) or None
            track.height = state.height or int(state.tkhd_height) or None
            display_w = state.tkhd_width or state.width
            display_h = state.tkhd_height or state.height
            if display_w and display_h:
                track.display_aspect_ratio = format_aspect_ratio(int(display_w), int(display_h))
            self._frame_rate(track, state)
        elif kind is StreamKind.AUDIO:
            track.channels = state.channels or None
            track.sample_rate = state.sample_rate or None
            if state.format in ("PCM", "ALAC", "FLAC"):
                track.bit_depth = state.bit_depth or None
        return track

    def _frame_rate(self, track: TrackInfo, state: _TrackState) -> None:
        if state.sample_count and state.media_duration and state.timescale:
            track.frame_count = state.sample_count
            track.frame_rate = state.sample_count * state.timescale / state.media_duration
            track.frame_rate_mode = "Constant" if state.stts_entries == 1 else "Variable"
        elif state.first_delta and state.timescale:
            # Coarse estimate from the first timing entry only
            track.frame_rate = state.timescale / state.first_delta
