"""Matroska / WebM (EBML) parser.

Level-1 elements of the Segment are located by reading element headers at
file offsets; only the payloads of Info, Tracks, Chapters, Tags and
SeekHead are read into memory. Clusters are scanned afterwards, bounded by
the parse speed, to measure per-track stream sizes.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

from mediaprobe.models import StreamKind
from mediaprobe.parsers.base import DECODE_ERRORS, BaseParser, ContainerFormat, ContainerInfo, TrackInfo, read_at
from mediaprobe.parsers.mp4 import AAC_OBJECT_PROFILES, avc_profile, hevc_profile
from mediaprobe.utils.formatting import format_aspect_ratio, matroska_time, normalize_language

logger = logging.getLogger(__name__)

# EBML header
EBML_HEADER = 0x1A45DFA3
DOC_TYPE = 0x4282
DOC_TYPE_VERSION = 0x4287

SEGMENT = 0x18538067

# SeekHead
SEEK_HEAD = 0x114D9B74
SEEK = 0x4DBB
SEEK_ID = 0x53AB
SEEK_POSITION = 0x53AC

# Info
INFO = 0x1549A966
TIMESTAMP_SCALE = 0x2AD7B1
DURATION = 0x4489
DATE_UTC = 0x4461
TITLE = 0x7BA9
MUXING_APP = 0x4D80
WRITING_APP = 0x5741

# Tracks
TRACKS = 0x1654AE6B
TRACK_ENTRY = 0xAE
TRACK_NUMBER = 0xD7
TRACK_UID = 0x73C5
TRACK_TYPE = 0x83
FLAG_DEFAULT = 0x88
FLAG_FORCED = 0x55AA
NAME = 0x536E
LANGUAGE = 0x22B59C
LANGUAGE_BCP47 = 0x22B59D
CODEC_ID = 0x86
CODEC_PRIVATE = 0x63A2
DEFAULT_DURATION = 0x23E383

VIDEO = 0xE0
PIXEL_WIDTH = 0xB0
PIXEL_HEIGHT = 0xBA
DISPLAY_WIDTH = 0x54B0
DISPLAY_HEIGHT = 0x54BA

AUDIO = 0xE1
SAMPLING_FREQUENCY = 0xB5
OUTPUT_SAMPLING_FREQUENCY = 0x78B5
CHANNELS = 0x9F
BIT_DEPTH = 0x6264

# Chapters
CHAPTERS = 0x1043A770
EDITION_ENTRY = 0x45B9
CHAPTER_ATOM = 0xB6
CHAPTER_TIME_START = 0x91
CHAPTER_DISPLAY = 0x80
CHAP_STRING = 0x85

# Tags
TAGS = 0x1254C367
TAG = 0x7373
TARGETS = 0x63C0
TAG_TRACK_UID = 0x63C5
SIMPLE_TAG = 0x67C8
TAG_NAME = 0x45A3
TAG_STRING = 0x4487

# Cluster
CLUSTER = 0x1F43B675
CLUSTER_TIMESTAMP = 0xE7
SIMPLE_BLOCK = 0xA3
BLOCK_GROUP = 0xA0
BLOCK = 0xA1

CUES = 0x1C53BB6B
ATTACHMENTS = 0x1941A469

LEVEL1_IDS = frozenset({SEEK_HEAD, INFO, TRACKS, CHAPTERS, TAGS, CLUSTER, CUES, ATTACHMENTS})

# Upper bounds on level-1 payloads read into memory
_READ_LIMITS = {
    SEEK_HEAD: 256 * 1024,
    INFO: 256 * 1024,
    TRACKS: 4 * 1024 * 1024,
    CHAPTERS: 1024 * 1024,
    TAGS: 4 * 1024 * 1024,
}

# Cluster bytes scanned per unit of parse speed below 1.0
CLUSTER_SCAN_BYTES = 64 * 1024 * 1024

UNKNOWN_SIZE = -1
DEFAULT_TIMESTAMP_SCALE = 1_000_000

TRACK_TYPE_KINDS = {
    1: StreamKind.VIDEO,
    2: StreamKind.AUDIO,
    16: StreamKind.IMAGE,
    17: StreamKind.TEXT,
}

CODEC_FORMATS = {
    "V_MPEG4/ISO/AVC": "AVC",
    "V_MPEGH/ISO/HEVC": "HEVC",
    "V_AV1": "AV1",
    "V_VP8": "VP8",
    "V_VP9": "VP9",
    "V_MPEG1": "MPEG Video",
    "V_MPEG2": "MPEG Video",
    "V_MPEG4/ISO/ASP": "MPEG-4 Visual",
    "V_MPEG4/ISO/SP": "MPEG-4 Visual",
    "V_MPEG4/ISO/AP": "MPEG-4 Visual",
    "V_MS/VFW/FOURCC": "VfW",
    "V_THEORA": "Theora",
    "V_PRORES": "ProRes",
    "V_MJPEG": "JPEG",
    "A_AAC": "AAC",
    "A_AC3": "AC-3",
    "A_EAC3": "E-AC-3",
    "A_DTS": "DTS",
    "A_TRUEHD": "TrueHD",
    "A_MLP": "MLP",
    "A_MPEG/L1": "MPEG Audio",
    "A_MPEG/L2": "MPEG Audio",
    "A_MPEG/L3": "MPEG Audio",
    "A_OPUS": "Opus",
    "A_VORBIS": "Vorbis",
    "A_FLAC": "FLAC",
    "A_ALAC": "ALAC",
    "A_PCM/INT/LIT": "PCM",
    "A_PCM/INT/BIG": "PCM",
    "A_PCM/FLOAT/IEEE": "PCM",
    "A_WAVPACK4": "WavPack",
    "S_TEXT/UTF8": "UTF-8",
    "S_TEXT/ASCII": "UTF-8",
    "S_TEXT/SSA": "SSA",
    "S_TEXT/ASS": "ASS",
    "S_TEXT/WEBVTT": "WebVTT",
    "S_ASS": "ASS",
    "S_SSA": "SSA",
    "S_VOBSUB": "VobSub",
    "S_HDMV/PGS": "PGS",
    "S_HDMV/TEXTST": "TextST",
    "S_DVBSUB": "DVB Subtitle",
    "S_KATE": "Kate",
}

# CodecID families with variant suffixes (A_AAC/MPEG4/LC, A_DTS/EXPRESS)
_CODEC_PREFIX_FORMATS = {"A_AAC": "AAC", "A_DTS": "DTS", "A_PCM": "PCM", "A_MPEG/L": "MPEG Audio"}

# CodecID suffixes of the legacy A_AAC/MPEGx/PROFILE form
_AAC_ID_PROFILES = {"MAIN": "Main", "LC": "LC", "SSR": "SSR", "LTP": "LTP", "SBR": "HE-AAC"}


def read_vint(data: bytes, pos: int) -> tuple[int, int, int]:
    """Read an EBML variable-length integer.

    Returns:
        (raw_value, value_without_marker, new_pos). ``raw_value`` keeps the
        length marker bit (element IDs); the masked value is UNKNOWN_SIZE
        when all value bits are set (sizes).
    """
    if pos >= len(data):
        raise ValueError(f"EBML VINT: position {pos} beyond data length {len(data)}")
    first = data[pos]
    if first == 0:
        raise ValueError(f"EBML VINT: invalid leading byte 0x00 at pos {pos}")
    length = 1
    mask = 0x80
    while not first & mask:
        length += 1
        mask >>= 1
    if pos + length > len(data):
        raise ValueError(f"EBML VINT: need {length} bytes at pos {pos}, only {len(data) - pos} available")
    raw = int.from_bytes(data[pos : pos + length], "big")
    value = raw & ~(1 << (7 * length))
    if value == (1 << (7 * length)) - 1:
        value = UNKNOWN_SIZE
    return raw, value, pos + length


def read_element_header(data: bytes, pos: int) -> tuple[int, int, int]:
    """Returns (element_id, size, data_offset); size may be UNKNOWN_SIZE."""
    eid, _, pos = read_vint(data, pos)
    if eid > 0xFFFFFFFF:
        raise ValueError(f"EBML element ID longer than 4 bytes at pos {pos}")
    _, size, pos = read_vint(data, pos)
    return eid, size, pos


def read_uint(data: bytes, start: int, end: int) -> int:
    return int.from_bytes(data[start:end], "big") if end > start else 0


def read_sint(data: bytes, start: int, end: int) -> int:
    return int.from_bytes(data[start:end], "big", signed=True) if end > start else 0


def read_float(data: bytes, start: int, end: int) -> float:
    length = end - start
    if length == 4:
        return struct.unpack_from(">f", data, start)[0]
    if length == 8:
        return struct.unpack_from(">d", data, start)[0]
    return 0.0


def read_string(data: bytes, start: int, end: int) -> str:
    return data[start:end].split(b"\x00", 1)[0].decode("utf-8", errors="replace").strip()


class ElementReader:
    """Iterates child elements of an in-memory payload.

    A child whose size runs past its parent is clamped and flags the reader
    as truncated; an unreadable header ends the iteration.
    """

    def __init__(self, data: bytes, start: int = 0, end: int | None = None):
        self.data = data
        self.start = start
        self.end = len(data) if end is None else min(end, len(data))
        self.truncated = False

    def __iter__(self) -> Iterator[tuple[int, int, int]]:
        pos = self.start
        while pos < self.end:
            try:
                eid, size, data_offset = read_element_header(self.data, pos)
            except ValueError as exc:
                logger.debug("stopping element walk: %s", exc)
                self.truncated = True
                return
            if size == UNKNOWN_SIZE:
                elem_end = self.end
            else:
                elem_end = data_offset + size
                if elem_end > self.end:
                    logger.debug("element 0x%X at %d overruns its parent", eid, pos)
                    self.truncated = True
                    elem_end = self.end
            yield eid, data_offset, elem_end
            pos = elem_end


@dataclass
class _BlockStats:
    bytes: int = 0
    frames: int = 0
    first: int | None = None
    last: int | None = None


@dataclass
class _TrackEntry:
    number: int = 0
    uid: int = 0
    kind: StreamKind | None = None
    codec_id: str = ""
    codec_private: bytes = b""
    name: str = ""
    language: str = "eng"
    language_bcp47: str = ""
    default: bool = True
    forced: bool = False
    default_duration: int = 0
    width: int = 0
    height: int = 0
    display_width: int = 0
    display_height: int = 0
    sampling_frequency: float = 0.0
    output_sampling_frequency: float = 0.0
    channels: int = 1
    bit_depth: int = 0
    tags: dict[str, str] = field(default_factory=dict)


class MatroskaParser(BaseParser):
    """Parser for Matroska and WebM files."""

    format = ContainerFormat.MATROSKA
    name = "matroska"

    def parse(self, fh: BinaryIO, size: int) -> ContainerInfo:
        info = ContainerInfo(format=self.format, format_name="Matroska")
        self._scanned = 0
        self._timestamp_scale = DEFAULT_TIMESTAMP_SCALE
        self._entries: list[_TrackEntry] = []
        self._chapters: list[tuple[int, str]] = []

        header = self._read_header(fh, 0)
        if header is None or header[0] != EBML_HEADER:
            info.truncated = True
            return info
        _, ebml_size, data_offset = header
        ebml_end = data_offset + ebml_size
        self._parse_ebml_header(info, read_at(fh, data_offset, min(ebml_size, 4096)))

        segment = self._read_header(fh, ebml_end)
        if segment is None or segment[0] != SEGMENT:
            logger.debug("no Segment after the EBML header")
            info.truncated = True
            return info
        _, seg_size, seg_start = segment
        seg_end = size if seg_size == UNKNOWN_SIZE else seg_start + seg_size
        if seg_end > size:
            logger.debug("Segment ends %d bytes past end of file", seg_end - size)
            info.truncated = True
            seg_end = size

        first_cluster = None
        stats: dict[int, _BlockStats] = {}
        complete = False
        try:
            first_cluster = self._walk_segment(fh, info, seg_start, seg_end)
            if first_cluster is not None and not self.options.summary_only:
                stats, complete = self._scan_clusters(fh, first_cluster, seg_end)
        except DECODE_ERRORS as e:
            logger.warning("segment walk stopped early: %s", e)
            info.truncated = True
        self._build_tracks(info, stats, complete, first_cluster, seg_end)
        return info

    def _read_header(self, fh: BinaryIO, offset: int) -> tuple[int, int, int] | None:
        """Read an element header at a file offset; data_offset is absolute."""
        raw = read_at(fh, offset, 12)
        try:
            eid, elem_size, pos = read_element_header(raw, 0)
        except ValueError:
            return None
        return eid, elem_size, offset + pos

    def _parse_ebml_header(self, info: ContainerInfo, data: bytes) -> None:
        for eid, start, end in ElementReader(data):
            if eid == DOC_TYPE and read_string(data, start, end) == "webm":
                info.format_name = "WebM"
            elif eid == DOC_TYPE_VERSION:
                info.extra["Format version"] = f"Version {read_uint(data, start, end)}"

    def _walk_segment(self, fh: BinaryIO, info: ContainerInfo, seg_start: int, seg_end: int) -> int | None:
        """Read the metadata level-1 elements; returns the first Cluster offset."""
        seen: set[int] = set()
        seek_targets: dict[int, int] = {}
        first_cluster = None
        offset = seg_start
        while offset < seg_end:
            header = self._read_header(fh, offset)
            if header is None:
                logger.debug("unreadable element header at %d", offset)
                info.truncated = True
                break
            eid, elem_size, data_offset = header
            if eid == CLUSTER:
                first_cluster = offset
                break
            if elem_size == UNKNOWN_SIZE:
                elem_end = self._find_next_level1(fh, data_offset, seg_end)
            else:
                elem_end = data_offset + elem_size
                if elem_end > seg_end:
                    logger.debug("element 0x%X ends past its Segment", eid)
                    info.truncated = True
                    elem_end = seg_end
            if eid == SEEK_HEAD:
                payload = read_at(fh, data_offset, min(elem_end - data_offset, _READ_LIMITS[SEEK_HEAD]))
                for target_id, position in self._parse_seek_head(payload):
                    seek_targets.setdefault(target_id, seg_start + position)
            elif eid in _READ_LIMITS and eid not in seen:
                seen.add(eid)
                self._read_level1(fh, info, eid, data_offset, elem_end)
            offset = elem_end

        # Metadata stored after the clusters is reached through the SeekHead
        for target_id in (INFO, TRACKS, CHAPTERS, TAGS):
            position = seek_targets.get(target_id)
            if target_id in seen or position is None or position >= seg_end:
                continue
            header = self._read_header(fh, position)
            if header is None or header[0] != target_id:
                logger.debug("SeekHead entry for 0x%X points at %d which holds no such element", target_id, position)
                continue
            _, elem_size, data_offset = header
            elem_end = seg_end if elem_size == UNKNOWN_SIZE else min(data_offset + elem_size, seg_end)
            seen.add(target_id)
            self._read_level1(fh, info, target_id, data_offset, elem_end)
        if first_cluster is None:
            first_cluster = seek_targets.get(CLUSTER)
        return first_cluster

    def _find_next_level1(self, fh: BinaryIO, offset: int, end: int) -> int:
        """Offset of the next level-1 element ID at or after ``offset``."""
        patterns = [eid.to_bytes(4, "big") for eid in LEVEL1_IDS]
        chunk_size = 64 * 1024
        while offset < end:
            chunk = read_at(fh, offset, min(chunk_size + 3, end - offset))
            if not chunk:
                break
            hits = [i for i in (chunk.find(p) for p in patterns) if i >= 0]
            if hits:
                return offset + min(hits)
            offset += chunk_size
        return end

    def _read_level1(self, fh: BinaryIO, info: ContainerInfo, eid: int, start: int, end: int) -> None:
        length = end - start
        limit = _READ_LIMITS[eid]
        if length > limit:
            logger.debug("element 0x%X is %d bytes; reading the first %d", eid, length, limit)
            length = limit
        payload = read_at(fh, start, length)
        if len(payload) < length:
            info.truncated = True
        if eid == INFO:
            reader = self._parse_info(info, payload)
        elif eid == TRACKS:
            reader = self._parse_tracks(payload)
        elif eid == CHAPTERS:
            reader = self._parse_chapters(payload)
        else:
            reader = self._parse_tags(payload)
        if reader.truncated:
            info.truncated = True

    @staticmethod
    def _parse_seek_head(data: bytes) -> list[tuple[int, int]]:
        targets = []
        for eid, start, end in ElementReader(data):
            if eid != SEEK:
                continue
            target_id = position = None
            for child, cstart, cend in ElementReader(data, start, end):
                if child == SEEK_ID:
                    target_id = read_uint(data, cstart, cend)
                elif child == SEEK_POSITION:
                    position = read_uint(data, cstart, cend)
            if target_id is not None and position is not None:
                targets.append((target_id, position))
        return targets

    def _parse_info(self, info: ContainerInfo, data: bytes) -> ElementReader:
        duration = None
        reader = ElementReader(data)
        for eid, start, end in reader:
            if eid == TIMESTAMP_SCALE:
                self._timestamp_scale = read_uint(data, start, end) or DEFAULT_TIMESTAMP_SCALE
            elif eid == DURATION:
                duration = read_float(data, start, end)
            elif eid == DATE_UTC:
                info.encoded_date = matroska_time(read_sint(data, start, end))
            elif eid == TITLE:
                info.title = read_string(data, start, end)
            elif eid == MUXING_APP:
                info.writing_library = read_string(data, start, end)
            elif eid == WRITING_APP:
                info.writing_application = read_string(data, start, end)
        if duration and duration > 0:
            info.duration = duration * self._timestamp_scale / 1e9
        return reader

    def _parse_tracks(self, data: bytes) -> ElementReader:
        reader = ElementReader(data)
        for eid, start, end in reader:
            if eid == TRACK_ENTRY:
                entry = self._parse_track_entry(data, start, end)
                if entry.kind is not None:
                    self._entries.append(entry)
        return reader

    def _parse_track_entry(self, data: bytes, start: int, end: int) -> _TrackEntry:
        entry = _TrackEntry()
        for eid, cstart, cend in ElementReader(data, start, end):
            if eid == TRACK_NUMBER:
                entry.number = read_uint(data, cstart, cend)
            elif eid == TRACK_UID:
                entry.uid = read_uint(data, cstart, cend)
            elif eid == TRACK_TYPE:
                entry.kind = TRACK_TYPE_KINDS.get(read_uint(data, cstart, cend))
            elif eid == CODEC_ID:
                entry.codec_id = read_string(data, cstart, cend)
            elif eid == CODEC_PRIVATE:
                entry.codec_private = data[cstart:cend]
            elif eid == NAME:
                entry.name = read_string(data, cstart, cend)
            elif eid == LANGUAGE:
                entry.language = read_string(data, cstart, cend)
            elif eid == LANGUAGE_BCP47:
                entry.language_bcp47 = read_string(data, cstart, cend)
            elif eid == FLAG_DEFAULT:
                entry.default = bool(read_uint(data, cstart, cend))
            elif eid == FLAG_FORCED:
                entry.forced = bool(read_uint(data, cstart, cend))
            elif eid == DEFAULT_DURATION:
                entry.default_duration = read_uint(data, cstart, cend)
            elif eid == VIDEO:
                for vid, vstart, vend in ElementReader(data, cstart, cend):
                    if vid == PIXEL_WIDTH:
                        entry.width = read_uint(data, vstart, vend)
                    elif vid == PIXEL_HEIGHT:
                        entry.height = read_uint(data, vstart, vend)
                    elif vid == DISPLAY_WIDTH:
                        entry.display_width = read_uint(data, vstart, vend)
                    elif vid == DISPLAY_HEIGHT:
                        entry.display_height = read_uint(data, vstart, vend)
            elif eid == AUDIO:
                for aid, astart, aend in ElementReader(data, cstart, cend):
                    if aid == SAMPLING_FREQUENCY:
                        entry.sampling_frequency = read_float(data, astart, aend)
                    elif aid == OUTPUT_SAMPLING_FREQUENCY:
                        entry.output_sampling_frequency = read_float(data, astart, aend)
                    elif aid == CHANNELS:
                        entry.channels = read_uint(data, astart, aend)
                    elif aid == BIT_DEPTH:
                        entry.bit_depth = read_uint(data, astart, aend)
        return entry

    def _parse_chapters(self, data: bytes) -> ElementReader:
        reader = ElementReader(data)
        for eid, start, end in reader:
            if eid != EDITION_ENTRY:
                continue
            for aid, astart, aend in ElementReader(data, start, end):
                if aid != CHAPTER_ATOM:
                    continue
                time_start, title = 0, ""
                for cid, cstart, cend in ElementReader(data, astart, aend):
                    if cid == CHAPTER_TIME_START:
                        time_start = read_uint(data, cstart, cend)
                    elif cid == CHAPTER_DISPLAY and not title:
                        for did, dstart, dend in ElementReader(data, cstart, cend):
                            if did == CHAP_STRING:
                                title = read_string(data, dstart, dend)
                self._chapters.append((time_start, title))
            # Only the first edition is listed
            break
        return reader

    def _parse_tags(self, data: bytes) -> ElementReader:
        reader = ElementReader(data)
        by_uid = {entry.uid: entry for entry in self._entries if entry.uid}
        for eid, start, end in reader:
            if eid != TAG:
                continue
            uids: list[int] = []
            values: dict[str, str] = {}
            for cid, cstart, cend in ElementReader(data, start, end):
                if cid == TARGETS:
                    for tid, tstart, tend in ElementReader(data, cstart, cend):
                        if tid == TAG_TRACK_UID:
                            uids.append(read_uint(data, tstart, tend))
                elif cid == SIMPLE_TAG:
                    name = value = ""
                    for sid, sstart, send in ElementReader(data, cstart, cend):
                        if sid == TAG_NAME:
                            name = read_string(data, sstart, send)
                        elif sid == TAG_STRING:
                            value = read_string(data, sstart, send)
                    if name:
                        values[name.upper()] = value
            for uid in uids:
                if uid in by_uid:
                    by_uid[uid].tags.update(values)
        return reader

    def _scan_clusters(self, fh: BinaryIO, offset: int, seg_end: int) -> tuple[dict[int, _BlockStats], bool]:
        """Sum block bytes and frames per track number.

        Returns the stats and whether every cluster was scanned.
        """
        budget = None if self.options.exhaustive else int(CLUSTER_SCAN_BYTES * self.options.parse_speed)
        stats: dict[int, _BlockStats] = {}
        while offset < seg_end:
            header = self._read_header(fh, offset)
            if header is None:
                break
            eid, elem_size, data_offset = header
            if elem_size == UNKNOWN_SIZE:
                elem_end = self._find_next_level1(fh, data_offset + 1, seg_end)
            else:
                elem_end = min(data_offset + elem_size, seg_end)
            if eid == CLUSTER:
                if budget is not None and self._scanned >= budget:
                    logger.debug("cluster scan stopped after %d bytes", self._scanned)
                    return stats, False
                payload = read_at(fh, data_offset, elem_end - data_offset)
                self._scan_cluster(payload, stats)
                self._scanned += len(payload)
            elif eid not in LEVEL1_IDS:
                logger.debug("unexpected element 0x%X among clusters at %d", eid, offset)
                return stats, False
            offset = elem_end
        return stats, True

    def _scan_cluster(self, data: bytes, stats: dict[int, _BlockStats]) -> None:
        cluster_time = 0
        for eid, start, end in ElementReader(data):
            if eid == CLUSTER_TIMESTAMP:
                cluster_time = read_uint(data, start, end)
            elif eid == SIMPLE_BLOCK:
                self._count_block(data, start, end, cluster_time, stats)
            elif eid == BLOCK_GROUP:
                for bid, bstart, bend in ElementReader(data, start, end):
                    if bid == BLOCK:
                        self._count_block(data, bstart, bend, cluster_time, stats)

    @staticmethod
    def _count_block(data: bytes, start: int, end: int, cluster_time: int, stats: dict[int, _BlockStats]) -> None:
        try:
            _, track_number, pos = read_vint(data, start)
        except ValueError:
            return
        if pos + 3 > end:
            return
        timecode = cluster_time + struct.unpack_from(">h", data, pos)[0]
        flags = data[pos + 2]
        pos += 3
        frames = 1
        if flags & 0x06 and pos < end:
            frames = data[pos] + 1
        entry = stats.setdefault(track_number, _BlockStats())
        entry.bytes += end - pos
        entry.frames += frames
        entry.first = timecode if entry.first is None else min(entry.first, timecode)
        entry.last = timecode if entry.last is None else max(entry.last, timecode)

    def _build_tracks(
        self,
        info: ContainerInfo,
        stats: dict[int, _BlockStats],
        complete: bool,
        first_cluster: int | None,
        seg_end: int,
    ) -> None:
        if info.duration is None and complete and stats:
            last = max(s.last for s in stats.values() if s.last is not None)
            first = min(s.first for s in stats.values() if s.first is not None)
            if last > first:
                info.duration = (last - first) * self._timestamp_scale / 1e9
        scale = 1.0
        if not complete and self._scanned and first_cluster is not None:
            scale = (seg_end - first_cluster) / self._scanned

        for entry in self._entries:
            track = self._build_track(entry, info.duration)
            block = stats.get(entry.number)
            if block is not None and block.bytes:
                if complete:
                    track.stream_size = block.bytes
                    if track.kind is StreamKind.VIDEO:
                        track.frame_count = block.frames
                if track.duration and track.bit_rate is None and track.kind in (StreamKind.VIDEO, StreamKind.AUDIO):
                    track.bit_rate = block.bytes * scale * 8 / track.duration
            info.tracks.append(track)

        if self._chapters:
            menu = TrackInfo(kind=StreamKind.MENU)
            for time_start, title in self._chapters:
                stamp = self._chapter_stamp(time_start)
                menu.extra.setdefault(stamp, title or stamp)
            info.tracks.append(menu)

    def _build_track(self, entry: _TrackEntry, duration: float | None) -> TrackInfo:
        track = TrackInfo(kind=entry.kind, id=str(entry.number) if entry.number else "")
        track.codec_id = entry.codec_id
        track.format = self._codec_format(entry.codec_id)
        track.format_profile = self._codec_profile(entry)
        track.title = entry.name
        track.language = normalize_language(entry.language_bcp47 or entry.language)
        track.default = entry.default
        track.forced = entry.forced
        track.duration = duration
        tag_duration = self._tag_duration(entry.tags.get("DURATION", ""))
        if tag_duration:
            track.duration = tag_duration
        if entry.tags.get("BPS", "").isdigit():
            track.bit_rate = float(entry.tags["BPS"])
        if entry.tags.get("NUMBER_OF_BYTES", "").isdigit():
            track.stream_size = int(entry.tags["NUMBER_OF_BYTES"])
        if entry.kind is StreamKind.VIDEO:
            track.width = entry.width or None
            track.height = entry.height or None
            display_w = entry.display_width or entry.width
            display_h = entry.display_height or entry.height
            if display_w and display_h:
                track.display_aspect_ratio = format_aspect_ratio(display_w, display_h)
            if entry.default_duration:
                track.frame_rate = 1e9 / entry.default_duration
                track.frame_rate_mode = "Constant"
            if entry.tags.get("NUMBER_OF_FRAMES", "").isdigit():
                track.frame_count = int(entry.tags["NUMBER_OF_FRAMES"])
        elif entry.kind is StreamKind.AUDIO:
            track.channels = entry.channels or None
            track.sample_rate = entry.output_sampling_frequency or entry.sampling_frequency or None
            track.bit_depth = entry.bit_depth or None
        return track

    @staticmethod
    def _codec_format(codec_id: str) -> str:
        if codec_id in CODEC_FORMATS:
            return CODEC_FORMATS[codec_id]
        for prefix, name in _CODEC_PREFIX_FORMATS.items():
            if codec_id.startswith(prefix):
                return name
        return codec_id

    @staticmethod
    def _codec_profile(entry: _TrackEntry) -> str:
        codec_id, private = entry.codec_id, entry.codec_private
        if codec_id.startswith("V_MPEG4/ISO/AVC") and private:
            return avc_profile(private, 0, len(private))
        if codec_id.startswith("V_MPEGH/ISO/HEVC") and private:
            return hevc_profile(private, 0, len(private))
        if codec_id.startswith("A_AAC"):
            if private:
                profile = AAC_OBJECT_PROFILES.get(private[0] >> 3, "")
                if entry.output_sampling_frequency > entry.sampling_frequency > 0 and profile == "LC":
                    return "HE-AAC"
                return profile
            return _AAC_ID_PROFILES.get(codec_id.rsplit("/", 1)[-1], "")
        if codec_id.startswith("A_MPEG/L"):
            return f"Layer {codec_id[-1]}"
        return ""

    @staticmethod
    def _tag_duration(value: str) -> float | None:
        # "01:02:03.456000000"
        parts = value.split(":")
        if len(parts) != 3:
            return None
        try:
            hours, minutes, seconds = int(parts[0]), int(parts[1]), float(parts[2])
        except ValueError:
            return None
        total = hours * 3600 + minutes * 60 + seconds
        return total or None

    @staticmethod
    def _chapter_stamp(nanoseconds: int) -> str:
        total_ms = nanoseconds // 1_000_000
        seconds, ms = divmod(total_ms, 1000)
        minutes, seconds = divmod(seconds, 60)
        hours, minutes = divmod(minutes, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{ms:03d}"
