"""MPEG program stream parser (MPEG-1 system streams, MPEG-2 PS, DVD VOB).

Scans sequentially for ``00 00 01`` start codes. Pack headers and system
packets are framing and are skipped by their length; PES packets are
attributed to a stream id, or for private stream 1 to the sub-stream id
carried in the first payload byte.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO

from mediaprobe.models import StreamKind
from mediaprobe.parsers.base import (
    DECODE_ERRORS,
    BaseParser,
    ContainerFormat,
    ContainerInfo,
    TrackInfo,
    read_at,
    scan_windows,
)
from mediaprobe.parsers.pes import (
    PACK_HEADER,
    PADDING_STREAM,
    PRIVATE_STREAM_1,
    PRIVATE_STREAM_2,
    PROGRAM_STREAM_MAP,
    START_CODE_PREFIX,
    SYSTEM_HEADER,
    ESCounter,
    fill_track,
    is_audio_stream_id,
    is_video_stream_id,
    parse_pes_header,
)
from mediaprobe.utils.formatting import format_hex_id

logger = logging.getLogger(__name__)

PROGRAM_END = 0xB9

# Packets skipped by their length field
_SKIPPED_IDS = frozenset({SYSTEM_HEADER, PROGRAM_STREAM_MAP, PADDING_STREAM, PRIVATE_STREAM_2})

LPCM_SAMPLE_RATES = (48000, 96000, 44100, 32000)
LPCM_BIT_DEPTHS = (16, 20, 24)


def private_substream(sub_id: int) -> tuple[StreamKind, str, int] | None:
    """Classify a private stream 1 sub-stream.

    Returns (kind, format, header_bytes) where header_bytes is the length
    of the sub-stream header that precedes the elementary stream data.
    """
    if 0x80 <= sub_id <= 0x87:
        return StreamKind.AUDIO, "AC-3", 4
    if 0x88 <= sub_id <= 0x8F:
        return StreamKind.AUDIO, "DTS", 4
    if 0xA0 <= sub_id <= 0xAF:
        return StreamKind.AUDIO, "PCM", 7
    if 0x20 <= sub_id <= 0x3F:
        return StreamKind.TEXT, "RLE", 1
    return None


@dataclass
class _PSStream(ESCounter):
    stream_id: int = 0
    sub_id: int | None = None
    kind: StreamKind = StreamKind.VIDEO
    format: str = ""
    lpcm_header: bytes = b""


class _Scanner:
    """Sequential start-code scanner shared by the scanned windows."""

    def __init__(self):
        self.streams: dict[tuple[int, int | None], _PSStream] = {}
        self.mpeg2: bool | None = None
        self.scanned = 0

    def feed(self, data: bytes, tail: bool) -> None:
        pos = 0
        end = len(data)
        self.scanned += end
        while True:
            pos = data.find(START_CODE_PREFIX, pos)
            if pos < 0 or pos + 4 > end:
                return
            code = data[pos + 3]
            if code == PACK_HEADER:
                pos = self._pack(data, pos)
            elif code == PROGRAM_END:
                pos += 4
            elif code in _SKIPPED_IDS:
                if pos + 6 > end:
                    return
                pos += 6 + ((data[pos + 4] << 8) | data[pos + 5])
            elif code == PRIVATE_STREAM_1 or is_video_stream_id(code) or is_audio_stream_id(code):
                pos = self._pes(data, pos, tail)
            else:
                pos += 3

    def _pack(self, data: bytes, pos: int) -> int:
        if pos + 12 > len(data):
            return len(data)
        marker = data[pos + 4]
        if marker & 0xC0 == 0x40:
            if self.mpeg2 is None:
                self.mpeg2 = True
            if pos + 14 > len(data):
                return len(data)
            return pos + 14 + (data[pos + 13] & 0x07)
        if marker & 0xF0 == 0x20:
            if self.mpeg2 is None:
                self.mpeg2 = False
            return pos + 12
        return pos + 4

    def _pes(self, data: bytes, pos: int, tail: bool) -> int:
        header = parse_pes_header(data, pos)
        if header is None or not header.packet_length:
            return pos + 3
        packet_end = min(pos + 6 + header.packet_length, len(data))
        start = pos + header.payload_offset
        if start >= packet_end:
            return packet_end
        stream_id = header.stream_id
        sub_id = None
        skip = 0
        if stream_id == PRIVATE_STREAM_1:
            sub_id = data[start]
            classified = private_substream(sub_id)
            if classified is None:
                return packet_end
            kind, name, skip = classified
        elif is_video_stream_id(stream_id):
            kind, name = StreamKind.VIDEO, "MPEG Video"
        else:
            kind, name = StreamKind.AUDIO, "MPEG Audio"
        key = (stream_id, sub_id)
        stream = self.streams.get(key)
        if stream is None:
            stream = _PSStream(stream_id=stream_id, sub_id=sub_id, kind=kind, format=name)
            self.streams[key] = stream
        stream.add_pes(header, tail)
        if name == "PCM" and not stream.lpcm_header:
            stream.lpcm_header = data[start : start + 7]
        stream.add_payload(data[min(start + skip, packet_end) : packet_end], tail)
        return packet_end


class MPEGPSParser(BaseParser):
    """Parser for MPEG program streams."""

    format = ContainerFormat.MPEG_PS
    name = "mpegps"

    def parse(self, fh: BinaryIO, size: int) -> ContainerInfo:
        info = ContainerInfo(format=self.format, format_name="MPEG-PS", overall_bit_rate_mode="Variable")
        scanner = _Scanner()
        windows = scan_windows(size, self.options)
        try:
            for index, (start, end) in enumerate(windows):
                scanner.feed(read_at(fh, start, end - start), tail=index > 0)
        except DECODE_ERRORS as e:
            logger.warning("pack walk stopped early: %s", e)
            info.truncated = True
        if scanner.mpeg2 is not None:
            info.extra["Format version"] = "Version 2" if scanner.mpeg2 else "Version 1"

        full_scan = len(windows) == 1
        share = size / scanner.scanned if scanner.scanned and not full_scan else 1.0
        for stream in scanner.streams.values():
            info.tracks.append(self._build_track(stream, full_scan, share))
        info.duration = info.max_track_duration
        if not scanner.streams:
            logger.debug("no PES packets found")
        return info

    def _build_track(self, stream: _PSStream, full_scan: bool, share: float) -> TrackInfo:
        track_id = format_hex_id(stream.stream_id)
        if stream.sub_id is not None:
            track_id = f"{track_id}-{format_hex_id(stream.sub_id)}"
        track = TrackInfo(kind=stream.kind, id=track_id, format=stream.format)
        if stream.format == "PCM" and len(stream.lpcm_header) >= 6:
            self._apply_lpcm(track, stream.lpcm_header)
        fill_track(track, stream, full_scan, share, not self.options.summary_only)
        return track

    @staticmethod
    def _apply_lpcm(track: TrackInfo, header: bytes) -> None:
        # DVD LPCM: sub id, frame count, first access unit, flags, format
        info = header[5]
        depth = info >> 6
        track.bit_depth = LPCM_BIT_DEPTHS[depth] if depth < len(LPCM_BIT_DEPTHS) else None
        track.sample_rate = float(LPCM_SAMPLE_RATES[(info >> 4) & 0x03])
        track.channels = (info & 0x07) + 1
        if track.bit_depth:
            track.bit_rate = track.sample_rate * track.bit_depth * track.channels
            track.bit_rate_mode = "Constant"
